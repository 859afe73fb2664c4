import logging

from fastapi import APIRouter, Depends, HTTPException

from gharsewa.auth import DEMO_PASSWORD, TokenClaims, create_access_token, require_authenticated_user
from gharsewa.models import AuthLoginRequest, AuthLoginResponse, AuthMeResponse
from gharsewa.routers.errors import raise_directory_http_error
from gharsewa.services.directory_store import DirectoryStoreError
from gharsewa.services.runtime import directory_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=AuthLoginResponse)
def login(payload: AuthLoginRequest):
    user_id = payload.user_id.strip()
    if not user_id:
        raise HTTPException(status_code=400, detail="user_id is required")
    if payload.password != DEMO_PASSWORD:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    try:
        profile = directory_store.get_profile(user_id)
    except DirectoryStoreError as exc:
        raise_directory_http_error(exc)
    if not profile:
        logger.info("Login refused for unregistered user %s", user_id)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token, expires_at = create_access_token(user_id=profile.id, role=profile.role)
    return AuthLoginResponse(access_token=token, user_id=profile.id, role=profile.role, expires_at=expires_at)


@router.get("/me", response_model=AuthMeResponse)
def me(claims: TokenClaims = Depends(require_authenticated_user)):
    return AuthMeResponse(user_id=claims.user_id, role=claims.role)
