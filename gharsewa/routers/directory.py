from typing import Optional

from fastapi import APIRouter, Header, HTTPException

from gharsewa.auth import assert_actor_authorized
from gharsewa.models import GeoPoint, LocationAck, LocationUpdateRequest, UserProfile, UserProfileUpsertRequest
from gharsewa.routers.errors import raise_directory_http_error
from gharsewa.services.directory_store import DirectoryStoreError
from gharsewa.services.runtime import directory_store, proximity_ranker

router = APIRouter(prefix="/directory", tags=["directory"])


@router.post("/users", response_model=UserProfile)
def upsert_user(
    request: UserProfileUpsertRequest,
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=request.actor_user_id, authorization=authorization)
    try:
        return directory_store.upsert_profile(
            entity_id=request.actor_user_id,
            name=request.name,
            role=request.role,
            email=request.email,
            skills=request.skills,
            bio=request.bio,
        )
    except DirectoryStoreError as exc:
        raise_directory_http_error(exc)


@router.get("/users/{user_id}", response_model=UserProfile)
def get_user(user_id: str):
    try:
        profile = directory_store.get_profile(user_id)
    except DirectoryStoreError as exc:
        raise_directory_http_error(exc)
    if not profile:
        raise HTTPException(status_code=404, detail="User not found")
    return profile


@router.post("/users/{user_id}/location", response_model=LocationAck)
def record_location(
    user_id: str,
    request: LocationUpdateRequest,
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=request.actor_user_id, authorization=authorization)
    if request.actor_user_id != user_id:
        raise HTTPException(status_code=403, detail="Users can only record their own location")
    try:
        return proximity_ranker.record_location(
            user_id,
            GeoPoint(latitude=request.latitude, longitude=request.longitude),
        )
    except DirectoryStoreError as exc:
        raise_directory_http_error(exc)
