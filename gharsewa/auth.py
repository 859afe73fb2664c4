import base64
import hashlib
import hmac
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Header, HTTPException, status

from gharsewa.services.directory_store import ROLES

DEFAULT_TOKEN_TTL_HOURS = 24


def _read_ttl_hours() -> int:
    raw = os.getenv("AUTH_TOKEN_TTL_HOURS", str(DEFAULT_TOKEN_TTL_HOURS))
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_TOKEN_TTL_HOURS
    return value if value > 0 else DEFAULT_TOKEN_TTL_HOURS


TOKEN_TTL_HOURS = _read_ttl_hours()
AUTH_REQUIRED = os.getenv("AUTH_REQUIRED", "false").lower() in {"1", "true", "yes"}
DEMO_PASSWORD = os.getenv("AUTH_DEMO_PASSWORD", "gharsewa-demo")
_AUTH_SECRET = os.getenv("AUTH_SECRET", "dev-insecure-secret-change-me")


@dataclass(frozen=True)
class TokenClaims:
    """Directory identity carried by a bearer token.

    ``role`` is the directory role at login time; a user who changes role
    has to log in again before acting in the new role.
    """

    user_id: str
    role: str


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _b64urldecode(value: str) -> bytes:
    padding = "=" * ((4 - len(value) % 4) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("utf-8"))


def _sign(payload: bytes) -> bytes:
    return hmac.new(_AUTH_SECRET.encode("utf-8"), payload, hashlib.sha256).digest()


def create_access_token(user_id: str, role: str) -> tuple[str, str]:
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    expiry = datetime.now(timezone.utc) + timedelta(hours=TOKEN_TTL_HOURS)
    payload = f"{user_id}|{role}|{int(expiry.timestamp())}".encode("utf-8")
    token = f"{_b64url(payload)}.{_b64url(_sign(payload))}"
    return token, expiry.isoformat()


def verify_access_token(token: str) -> Optional[TokenClaims]:
    try:
        payload_part, sig_part = token.split(".", 1)
        payload = _b64urldecode(payload_part)
        if not hmac.compare_digest(_b64urldecode(sig_part), _sign(payload)):
            return None
        user_id, role, expiry_ts = payload.decode("utf-8").rsplit("|", 2)
        if role not in ROLES:
            return None
        if datetime.now(timezone.utc).timestamp() > int(expiry_ts):
            return None
        return TokenClaims(user_id=user_id, role=role)
    except (ValueError, UnicodeDecodeError):
        return None


def parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


def resolve_request_claims(authorization: Optional[str]) -> Optional[TokenClaims]:
    token = parse_bearer_token(authorization)
    if not token:
        return None
    return verify_access_token(token)


def require_authenticated_user(authorization: Optional[str] = Header(default=None)) -> TokenClaims:
    claims = resolve_request_claims(authorization)
    if not claims:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing bearer token")
    return claims


def assert_actor_authorized(
    actor_user_id: str,
    authorization: Optional[str] = Header(default=None),
    required_role: Optional[str] = None,
) -> None:
    """Check the explicitly named actor against the bearer token, if one was sent.

    With ``required_role`` set, the token must also have been issued to a user
    holding that directory role.
    """
    claims = resolve_request_claims(authorization)
    if not claims:
        if AUTH_REQUIRED:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
        return
    if claims.user_id != actor_user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token user does not match actor user")
    if required_role is not None and claims.role != required_role:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Only a {required_role} can perform this action",
        )
