import logging
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import firebase_admin
from firebase_admin import credentials, db
from firebase_admin import exceptions as firebase_exceptions

from gharsewa.models import Candidate, GeoPoint, LocationAck, UserProfile
from gharsewa.services.directory_store import (
    ROLES,
    DirectoryStore,
    DirectoryStoreNotFoundError,
    DirectoryStoreValidationError,
    StoreUnavailableError,
    ensure_valid_entity_id,
    ensure_valid_point,
    ensure_valid_role,
    is_valid_entity_id,
    profile_to_candidate,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

USERS_PATH = "users"


def profile_from_record(entity_id: str, raw: Dict[str, Any]) -> Optional[UserProfile]:
    """Build a profile from a ``users/<id>`` record; None if the record has no usable role."""
    role = raw.get("userType") or raw.get("role")
    if role not in ROLES:
        return None
    latitude = raw.get("latitude")
    longitude = raw.get("longitude")
    return UserProfile(
        id=entity_id,
        name=str(raw.get("name") or ""),
        email=str(raw.get("email") or ""),
        role=role,
        skills=str(raw.get("skills") or ""),
        bio=str(raw.get("bio") or ""),
        average_rating=float(raw.get("averageRating") or 0.0),
        total_reviews=int(raw.get("totalReviews") or 0),
        latitude=float(latitude) if isinstance(latitude, (int, float)) else None,
        longitude=float(longitude) if isinstance(longitude, (int, float)) else None,
        location_updated_at=raw.get("locationUpdatedAt"),
    )


def iter_user_records(records: Any) -> Iterable[Tuple[str, Any]]:
    """Yield ``(id, record)`` pairs from a ``users`` snapshot.

    The Realtime Database hands back a list instead of a dict when every key
    is a small integer, with ``None`` in the gaps.
    """
    if isinstance(records, dict):
        for entity_id, raw in records.items():
            yield str(entity_id), raw
    elif isinstance(records, list):
        for index, raw in enumerate(records):
            yield str(index), raw
    elif records is not None:
        logger.warning("Ignoring users snapshot of type %s", type(records).__name__)


class FirebaseDirectoryStore(DirectoryStore):
    """Directory backed by the Firebase Realtime Database ``users`` tree."""

    backend_name = "firebase"

    def __init__(
        self,
        database_url: str,
        credentials_path: str,
        reference_factory: Optional[Callable[[str], Any]] = None,
    ) -> None:
        self._init_listeners()
        self._lock = Lock()
        self.database_url = database_url
        self.credentials_path = credentials_path
        self._reference = reference_factory
        self._initialized = reference_factory is not None

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            if not self.credentials_path or not self.database_url:
                raise StoreUnavailableError(
                    "Firebase directory needs FIREBASE_CREDENTIALS_PATH and FIREBASE_DATABASE_URL"
                )
            try:
                cred = credentials.Certificate(self.credentials_path)
                if not firebase_admin._apps:  # pylint: disable=protected-access
                    firebase_admin.initialize_app(cred, {"databaseURL": self.database_url})
            except (ValueError, OSError) as exc:
                logger.exception("Firebase directory init failed")
                raise StoreUnavailableError(f"Firebase init failed: {exc}") from exc
            self._reference = db.reference
            self._initialized = True
            logger.info("Firebase directory initialized for %s", self.database_url)

    def _ref(self, path: str) -> Any:
        self._ensure_initialized()
        assert self._reference is not None
        return self._reference(path)

    def _user_ref(self, entity_id: str) -> Any:
        ensure_valid_entity_id(entity_id)
        return self._ref(f"{USERS_PATH}/{entity_id}")

    def _call(self, action: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except firebase_exceptions.FirebaseError as exc:
            logger.exception("Firebase %s failed", action)
            raise StoreUnavailableError(f"Firebase {action} failed: {exc}") from exc

    def fetch_all(self, role: Optional[str] = None) -> List[Candidate]:
        records = self._call("read", lambda: self._ref(USERS_PATH).get())
        result: List[Candidate] = []
        for entity_id, raw in iter_user_records(records):
            if not isinstance(raw, dict):
                continue
            profile = profile_from_record(entity_id, raw)
            if profile is None:
                logger.debug("Skipping directory record %s without a known role", entity_id)
                continue
            if role is not None and profile.role != role:
                continue
            result.append(profile_to_candidate(profile))
        return result

    def get_profile(self, entity_id: str) -> Optional[UserProfile]:
        # No record can live under such an id, same as a miss in sqlite.
        if not is_valid_entity_id(entity_id):
            return None
        ref = self._user_ref(entity_id)
        raw = self._call("read", ref.get)
        if not isinstance(raw, dict):
            return None
        return profile_from_record(entity_id, raw)

    def upsert_profile(
        self,
        *,
        entity_id: str,
        name: str,
        role: str,
        email: str = "",
        skills: str = "",
        bio: str = "",
    ) -> UserProfile:
        entity_id = entity_id.strip()
        name = name.strip()
        ensure_valid_entity_id(entity_id)
        if not name:
            raise DirectoryStoreValidationError("Name is required")
        ensure_valid_role(role)

        ref = self._user_ref(entity_id)
        fields = {
            "name": name,
            "email": email.strip(),
            "userType": role,
            "skills": skills.strip(),
            "bio": bio.strip(),
        }
        self._call("write", lambda: ref.update(fields))
        raw = self._call("read", ref.get) or {}
        profile = profile_from_record(entity_id, raw)
        assert profile is not None
        return profile

    def write_location(self, entity_id: str, point: GeoPoint) -> LocationAck:
        ref = self._user_ref(entity_id)
        ensure_valid_point(point)
        if self._call("read", ref.get) is None:
            raise DirectoryStoreNotFoundError(f"User {entity_id} not found")
        recorded_at = utc_now_iso()
        self._call(
            "write",
            lambda: ref.update(
                {
                    "latitude": point.latitude,
                    "longitude": point.longitude,
                    "locationUpdatedAt": recorded_at,
                }
            ),
        )
        self._notify_location(entity_id, point)
        return LocationAck(entity_id=entity_id, point=point, recorded_at=recorded_at)
