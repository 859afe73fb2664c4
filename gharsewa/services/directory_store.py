import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Callable, Iterator, List, Optional

from gharsewa.models import Candidate, GeoPoint, LocationAck, UserProfile

logger = logging.getLogger(__name__)

LocationListener = Callable[[str, GeoPoint], None]

ROLES = {"provider", "customer"}
ENTITY_ID_FORBIDDEN_CHARS = (".", "$", "#", "[", "]", "/")

DEMO_USERS = [
    {
        "id": "prv_thamel_plumbing",
        "name": "Thamel Plumbing Works",
        "email": "thamel.plumbing@example.com",
        "role": "provider",
        "skills": "plumbing, pipe fitting",
        "bio": "Leak repairs and bathroom fittings around Thamel.",
        "average_rating": 4.6,
        "total_reviews": 38,
        "latitude": 27.7154,
        "longitude": 85.3123,
    },
    {
        "id": "prv_patan_electric",
        "name": "Patan Electricals",
        "email": "patan.electric@example.com",
        "role": "provider",
        "skills": "electrical, wiring, inverter setup",
        "bio": "Licensed electricians serving Lalitpur.",
        "average_rating": 4.8,
        "total_reviews": 61,
        "latitude": 27.6736,
        "longitude": 85.3250,
    },
    {
        "id": "prv_bhaktapur_paint",
        "name": "Bhaktapur Home Painters",
        "email": "bkt.paint@example.com",
        "role": "provider",
        "skills": "painting, wall putty",
        "bio": "Interior and exterior painting.",
        "average_rating": 4.2,
        "total_reviews": 17,
        "latitude": 27.6710,
        "longitude": 85.4298,
    },
    {
        "id": "prv_new_carpentry",
        "name": "Fresh Start Carpentry",
        "email": "carpentry@example.com",
        "role": "provider",
        "skills": "carpentry",
        "bio": "Has not shared a location yet.",
        "average_rating": 0.0,
        "total_reviews": 0,
        "latitude": None,
        "longitude": None,
    },
    {
        "id": "cus_baneshwor",
        "name": "Sita Sharma",
        "email": "sita@example.com",
        "role": "customer",
        "skills": "",
        "bio": "",
        "average_rating": 0.0,
        "total_reviews": 0,
        "latitude": 27.6915,
        "longitude": 85.3420,
    },
]


class DirectoryStoreError(ValueError):
    """Base class for user-visible directory errors."""


class DirectoryStoreValidationError(DirectoryStoreError):
    pass


class InvalidCoordinateError(DirectoryStoreValidationError):
    pass


class DirectoryStoreNotFoundError(DirectoryStoreError):
    pass


class DirectoryStoreConflictError(DirectoryStoreError):
    pass


class DirectoryStorePermissionError(DirectoryStoreError):
    pass


class StoreUnavailableError(DirectoryStoreError):
    """The backing store could not be reached or refused the operation."""


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def ensure_valid_point(point: GeoPoint) -> None:
    # Written this way so NaN fails both checks.
    if not -90.0 <= point.latitude <= 90.0:
        raise InvalidCoordinateError(f"Latitude out of range: {point.latitude}")
    if not -180.0 <= point.longitude <= 180.0:
        raise InvalidCoordinateError(f"Longitude out of range: {point.longitude}")


def is_valid_entity_id(entity_id: str) -> bool:
    return bool(entity_id.strip()) and not any(char in ENTITY_ID_FORBIDDEN_CHARS for char in entity_id)


def ensure_valid_entity_id(entity_id: str) -> None:
    # Ids double as Realtime Database keys, which cannot hold these characters.
    if not entity_id.strip():
        raise DirectoryStoreValidationError("User id is required")
    if not is_valid_entity_id(entity_id):
        raise DirectoryStoreValidationError(
            f"User id may not contain any of: {' '.join(ENTITY_ID_FORBIDDEN_CHARS)}"
        )


def ensure_valid_role(role: str) -> None:
    if role not in ROLES:
        raise DirectoryStoreValidationError("Invalid role. Allowed: provider, customer")


def profile_to_candidate(profile: UserProfile) -> Candidate:
    location = None
    if profile.latitude is not None and profile.longitude is not None:
        location = GeoPoint(latitude=profile.latitude, longitude=profile.longitude)
    return Candidate(
        id=profile.id,
        name=profile.name,
        role=profile.role,
        location=location,
        attributes={
            "skills": profile.skills,
            "bio": profile.bio,
            "average_rating": profile.average_rating,
            "total_reviews": profile.total_reviews,
        },
    )


class DirectoryStore:
    """System of record for user profiles and their last-known locations.

    Location writes are announced to subscribers registered with
    :meth:`subscribe` once the write has been accepted by the backend.
    """

    backend_name = "abstract"

    def _init_listeners(self) -> None:
        self._listener_lock = Lock()
        self._listeners: List[LocationListener] = []

    def subscribe(self, listener: LocationListener) -> Callable[[], None]:
        with self._listener_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._listener_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify_location(self, entity_id: str, point: GeoPoint) -> None:
        with self._listener_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(entity_id, point)
            except Exception:
                logger.exception("Location listener failed for %s", entity_id)

    def fetch_all(self, role: Optional[str] = None) -> List[Candidate]:
        raise NotImplementedError

    def write_location(self, entity_id: str, point: GeoPoint) -> LocationAck:
        raise NotImplementedError

    def get_profile(self, entity_id: str) -> Optional[UserProfile]:
        raise NotImplementedError

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
        raise NotImplementedError


@dataclass
class SqliteDirectoryStore(DirectoryStore):
    db_path: str
    seed_demo: bool = False

    backend_name = "sqlite"

    def __post_init__(self) -> None:
        self._lock = Lock()
        self._init_listeners()
        path = Path(self.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(path)
        self._init_db()
        if self.seed_demo:
            self._seed_if_needed()
        logger.info("Directory store ready at %s", self.db_path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                with self._connect() as conn:
                    yield conn
            except sqlite3.Error as exc:
                logger.exception("Directory database error at %s", self.db_path)
                raise StoreUnavailableError(f"Directory database error: {exc}") from exc

    def _init_db(self) -> None:
        with self._session() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL DEFAULT '',
                    role TEXT NOT NULL,
                    skills TEXT NOT NULL DEFAULT '',
                    bio TEXT NOT NULL DEFAULT '',
                    average_rating REAL NOT NULL DEFAULT 0,
                    total_reviews INTEGER NOT NULL DEFAULT 0,
                    latitude REAL,
                    longitude REAL,
                    location_updated_at TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.commit()

    def _seed_if_needed(self) -> None:
        with self._session() as conn:
            existing = conn.execute("SELECT COUNT(*) AS total FROM users").fetchone()
            if existing["total"]:
                return
            now = utc_now_iso()
            for user in DEMO_USERS:
                has_location = user["latitude"] is not None
                conn.execute(
                    """
                    INSERT INTO users (
                        id, name, email, role, skills, bio, average_rating, total_reviews,
                        latitude, longitude, location_updated_at, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user["id"],
                        user["name"],
                        user["email"],
                        user["role"],
                        user["skills"],
                        user["bio"],
                        user["average_rating"],
                        user["total_reviews"],
                        user["latitude"],
                        user["longitude"],
                        now if has_location else None,
                        now,
                    ),
                )
            conn.commit()
        logger.info("Seeded %d demo directory users", len(DEMO_USERS))

    def _row_to_profile(self, row: sqlite3.Row) -> UserProfile:
        return UserProfile(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            role=row["role"],
            skills=row["skills"],
            bio=row["bio"],
            average_rating=float(row["average_rating"]),
            total_reviews=int(row["total_reviews"]),
            latitude=row["latitude"],
            longitude=row["longitude"],
            location_updated_at=row["location_updated_at"],
        )

    def fetch_all(self, role: Optional[str] = None) -> List[Candidate]:
        with self._session() as conn:
            if role is not None:
                rows = conn.execute("SELECT * FROM users WHERE role = ? ORDER BY rowid", (role,)).fetchall()
            else:
                rows = conn.execute("SELECT * FROM users ORDER BY rowid").fetchall()
        return [profile_to_candidate(self._row_to_profile(row)) for row in rows]

    def get_profile(self, entity_id: str) -> Optional[UserProfile]:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (entity_id,)).fetchone()
        if not row:
            return None
        return self._row_to_profile(row)

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

        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO users (id, name, email, role, skills, bio, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    email = excluded.email,
                    role = excluded.role,
                    skills = excluded.skills,
                    bio = excluded.bio
                """,
                (entity_id, name, email.strip(), role, skills.strip(), bio.strip(), utc_now_iso()),
            )
            conn.commit()
            row = conn.execute("SELECT * FROM users WHERE id = ?", (entity_id,)).fetchone()
        return self._row_to_profile(row)

    def write_location(self, entity_id: str, point: GeoPoint) -> LocationAck:
        ensure_valid_entity_id(entity_id)
        ensure_valid_point(point)
        recorded_at = utc_now_iso()
        with self._session() as conn:
            cursor = conn.execute(
                "UPDATE users SET latitude = ?, longitude = ?, location_updated_at = ? WHERE id = ?",
                (point.latitude, point.longitude, recorded_at, entity_id),
            )
            if cursor.rowcount == 0:
                raise DirectoryStoreNotFoundError(f"User {entity_id} not found")
            conn.commit()

        self._notify_location(entity_id, point)
        return LocationAck(entity_id=entity_id, point=point, recorded_at=recorded_at)


def _read_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def default_db_path() -> str:
    default_db = str(Path(__file__).resolve().parents[2] / "data" / "directory.sqlite3")
    return os.getenv("DIRECTORY_DB_PATH", default_db)


def build_directory_store(backend: Optional[str] = None) -> DirectoryStore:
    backend = (backend or os.getenv("DIRECTORY_BACKEND", "sqlite")).strip().lower()
    if backend == "firebase":
        from gharsewa.services.firebase_directory import FirebaseDirectoryStore

        return FirebaseDirectoryStore(
            database_url=os.getenv("FIREBASE_DATABASE_URL", "").strip(),
            credentials_path=os.getenv("FIREBASE_CREDENTIALS_PATH", "").strip(),
        )
    if backend != "sqlite":
        raise ValueError(f"Unknown DIRECTORY_BACKEND: {backend}")
    return SqliteDirectoryStore(
        db_path=default_db_path(),
        seed_demo=_read_bool_env("DIRECTORY_SEED_DEMO", True),
    )
