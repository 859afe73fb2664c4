import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Iterator, List, Optional
from uuid import uuid4

from gharsewa.models import ServiceRequest
from gharsewa.services.directory_store import (
    DirectoryStoreConflictError,
    DirectoryStoreNotFoundError,
    DirectoryStorePermissionError,
    DirectoryStoreValidationError,
    StoreUnavailableError,
    default_db_path,
    utc_now_iso,
)

logger = logging.getLogger(__name__)


@dataclass
class RequestStore:
    db_path: str

    def __post_init__(self) -> None:
        self._lock = Lock()
        path = Path(self.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(path)
        self._init_db()

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
                logger.exception("Request database error at %s", self.db_path)
                raise StoreUnavailableError(f"Request database error: {exc}") from exc

    def _init_db(self) -> None:
        with self._session() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS service_requests (
                    id TEXT PRIMARY KEY,
                    customer_id TEXT NOT NULL,
                    provider_id TEXT,
                    description TEXT NOT NULL,
                    location TEXT NOT NULL,
                    wage REAL NOT NULL,
                    contact_number TEXT NOT NULL,
                    status TEXT NOT NULL,
                    latitude REAL,
                    longitude REAL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS provider_not_interested (
                    provider_id TEXT NOT NULL,
                    request_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (provider_id, request_id)
                )
                """
            )
            conn.commit()

    def _row_to_request(self, row: sqlite3.Row) -> ServiceRequest:
        return ServiceRequest(
            id=row["id"],
            customer_id=row["customer_id"],
            provider_id=row["provider_id"],
            description=row["description"],
            location=row["location"],
            wage=float(row["wage"]),
            contact_number=row["contact_number"],
            status=row["status"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            latitude=row["latitude"],
            longitude=row["longitude"],
        )

    def _fetch_row(self, conn: sqlite3.Connection, request_id: str) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM service_requests WHERE id = ?", (request_id,)).fetchone()
        if not row:
            raise DirectoryStoreNotFoundError("Service request not found")
        return row

    def create_request(
        self,
        *,
        customer_id: str,
        description: str,
        location: str,
        wage: float,
        contact_number: str,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> ServiceRequest:
        description = description.strip()
        location = location.strip()
        contact_number = contact_number.strip()
        if not description:
            raise DirectoryStoreValidationError("Description is required")
        if not location:
            raise DirectoryStoreValidationError("Location is required")
        if not contact_number:
            raise DirectoryStoreValidationError("Contact number is required")
        if wage < 0:
            raise DirectoryStoreValidationError("Wage must not be negative")
        if (latitude is None) != (longitude is None):
            raise DirectoryStoreValidationError("Latitude and longitude must be provided together")

        request_id = f"req_{uuid4().hex[:10]}"
        now = utc_now_iso()
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO service_requests (
                    id, customer_id, provider_id, description, location, wage, contact_number,
                    status, latitude, longitude, created_at, updated_at
                )
                VALUES (?, ?, NULL, ?, ?, ?, ?, 'pending', ?, ?, ?, ?)
                """,
                (request_id, customer_id, description, location, wage, contact_number, latitude, longitude, now, now),
            )
            conn.commit()
            row = self._fetch_row(conn, request_id)
        return self._row_to_request(row)

    def get_request(self, request_id: str) -> ServiceRequest:
        with self._session() as conn:
            row = self._fetch_row(conn, request_id)
        return self._row_to_request(row)

    def list_for_customer(self, customer_id: str) -> List[ServiceRequest]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT * FROM service_requests WHERE customer_id = ? ORDER BY created_at DESC, rowid DESC",
                (customer_id,),
            ).fetchall()
        return [self._row_to_request(row) for row in rows]

    def list_open(self, provider_id: str) -> List[ServiceRequest]:
        with self._session() as conn:
            rows = conn.execute(
                """
                SELECT r.* FROM service_requests r
                WHERE r.status = 'pending'
                  AND r.customer_id != ?
                  AND NOT EXISTS (
                      SELECT 1 FROM provider_not_interested n
                      WHERE n.provider_id = ? AND n.request_id = r.id
                  )
                ORDER BY r.created_at DESC, r.rowid DESC
                """,
                (provider_id, provider_id),
            ).fetchall()
        return [self._row_to_request(row) for row in rows]

    def list_accepted(self, provider_id: str) -> List[ServiceRequest]:
        with self._session() as conn:
            rows = conn.execute(
                """
                SELECT * FROM service_requests
                WHERE provider_id = ? AND status = 'accepted'
                ORDER BY updated_at DESC, rowid DESC
                """,
                (provider_id,),
            ).fetchall()
        return [self._row_to_request(row) for row in rows]

    def accept(self, request_id: str, provider_id: str) -> ServiceRequest:
        with self._session() as conn:
            row = self._fetch_row(conn, request_id)
            if row["customer_id"] == provider_id:
                raise DirectoryStorePermissionError("Customers cannot accept their own request")
            if row["status"] != "pending":
                raise DirectoryStoreConflictError(f"Request is already {row['status']}")
            conn.execute(
                "UPDATE service_requests SET provider_id = ?, status = 'accepted', updated_at = ? WHERE id = ?",
                (provider_id, utc_now_iso(), request_id),
            )
            conn.commit()
            row = self._fetch_row(conn, request_id)
        logger.info("Request %s accepted by %s", request_id, provider_id)
        return self._row_to_request(row)

    def mark_not_interested(self, request_id: str, provider_id: str) -> ServiceRequest:
        with self._session() as conn:
            row = self._fetch_row(conn, request_id)
            conn.execute(
                """
                INSERT OR IGNORE INTO provider_not_interested (provider_id, request_id, created_at)
                VALUES (?, ?, ?)
                """,
                (provider_id, request_id, utc_now_iso()),
            )
            # Release the request back to the pool only if this provider holds it.
            if row["provider_id"] == provider_id and row["status"] == "accepted":
                conn.execute(
                    "UPDATE service_requests SET provider_id = NULL, status = 'pending', updated_at = ? WHERE id = ?",
                    (utc_now_iso(), request_id),
                )
            conn.commit()
            row = self._fetch_row(conn, request_id)
        return self._row_to_request(row)

    def complete(self, request_id: str, customer_id: str) -> ServiceRequest:
        with self._session() as conn:
            row = self._fetch_row(conn, request_id)
            if row["customer_id"] != customer_id:
                raise DirectoryStorePermissionError("Only the requesting customer can complete a request")
            if row["status"] != "accepted":
                raise DirectoryStoreConflictError("Only accepted requests can be completed")
            conn.execute(
                "UPDATE service_requests SET status = 'completed', updated_at = ? WHERE id = ?",
                (utc_now_iso(), request_id),
            )
            conn.commit()
            row = self._fetch_row(conn, request_id)
        return self._row_to_request(row)


request_store = RequestStore(db_path=default_db_path())
