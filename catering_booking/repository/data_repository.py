"""Repository layer standing in for the shared booking calendar."""

from __future__ import annotations

import json
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from catering_booking.domain.models import BookingRecord, ExistingBooking
from catering_booking.utils.config import Settings, get_settings
from catering_booking.utils.logger import get_logger


logger = get_logger(__name__)

IDEMPOTENCY_TAG = "idempotency_token"


class CalendarStoreError(Exception):
    """Base failure talking to the calendar store."""


class CalendarReadError(CalendarStoreError):
    """Raised when bookings cannot be listed."""


class CalendarWriteError(CalendarStoreError):
    """Raised when a booking cannot be created or updated."""


@dataclass(frozen=True)
class StoredBooking:
    """Full booking projection used by operator views."""

    booking_id: str
    title: str
    description: str
    location: str
    start: datetime
    end: datetime
    timezone: str
    attendees: tuple[str, ...]
    cancelled: bool
    tags: dict[str, str]


@dataclass(frozen=True)
class RejectionRecord:
    rejection_id: int
    source: str
    reason_code: str
    detail: str
    idempotency_token: Optional[str]
    requester_name: str
    start: Optional[str]
    created_at: str


def _to_db(instant: datetime) -> str:
    # Fixed-width UTC text keeps lexical and chronological order identical.
    if instant.tzinfo is None:
        raise ValueError("instants stored in the calendar must be timezone-aware")
    return instant.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _from_db(value: str) -> datetime:
    return datetime.fromisoformat(value)


class DataRepository:
    """Encapsulates SQLite access so admission logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Bookings (
                        id TEXT PRIMARY KEY,
                        title TEXT NOT NULL,
                        description TEXT NOT NULL DEFAULT '',
                        location TEXT NOT NULL DEFAULT '',
                        start_utc TEXT NOT NULL,
                        end_utc TEXT NOT NULL,
                        timezone TEXT NOT NULL,
                        attendees TEXT NOT NULL DEFAULT '[]',
                        cancelled INTEGER NOT NULL DEFAULT 0 CHECK (cancelled IN (0,1)),
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS BookingTags (
                        booking_id TEXT NOT NULL,
                        tag_key TEXT NOT NULL,
                        tag_value TEXT NOT NULL,
                        PRIMARY KEY (booking_id, tag_key),
                        FOREIGN KEY (booking_id) REFERENCES Bookings(id)
                    );
                    """
                )
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS AdmissionRejections (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        source TEXT NOT NULL,
                        reason_code TEXT NOT NULL,
                        detail TEXT NOT NULL DEFAULT '',
                        idempotency_token TEXT,
                        requester_name TEXT NOT NULL DEFAULT '',
                        start_utc TEXT,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_span
                    ON Bookings(start_utc, end_utc);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_booking_tags_lookup
                    ON BookingTags(tag_key, tag_value);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_rejections_token
                    ON AdmissionRejections(idempotency_token, reason_code);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def list_bookings(
        self,
        time_min: datetime,
        time_max: datetime,
        *,
        tag: Optional[tuple[str, str]] = None,
        limit: int = 250,
    ) -> list[ExistingBooking]:
        """Return bookings intersecting [time_min, time_max) ordered by start.

        Cancelled bookings are included and flagged; callers decide whether
        they count.
        """
        query = """
            SELECT b.id, b.start_utc, b.end_utc, b.cancelled, t.tag_value AS idem
            FROM Bookings AS b
            LEFT JOIN BookingTags AS t
                ON t.booking_id = b.id AND t.tag_key = ?
            WHERE b.end_utc > ? AND b.start_utc < ?
        """
        params: list[object] = [IDEMPOTENCY_TAG, _to_db(time_min), _to_db(time_max)]
        if tag is not None:
            query += """
              AND EXISTS (
                SELECT 1 FROM BookingTags AS f
                WHERE f.booking_id = b.id AND f.tag_key = ? AND f.tag_value = ?
              )
            """
            params.extend(tag)
        query += " ORDER BY b.start_utc ASC, b.id ASC LIMIT ?;"
        params.append(int(limit))

        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(query, params)
                rows = cursor.fetchall()
        except sqlite3.Error as exc:
            raise CalendarReadError(f"Listing bookings failed: {exc}") from exc

        return [
            ExistingBooking(
                booking_id=str(row["id"]),
                start=_from_db(row["start_utc"]),
                end=_from_db(row["end_utc"]),
                cancelled=bool(row["cancelled"]),
                idempotency_tag=row["idem"] or None,
            )
            for row in rows
        ]

    def create_booking(self, record: BookingRecord) -> str:
        """Insert a booking with its tags and return the new external id."""
        booking_id = uuid.uuid4().hex
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    INSERT INTO Bookings (
                        id, title, description, location,
                        start_utc, end_utc, timezone, attendees
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        booking_id,
                        record.title,
                        record.description,
                        record.location,
                        _to_db(record.start),
                        _to_db(record.end),
                        record.timezone,
                        json.dumps(list(record.attendees)),
                    ),
                )
                cursor.executemany(
                    """
                    INSERT INTO BookingTags (booking_id, tag_key, tag_value)
                    VALUES (?, ?, ?);
                    """,
                    [(booking_id, key, str(value)) for key, value in record.tags.items()],
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise CalendarWriteError(f"Creating booking failed: {exc}") from exc
        logger.info("Booking stored | booking_id=%s | start=%s", booking_id, _to_db(record.start))
        return booking_id

    def cancel_booking(self, booking_id: str) -> bool:
        """Mark a booking cancelled; returns False when the id is unknown."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "UPDATE Bookings SET cancelled = 1 WHERE id = ?;",
                    (booking_id,),
                )
                conn.commit()
                updated = cursor.rowcount > 0
        except sqlite3.Error as exc:
            raise CalendarWriteError(f"Cancelling booking failed: {exc}") from exc
        if updated:
            logger.info("Booking cancelled | booking_id=%s", booking_id)
        return updated

    def get_booking(self, booking_id: str) -> Optional[StoredBooking]:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT * FROM Bookings WHERE id = ?;", (booking_id,))
                row = cursor.fetchone()
                if row is None:
                    return None
                cursor.execute(
                    "SELECT tag_key, tag_value FROM BookingTags WHERE booking_id = ?;",
                    (booking_id,),
                )
                tags = {str(tag["tag_key"]): str(tag["tag_value"]) for tag in cursor.fetchall()}
        except sqlite3.Error as exc:
            raise CalendarReadError(f"Loading booking failed: {exc}") from exc
        return self._to_stored(row, tags)

    def list_stored_bookings(self, time_min: datetime, time_max: datetime) -> list[StoredBooking]:
        """Operator view of every booking in a range, with tags."""
        return [
            stored
            for stored in (
                self.get_booking(booking.booking_id)
                for booking in self.list_bookings(
                    time_min,
                    time_max,
                    limit=self._settings.calendar_list_limit,
                )
            )
            if stored is not None
        ]

    def count_bookings(self, *, include_cancelled: bool = False) -> int:
        """Return persisted booking count for diagnostics and tests."""
        query = "SELECT COUNT(*) AS count FROM Bookings"
        if not include_cancelled:
            query += " WHERE cancelled = 0"
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(query + ";")
            return int(cursor.fetchone()["count"])

    def record_rejection(
        self,
        *,
        source: str,
        reason_code: str,
        detail: str,
        idempotency_token: Optional[str],
        requester_name: str,
        start: Optional[datetime],
    ) -> int:
        """Persist a business rejection so operators can follow up.

        A redelivered token rejected for the same reason keeps its first row,
        whose id is returned.
        """
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                if idempotency_token:
                    cursor.execute(
                        """
                        SELECT id FROM AdmissionRejections
                        WHERE idempotency_token = ? AND reason_code = ?
                        ORDER BY id ASC
                        LIMIT 1;
                        """,
                        (idempotency_token, reason_code),
                    )
                    existing = cursor.fetchone()
                    if existing is not None:
                        return int(existing["id"])
                cursor.execute(
                    """
                    INSERT INTO AdmissionRejections (
                        source, reason_code, detail, idempotency_token,
                        requester_name, start_utc
                    )
                    VALUES (?, ?, ?, ?, ?, ?);
                    """,
                    (
                        source,
                        reason_code,
                        detail,
                        idempotency_token,
                        requester_name,
                        _to_db(start) if start is not None else None,
                    ),
                )
                conn.commit()
                return int(cursor.lastrowid)
        except sqlite3.Error as exc:
            raise CalendarWriteError(f"Recording rejection failed: {exc}") from exc

    def list_rejections(self, limit: int = 100) -> list[RejectionRecord]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, source, reason_code, detail, idempotency_token,
                       requester_name, start_utc, created_at
                FROM AdmissionRejections
                ORDER BY id DESC
                LIMIT ?;
                """,
                (int(limit),),
            )
            return [
                RejectionRecord(
                    rejection_id=int(row["id"]),
                    source=str(row["source"]),
                    reason_code=str(row["reason_code"]),
                    detail=str(row["detail"]),
                    idempotency_token=row["idempotency_token"],
                    requester_name=str(row["requester_name"]),
                    start=row["start_utc"],
                    created_at=str(row["created_at"]),
                )
                for row in cursor.fetchall()
            ]

    def count_rejections(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM AdmissionRejections;")
            return int(cursor.fetchone()["count"])

    @staticmethod
    def _to_stored(row: sqlite3.Row, tags: dict[str, str]) -> StoredBooking:
        return StoredBooking(
            booking_id=str(row["id"]),
            title=str(row["title"]),
            description=str(row["description"]),
            location=str(row["location"]),
            start=_from_db(row["start_utc"]),
            end=_from_db(row["end_utc"]),
            timezone=str(row["timezone"]),
            attendees=tuple(json.loads(row["attendees"] or "[]")),
            cancelled=bool(row["cancelled"]),
            tags=tags,
        )
