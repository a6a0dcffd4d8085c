"""
SQLite-backed event store for openings and appointments.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from ..domain.exceptions import EventStoreError, InvalidEventError
from ..domain.models import EventKind, parse_recurring_flag, parse_timestamp

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    starts_at TEXT NOT NULL,
    ends_at TEXT NOT NULL,
    kind TEXT NOT NULL CHECK (kind IN ('appointment', 'opening')),
    weekly_recurring BOOLEAN
);
"""

_COLUMNS = "id, kind, starts_at, ends_at, weekly_recurring"


def to_storage_timestamp(value: Any, timezone: str = "UTC") -> str:
    """
    Convert a timestamp into the stored representation.

    Stored values are fixed-width UTC strings so that comparing them as
    text orders them chronologically.
    """
    return parse_timestamp(value, timezone).in_timezone("UTC").strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def get_connection(db_path: str | Path = MEMORY_DB) -> sqlite3.Connection:
    if str(db_path) != MEMORY_DB:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


class SqliteEventStore:
    """
    Event store on a single SQLite connection.

    Reads run in worker threads so the three availability queries can be
    awaited concurrently; a lock serializes access to the connection.
    """

    def __init__(self, db_path: str | Path = MEMORY_DB, timezone: str = "UTC"):
        """
        Initialize the store.

        Args:
            db_path: SQLite file path, or ``:memory:``
            timezone: Zone naive timestamps passed to add_event() are read in
        """
        self.db_path = str(db_path)
        self.timezone = timezone
        self._lock = threading.Lock()
        try:
            self._conn = get_connection(db_path)
        except sqlite3.Error as exc:
            raise EventStoreError(f"Could not open event store {db_path}: {exc}") from exc

    def __enter__(self) -> "SqliteEventStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def migrate(self) -> None:
        """Create the events table if it does not exist."""
        self._execute(_SCHEMA_SQL)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def truncate(self) -> None:
        """Delete all events."""
        self._execute("DELETE FROM events")

    def add_event(
        self,
        kind: EventKind | str,
        starts_at: Any,
        ends_at: Any,
        weekly_recurring: Optional[bool] = None,
    ) -> int:
        """
        Insert one event.

        Returns:
            Row id of the new event

        Raises:
            InvalidEventError: If the kind, timestamps or recurring flag are invalid
            EventStoreError: If the insert fails
        """
        try:
            kind = EventKind(kind)
        except ValueError as exc:
            raise InvalidEventError(f"Unknown event kind: {kind!r}") from exc

        if weekly_recurring is not None:
            weekly_recurring = parse_recurring_flag(weekly_recurring)

        if kind is EventKind.APPOINTMENT and weekly_recurring:
            raise InvalidEventError("Appointments cannot be weekly recurring")

        params = (
            to_storage_timestamp(starts_at, self.timezone),
            to_storage_timestamp(ends_at, self.timezone),
            kind.value,
            weekly_recurring,
        )
        return self._execute(
            "INSERT INTO events (starts_at, ends_at, kind, weekly_recurring) VALUES (?, ?, ?, ?)",
            params,
        )

    def add_events(self, records: Iterable[Mapping[str, Any]]) -> List[int]:
        return [
            self.add_event(
                kind=record["kind"],
                starts_at=record["starts_at"],
                ends_at=record["ends_at"],
                weekly_recurring=record.get("weekly_recurring"),
            )
            for record in records
        ]

    async def fetch_non_recurring_openings(self, start_iso: str, end_iso: str) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(
            self._query,
            f"SELECT {_COLUMNS} FROM events"
            " WHERE kind = ?"
            " AND (weekly_recurring IS NULL OR weekly_recurring = 0)"
            " AND starts_at >= ? AND ends_at <= ?"
            " ORDER BY starts_at ASC",
            (EventKind.OPENING.value, *self._range(start_iso, end_iso)),
        )

    async def fetch_recurring_openings(self) -> List[Dict[str, Any]]:
        # TODO: limit to a yearly partition once recurring openings can expire
        return await asyncio.to_thread(
            self._query,
            f"SELECT {_COLUMNS} FROM events"
            " WHERE kind = ? AND weekly_recurring = 1"
            " ORDER BY starts_at ASC",
            (EventKind.OPENING.value,),
        )

    async def fetch_appointments(self, start_iso: str, end_iso: str) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(
            self._query,
            f"SELECT {_COLUMNS} FROM events"
            " WHERE kind = ?"
            " AND starts_at >= ? AND ends_at <= ?"
            " AND (weekly_recurring IS NULL OR weekly_recurring = 0)"
            " ORDER BY starts_at ASC",
            (EventKind.APPOINTMENT.value, *self._range(start_iso, end_iso)),
        )

    def _range(self, start_iso: str, end_iso: str) -> tuple:
        try:
            return (
                to_storage_timestamp(start_iso, self.timezone),
                to_storage_timestamp(end_iso, self.timezone),
            )
        except InvalidEventError as exc:
            raise EventStoreError(f"Invalid query range {start_iso} - {end_iso}: {exc}") from exc

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        with self._lock:
            try:
                cursor = self._conn.execute(sql, params)
                self._conn.commit()
            except sqlite3.Error as exc:
                raise EventStoreError(f"Event store write failed: {exc}") from exc
        return cursor.lastrowid

    def _query(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        with self._lock:
            try:
                rows = self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise EventStoreError(f"Event store query failed: {exc}") from exc

        logger.debug("Fetched %d event(s) from %s", len(rows), self.db_path)
        return [dict(row) for row in rows]
