"""
In-memory event store for demos and tests without a database.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pendulum import DateTime

from ..domain.exceptions import InvalidEventError
from ..domain.models import EventKind, parse_recurring_flag, parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = Path(__file__).parent / "mock_events.json"


class MockEventStore:
    """
    Store that keeps event records in memory.

    Records can be passed directly or loaded from a JSON file holding a
    list of ``{"kind", "starts_at", "ends_at", "weekly_recurring"}``
    objects. Queries follow the same rules as the SQLite store.
    """

    def __init__(
        self,
        events: Optional[Iterable[Mapping[str, Any]]] = None,
        data_file: Optional[Path] = None,
        timezone: str = "UTC",
    ):
        self.timezone = timezone
        self.events: List[Dict[str, Any]] = []

        if data_file is not None:
            self._load_events(data_file)
        if events is not None:
            self.events.extend(dict(event) for event in events)

    def _load_events(self, data_file: Path) -> None:
        """Load event records from a JSON file."""
        if not data_file.exists():
            logger.warning("Mock event file %s not found, starting empty", data_file)
            return

        with open(data_file, "r", encoding="utf-8") as f:
            self.events.extend(json.load(f))

    async def fetch_non_recurring_openings(self, start_iso: str, end_iso: str) -> List[Dict[str, Any]]:
        return self._select(EventKind.OPENING, recurring=False, start_iso=start_iso, end_iso=end_iso)

    async def fetch_recurring_openings(self) -> List[Dict[str, Any]]:
        return self._select(EventKind.OPENING, recurring=True)

    async def fetch_appointments(self, start_iso: str, end_iso: str) -> List[Dict[str, Any]]:
        return self._select(EventKind.APPOINTMENT, recurring=False, start_iso=start_iso, end_iso=end_iso)

    def _select(
        self,
        kind: EventKind,
        recurring: bool,
        start_iso: Optional[str] = None,
        end_iso: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        range_start = parse_timestamp(start_iso, self.timezone) if start_iso else None
        range_end = parse_timestamp(end_iso, self.timezone) if end_iso else None

        selected: List[tuple] = []

        for event in self.events:
            if event.get("kind") != kind.value:
                continue
            try:
                if parse_recurring_flag(event.get("weekly_recurring")) != recurring:
                    continue
                starts_at = parse_timestamp(event["starts_at"], self.timezone)
                ends_at = parse_timestamp(event["ends_at"], self.timezone)
            except (KeyError, InvalidEventError):
                # Skip invalid events
                continue

            if not self._within(starts_at, ends_at, range_start, range_end):
                continue

            selected.append((starts_at, event))

        selected.sort(key=lambda item: item[0])
        return [event for _, event in selected]

    @staticmethod
    def _within(
        starts_at: DateTime,
        ends_at: DateTime,
        range_start: Optional[DateTime],
        range_end: Optional[DateTime],
    ) -> bool:
        if range_start is not None and starts_at < range_start:
            return False
        if range_end is not None and ends_at > range_end:
            return False
        return True
