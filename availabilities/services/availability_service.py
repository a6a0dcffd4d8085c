"""
Application service computing the weekly availability of a calendar.

The service fetches openings and appointments through an event store
adapter and delegates the slot arithmetic to the domain-level
``WeeklySchedule``. The store is described by a protocol so the SQLite
adapter, the mock store or a test stub can be plugged in.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Any, Awaitable, Callable, List, Mapping, Protocol, Sequence

import pendulum
from pendulum import DateTime

from ..config import AppConfig
from ..domain.exceptions import InvalidEventError
from ..domain.models import (
    Availability,
    AvailabilityReport,
    FetchResult,
    ScheduleEvent,
    ScheduleWindow,
)
from ..domain.slot_generator import TimeSlotGenerator
from ..domain.weekly_schedule import WeeklySchedule

logger = logging.getLogger(__name__)

NON_RECURRING_OPENINGS = "non_recurring_openings"
RECURRING_OPENINGS = "recurring_openings"
APPOINTMENTS = "appointments"

EventRecord = Mapping[str, Any]


class EventStoreProtocol(Protocol):
    """Protocol describing the event store reads needed by the service."""

    async def fetch_non_recurring_openings(
        self,
        start_iso: str,
        end_iso: str,
    ) -> Sequence[EventRecord]:
        """Return one-off openings inside the range, ordered by start."""

    async def fetch_recurring_openings(self) -> Sequence[EventRecord]:
        """Return all weekly recurring openings, ordered by start."""

    async def fetch_appointments(
        self,
        start_iso: str,
        end_iso: str,
    ) -> Sequence[EventRecord]:
        """Return appointments inside the range, ordered by start."""


def normalize_start_date(value: Any = None, timezone: str = "UTC") -> DateTime:
    """
    Turn the requested date into the window start.

    Every value, supplied or defaulted, ends up as a wall-clock time of
    ``timezone``. Missing or unparseable values fall back to the current
    instant.
    """
    if isinstance(value, datetime):
        return pendulum.instance(value, tz=timezone).in_timezone(timezone)

    if isinstance(value, date):
        return pendulum.datetime(value.year, value.month, value.day, tz=timezone)

    if isinstance(value, str) and value.strip():
        try:
            parsed = pendulum.parse(value.strip(), tz=timezone)
        except ValueError as exc:
            logger.debug("Invalid start date %r, using current time: %s", value, exc)
        else:
            if isinstance(parsed, DateTime):
                return parsed.in_timezone(timezone)
            logger.debug("Start date %r is not a date-time, using current time", value)
    elif value is not None:
        logger.debug("Unsupported start date %r, using current time", value)

    return pendulum.now(timezone)


class AvailabilityService:
    """
    Orchestrates event retrieval and the weekly schedule.

    Each call builds its own window and schedule; nothing is shared
    between requests, so one service may serve concurrent callers.
    """

    def __init__(
        self,
        event_store: EventStoreProtocol,
        config: AppConfig | None = None,
        slot_generator: TimeSlotGenerator | None = None,
    ) -> None:
        self._event_store = event_store
        self._config = config or AppConfig()
        self._slot_generator = slot_generator or TimeSlotGenerator(
            self._config.schedule.slot_duration_minutes
        )

    @property
    def timezone(self) -> str:
        return self._config.timezone

    def build_window(self, start_date: Any = None) -> ScheduleWindow:
        """Build the lookahead window starting at the normalized date."""
        start = normalize_start_date(start_date, self.timezone)
        return ScheduleWindow.starting_at(start, self._config.schedule.range_days)

    async def compute_availability(self, start_date: Any = None) -> Availability:
        """
        Compute the open slots for each day of the window.

        Args:
            start_date: Window start; datetime, date, ISO string or None for now

        Returns:
            Mapping of ``YYYY-MM-DD`` to ``H:mm`` slot labels, one entry per day
        """
        report = await self.compute_availability_report(start_date)
        return report.availability

    async def compute_availability_report(self, start_date: Any = None) -> AvailabilityReport:
        """
        Compute availability and report the event categories that failed.

        Store failures never propagate: a failed category contributes no
        events and is listed in the report diagnostics.
        """
        window = self.build_window(start_date)
        schedule = WeeklySchedule(window, self._slot_generator).build_skeleton()

        results = await self.fetch_events(window)

        for result in results:
            schedule.ingest_many(self._to_events(result))

        return AvailabilityReport(
            window=window,
            availability=schedule.finalize(),
            diagnostics=[result for result in results if not result.ok],
        )

    async def fetch_events(self, window: ScheduleWindow) -> List[FetchResult]:
        """Fetch the three event categories concurrently."""
        store = self._event_store

        return list(
            await asyncio.gather(
                self._fetch_category(
                    NON_RECURRING_OPENINGS,
                    lambda: store.fetch_non_recurring_openings(window.start_iso, window.end_iso),
                ),
                self._fetch_category(
                    RECURRING_OPENINGS,
                    store.fetch_recurring_openings,
                ),
                self._fetch_category(
                    APPOINTMENTS,
                    lambda: store.fetch_appointments(window.start_iso, window.end_iso),
                ),
            )
        )

    @staticmethod
    async def _fetch_category(
        category: str,
        request: Callable[[], Awaitable[Sequence[EventRecord]]],
    ) -> FetchResult:
        try:
            records = tuple(await request())
        except Exception as exc:
            logger.warning("Could not fetch %s, continuing without them: %s", category, exc)
            return FetchResult(category=category, error=exc)

        return FetchResult(category=category, records=records)

    def _to_events(self, result: FetchResult) -> List[ScheduleEvent]:
        events: List[ScheduleEvent] = []

        for record in result.records:
            try:
                events.append(ScheduleEvent.from_record(record, self.timezone))
            except InvalidEventError as exc:
                logger.warning("Skipping invalid %s record %r: %s", result.category, record, exc)

        return events


async def get_availabilities(
    start_date: Any = None,
    *,
    store: EventStoreProtocol,
    config: AppConfig | None = None,
) -> Availability:
    """Compute the availability of the next days for ``store``."""
    return await AvailabilityService(store, config=config).compute_availability(start_date)
