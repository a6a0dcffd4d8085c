"""
Per-weekday aggregation of slots into the final availability map.
"""

from typing import Dict, Iterable, List, Mapping

from .exceptions import ScheduleError
from .models import (
    Availability,
    DayBucket,
    ScheduleEvent,
    ScheduleWindow,
    Weekday,
    format_date_key,
)
from .slot_generator import TimeSlotGenerator

DAYS_PER_WEEK = len(Weekday)


class WeeklySchedule:
    """
    Collects opening and appointment slots for one request window.

    Buckets are keyed by weekday, so a window must cover exactly one week:
    each weekday then maps to exactly one concrete date. An instance
    belongs to a single request and is never reused.
    """

    def __init__(self, window: ScheduleWindow, slot_generator: TimeSlotGenerator | None = None):
        self.window = window
        self.slot_generator = slot_generator or TimeSlotGenerator()
        self._buckets: Dict[Weekday, DayBucket] = {}

    @property
    def buckets(self) -> Mapping[Weekday, DayBucket]:
        return dict(self._buckets)

    def build_skeleton(self) -> "WeeklySchedule":
        """
        Create one empty bucket per day of the window.

        Raises:
            ScheduleError: If the window does not span exactly one week or
                repeats a weekday
        """
        dates = self.window.dates()
        if len(dates) != DAYS_PER_WEEK:
            raise ScheduleError(
                f"Window must span {DAYS_PER_WEEK} days, got {len(dates)}"
            )

        buckets: Dict[Weekday, DayBucket] = {}
        for day in dates:
            weekday = Weekday.of(day)
            buckets[weekday] = DayBucket(weekday=weekday, date_key=format_date_key(day))

        if len(buckets) != DAYS_PER_WEEK:
            raise ScheduleError("Each weekday must map to exactly one date of the window")

        self._buckets = buckets
        return self

    def ingest(self, event: ScheduleEvent) -> List[str]:
        """
        Add the slots of one event to the bucket of its weekday.

        Returns:
            The slot labels the event contributed

        Raises:
            ScheduleError: If build_skeleton() has not been called
        """
        if not self._buckets:
            raise ScheduleError("build_skeleton() must be called before ingesting events")

        slots = self.slot_generator.generate_slots(event, self.window)
        if slots:
            self._buckets[event.weekday].add(event.kind, slots)
        return slots

    def ingest_many(self, events: Iterable[ScheduleEvent]) -> None:
        for event in events:
            self.ingest(event)

    def finalize(self) -> Availability:
        """
        Reduce the buckets into the availability map.

        Returns:
            Mapping of date key to available slot labels, dates ascending
        """
        ordered = sorted(self._buckets.values(), key=lambda bucket: bucket.date_key)
        return {bucket.date_key: bucket.available_slots() for bucket in ordered}
