"""
Domain models for calendar events, schedule windows and day buckets.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pendulum
from pendulum import DateTime

from .exceptions import InvalidEventError

DATE_FORMAT = "YYYY-MM-DD"
TIME_FORMAT = "H:mm"

# Slot labels are compared by parsing them on this fixed day.
REFERENCE_DATE = "1970-01-01"

TRUE_FLAGS = frozenset({"true", "t", "yes", "1"})
FALSE_FLAGS = frozenset({"false", "f", "no", "0", ""})

Availability = Dict[str, List[str]]


class EventKind(str, Enum):
    """Kind of a stored calendar event."""
    OPENING = "opening"
    APPOINTMENT = "appointment"


class Weekday(IntEnum):
    """Day of the week, 0=Monday, 6=Sunday."""
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def of(cls, dt: datetime) -> "Weekday":
        return cls(dt.weekday())


def format_date_key(dt: DateTime) -> str:
    """Format the calendar date used as availability key, e.g. ``2020-01-01``."""
    return dt.format(DATE_FORMAT)


def format_slot_label(dt: DateTime) -> str:
    """Format a slot start without a leading zero on the hour, e.g. ``9:00``."""
    return dt.format(TIME_FORMAT)


def slot_sort_key(label: str) -> DateTime:
    """Sort key for slot labels: the label parsed as a time on the reference date."""
    return pendulum.from_format(f"{REFERENCE_DATE} {label}", f"{DATE_FORMAT} {TIME_FORMAT}")


def parse_timestamp(value: Any, timezone: str) -> DateTime:
    """
    Parse a stored timestamp into a DateTime of the given timezone.

    Strings without an offset and naive datetimes are read as wall-clock
    times of ``timezone``.

    Raises:
        InvalidEventError: If the value is not a parseable date-time
    """
    if isinstance(value, datetime):
        parsed = pendulum.instance(value, tz=timezone)
    elif isinstance(value, str):
        try:
            parsed = pendulum.parse(value, tz=timezone)
        except ValueError as exc:
            raise InvalidEventError(f"Invalid timestamp {value!r}: {exc}") from exc
        if not isinstance(parsed, DateTime):
            raise InvalidEventError(f"Timestamp {value!r} is not a date-time")
    else:
        raise InvalidEventError(f"Unsupported timestamp value: {value!r}")

    return parsed.in_timezone(timezone)


def parse_recurring_flag(value: Any) -> bool:
    """
    Read a stored weekly_recurring flag.

    SQLite yields NULL, 0 or 1; JSON stores may hold booleans or text such
    as ``"false"``.

    Raises:
        InvalidEventError: If the value is not a recognizable flag
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_FLAGS:
            return True
        if text in FALSE_FLAGS:
            return False

    raise InvalidEventError(f"Invalid weekly_recurring flag: {value!r}")


@dataclass(frozen=True)
class ScheduleEvent:
    """
    An opening or appointment read from the event store.

    ``weekday`` and ``date_key`` are derived from ``starts_at`` when the
    event is created and never change afterwards.
    """
    kind: EventKind
    starts_at: DateTime
    ends_at: DateTime
    weekly_recurring: bool = False
    weekday: Weekday = field(init=False)
    date_key: str = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "weekday", Weekday.of(self.starts_at))
        object.__setattr__(self, "date_key", format_date_key(self.starts_at))

    @property
    def is_opening(self) -> bool:
        return self.kind is EventKind.OPENING

    @classmethod
    def from_record(cls, record: Mapping[str, Any], timezone: str = "UTC") -> "ScheduleEvent":
        """
        Build an event from a store record.

        Args:
            record: Mapping with ``kind``, ``starts_at``, ``ends_at`` and
                optionally ``weekly_recurring``
            timezone: Zone the timestamps are expressed in

        Returns:
            ScheduleEvent instance

        Raises:
            InvalidEventError: If a required field is missing or malformed
        """
        if not isinstance(record, Mapping):
            raise InvalidEventError(f"Event record must be a mapping, got {type(record).__name__}")

        missing = [key for key in ("kind", "starts_at", "ends_at") if record.get(key) is None]
        if missing:
            raise InvalidEventError(f"Event record is missing field(s): {', '.join(missing)}")

        try:
            kind = EventKind(record["kind"])
        except ValueError as exc:
            raise InvalidEventError(f"Unknown event kind: {record['kind']!r}") from exc

        return cls(
            kind=kind,
            starts_at=parse_timestamp(record["starts_at"], timezone),
            ends_at=parse_timestamp(record["ends_at"], timezone),
            weekly_recurring=parse_recurring_flag(record.get("weekly_recurring")),
        )

    def __str__(self) -> str:
        recurring = " (weekly)" if self.weekly_recurring else ""
        return (
            f"{self.kind.value} {self.starts_at.format('YYYY-MM-DD HH:mm')}"
            f" - {self.ends_at.format('HH:mm')}{recurring}"
        )


@dataclass(frozen=True)
class ScheduleWindow:
    """
    The date range availability is computed for.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Window start {self.start} must be before window end {self.end}")

    @classmethod
    def starting_at(cls, start: DateTime, days: int) -> "ScheduleWindow":
        return cls(start=start, end=start.add(days=days))

    @property
    def start_iso(self) -> str:
        return self.start.to_iso8601_string()

    @property
    def end_iso(self) -> str:
        return self.end.to_iso8601_string()

    @property
    def days(self) -> int:
        return self.end.toordinal() - self.start.toordinal()

    def dates(self) -> List[DateTime]:
        """The consecutive calendar days of the window, starting at ``start``."""
        return [self.start.add(days=shift) for shift in range(self.days)]


@dataclass
class DayBucket:
    """
    Opening and appointment slots collected for one weekday of the window.
    """
    weekday: Weekday
    date_key: str
    opening_slots: set = field(default_factory=set)
    appointment_slots: set = field(default_factory=set)

    def add(self, kind: EventKind, slots: Iterable[str]) -> None:
        """Add slot labels; duplicate labels collapse."""
        target = self.opening_slots if kind is EventKind.OPENING else self.appointment_slots
        target.update(slots)

    def available_slots(self) -> List[str]:
        """
        Opening slots that are not booked, ordered by time of day.

        Exclusion is by exact label: an appointment only removes the
        opening slots whose start label it produces itself.
        """
        return sorted(self.opening_slots - self.appointment_slots, key=slot_sort_key)


@dataclass(frozen=True)
class FetchResult:
    """Outcome of fetching one event category from the store."""
    category: str
    records: Tuple[Mapping[str, Any], ...] = ()
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class AvailabilityReport:
    """Availability together with the categories that could not be fetched."""
    window: ScheduleWindow
    availability: Availability
    diagnostics: List[FetchResult] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.diagnostics)
