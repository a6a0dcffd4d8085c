"""
Domain layer - Pure business logic without external dependencies.
"""

from .models import (
    Availability,
    AvailabilityReport,
    DayBucket,
    EventKind,
    FetchResult,
    ScheduleEvent,
    ScheduleWindow,
    Weekday,
)
from .slot_generator import TimeSlotGenerator
from .weekly_schedule import WeeklySchedule

__all__ = [
    "Availability",
    "AvailabilityReport",
    "DayBucket",
    "EventKind",
    "FetchResult",
    "ScheduleEvent",
    "ScheduleWindow",
    "TimeSlotGenerator",
    "Weekday",
    "WeeklySchedule",
]
