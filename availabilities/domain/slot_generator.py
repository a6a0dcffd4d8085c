"""
Discretization of openings and appointments into fixed-size slots.

Pure domain logic: no store access, no I/O.
"""

from typing import List, Tuple

from pendulum import DateTime

from .models import ScheduleEvent, ScheduleWindow, Weekday, format_slot_label

DEFAULT_SLOT_DURATION_MINUTES = 30


def _time_of_day(dt: DateTime) -> Tuple[int, int]:
    return dt.hour, dt.minute


class TimeSlotGenerator:
    """
    Produces the slot start labels a single event contributes to a window.

    Algorithm:
    1. Take the event's start and end
    2. Re-anchor weekly recurring events that fall on the window's first
       weekday but start earlier in the day than the window does
    3. Step from the start by the slot duration while the minute after the
       slot start is still inside the interval
    4. Format every slot start as ``H:mm``
    """

    def __init__(self, slot_duration_minutes: int = DEFAULT_SLOT_DURATION_MINUTES):
        if slot_duration_minutes <= 0:
            raise ValueError(f"Slot duration must be positive, got {slot_duration_minutes}")
        self.slot_duration_minutes = slot_duration_minutes

    def generate_slots(self, event: ScheduleEvent, window: ScheduleWindow) -> List[str]:
        """
        Generate the ordered slot labels for one event.

        Args:
            event: Opening or appointment
            window: Window the availability is computed for

        Returns:
            Slot start labels, e.g. ["9:00", "9:30"]; empty for a degenerate interval
        """
        start, end = self.anchor(event, window)

        if start >= end:
            return []

        return [format_slot_label(slot_start) for slot_start in self._slot_starts(start, end)]

    def anchor(self, event: ScheduleEvent, window: ScheduleWindow) -> Tuple[DateTime, DateTime]:
        """
        Return the interval the event covers for this window.

        A recurring event on the window's first weekday that starts before
        the window's time of day is moved to the window start, keeping its
        original end time on the window's date. Every other event is used
        as stored.
        """
        start = event.starts_at
        end = event.ends_at

        if not event.weekly_recurring:
            return start, end

        same_weekday = Weekday.of(window.start) == event.weekday
        if same_weekday and _time_of_day(window.start) > _time_of_day(start):
            start = window.start
            end = window.start.set(hour=end.hour, minute=end.minute)

        return start, end

    def _slot_starts(self, start: DateTime, end: DateTime):
        # Intervals are contiguous: stop at the first slot that no longer fits.
        shift = 0
        while True:
            slot_start = start.add(minutes=shift)
            if not self._is_valid_slot(start, end, slot_start):
                return
            yield slot_start
            shift += self.slot_duration_minutes

    @staticmethod
    def _is_valid_slot(start: DateTime, end: DateTime, slot_start: DateTime) -> bool:
        first_minute = slot_start.add(minutes=1)
        return start <= first_minute <= end
