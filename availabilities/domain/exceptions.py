"""
Domain-specific exception hierarchy for the availabilities application.
"""


class AvailabilityError(Exception):
    """Base class for all application-level errors."""


class InvalidEventError(AvailabilityError):
    """Raised when a stored event record is missing fields or cannot be parsed."""


class EventStoreError(AvailabilityError):
    """Raised when events cannot be read from or written to the event store."""


class ScheduleError(AvailabilityError):
    """Raised when the weekly schedule is misused or built for an invalid window."""
