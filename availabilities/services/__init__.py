"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability_service import (
    AvailabilityService,
    EventStoreProtocol,
    get_availabilities,
    normalize_start_date,
)

__all__ = [
    "AvailabilityService",
    "EventStoreProtocol",
    "get_availabilities",
    "normalize_start_date",
]
