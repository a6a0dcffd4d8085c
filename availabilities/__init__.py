"""
Weekly availability finder for calendars made of openings and appointments.
"""

from .services.availability_service import AvailabilityService, get_availabilities

__all__ = ["AvailabilityService", "get_availabilities"]

__version__ = "0.1.0"
