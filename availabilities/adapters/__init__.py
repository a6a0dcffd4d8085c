"""
Adapters layer - Event store implementations.
"""

from .mock_event_store import MockEventStore
from .sqlite_event_store import SqliteEventStore

__all__ = ["MockEventStore", "SqliteEventStore"]
