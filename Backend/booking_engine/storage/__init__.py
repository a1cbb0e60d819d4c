from .base import CalendarStore, OwnerLockRegistry
from .memory import InMemoryCalendarStore
from .sql import SqlCalendarStore

__all__ = [
    "CalendarStore",
    "OwnerLockRegistry",
    "InMemoryCalendarStore",
    "SqlCalendarStore",
]
