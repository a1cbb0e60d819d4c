"""
FastAPI dependencies: the calendar store for the configured backend and the
engine services built on top of it.
"""

import logging
from typing import AsyncIterator, Optional

from fastapi import Depends

from .core.config import get_settings
from .core.db import get_session
from .reminders import LoggingNotificationDispatcher, NotificationDispatcher
from .services import BookingServices, build_services
from .storage import InMemoryCalendarStore, SqlCalendarStore

logger = logging.getLogger(__name__)

_memory_store: Optional[InMemoryCalendarStore] = None
_dispatcher: NotificationDispatcher = LoggingNotificationDispatcher()


def get_memory_store() -> InMemoryCalendarStore:
    """Process-wide store used when STORAGE_BACKEND=memory."""
    global _memory_store
    if _memory_store is None:
        logger.warning("Using in-memory calendar store; data is lost on restart.")
        _memory_store = InMemoryCalendarStore()
    return _memory_store


async def get_store() -> AsyncIterator[object]:
    settings = get_settings()
    if settings.storage_backend == "memory":
        yield get_memory_store()
        return
    async for session in get_session():
        yield SqlCalendarStore(session)


def get_dispatcher() -> NotificationDispatcher:
    return _dispatcher


def get_services(
    store=Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> BookingServices:
    return build_services(store, get_settings(), dispatcher=dispatcher)
