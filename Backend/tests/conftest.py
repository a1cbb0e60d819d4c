"""
Pytest configuration and fixtures.

Engine and API tests run against the in-memory calendar store, so no
database is needed. STORAGE_BACKEND is forced to "memory" before the app (and
its cached settings) is imported.
"""
import os

os.environ["STORAGE_BACKEND"] = "memory"
os.environ.setdefault("DATABASE_URL", "postgresql+asyncpg://localhost:5432/scheduler_test")
os.environ.setdefault("DEFAULT_REMINDER_MINUTES", "15,60")
os.environ.setdefault("NOTIFICATION_CHANNELS", "email")

from datetime import date, datetime, time, timezone

import pytest
from httpx import AsyncClient, ASGITransport

from booking_engine.availability import AvailabilityCalculator
from booking_engine.busy import BusyIntervalAggregator
from booking_engine.domain import BookingLink, OwnerProfile, WorkingHours
from booking_engine.reminders import LoggingNotificationDispatcher
from booking_engine.reservations import ReservationManager
from booking_engine.storage import InMemoryCalendarStore

NEW_YORK = "America/New_York"

# Monday 2 March 2026 (EST, UTC-5)
MONDAY = date(2026, 3, 2)
# A Monday far enough ahead that API calls using the real clock still see it
FUTURE_MONDAY = date(2031, 3, 3)

OWNER_ID = 1
LINK_ID = 1            # 30-minute slots, no buffer
BUFFERED_LINK_ID = 2   # 30-minute slots, 15-minute buffer


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def ny_owner(owner_id: int = OWNER_ID, **kwargs) -> OwnerProfile:
    """New York owner working Monday to Friday, 09:00-17:00."""
    values = dict(
        id=owner_id,
        timezone=NEW_YORK,
        working_hours=WorkingHours.weekdays(time(9, 0), time(17, 0)),
    )
    values.update(kwargs)
    return OwnerProfile(**values)


@pytest.fixture
def store():
    """In-memory store with one New York owner and two booking links."""
    store = InMemoryCalendarStore()
    store.put_owner(ny_owner())
    store.put_booking_link(BookingLink(id=LINK_ID, owner_id=OWNER_ID, slot_duration_minutes=30))
    store.put_booking_link(
        BookingLink(id=BUFFERED_LINK_ID, owner_id=OWNER_ID, slot_duration_minutes=30, buffer_minutes=15)
    )
    return store


@pytest.fixture
def aggregator(store):
    return BusyIntervalAggregator(store)


@pytest.fixture
def calculator(store, aggregator):
    return AvailabilityCalculator(store, aggregator)


@pytest.fixture
def dispatcher():
    return LoggingNotificationDispatcher()


@pytest.fixture
def reservations(store, calculator, dispatcher):
    return ReservationManager(store, calculator, dispatcher=dispatcher, default_reminders=(15, 60))


@pytest.fixture
async def client(store, dispatcher):
    """
    FastAPI AsyncClient bound to the in-memory store.

    Startup events do not run under ASGITransport, so the database is never
    touched.
    """
    from booking_engine.main import app
    from booking_engine.deps import get_dispatcher, get_store

    async def override_get_store():
        yield store

    app.dependency_overrides[get_store] = override_get_store
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
