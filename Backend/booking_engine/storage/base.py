"""
Calendar store interface.

The engine reads owner configuration, events and integration snapshots
through this protocol and writes events through it. ``owner_lock`` is the
per-owner critical section that makes reservation check-then-commit atomic.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Optional, Protocol, Sequence

from ..domain import (
    BookingLink,
    CalendarIntegration,
    Event,
    OwnerProfile,
    RoutingAction,
    RoutingForm,
    TimeInterval,
)


class CalendarStore(Protocol):
    async def get_owner(self, owner_id: int) -> Optional[OwnerProfile]: ...

    async def get_booking_link(self, booking_link_id: int) -> Optional[BookingLink]: ...

    async def list_events(self, owner_id: int, window: TimeInterval) -> Sequence[Event]: ...

    async def list_integrations(self, owner_id: int) -> Sequence[CalendarIntegration]: ...

    async def get_event(self, event_id: int) -> Optional[Event]: ...

    async def add_event(self, event: Event) -> Event: ...

    async def update_event_interval(self, event_id: int, interval: TimeInterval) -> Event: ...

    async def delete_event(self, event_id: int) -> bool: ...

    async def get_routing_form(self, form_id: int) -> Optional[RoutingForm]: ...

    async def record_submission(
        self,
        form_id: int,
        answers: dict,
        action: RoutingAction,
        routed_to: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> None: ...

    def owner_lock(self, owner_id: int) -> AsyncContextManager[None]: ...


class OwnerLockRegistry:
    """
    One asyncio.Lock per owner.

    Reservations for the same owner queue on the same lock; different owners
    never share one. Locks are created on first use and kept for the process
    lifetime (one small object per owner that ever booked).
    """

    def __init__(self):
        self._locks: dict[int, asyncio.Lock] = {}

    def get(self, owner_id: int) -> asyncio.Lock:
        lock = self._locks.get(owner_id)
        if lock is None:
            lock = self._locks.setdefault(owner_id, asyncio.Lock())
        return lock

    @asynccontextmanager
    async def hold(self, owner_id: int) -> AsyncIterator[None]:
        async with self.get(owner_id):
            yield

    def is_locked(self, owner_id: int) -> bool:
        lock = self._locks.get(owner_id)
        return bool(lock and lock.locked())

