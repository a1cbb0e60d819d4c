"""
In-memory calendar store.

Used for local development (STORAGE_BACKEND=memory) and tests. Production
uses SqlCalendarStore; the in-memory variant keeps the same contract,
including per-owner locking, so the engine behaves identically on both.
"""

import asyncio
import itertools
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from ..domain import (
    BookingLink,
    CalendarIntegration,
    Event,
    OwnerProfile,
    RoutingAction,
    RoutingForm,
    TimeInterval,
)
from ..errors import NotFoundError
from .base import OwnerLockRegistry


class InMemoryCalendarStore:
    def __init__(self):
        self.owners: dict[int, OwnerProfile] = {}
        self.booking_links: dict[int, BookingLink] = {}
        self.events: dict[int, Event] = {}
        self.integrations: dict[int, CalendarIntegration] = {}
        self.routing_forms: dict[int, RoutingForm] = {}
        self.submissions: list[dict] = []
        self._event_ids = itertools.count(1)
        self._locks = OwnerLockRegistry()

    # ────────────────────────────────────────────────────────────
    # Seeding (collaborator-supplied configuration)
    # ────────────────────────────────────────────────────────────

    def put_owner(self, owner: OwnerProfile) -> OwnerProfile:
        self.owners[owner.id] = owner
        return owner

    def put_booking_link(self, link: BookingLink) -> BookingLink:
        self.booking_links[link.id] = link
        return link

    def put_integration(self, integration: CalendarIntegration) -> CalendarIntegration:
        self.integrations[integration.id] = integration
        return integration

    def put_routing_form(self, form: RoutingForm) -> RoutingForm:
        self.routing_forms[form.id] = form
        return form

    # ────────────────────────────────────────────────────────────
    # CalendarStore
    # ────────────────────────────────────────────────────────────

    async def get_owner(self, owner_id: int) -> Optional[OwnerProfile]:
        return self.owners.get(owner_id)

    async def get_booking_link(self, booking_link_id: int) -> Optional[BookingLink]:
        return self.booking_links.get(booking_link_id)

    async def list_events(self, owner_id: int, window: TimeInterval) -> list[Event]:
        await asyncio.sleep(0)  # behave like an I/O round trip
        matching = [
            event for event in self.events.values()
            if event.owner_id == owner_id
            and event.start_utc < window.end_utc
            and window.start_utc < event.end_utc
        ]
        return sorted(matching, key=lambda event: event.start_utc)

    async def list_integrations(self, owner_id: int) -> list[CalendarIntegration]:
        return [item for item in self.integrations.values() if item.owner_id == owner_id]

    async def get_event(self, event_id: int) -> Optional[Event]:
        return self.events.get(event_id)

    async def add_event(self, event: Event) -> Event:
        await asyncio.sleep(0)
        stored = replace(
            event,
            id=next(self._event_ids),
            created_at=event.created_at or datetime.now(timezone.utc),
        )
        self.events[stored.id] = stored
        return stored

    async def update_event_interval(self, event_id: int, interval: TimeInterval) -> Event:
        event = self.events.get(event_id)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found", {"event_id": event_id})
        updated = replace(event, start_utc=interval.start_utc, end_utc=interval.end_utc)
        self.events[event_id] = updated
        return updated

    async def delete_event(self, event_id: int) -> bool:
        return self.events.pop(event_id, None) is not None

    async def get_routing_form(self, form_id: int) -> Optional[RoutingForm]:
        return self.routing_forms.get(form_id)

    async def record_submission(
        self,
        form_id: int,
        answers: dict,
        action: RoutingAction,
        routed_to: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> None:
        self.submissions.append({
            "form_id": form_id,
            "answers": dict(answers),
            "routed_to": routed_to,
            "routed_booking_link_id": action.booking_link_id,
            "submitter_email": email,
            "submitter_name": name,
            "created_at": datetime.now(timezone.utc),
        })

    @asynccontextmanager
    async def owner_lock(self, owner_id: int) -> AsyncIterator[None]:
        async with self._locks.hold(owner_id):
            yield
