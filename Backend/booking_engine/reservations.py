"""
Reservations

Turns a requested interval into a committed Event without double booking.

Check-then-commit runs inside the store's per-owner lock:
    1. Aggregate the owner's busy set around the request.
    2. Overlap with any busy interval -> ConflictError.
    3. The request must be one of the slots the link would offer right now.
       If it is not, but the link would offer it on an empty calendar (it is
       blocked only by a buffer or the daily cap) -> ConflictError;
       otherwise -> OutOfWindow.
    4. Insert the event.

A caller that gives up while still queued for the owner lock abandons the
reservation. Once the lock is held, the check, commit and reminder dispatch
run to completion even if the caller is cancelled. Dispatch failures are
logged and never undo a booking.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Awaitable, Callable, Optional, Sequence

from .availability import AvailabilityCalculator
from .busy import overlaps
from .domain import BookingLink, Event, NotificationChannel, OwnerProfile, TimeInterval, VisitorInfo
from .errors import ConflictError, NotFoundError, OutOfWindow
from .reminders import LoggingNotificationDispatcher, NotificationDispatcher, build_notifications
from .storage.base import CalendarStore

logger = logging.getLogger(__name__)


class ReservationManager:
    def __init__(
        self,
        store: CalendarStore,
        calculator: AvailabilityCalculator,
        dispatcher: Optional[NotificationDispatcher] = None,
        channels: Sequence[NotificationChannel] = (NotificationChannel.EMAIL,),
        default_reminders: Sequence[int] = (),
    ):
        self.store = store
        self.calculator = calculator
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()
        self.channels = tuple(channels)
        self.default_reminders = tuple(default_reminders)

    # ────────────────────────────────────────────────────────────
    # Public operations
    # ────────────────────────────────────────────────────────────

    async def reserve(
        self,
        booking_link_id: int,
        requested: TimeInterval,
        visitor: VisitorInfo,
        now: Optional[datetime] = None,
    ) -> Event:
        """
        Book requested for visitor through a booking link.

        Raises:
            NotFoundError: unknown or inactive booking link
            ConflictError: the interval is taken (or blocked by buffer / cap)
            OutOfWindow: the interval is not a slot this link offers
        """
        link, owner = await self.calculator.load_link(booking_link_id)
        return await self._run_critical(
            lambda started: self._reserve_locked(link, owner, requested, visitor, now, started)
        )

    async def reschedule(
        self,
        event_id: int,
        requested: TimeInterval,
        now: Optional[datetime] = None,
    ) -> Event:
        """Move an event; the event's current interval does not block its new one."""
        event = await self._load_event(event_id)
        return await self._run_critical(
            lambda started: self._reschedule_locked(event, requested, now, started)
        )

    async def cancel(self, event_id: int) -> Event:
        event = await self._load_event(event_id)
        async with self.store.owner_lock(event.owner_id):
            if not await self.store.delete_event(event_id):
                raise NotFoundError(f"Event {event_id} not found", {"event_id": event_id})
        logger.info(f"[CANCEL] event={event_id} owner={event.owner_id}")
        return event

    # ────────────────────────────────────────────────────────────
    # Critical sections
    # ────────────────────────────────────────────────────────────

    async def _reserve_locked(
        self,
        link: BookingLink,
        owner: OwnerProfile,
        requested: TimeInterval,
        visitor: VisitorInfo,
        now: Optional[datetime],
        started: asyncio.Event,
    ) -> Event:
        async with self.store.owner_lock(owner.id):
            started.set()
            await self._check(link, owner, requested, now)
            event = await self.store.add_event(
                Event(
                    id=None,
                    owner_id=owner.id,
                    start_utc=requested.start_utc,
                    end_utc=requested.end_utc,
                    timezone=owner.timezone,
                    title=link.title or f"Meeting with {visitor.name}",
                    booking_link_id=link.id,
                    reminders=owner.default_reminders or self.default_reminders,
                    visitor_name=visitor.name,
                    visitor_email=visitor.email,
                )
            )
        logger.info(
            f"[RESERVE] event={event.id} link={link.id} owner={owner.id} "
            f"{event.start_utc.isoformat()}..{event.end_utc.isoformat()}"
        )
        await self._notify(event)
        return event

    async def _reschedule_locked(
        self,
        event: Event,
        requested: TimeInterval,
        now: Optional[datetime],
        started: asyncio.Event,
    ) -> Event:
        async with self.store.owner_lock(event.owner_id):
            started.set()
            current = await self._load_event(event.id)
            if current.booking_link_id is not None:
                link, owner = await self.calculator.load_link(current.booking_link_id)
                await self._check(link, owner, requested, now, exclude_event_id=current.id)
            else:
                busy = await self.calculator.aggregator.aggregate(
                    current.owner_id, requested, now=now, exclude_event_id=current.id
                )
                if any(overlaps(requested, item) for item in busy):
                    raise ConflictError(
                        "Requested time overlaps an existing event",
                        {"event_id": current.id},
                    )
            moved = await self.store.update_event_interval(current.id, requested)
        logger.info(
            f"[RESCHEDULE] event={moved.id} owner={moved.owner_id} "
            f"{moved.start_utc.isoformat()}..{moved.end_utc.isoformat()}"
        )
        await self._notify(moved)
        return moved

    async def _check(
        self,
        link: BookingLink,
        owner: OwnerProfile,
        requested: TimeInterval,
        now: Optional[datetime],
        exclude_event_id: Optional[int] = None,
    ) -> None:
        slots = await self.calculator.snapshot(
            link, owner, requested, now=now, exclude_event_id=exclude_event_id
        )
        details = {
            "booking_link_id": link.id,
            "start": requested.start_utc.isoformat(),
            "end": requested.end_utc.isoformat(),
        }

        if any(overlaps(requested, item) for item in slots.busy):
            logger.info(f"[RESERVE] conflict link={link.id} owner={owner.id}: overlaps busy time")
            raise ConflictError("Requested time is no longer available", details)

        if requested in slots:
            return

        empty_calendar = replace(slots, busy=(), day_counts={})
        if requested in empty_calendar:
            logger.info(f"[RESERVE] conflict link={link.id} owner={owner.id}: blocked by buffer or daily limit")
            raise ConflictError("Requested time is no longer available", details)

        raise OutOfWindow("Requested time is not an available slot for this booking link", details)

    # ────────────────────────────────────────────────────────────
    # Helpers
    # ────────────────────────────────────────────────────────────

    async def _run_critical(
        self,
        operation: Callable[[asyncio.Event], Awaitable[Event]],
    ) -> Event:
        """
        Run a locked operation in its own task.

        operation sets the event it is given once it holds the owner lock. A
        caller cancelled before that cancels the task too, so nothing is
        written. After that the task finishes on its own and the caller's
        cancellation is re-raised once it has.
        """
        started = asyncio.Event()
        task = asyncio.ensure_future(operation(started))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not started.is_set():
                task.cancel()
            else:
                await asyncio.wait({task})
                if not task.cancelled():
                    # Nobody is left to receive the outcome.
                    task.exception()
            raise

    async def _load_event(self, event_id: int) -> Event:
        event = await self.store.get_event(event_id)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found", {"event_id": event_id})
        return event

    async def _notify(self, event: Event) -> None:
        try:
            notifications = build_notifications(event, self.channels, self.default_reminders)
            await self.dispatcher.dispatch(notifications)
        except Exception:
            logger.exception(f"[REMINDER] dispatch failed for event {event.id}")
