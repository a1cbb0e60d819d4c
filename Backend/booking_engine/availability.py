"""
Availability Calculation

Derives the offerable slots of a booking link from the owner's weekly working
hours, date overrides and one aggregated busy snapshot.

Per owner-local day in the requested range:
    1. Skip days outside the link's valid range, disabled weekdays, days
       closed by an override and days that already reached the link's daily
       booking cap.
    2. Build the working window in the owner's zone and convert it to UTC.
    3. Subtract every busy interval padded by buffer_minutes on both sides
       (padding is clamped to the working window).
    4. Walk each remaining free segment from its start in slot-duration steps
       and emit the slots that fit.

With a non-zero buffer the padded zone is closed: a slot may neither start
nor end on its edge. With zero buffer, back-to-back slots are allowed.

Slots are produced lazily; a SlotSequence can be iterated any number of times
and always yields the same result for the snapshot it was built from.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterator, List, Mapping, Optional, Sequence

from .busy import BusyIntervalAggregator, expand
from .domain import BookingLink, BusyInterval, OwnerProfile, TimeInterval
from .errors import NotFoundError
from .storage.base import CalendarStore
from .timezones import combine_local, ensure_utc, local_date, local_day_bounds

logger = logging.getLogger(__name__)


def day_slots(
    work: TimeInterval,
    busy: Sequence[BusyInterval],
    duration: timedelta,
    buffer: timedelta = timedelta(0),
) -> Iterator[TimeInterval]:
    """
    Slots of one working window.

    Args:
        work: the day's working window in UTC
        busy: merged busy intervals (may extend beyond the window)
        duration: slot length
        buffer: symmetric padding around each busy interval
    """
    strict = buffer > timedelta(0)
    regions = expand(
        [
            item for item in busy
            if item.start_utc - buffer <= work.end_utc and item.end_utc + buffer >= work.start_utc
        ],
        buffer,
    )

    # (start, end, start_is_busy_edge, end_is_busy_edge)
    segments: list[tuple[datetime, datetime, bool, bool]] = []
    cursor = work.start_utc
    cursor_on_edge = False
    for region in regions:
        if region.start_utc > cursor:
            segment_end = min(region.start_utc, work.end_utc)
            if segment_end > cursor:
                segments.append((cursor, segment_end, cursor_on_edge, region.start_utc <= work.end_utc))
        if region.end_utc >= cursor:
            cursor = region.end_utc
            cursor_on_edge = True
    if cursor < work.end_utc:
        segments.append((cursor, work.end_utc, cursor_on_edge, False))

    for segment_start, segment_end, open_start, open_end in segments:
        slot_start = segment_start
        while slot_start + duration <= segment_end:
            slot_end = slot_start + duration
            touches = (open_start and slot_start == segment_start) or (open_end and slot_end == segment_end)
            if not (strict and touches):
                yield TimeInterval(slot_start, slot_end)
            slot_start = slot_end


def local_days(window: TimeInterval, zone_id: str) -> Iterator[date]:
    """Owner-local calendar dates touched by a UTC window."""
    current = local_date(window.start_utc, zone_id)
    last = local_date(window.end_utc - timedelta(microseconds=1), zone_id)
    while current <= last:
        yield current
        current += timedelta(days=1)


def working_window(owner: OwnerProfile, day: date) -> Optional[TimeInterval]:
    """UTC working window of a local date, or None when the owner is closed."""
    hours = owner.hours_for(day)
    if hours is None:
        return None
    start = combine_local(day, hours[0], owner.timezone)
    end = combine_local(day, hours[1], owner.timezone)
    if start >= end:
        # Both wall times collapsed onto the same DST transition.
        return None
    return TimeInterval(start, end)


def iter_slots(
    link: BookingLink,
    owner: OwnerProfile,
    busy: Sequence[BusyInterval],
    window: TimeInterval,
    day_counts: Optional[Mapping[date, int]] = None,
    now: Optional[datetime] = None,
) -> Iterator[TimeInterval]:
    """
    Offerable slots of a booking link inside window, in chronological order.

    Args:
        link: slot duration, buffer, valid range, lead time, daily cap
        owner: timezone, weekly hours and date overrides
        busy: aggregated busy set covering the window (plus buffer)
        window: only slots fully inside [from, to) are produced
        day_counts: events already booked through this link per local date
        now: when given, slots starting before now + lead time are dropped
    """
    day_counts = day_counts or {}
    earliest = None
    if now is not None:
        earliest = ensure_utc(now) + timedelta(minutes=link.lead_time_minutes)

    for day in local_days(window, owner.timezone):
        if not link.is_valid_on(day):
            continue
        if link.max_bookings_per_day and day_counts.get(day, 0) >= link.max_bookings_per_day:
            continue
        work = working_window(owner, day)
        if work is None:
            continue
        for slot in day_slots(work, busy, link.slot_duration, link.buffer):
            if not window.contains(slot):
                continue
            if earliest is not None and slot.start_utc < earliest:
                continue
            yield slot


@dataclass(frozen=True)
class SlotSequence:
    """Lazy, restartable slot listing over one busy snapshot."""

    link: BookingLink
    owner: OwnerProfile
    busy: tuple[BusyInterval, ...]
    window: TimeInterval
    day_counts: Mapping[date, int] = field(default_factory=dict)
    now: Optional[datetime] = None

    def __iter__(self) -> Iterator[TimeInterval]:
        return iter_slots(self.link, self.owner, self.busy, self.window, self.day_counts, self.now)

    def __contains__(self, interval: object) -> bool:
        if not isinstance(interval, TimeInterval):
            return False
        return any(slot == interval for slot in self)

    def to_list(self) -> List[TimeInterval]:
        return list(self)


def padded_window(window: TimeInterval, owner: OwnerProfile, link: BookingLink) -> TimeInterval:
    """
    Window the busy snapshot must cover: whole local days of the request,
    widened by the buffer so padding from neighbouring events is seen.
    """
    days = list(local_days(window, owner.timezone))
    start, _ = local_day_bounds(days[0], owner.timezone)
    _, end = local_day_bounds(days[-1], owner.timezone)
    return TimeInterval(start - link.buffer, end + link.buffer)


class AvailabilityCalculator:
    """Computes slot listings for booking links against a calendar store."""

    def __init__(self, store: CalendarStore, aggregator: BusyIntervalAggregator):
        self.store = store
        self.aggregator = aggregator

    async def load_link(self, booking_link_id: int) -> tuple[BookingLink, OwnerProfile]:
        link = await self.store.get_booking_link(booking_link_id)
        if link is None or not link.is_active:
            raise NotFoundError(
                f"Booking link {booking_link_id} not found",
                {"booking_link_id": booking_link_id},
            )
        owner = await self.store.get_owner(link.owner_id)
        if owner is None:
            raise NotFoundError(f"Owner {link.owner_id} not found", {"owner_id": link.owner_id})
        return link, owner

    async def snapshot(
        self,
        link: BookingLink,
        owner: OwnerProfile,
        window: TimeInterval,
        now: Optional[datetime] = None,
        exclude_event_id: Optional[int] = None,
    ) -> SlotSequence:
        """Take one busy snapshot for window and wrap it in a SlotSequence."""
        cover = padded_window(window, owner, link)
        busy = await self.aggregator.aggregate(
            owner.id,
            cover,
            now=now,
            exclude_event_id=exclude_event_id,
        )
        day_counts: dict[date, int] = {}
        if link.max_bookings_per_day:
            events = await self.store.list_events(owner.id, cover)
            for event in events:
                if event.booking_link_id != link.id or event.id == exclude_event_id:
                    continue
                day = local_date(event.start_utc, owner.timezone)
                day_counts[day] = day_counts.get(day, 0) + 1
        return SlotSequence(link, owner, tuple(busy), window, day_counts, now)

    async def compute_slots(
        self,
        booking_link_id: int,
        window: TimeInterval,
        now: Optional[datetime] = None,
    ) -> SlotSequence:
        """
        Offerable slots of a booking link within [from, to).

        Read-only; the result reflects the calendar as of this call.
        """
        link, owner = await self.load_link(booking_link_id)
        slots = await self.snapshot(link, owner, window, now=now)
        logger.debug(
            f"[AVAILABILITY] link={link.id} owner={owner.id} window={window.start_utc.isoformat()}"
            f"..{window.end_utc.isoformat()} busy={len(slots.busy)}"
        )
        return slots
