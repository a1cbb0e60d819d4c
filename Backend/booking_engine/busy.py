"""
Busy Interval Aggregation

Merges the owner's local events and every active calendar integration's
cached snapshot into one sorted, non-overlapping busy set for a window.

Algorithm:
    1. Collect local event intervals + snapshots of active integrations
       (connected, synced within the staleness threshold, not expired).
    2. Keep intervals that intersect [from, to) and clip them to it.
    3. Sort by start; merge whenever next.start <= current.end
       (adjacent intervals coalesce, overlaps union).

Downstream slot generation and conflict checks rely on this output being
fully merged and ordered.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from .domain import BusyInterval, CalendarIntegration, Event, TimeInterval
from .storage.base import CalendarStore
from .timezones import utc_now

logger = logging.getLogger(__name__)


def overlaps(a: "TimeInterval | BusyInterval", b: "TimeInterval | BusyInterval") -> bool:
    """Half-open overlap test shared by aggregation, slots and reservations."""
    return a.start_utc < b.end_utc and b.start_utc < a.end_utc


def clip(interval: BusyInterval, window: TimeInterval) -> Optional[BusyInterval]:
    """Clip an interval to the window, or None when they do not intersect."""
    if not overlaps(interval, window):
        return None
    start = max(interval.start_utc, window.start_utc)
    end = min(interval.end_utc, window.end_utc)
    if start == interval.start_utc and end == interval.end_utc:
        return interval
    return BusyInterval(start, end, interval.source)


def merge_intervals(intervals: Iterable[BusyInterval]) -> List[BusyInterval]:
    """
    Sort and coalesce intervals.

    A merged interval keeps the source of its earliest contributor.
    """
    ordered = sorted(intervals, key=lambda item: (item.start_utc, item.end_utc))
    if not ordered:
        return []

    merged = [ordered[0]]
    for current in ordered[1:]:
        last = merged[-1]
        if current.start_utc <= last.end_utc:
            if current.end_utc > last.end_utc:
                merged[-1] = BusyInterval(last.start_utc, current.end_utc, last.source)
        else:
            merged.append(current)
    return merged


def collect_busy(
    events: Iterable[Event],
    integrations: Iterable[CalendarIntegration],
    window: TimeInterval,
    now: datetime,
    staleness: timedelta,
) -> List[BusyInterval]:
    """Merged busy set for a window from already-loaded sources."""
    raw: list[BusyInterval] = [event.busy_interval() for event in events]

    for integration in integrations:
        if not integration.is_active(now, staleness):
            logger.debug(
                f"Skipping integration {integration.id} ({integration.type.value}) "
                f"for owner {integration.owner_id}: disconnected, expired or stale"
            )
            continue
        raw.extend(integration.snapshot)

    clipped = [piece for piece in (clip(item, window) for item in raw) if piece is not None]
    return merge_intervals(clipped)


def expand(intervals: Sequence[BusyInterval], padding: timedelta) -> List[BusyInterval]:
    """Pad each interval on both sides and re-merge."""
    if not padding:
        return list(intervals)
    return merge_intervals(
        BusyInterval(item.start_utc - padding, item.end_utc + padding, item.source)
        for item in intervals
    )


class BusyIntervalAggregator:
    """Loads an owner's busy sources from a store and merges them."""

    def __init__(self, store: CalendarStore, staleness: timedelta = timedelta(hours=24)):
        self.store = store
        self.staleness = staleness

    async def aggregate(
        self,
        owner_id: int,
        window: TimeInterval,
        now: Optional[datetime] = None,
        exclude_event_id: Optional[int] = None,
    ) -> List[BusyInterval]:
        """
        Sorted, non-overlapping busy intervals for owner_id within window.

        Args:
            owner_id: owner whose calendar is read
            window: [from, to) to aggregate over; output is clipped to it
            now: reference time for integration staleness (defaults to utcnow)
            exclude_event_id: event left out of the set (used when rescheduling)
        """
        now = now or utc_now()
        events = await self.store.list_events(owner_id, window)
        if exclude_event_id is not None:
            events = [event for event in events if event.id != exclude_event_id]
        integrations = await self.store.list_integrations(owner_id)
        return collect_busy(events, integrations, window, now, self.staleness)
