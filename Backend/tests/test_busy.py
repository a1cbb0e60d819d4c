"""
Tests for busy interval aggregation.

Run with: pytest Backend/tests/test_busy.py -v
"""

from datetime import timedelta

import pytest

from booking_engine.busy import (
    BusyIntervalAggregator,
    clip,
    collect_busy,
    expand,
    merge_intervals,
    overlaps,
)
from booking_engine.domain import (
    BusyInterval,
    BusySource,
    BusySourceKind,
    CalendarIntegration,
    Event,
    IntegrationType,
    TimeInterval,
)

from conftest import OWNER_ID, utc

DAY = TimeInterval(utc(2026, 3, 2, 0, 0), utc(2026, 3, 3, 0, 0))
NOW = utc(2026, 3, 1, 12, 0)


def busy(start_hour, start_minute, end_hour, end_minute, source=None) -> BusyInterval:
    interval = BusyInterval(
        utc(2026, 3, 2, start_hour, start_minute),
        utc(2026, 3, 2, end_hour, end_minute),
    )
    if source is not None:
        interval = BusyInterval(interval.start_utc, interval.end_utc, source)
    return interval


def integration(integration_id=10, snapshot=(), **kwargs) -> CalendarIntegration:
    values = dict(
        id=integration_id,
        owner_id=OWNER_ID,
        type=IntegrationType.GOOGLE,
        is_connected=True,
        last_synced_at=NOW - timedelta(hours=1),
        snapshot=tuple(snapshot),
    )
    values.update(kwargs)
    return CalendarIntegration(**values)


# ============================================================================
# MERGE TESTS
# ============================================================================

class TestMergeIntervals:
    """Tests for merge_intervals."""

    def test_empty(self):
        assert merge_intervals([]) == []

    def test_adjacent_intervals_merge(self):
        """[10:00,10:30) and [10:30,11:00) become [10:00,11:00)."""
        merged = merge_intervals([busy(10, 30, 11, 0), busy(10, 0, 10, 30)])
        assert [(m.start_utc, m.end_utc) for m in merged] == [
            (utc(2026, 3, 2, 10, 0), utc(2026, 3, 2, 11, 0)),
        ]

    def test_overlapping_intervals_union(self):
        merged = merge_intervals([busy(9, 0, 10, 0), busy(9, 30, 11, 0), busy(9, 45, 10, 15)])
        assert len(merged) == 1
        assert merged[0].end_utc == utc(2026, 3, 2, 11, 0)

    def test_disjoint_intervals_sorted(self):
        merged = merge_intervals([busy(14, 0, 15, 0), busy(9, 0, 10, 0)])
        assert [m.start_utc.hour for m in merged] == [9, 14]

    def test_merged_interval_keeps_earliest_source(self):
        external = BusySource.integration(7)
        merged = merge_intervals([busy(10, 0, 11, 0), busy(9, 0, 10, 30, source=external)])
        assert merged[0].source == external

    def test_output_is_non_overlapping(self):
        merged = merge_intervals([
            busy(9, 0, 9, 30), busy(9, 15, 9, 45), busy(12, 0, 13, 0), busy(12, 59, 14, 0),
        ])
        for current, following in zip(merged, merged[1:]):
            assert current.end_utc < following.start_utc


class TestOverlapAndClip:
    """Tests for the half-open helpers."""

    def test_touching_intervals_do_not_overlap(self):
        assert not overlaps(busy(9, 0, 10, 0), busy(10, 0, 11, 0))

    def test_overlap(self):
        assert overlaps(busy(9, 0, 10, 1), busy(10, 0, 11, 0))

    def test_clip_to_window(self):
        window = TimeInterval(utc(2026, 3, 2, 9, 30), utc(2026, 3, 2, 12, 0))
        clipped = clip(busy(9, 0, 10, 0), window)
        assert (clipped.start_utc, clipped.end_utc) == (window.start_utc, utc(2026, 3, 2, 10, 0))

    def test_clip_outside_window(self):
        window = TimeInterval(utc(2026, 3, 2, 12, 0), utc(2026, 3, 2, 13, 0))
        assert clip(busy(9, 0, 10, 0), window) is None

    def test_expand_pads_and_merges(self):
        padded = expand([busy(10, 0, 10, 30), busy(11, 0, 11, 30)], timedelta(minutes=15))
        assert len(padded) == 1
        assert padded[0].start_utc == utc(2026, 3, 2, 9, 45)
        assert padded[0].end_utc == utc(2026, 3, 2, 11, 45)


# ============================================================================
# SOURCE COLLECTION TESTS
# ============================================================================

class TestCollectBusy:
    """Tests for collect_busy."""

    def test_events_and_active_integration(self):
        event = Event(id=1, owner_id=OWNER_ID, start_utc=utc(2026, 3, 2, 15, 0), end_utc=utc(2026, 3, 2, 15, 30))
        synced = integration(snapshot=[busy(15, 30, 16, 0, source=BusySource.integration(10))])
        merged = collect_busy([event], [synced], DAY, NOW, timedelta(hours=24))
        assert [(m.start_utc, m.end_utc) for m in merged] == [
            (utc(2026, 3, 2, 15, 0), utc(2026, 3, 2, 16, 0)),
        ]
        assert merged[0].source.kind == BusySourceKind.LOCAL

    def test_disconnected_integration_skipped(self):
        disconnected = integration(is_connected=False, snapshot=[busy(9, 0, 10, 0)])
        assert collect_busy([], [disconnected], DAY, NOW, timedelta(hours=24)) == []

    def test_stale_integration_skipped(self):
        stale = integration(last_synced_at=NOW - timedelta(days=3), snapshot=[busy(9, 0, 10, 0)])
        assert collect_busy([], [stale], DAY, NOW, timedelta(hours=24)) == []

    def test_never_synced_integration_skipped(self):
        never = integration(last_synced_at=None, snapshot=[busy(9, 0, 10, 0)])
        assert collect_busy([], [never], DAY, NOW, timedelta(hours=24)) == []

    def test_expired_integration_skipped(self):
        expired = integration(expires_at=NOW - timedelta(minutes=1), snapshot=[busy(9, 0, 10, 0)])
        assert collect_busy([], [expired], DAY, NOW, timedelta(hours=24)) == []

    def test_intervals_clipped_to_window(self):
        event = Event(id=1, owner_id=OWNER_ID, start_utc=utc(2026, 3, 1, 22, 0), end_utc=utc(2026, 3, 2, 2, 0))
        merged = collect_busy([event], [], DAY, NOW, timedelta(hours=24))
        assert merged[0].start_utc == DAY.start_utc
        assert merged[0].end_utc == utc(2026, 3, 2, 2, 0)


# ============================================================================
# AGGREGATOR TESTS
# ============================================================================

class TestBusyIntervalAggregator:
    """Tests for BusyIntervalAggregator against the in-memory store."""

    @pytest.mark.asyncio
    async def test_aggregate_is_idempotent(self, store):
        await store.add_event(Event(None, OWNER_ID, utc(2026, 3, 2, 15, 0), utc(2026, 3, 2, 15, 30)))
        await store.add_event(Event(None, OWNER_ID, utc(2026, 3, 2, 15, 30), utc(2026, 3, 2, 16, 0)))
        store.put_integration(integration(snapshot=[busy(18, 0, 19, 0, source=BusySource.integration(10))]))
        aggregator = BusyIntervalAggregator(store)

        first = await aggregator.aggregate(OWNER_ID, DAY, now=NOW)
        second = await aggregator.aggregate(OWNER_ID, DAY, now=NOW)

        assert first == second
        assert [(m.start_utc, m.end_utc) for m in first] == [
            (utc(2026, 3, 2, 15, 0), utc(2026, 3, 2, 16, 0)),
            (utc(2026, 3, 2, 18, 0), utc(2026, 3, 2, 19, 0)),
        ]

    @pytest.mark.asyncio
    async def test_other_owners_ignored(self, store):
        await store.add_event(Event(None, 99, utc(2026, 3, 2, 15, 0), utc(2026, 3, 2, 15, 30)))
        aggregator = BusyIntervalAggregator(store)
        assert await aggregator.aggregate(OWNER_ID, DAY, now=NOW) == []

    @pytest.mark.asyncio
    async def test_excluded_event_left_out(self, store):
        event = await store.add_event(Event(None, OWNER_ID, utc(2026, 3, 2, 15, 0), utc(2026, 3, 2, 15, 30)))
        aggregator = BusyIntervalAggregator(store)
        assert await aggregator.aggregate(OWNER_ID, DAY, now=NOW, exclude_event_id=event.id) == []

    @pytest.mark.asyncio
    async def test_sources_not_mutated(self, store):
        snapshot = (busy(9, 0, 10, 0, source=BusySource.integration(10)),)
        store.put_integration(integration(snapshot=snapshot))
        aggregator = BusyIntervalAggregator(store)
        await aggregator.aggregate(OWNER_ID, DAY, now=NOW)
        assert store.integrations[10].snapshot == snapshot
