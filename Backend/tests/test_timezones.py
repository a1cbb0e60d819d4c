"""
Tests for timezone normalization.

Run with: pytest Backend/tests/test_timezones.py -v
"""

from datetime import date, datetime, time, timedelta, timezone

import pytest

from booking_engine.errors import InvalidTimezone
from booking_engine.timezones import (
    combine_local,
    ensure_utc,
    get_zone,
    is_ambiguous,
    is_nonexistent,
    local_date,
    local_day_bounds,
    to_utc,
    to_zoned,
)

NY = "America/New_York"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# ============================================================================
# ZONE RESOLUTION
# ============================================================================

class TestGetZone:
    """Tests for zone id resolution."""

    def test_known_zone(self):
        assert get_zone(NY).key == NY

    def test_unknown_zone_raises(self):
        with pytest.raises(InvalidTimezone) as exc:
            get_zone("Mars/Olympus_Mons")
        assert exc.value.zone_id == "Mars/Olympus_Mons"
        assert exc.value.code == "INVALID_TIMEZONE"

    def test_empty_zone_raises(self):
        with pytest.raises(InvalidTimezone):
            get_zone("")

    def test_to_utc_with_unknown_zone_raises(self):
        with pytest.raises(InvalidTimezone):
            to_utc(datetime(2026, 3, 2, 9, 0), "Not/AZone")


# ============================================================================
# WALL CLOCK -> UTC
# ============================================================================

class TestToUtc:
    """Tests for local wall time to UTC conversion."""

    def test_standard_time(self):
        """09:00 EST is 14:00 UTC."""
        assert to_utc(datetime(2026, 3, 2, 9, 0), NY) == utc(2026, 3, 2, 14, 0)

    def test_daylight_time(self):
        """09:00 EDT is 13:00 UTC."""
        assert to_utc(datetime(2026, 7, 6, 9, 0), NY) == utc(2026, 7, 6, 13, 0)

    def test_ambiguous_time_takes_earlier_instant(self):
        """01:30 on the fall-back day happens twice; the EDT reading wins."""
        local = datetime(2026, 11, 1, 1, 30)
        assert is_ambiguous(local, NY)
        assert to_utc(local, NY) == utc(2026, 11, 1, 5, 30)

    def test_ambiguous_time_ignores_fold_flag(self):
        local = datetime(2026, 11, 1, 1, 30, fold=1)
        assert to_utc(local, NY) == utc(2026, 11, 1, 5, 30)

    def test_nonexistent_time_moves_to_transition(self):
        """02:30 on the spring-forward day does not exist; it becomes 03:00 EDT."""
        local = datetime(2026, 3, 8, 2, 30)
        assert is_nonexistent(local, NY)
        assert to_utc(local, NY) == utc(2026, 3, 8, 7, 0)

    def test_start_of_gap_moves_to_transition(self):
        assert to_utc(datetime(2026, 3, 8, 2, 0), NY) == utc(2026, 3, 8, 7, 0)

    def test_regular_time_is_neither_ambiguous_nor_nonexistent(self):
        local = datetime(2026, 3, 2, 9, 0)
        assert not is_ambiguous(local, NY)
        assert not is_nonexistent(local, NY)

    def test_aware_input_converted_exactly(self):
        aware = datetime(2026, 3, 2, 9, 0, tzinfo=timezone(timedelta(hours=2)))
        assert to_utc(aware, NY) == utc(2026, 3, 2, 7, 0)

    def test_result_is_utc(self):
        result = to_utc(datetime(2026, 3, 2, 9, 0), "Asia/Kolkata")
        assert result.utcoffset() == timedelta(0)
        assert result == utc(2026, 3, 2, 3, 30)


# ============================================================================
# UTC -> WALL CLOCK
# ============================================================================

class TestToZoned:
    """Tests for UTC to local wall time conversion."""

    def test_wall_clock(self):
        zoned = to_zoned(utc(2026, 3, 2, 14, 0), NY)
        assert zoned.replace(tzinfo=None) == datetime(2026, 3, 2, 9, 0)

    def test_naive_instant_treated_as_utc(self):
        zoned = to_zoned(datetime(2026, 3, 2, 14, 0), NY)
        assert zoned.replace(tzinfo=None) == datetime(2026, 3, 2, 9, 0)

    def test_second_pass_of_repeated_hour_has_fold(self):
        zoned = to_zoned(utc(2026, 11, 1, 6, 30), NY)
        assert (zoned.hour, zoned.minute, zoned.fold) == (1, 30, 1)

    @pytest.mark.parametrize("instant", [
        utc(2026, 3, 2, 14, 0),
        utc(2026, 3, 8, 6, 59),
        utc(2026, 3, 8, 7, 0),
        utc(2026, 11, 1, 5, 30),
        utc(2026, 11, 1, 6, 30),
    ])
    def test_round_trip(self, instant):
        """to_utc(to_zoned(i)) == i, including both passes of a repeated hour."""
        assert to_utc(to_zoned(instant, NY), NY) == instant


# ============================================================================
# CALENDAR HELPERS
# ============================================================================

class TestCalendarHelpers:
    """Tests for local date helpers."""

    def test_local_date_crosses_midnight(self):
        """03:00 UTC on the 3rd is still the 2nd in New York."""
        assert local_date(utc(2026, 3, 3, 3, 0), NY) == date(2026, 3, 2)

    def test_combine_local(self):
        assert combine_local(date(2026, 3, 2), time(17, 0), NY) == utc(2026, 3, 2, 22, 0)

    def test_spring_forward_day_is_23_hours(self):
        start, end = local_day_bounds(date(2026, 3, 8), NY)
        assert end - start == timedelta(hours=23)

    def test_fall_back_day_is_25_hours(self):
        start, end = local_day_bounds(date(2026, 11, 1), NY)
        assert end - start == timedelta(hours=25)

    def test_ensure_utc(self):
        assert ensure_utc(datetime(2026, 1, 1, 12, 0)) == utc(2026, 1, 1, 12, 0)
        offset = datetime(2026, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=-5)))
        assert ensure_utc(offset) == utc(2026, 1, 1, 17, 0)
