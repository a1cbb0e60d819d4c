"""
Time Normalization

Pure functions for converting between IANA zones and UTC. Storage and the
wire format are always UTC; owner working hours are wall-clock times in the
owner's zone and are converted here.

DST policy (applied consistently everywhere):
    - Ambiguous wall time (clocks fall back, the hour repeats):
      the EARLIER UTC instant wins.
    - Non-existent wall time (clocks spring forward, the hour is skipped):
      the first valid instant after the gap, i.e. the transition itself.
      02:30 in America/New_York on the spring-forward day -> 03:00 EDT.

Example:
    >>> to_utc(datetime(2026, 3, 2, 9, 0), "America/New_York")
    datetime.datetime(2026, 3, 2, 14, 0, tzinfo=datetime.timezone.utc)
"""

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import InvalidTimezone


@lru_cache(maxsize=256)
def get_zone(zone_id: str) -> ZoneInfo:
    """Resolve an IANA zone id, raising InvalidTimezone for unknown ids."""
    if not zone_id or not isinstance(zone_id, str):
        raise InvalidTimezone(str(zone_id))
    try:
        return ZoneInfo(zone_id)
    except (ZoneInfoNotFoundError, ValueError, IsADirectoryError):
        raise InvalidTimezone(zone_id)


def ensure_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _wall(value: datetime) -> datetime:
    return value.replace(tzinfo=None, fold=0)


def is_nonexistent(local: datetime, zone_id: str) -> bool:
    """True when the wall time falls into a spring-forward gap."""
    tz = get_zone(zone_id)
    naive = _wall(local)
    candidate = naive.replace(tzinfo=tz, fold=0).astimezone(timezone.utc)
    return _wall(candidate.astimezone(tz)) != naive


def is_ambiguous(local: datetime, zone_id: str) -> bool:
    """True when the wall time occurs twice (fall-back overlap)."""
    tz = get_zone(zone_id)
    naive = _wall(local)
    if is_nonexistent(naive, zone_id):
        return False
    first = naive.replace(tzinfo=tz, fold=0).utcoffset()
    second = naive.replace(tzinfo=tz, fold=1).utcoffset()
    return first != second


def _transition_after(lower: datetime, upper: datetime, tz: ZoneInfo) -> datetime:
    """
    Find the UTC instant where the offset changes between lower and upper.

    The offset is constant before the transition and constant after it, so a
    bisection on whole seconds converges on the first instant that carries the
    post-transition offset.
    """
    target_offset = upper.astimezone(tz).utcoffset()
    while (upper - lower) > timedelta(seconds=1):
        middle = lower + (upper - lower) / 2
        middle = middle.replace(microsecond=0)
        if middle.astimezone(tz).utcoffset() == target_offset:
            upper = middle
        else:
            lower = middle
    return upper


def to_utc(local: datetime, zone_id: str) -> datetime:
    """
    Convert a wall-clock time in zone_id to an aware UTC instant.

    Aware inputs are converted exactly. Naive inputs follow the module DST
    policy (earlier instant for ambiguous times, transition instant for
    skipped times).
    """
    tz = get_zone(zone_id)
    if local.tzinfo is not None:
        return local.astimezone(timezone.utc)

    earlier = local.replace(tzinfo=tz, fold=0).astimezone(timezone.utc)
    later = local.replace(tzinfo=tz, fold=1).astimezone(timezone.utc)

    if _wall(earlier.astimezone(tz)) == _wall(local):
        # Regular or ambiguous wall time; fold=0 and fold=1 only differ when
        # the hour repeats.
        return min(earlier, later)

    # Wall time inside a gap: the two folds use the offsets on either side of
    # the transition, so the candidates bracket it.
    low, high = sorted((earlier, later))
    return _transition_after(low, high, tz)


def to_zoned(instant: datetime, zone_id: str) -> datetime:
    """Convert a UTC instant to an aware wall-clock datetime in zone_id."""
    tz = get_zone(zone_id)
    return ensure_utc(instant).astimezone(tz)


def local_date(instant: datetime, zone_id: str) -> date:
    """The calendar date of an instant as seen in zone_id."""
    return to_zoned(instant, zone_id).date()


def combine_local(day: date, wall_time: time, zone_id: str) -> datetime:
    """UTC instant for a local date + wall time."""
    return to_utc(datetime.combine(day, wall_time), zone_id)


def local_day_bounds(day: date, zone_id: str) -> tuple[datetime, datetime]:
    """UTC [start, end) of a local calendar day (23/24/25 hours long)."""
    start = combine_local(day, time(0, 0), zone_id)
    end = combine_local(day + timedelta(days=1), time(0, 0), zone_id)
    return start, end
