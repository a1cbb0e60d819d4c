"""
Domain types for the booking engine.

These are the shapes the engine reasons about. Storage backends translate
their rows into these immutable dataclasses, so the aggregator, calculator
and reservation manager never see ORM objects or provider-specific payloads.

Every classification is an Enum; values arriving from the wire or the
database are converted at the boundary and compared as members afterwards.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum, IntEnum
from typing import Any, Mapping, Optional

from .timezones import ensure_utc


# ────────────────────────────────────────────────────────────────
# Enumerations
# ────────────────────────────────────────────────────────────────

class Weekday(IntEnum):
    """Day of week, numbered like ``date.weekday()``."""
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def of(cls, day: date) -> "Weekday":
        return cls(day.weekday())


class BusySourceKind(str, Enum):
    LOCAL = "local"
    INTEGRATION = "integration"


class IntegrationType(str, Enum):
    GOOGLE = "google"
    OUTLOOK = "outlook"
    ICLOUD = "icloud"
    ICAL = "ical"


class QuestionType(str, Enum):
    TEXT = "text"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"


class RuleOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ANY = "any"


class RoutingActionType(str, Enum):
    ROUTE_TO_BOOKING = "route_to_booking"
    ROUTE_TO_URL = "route_to_url"
    SHOW_MESSAGE = "show_message"


class NotificationChannel(str, Enum):
    EMAIL = "email"
    PUSH = "push"


# ────────────────────────────────────────────────────────────────
# Intervals
# ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TimeInterval:
    """Half-open UTC interval [start_utc, end_utc)."""

    start_utc: datetime
    end_utc: datetime

    def __post_init__(self):
        object.__setattr__(self, "start_utc", ensure_utc(self.start_utc))
        object.__setattr__(self, "end_utc", ensure_utc(self.end_utc))
        if self.start_utc >= self.end_utc:
            raise ValueError(
                f"Interval start must be before end, got {self.start_utc} >= {self.end_utc}"
            )

    @property
    def duration(self) -> timedelta:
        return self.end_utc - self.start_utc

    def overlaps(self, other: "TimeInterval | BusyInterval") -> bool:
        return self.start_utc < other.end_utc and other.start_utc < self.end_utc

    def contains(self, other: "TimeInterval") -> bool:
        return self.start_utc <= other.start_utc and other.end_utc <= self.end_utc


@dataclass(frozen=True)
class BusySource:
    """Where a busy interval came from: the owner's own events or a synced calendar."""

    kind: BusySourceKind
    integration_id: Optional[int] = None

    def __post_init__(self):
        if self.kind == BusySourceKind.INTEGRATION and self.integration_id is None:
            raise ValueError("Integration busy source requires an integration_id")
        if self.kind == BusySourceKind.LOCAL and self.integration_id is not None:
            raise ValueError("Local busy source cannot carry an integration_id")

    @classmethod
    def local(cls) -> "BusySource":
        return cls(BusySourceKind.LOCAL)

    @classmethod
    def integration(cls, integration_id: int) -> "BusySource":
        return cls(BusySourceKind.INTEGRATION, integration_id)


LOCAL_SOURCE = BusySource.local()


@dataclass(frozen=True)
class BusyInterval:
    start_utc: datetime
    end_utc: datetime
    source: BusySource = LOCAL_SOURCE

    def __post_init__(self):
        object.__setattr__(self, "start_utc", ensure_utc(self.start_utc))
        object.__setattr__(self, "end_utc", ensure_utc(self.end_utc))
        if self.start_utc >= self.end_utc:
            raise ValueError(
                f"Busy interval start must be before end, got {self.start_utc} >= {self.end_utc}"
            )

    def overlaps(self, other: "TimeInterval | BusyInterval") -> bool:
        return self.start_utc < other.end_utc and other.start_utc < self.end_utc


# ────────────────────────────────────────────────────────────────
# Owner configuration
# ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DayHours:
    enabled: bool = False
    start: time = time(9, 0)
    end: time = time(17, 0)

    def __post_init__(self):
        if self.enabled and not self.start < self.end:
            raise ValueError(f"Working hours start {self.start} must be before end {self.end}")


@dataclass(frozen=True)
class WorkingHours:
    """Weekly working-hour template, interpreted in the owner's timezone."""

    days: Mapping[Weekday, DayHours] = field(default_factory=dict)

    def for_weekday(self, weekday: Weekday) -> DayHours:
        return self.days.get(Weekday(weekday), DayHours(enabled=False))

    @classmethod
    def weekdays(cls, start: time = time(9, 0), end: time = time(17, 0)) -> "WorkingHours":
        """Monday to Friday with the same hours; weekend disabled."""
        return cls({
            day: DayHours(enabled=day <= Weekday.FRIDAY, start=start, end=end)
            for day in Weekday
        })

    @classmethod
    def from_dict(cls, raw: Mapping[Any, Mapping[str, Any]]) -> "WorkingHours":
        """
        Build from ``{"0": {"enabled": true, "start": "09:00", "end": "17:00"}, ...}``.

        Keys are weekday numbers (Monday = 0); times are "HH:MM" strings or
        ``datetime.time`` values.
        """
        days = {}
        for key, value in raw.items():
            weekday = Weekday(int(key))
            days[weekday] = DayHours(
                enabled=bool(value.get("enabled", False)),
                start=parse_wall_time(value.get("start", "09:00")),
                end=parse_wall_time(value.get("end", "17:00")),
            )
        return cls(days)

    def to_dict(self) -> dict:
        return {
            str(int(day)): {
                "enabled": hours.enabled,
                "start": hours.start.strftime("%H:%M"),
                "end": hours.end.strftime("%H:%M"),
            }
            for day, hours in sorted(self.days.items())
        }


def parse_wall_time(value: "time | str") -> time:
    if isinstance(value, time):
        return value
    hour, minute = map(int, str(value).split(":")[:2])
    return time(hour, minute)


@dataclass(frozen=True)
class DateOverride:
    """Replaces the weekly template for one local date."""

    day: date
    is_available: bool
    start: Optional[time] = None
    end: Optional[time] = None
    label: Optional[str] = None

    def __post_init__(self):
        if self.is_available and (self.start is None) != (self.end is None):
            raise ValueError("Date override needs both start and end, or neither")
        if self.is_available and self.start is not None and not self.start < self.end:
            raise ValueError(f"Date override start {self.start} must be before end {self.end}")


@dataclass(frozen=True)
class OwnerProfile:
    id: int
    timezone: str
    working_hours: WorkingHours
    date_overrides: Mapping[date, DateOverride] = field(default_factory=dict)
    default_reminders: tuple[int, ...] = ()

    def hours_for(self, day: date) -> Optional[tuple[time, time]]:
        """Effective (start, end) wall times for a local date, or None when closed."""
        override = self.date_overrides.get(day)
        if override is not None:
            if not override.is_available:
                return None
            if override.start is not None:
                return override.start, override.end
        hours = self.working_hours.for_weekday(Weekday.of(day))
        if not hours.enabled:
            return None
        return hours.start, hours.end


@dataclass(frozen=True)
class BookingLink:
    id: int
    owner_id: int
    slot_duration_minutes: int
    buffer_minutes: int = 0
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None
    is_active: bool = True
    lead_time_minutes: int = 0
    max_bookings_per_day: int = 0
    title: str = ""

    def __post_init__(self):
        if self.slot_duration_minutes <= 0:
            raise ValueError("slot_duration_minutes must be positive")
        if self.buffer_minutes < 0:
            raise ValueError("buffer_minutes cannot be negative")
        if self.lead_time_minutes < 0:
            raise ValueError("lead_time_minutes cannot be negative")
        if self.max_bookings_per_day < 0:
            raise ValueError("max_bookings_per_day cannot be negative")
        if self.valid_from and self.valid_to and self.valid_from > self.valid_to:
            raise ValueError("valid_from must not be after valid_to")

    @property
    def slot_duration(self) -> timedelta:
        return timedelta(minutes=self.slot_duration_minutes)

    @property
    def buffer(self) -> timedelta:
        return timedelta(minutes=self.buffer_minutes)

    def is_valid_on(self, day: date) -> bool:
        if self.valid_from and day < self.valid_from:
            return False
        if self.valid_to and day > self.valid_to:
            return False
        return True


# ────────────────────────────────────────────────────────────────
# Calendar state
# ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CalendarIntegration:
    """A synced external calendar. The engine only reads its last snapshot."""

    id: int
    owner_id: int
    type: IntegrationType
    is_connected: bool
    last_synced_at: Optional[datetime]
    snapshot: tuple[BusyInterval, ...] = ()
    expires_at: Optional[datetime] = None

    def is_active(self, now: datetime, staleness: timedelta) -> bool:
        if not self.is_connected or self.last_synced_at is None:
            return False
        now = ensure_utc(now)
        if self.expires_at is not None and ensure_utc(self.expires_at) <= now:
            return False
        return now - ensure_utc(self.last_synced_at) <= staleness


@dataclass(frozen=True)
class VisitorInfo:
    name: str
    email: str
    phone: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class Event:
    """An owner-scoped appointment; the unit a reservation commits."""

    id: Optional[int]
    owner_id: int
    start_utc: datetime
    end_utc: datetime
    timezone: str = "UTC"
    title: str = ""
    booking_link_id: Optional[int] = None
    integration_id: Optional[int] = None
    external_id: Optional[str] = None
    recurrence: Optional[str] = None
    reminders: tuple[int, ...] = ()
    visitor_name: Optional[str] = None
    visitor_email: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        object.__setattr__(self, "start_utc", ensure_utc(self.start_utc))
        object.__setattr__(self, "end_utc", ensure_utc(self.end_utc))
        object.__setattr__(self, "reminders", tuple(self.reminders))
        if self.start_utc >= self.end_utc:
            raise ValueError("Event start must be before end")
        if any(offset < 0 for offset in self.reminders):
            raise ValueError("Reminder offsets must be non-negative minute counts")

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(self.start_utc, self.end_utc)

    def busy_interval(self) -> BusyInterval:
        return BusyInterval(self.start_utc, self.end_utc, LOCAL_SOURCE)


# ────────────────────────────────────────────────────────────────
# Routing forms
# ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Question:
    id: str
    type: QuestionType
    label: str = ""
    options: tuple[str, ...] = ()
    is_required: bool = False
    order_index: int = 0


@dataclass(frozen=True)
class RuleCondition:
    question_id: Optional[str]
    operator: RuleOperator
    value: str = ""

    def __post_init__(self):
        if self.operator != RuleOperator.ANY and not self.question_id:
            raise ValueError(f"Operator {self.operator.value} needs a question_id")


@dataclass(frozen=True)
class RoutingAction:
    type: RoutingActionType
    booking_link_id: Optional[int] = None
    url: Optional[str] = None
    message: Optional[str] = None

    def __post_init__(self):
        if self.type == RoutingActionType.ROUTE_TO_BOOKING and self.booking_link_id is None:
            raise ValueError("route_to_booking needs a booking_link_id")
        if self.type == RoutingActionType.ROUTE_TO_URL and not self.url:
            raise ValueError("route_to_url needs a url")
        if self.type == RoutingActionType.SHOW_MESSAGE and self.message is None:
            raise ValueError("show_message needs a message")

    @classmethod
    def route_to_booking(cls, booking_link_id: int) -> "RoutingAction":
        return cls(RoutingActionType.ROUTE_TO_BOOKING, booking_link_id=booking_link_id)

    @classmethod
    def route_to_url(cls, url: str) -> "RoutingAction":
        return cls(RoutingActionType.ROUTE_TO_URL, url=url)

    @classmethod
    def show_message(cls, message: str) -> "RoutingAction":
        return cls(RoutingActionType.SHOW_MESSAGE, message=message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"action": self.type.value}
        if self.type == RoutingActionType.ROUTE_TO_BOOKING:
            payload["booking_link_id"] = self.booking_link_id
        elif self.type == RoutingActionType.ROUTE_TO_URL:
            payload["url"] = self.url
        else:
            payload["message"] = self.message
        return payload


@dataclass(frozen=True)
class RoutingRule:
    """All conditions must hold; a rule without conditions matches anything."""

    action: RoutingAction
    conditions: tuple[RuleCondition, ...] = ()
    is_active: bool = True


@dataclass(frozen=True)
class RoutingForm:
    id: int
    questions: tuple[Question, ...]
    rules: tuple[RoutingRule, ...]
    default_action: Optional[RoutingAction] = None
    is_active: bool = True
    owner_id: Optional[int] = None
    title: str = ""


# ────────────────────────────────────────────────────────────────
# Notifications
# ────────────────────────────────────────────────────────────────

@dataclass(frozen=True, order=True)
class ReminderNotification:
    """One (event, fire time, channel) tuple for the notification dispatcher."""

    fire_time_utc: datetime
    event_id: Optional[int]
    channel: NotificationChannel
