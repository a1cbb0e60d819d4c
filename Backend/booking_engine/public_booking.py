"""
Public Booking API.

Visitor-facing endpoints for listing a booking link's open slots and
reserving, moving or cancelling an appointment.

All endpoints are designed to be:
- Timezone-aware (UTC on the wire, owner-local rules inside the engine)
- Conflict-free (reservations re-check availability under a per-owner lock)
- Stateless between calls (a slot listing is a snapshot, never a hold)

Engine errors are rendered by the exception handlers in main.py.
"""

from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator, model_validator

from .core.config import get_settings
from .core.responses import ErrorResponse
from .deps import get_services
from .domain import Event, TimeInterval, VisitorInfo
from .errors import InvalidInput
from .services import BookingServices
from .timezones import ensure_utc, utc_now

router = APIRouter(prefix="/public", tags=["public-booking"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


# ────────────────────────────────────────────────────────────────
# Pydantic Models
# ────────────────────────────────────────────────────────────────

class SlotResponse(BaseModel):
    """One offerable slot; both ends in UTC."""
    start: datetime
    end: datetime


class SlotsResponse(BaseModel):
    booking_link_id: int
    timezone: str  # owner timezone, for display
    start: datetime
    end: datetime
    slots: list[SlotResponse]


class VisitorPayload(BaseModel):
    """Contact details of the person booking."""
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Visitor name is required")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Visitor email is invalid")
        return v

    def to_domain(self) -> VisitorInfo:
        return VisitorInfo(name=self.name, email=self.email, phone=self.phone, notes=self.notes)


class IntervalPayload(BaseModel):
    start: datetime
    end: datetime

    @model_validator(mode="after")
    def validate_order(self):
        if ensure_utc(self.end) <= ensure_utc(self.start):
            raise ValueError("end must be after start")
        return self

    def to_interval(self) -> TimeInterval:
        return TimeInterval(self.start, self.end)


class ReservationRequest(IntervalPayload):
    visitor: VisitorPayload


class RescheduleRequest(IntervalPayload):
    pass


class EventResponse(BaseModel):
    id: int
    owner_id: int
    booking_link_id: Optional[int] = None
    title: str
    start: datetime
    end: datetime
    timezone: str
    visitor_name: Optional[str] = None
    visitor_email: Optional[str] = None
    reminders: list[int] = []

    @classmethod
    def from_event(cls, event: Event) -> "EventResponse":
        return cls(
            id=event.id,
            owner_id=event.owner_id,
            booking_link_id=event.booking_link_id,
            title=event.title,
            start=event.start_utc,
            end=event.end_utc,
            timezone=event.timezone,
            visitor_name=event.visitor_name,
            visitor_email=event.visitor_email,
            reminders=list(event.reminders),
        )


class CancelResponse(BaseModel):
    ok: bool
    event_id: int


# ────────────────────────────────────────────────────────────────
# Helpers
# ────────────────────────────────────────────────────────────────

def query_window(start: datetime, end: datetime) -> TimeInterval:
    if ensure_utc(end) <= ensure_utc(start):
        raise InvalidInput("end must be after start", {"start": start.isoformat(), "end": end.isoformat()})
    window = TimeInterval(start, end)
    max_days = get_settings().max_slot_query_days
    if window.duration > timedelta(days=max_days):
        raise InvalidInput(
            f"Slot queries may span at most {max_days} days",
            {"max_days": max_days},
        )
    return window


# ────────────────────────────────────────────────────────────────
# Endpoints
# ────────────────────────────────────────────────────────────────

@router.get("/booking-links/{booking_link_id}/slots", response_model=SlotsResponse,
            responses=ERROR_RESPONSES)
async def list_slots(
    booking_link_id: int,
    start: datetime = Query(..., description="Window start, ISO-8601"),
    end: datetime = Query(..., description="Window end (exclusive), ISO-8601"),
    services: BookingServices = Depends(get_services),
):
    """
    Offerable slots of a booking link within [start, end).

    Slots already in the past (or inside the link's lead time) are omitted.
    """
    window = query_window(start, end)
    slots = await services.calculator.compute_slots(booking_link_id, window, now=utc_now())
    return SlotsResponse(
        booking_link_id=slots.link.id,
        timezone=slots.owner.timezone,
        start=window.start_utc,
        end=window.end_utc,
        slots=[SlotResponse(start=slot.start_utc, end=slot.end_utc) for slot in slots],
    )


@router.post("/booking-links/{booking_link_id}/reservations", response_model=EventResponse,
             status_code=status.HTTP_201_CREATED, responses=ERROR_RESPONSES)
async def create_reservation(
    booking_link_id: int,
    payload: ReservationRequest,
    services: BookingServices = Depends(get_services),
):
    """Reserve one of the link's slots. 409 when it was taken in the meantime."""
    event = await services.reservations.reserve(
        booking_link_id,
        payload.to_interval(),
        payload.visitor.to_domain(),
        now=utc_now(),
    )
    return EventResponse.from_event(event)


@router.post("/events/{event_id}/reschedule", response_model=EventResponse,
             responses=ERROR_RESPONSES)
async def reschedule_event(
    event_id: int,
    payload: RescheduleRequest,
    services: BookingServices = Depends(get_services),
):
    event = await services.reservations.reschedule(event_id, payload.to_interval(), now=utc_now())
    return EventResponse.from_event(event)


@router.delete("/events/{event_id}", response_model=CancelResponse, responses=ERROR_RESPONSES)
async def cancel_event(
    event_id: int,
    services: BookingServices = Depends(get_services),
):
    await services.reservations.cancel(event_id)
    return CancelResponse(ok=True, event_id=event_id)
