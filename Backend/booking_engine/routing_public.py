"""
Public Routing Form API.

A visitor submits answers; the form's rules pick exactly one action. When the
action routes to a booking link and the submission already names a time, the
reservation is made in the same request.
"""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, model_validator

from .deps import get_services
from .domain import RoutingActionType, TimeInterval, VisitorInfo
from .errors import InvalidInput
from .public_booking import ERROR_RESPONSES, EventResponse
from .services import BookingServices
from .timezones import ensure_utc, utc_now

router = APIRouter(prefix="/public", tags=["public-routing"])


class RoutingSubmitRequest(BaseModel):
    answers: dict[str, Any] = Field(default_factory=dict)
    email: Optional[str] = Field(None, max_length=255)
    name: Optional[str] = Field(None, max_length=100)
    requested_start: Optional[datetime] = None
    requested_end: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_requested_interval(self):
        if (self.requested_start is None) != (self.requested_end is None):
            raise ValueError("requested_start and requested_end must be given together")
        if self.requested_start and ensure_utc(self.requested_end) <= ensure_utc(self.requested_start):
            raise ValueError("requested_end must be after requested_start")
        return self


class RoutingSubmitResponse(BaseModel):
    action: RoutingActionType
    routed_to: str
    booking_link_id: Optional[int] = None
    url: Optional[str] = None
    message: Optional[str] = None
    event: Optional[EventResponse] = None


@router.post("/routing-forms/{form_id}/submit", response_model=RoutingSubmitResponse,
             responses=ERROR_RESPONSES)
async def submit_routing_form(
    form_id: int,
    payload: RoutingSubmitRequest,
    services: BookingServices = Depends(get_services),
):
    """
    Route a submission.

    - 422 VALIDATION_ERROR names the first unanswered required question
    - 422 ROUTING_UNMATCHED when no rule matches and the form has no default

    A submission that books a time is recorded only once the reservation
    has been made.
    """
    outcome = await services.routing.route(form_id, payload.answers)
    action = outcome.action
    response = RoutingSubmitResponse(
        action=action.type,
        routed_to=outcome.routed_to,
        booking_link_id=action.booking_link_id,
        url=action.url,
        message=action.message,
    )

    if action.type == RoutingActionType.ROUTE_TO_BOOKING and payload.requested_start:
        if not payload.name or not payload.email:
            raise InvalidInput(
                "name and email are required to book from a routing form",
                {"form_id": form_id},
            )
        event = await services.reservations.reserve(
            action.booking_link_id,
            TimeInterval(payload.requested_start, payload.requested_end),
            VisitorInfo(name=payload.name.strip(), email=payload.email.strip().lower()),
            now=utc_now(),
        )
        response.event = EventResponse.from_event(event)

    await services.routing.record(
        form_id,
        payload.answers,
        outcome,
        email=payload.email,
        name=payload.name,
    )
    return response
