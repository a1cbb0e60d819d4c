"""
SQLAlchemy-backed calendar store.

Rows are translated into domain dataclasses at this boundary; nothing above
the store sees ORM objects.

Locking:
    owner_lock() first takes the in-process lock for the owner, then
    SELECT ... FOR UPDATE on the owner row, so concurrent reservations for
    the same owner are serialized across workers as well. The transaction is
    committed when the block exits normally and rolled back otherwise, so a
    rejected reservation leaves no event row behind.
"""

import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models as orm
from ..domain import (
    BookingLink,
    BusyInterval,
    BusySource,
    CalendarIntegration,
    DateOverride,
    Event,
    OwnerProfile,
    Question,
    RoutingAction,
    RoutingForm,
    RoutingRule,
    RuleCondition,
    RuleOperator,
    TimeInterval,
    WorkingHours,
)
from ..errors import NotFoundError
from .base import OwnerLockRegistry

logger = logging.getLogger(__name__)

# Shared by every SqlCalendarStore in this process.
process_locks = OwnerLockRegistry()


# ────────────────────────────────────────────────────────────────
# Row -> domain conversion
# ────────────────────────────────────────────────────────────────

def owner_to_domain(owner: orm.Owner, overrides: Sequence[orm.DateOverride] = ()) -> OwnerProfile:
    return OwnerProfile(
        id=owner.id,
        timezone=owner.timezone,
        working_hours=WorkingHours.from_dict(owner.working_hours or {}),
        date_overrides={
            row.override_date: DateOverride(
                day=row.override_date,
                is_available=row.is_available,
                start=row.start_time,
                end=row.end_time,
                label=row.label,
            )
            for row in overrides
        },
        default_reminders=tuple(int(value) for value in (owner.default_reminders or [])),
    )


def booking_link_to_domain(row: orm.BookingLink) -> BookingLink:
    return BookingLink(
        id=row.id,
        owner_id=row.owner_id,
        slot_duration_minutes=row.slot_duration_minutes,
        buffer_minutes=row.buffer_minutes or 0,
        valid_from=row.valid_from,
        valid_to=row.valid_to,
        is_active=row.is_active,
        lead_time_minutes=row.lead_time_minutes or 0,
        max_bookings_per_day=row.max_bookings_per_day or 0,
        title=row.title or "",
    )


def event_to_domain(row: orm.Event) -> Event:
    return Event(
        id=row.id,
        owner_id=row.owner_id,
        start_utc=row.start_at_utc,
        end_utc=row.end_at_utc,
        timezone=row.timezone,
        title=row.title or "",
        booking_link_id=row.booking_link_id,
        integration_id=row.integration_id,
        external_id=row.external_id,
        recurrence=row.recurrence,
        reminders=tuple(int(value) for value in (row.reminders or [])),
        visitor_name=row.visitor_name,
        visitor_email=row.visitor_email,
        created_at=row.created_at,
    )


def integration_to_domain(
    row: orm.CalendarIntegration,
    busy_rows: Sequence[orm.IntegrationBusyInterval] = (),
) -> CalendarIntegration:
    snapshot = []
    for busy in busy_rows:
        if busy.start_at_utc >= busy.end_at_utc:
            logger.warning(
                f"Ignoring empty busy interval {busy.id} in snapshot of integration {row.id}"
            )
            continue
        snapshot.append(
            BusyInterval(busy.start_at_utc, busy.end_at_utc, BusySource.integration(row.id))
        )
    return CalendarIntegration(
        id=row.id,
        owner_id=row.owner_id,
        type=row.type,
        is_connected=row.is_connected,
        last_synced_at=row.last_synced_at,
        snapshot=tuple(snapshot),
        expires_at=row.expires_at,
    )


def _action(action_type, booking_link_id, url, message) -> Optional[RoutingAction]:
    if action_type is None:
        return None
    return RoutingAction(action_type, booking_link_id=booking_link_id, url=url, message=message)


def routing_form_to_domain(
    form: orm.RoutingForm,
    questions: Sequence[orm.RoutingQuestion],
    rules: Sequence[orm.RoutingRule],
) -> RoutingForm:
    return RoutingForm(
        id=form.id,
        owner_id=form.owner_id,
        title=form.title or "",
        is_active=form.is_active,
        questions=tuple(
            Question(
                id=question.key,
                type=question.type,
                label=question.label or "",
                options=tuple(question.options or ()),
                is_required=question.is_required,
                order_index=question.order_index,
            )
            for question in questions
        ),
        rules=tuple(
            RoutingRule(
                action=_action(
                    rule.action_type,
                    rule.target_booking_link_id,
                    rule.target_url,
                    rule.target_message,
                ),
                conditions=tuple(
                    RuleCondition(
                        question_id=condition.get("question_id"),
                        operator=RuleOperator(condition.get("operator", RuleOperator.EQUALS.value)),
                        value=str(condition.get("value", "")),
                    )
                    for condition in (rule.conditions or [])
                ),
                is_active=rule.is_active,
            )
            for rule in rules
        ),
        default_action=_action(
            form.default_action_type,
            form.default_booking_link_id,
            form.default_url,
            form.default_message,
        ),
    )


# ────────────────────────────────────────────────────────────────
# Store
# ────────────────────────────────────────────────────────────────

class SqlCalendarStore:
    def __init__(self, session: AsyncSession, locks: Optional[OwnerLockRegistry] = None):
        self.session = session
        self._locks = locks or process_locks

    async def get_owner(self, owner_id: int) -> Optional[OwnerProfile]:
        owner = await self.session.get(orm.Owner, owner_id)
        if owner is None:
            return None
        result = await self.session.execute(
            select(orm.DateOverride).where(orm.DateOverride.owner_id == owner_id)
        )
        return owner_to_domain(owner, result.scalars().all())

    async def get_booking_link(self, booking_link_id: int) -> Optional[BookingLink]:
        row = await self.session.get(orm.BookingLink, booking_link_id)
        return booking_link_to_domain(row) if row else None

    async def list_events(self, owner_id: int, window: TimeInterval) -> list[Event]:
        result = await self.session.execute(
            select(orm.Event)
            .where(
                orm.Event.owner_id == owner_id,
                orm.Event.end_at_utc > window.start_utc,
                orm.Event.start_at_utc < window.end_utc,
            )
            .order_by(orm.Event.start_at_utc)
        )
        return [event_to_domain(row) for row in result.scalars().all()]

    async def list_integrations(self, owner_id: int) -> list[CalendarIntegration]:
        result = await self.session.execute(
            select(orm.CalendarIntegration).where(orm.CalendarIntegration.owner_id == owner_id)
        )
        integrations = result.scalars().all()
        if not integrations:
            return []

        busy_result = await self.session.execute(
            select(orm.IntegrationBusyInterval)
            .where(orm.IntegrationBusyInterval.integration_id.in_([row.id for row in integrations]))
            .order_by(orm.IntegrationBusyInterval.start_at_utc)
        )
        by_integration: dict[int, list[orm.IntegrationBusyInterval]] = defaultdict(list)
        for busy in busy_result.scalars().all():
            by_integration[busy.integration_id].append(busy)

        return [integration_to_domain(row, by_integration[row.id]) for row in integrations]

    async def get_event(self, event_id: int) -> Optional[Event]:
        row = await self.session.get(orm.Event, event_id)
        return event_to_domain(row) if row else None

    async def add_event(self, event: Event) -> Event:
        row = orm.Event(
            owner_id=event.owner_id,
            booking_link_id=event.booking_link_id,
            title=event.title,
            start_at_utc=event.start_utc,
            end_at_utc=event.end_utc,
            timezone=event.timezone,
            integration_id=event.integration_id,
            external_id=event.external_id,
            recurrence=event.recurrence,
            reminders=list(event.reminders),
            visitor_name=event.visitor_name,
            visitor_email=event.visitor_email,
        )
        self.session.add(row)
        await self.session.flush()
        await self.session.refresh(row)
        return event_to_domain(row)

    async def update_event_interval(self, event_id: int, interval: TimeInterval) -> Event:
        row = await self.session.get(orm.Event, event_id)
        if row is None:
            raise NotFoundError(f"Event {event_id} not found", {"event_id": event_id})
        row.start_at_utc = interval.start_utc
        row.end_at_utc = interval.end_utc
        await self.session.flush()
        await self.session.refresh(row)
        return event_to_domain(row)

    async def delete_event(self, event_id: int) -> bool:
        row = await self.session.get(orm.Event, event_id)
        if row is None:
            return False
        await self.session.delete(row)
        await self.session.flush()
        return True

    async def get_routing_form(self, form_id: int) -> Optional[RoutingForm]:
        form = await self.session.get(orm.RoutingForm, form_id)
        if form is None:
            return None
        questions = await self.session.execute(
            select(orm.RoutingQuestion)
            .where(orm.RoutingQuestion.form_id == form_id)
            .order_by(orm.RoutingQuestion.order_index, orm.RoutingQuestion.id)
        )
        rules = await self.session.execute(
            select(orm.RoutingRule)
            .where(orm.RoutingRule.form_id == form_id)
            .order_by(orm.RoutingRule.position, orm.RoutingRule.id)
        )
        return routing_form_to_domain(form, questions.scalars().all(), rules.scalars().all())

    async def record_submission(
        self,
        form_id: int,
        answers: dict,
        action: RoutingAction,
        routed_to: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> None:
        self.session.add(
            orm.RoutingSubmission(
                form_id=form_id,
                answers=dict(answers),
                routed_to=routed_to,
                routed_booking_link_id=action.booking_link_id,
                submitter_email=email,
                submitter_name=name,
            )
        )
        await self.session.commit()

    @asynccontextmanager
    async def owner_lock(self, owner_id: int) -> AsyncIterator[None]:
        async with self._locks.hold(owner_id):
            try:
                await self.session.execute(
                    select(orm.Owner.id).where(orm.Owner.id == owner_id).with_for_update()
                )
                yield
            except BaseException:
                await self.session.rollback()
                raise
            else:
                await self.session.commit()
