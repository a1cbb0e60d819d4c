from datetime import date, datetime, time

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum as PgEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from .core.db import Base
from .domain import IntegrationType, QuestionType, RoutingActionType


class Owner(Base):
    __tablename__ = "owners"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    # {"0": {"enabled": true, "start": "09:00", "end": "17:00"}, ...}, Monday = 0
    working_hours: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    default_reminders: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class DateOverride(Base):
    __tablename__ = "date_overrides"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("owners.id"), nullable=False, index=True)
    override_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    end_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    label: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (UniqueConstraint("owner_id", "date", name="uq_date_override_owner_date"),)


class BookingLink(Base):
    __tablename__ = "booking_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("owners.id"), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    slot_duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    buffer_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    valid_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    valid_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    lead_time_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_bookings_per_day: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class Event(Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("owners.id"), nullable=False, index=True)
    booking_link_id: Mapped[int | None] = mapped_column(
        ForeignKey("booking_links.id"), nullable=True, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    start_at_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_at_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    integration_id: Mapped[int | None] = mapped_column(
        ForeignKey("calendar_integrations.id"), nullable=True
    )
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recurrence: Mapped[str | None] = mapped_column(Text, nullable=True)
    reminders: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    visitor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    visitor_email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class CalendarIntegration(Base):
    __tablename__ = "calendar_integrations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("owners.id"), nullable=False, index=True)
    type: Mapped[IntegrationType] = mapped_column(PgEnum(IntegrationType), nullable=False)
    calendar_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_connected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class IntegrationBusyInterval(Base):
    """One busy span of an integration's last sync snapshot (written by the sync service)."""

    __tablename__ = "integration_busy_intervals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    integration_id: Mapped[int] = mapped_column(
        ForeignKey("calendar_integrations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    start_at_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_at_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class RoutingForm(Base):
    __tablename__ = "routing_forms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("owners.id"), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    default_action_type: Mapped[RoutingActionType | None] = mapped_column(
        PgEnum(RoutingActionType), nullable=True
    )
    default_booking_link_id: Mapped[int | None] = mapped_column(
        ForeignKey("booking_links.id"), nullable=True
    )
    default_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    default_message: Mapped[str | None] = mapped_column(Text, nullable=True)


class RoutingQuestion(Base):
    __tablename__ = "routing_questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    form_id: Mapped[int] = mapped_column(
        ForeignKey("routing_forms.id", ondelete="CASCADE"), nullable=False, index=True
    )
    key: Mapped[str] = mapped_column(String(64), nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    type: Mapped[QuestionType] = mapped_column(PgEnum(QuestionType), nullable=False)
    options: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("form_id", "key", name="uq_routing_question_form_key"),)


class RoutingRule(Base):
    __tablename__ = "routing_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    form_id: Mapped[int] = mapped_column(
        ForeignKey("routing_forms.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Evaluation priority: lower position is evaluated first.
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # [{"question_id": "q1", "operator": "equals", "value": "sales"}, ...]
    conditions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    action_type: Mapped[RoutingActionType] = mapped_column(PgEnum(RoutingActionType), nullable=False)
    target_booking_link_id: Mapped[int | None] = mapped_column(
        ForeignKey("booking_links.id"), nullable=True
    )
    target_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class RoutingSubmission(Base):
    __tablename__ = "routing_submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    form_id: Mapped[int] = mapped_column(
        ForeignKey("routing_forms.id", ondelete="CASCADE"), nullable=False, index=True
    )
    answers: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    routed_to: Mapped[str] = mapped_column(String(512), nullable=False)
    routed_booking_link_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    submitter_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    submitter_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
