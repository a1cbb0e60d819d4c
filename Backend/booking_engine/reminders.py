"""
Reminder Scheduling

Turns an event's reminder offsets into absolute fire times and hands
(event, fire time, channel) tuples to a notification dispatcher.

Delivery itself (email, push) belongs to an external notification service;
the default dispatcher only logs. Failures here are logged by the caller and
never undo the booking that triggered them.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, Protocol, Sequence

from .domain import Event, NotificationChannel, ReminderNotification

logger = logging.getLogger(__name__)


def compute_fire_times(event: Event, default_offsets: Sequence[int] = ()) -> set[datetime]:
    """
    UTC instants at which reminders for event should fire.

    Each offset (minutes before start) yields start_utc - offset. Times that
    are already in the past are still returned; whether to send them late is
    the dispatcher's decision. Events without offsets of their own fall back
    to default_offsets.
    """
    offsets = event.reminders or tuple(default_offsets)
    if any(offset < 0 for offset in offsets):
        raise ValueError("Reminder offsets must be non-negative minute counts")
    return {event.start_utc - timedelta(minutes=offset) for offset in offsets}


def parse_channels(values: Iterable[str]) -> list[NotificationChannel]:
    """Settings strings -> channels; unknown names raise ValueError."""
    channels: list[NotificationChannel] = []
    for value in values:
        channel = NotificationChannel(value.strip().lower())
        if channel not in channels:
            channels.append(channel)
    return channels


def build_notifications(
    event: Event,
    channels: Sequence[NotificationChannel] = (NotificationChannel.EMAIL,),
    default_offsets: Sequence[int] = (),
) -> list[ReminderNotification]:
    """One notification per (fire time, channel), ordered by fire time."""
    return sorted(
        ReminderNotification(fire_time, event.id, channel)
        for fire_time in compute_fire_times(event, default_offsets)
        for channel in channels
    )


class NotificationDispatcher(Protocol):
    async def dispatch(self, notifications: Sequence[ReminderNotification]) -> None: ...


class LoggingNotificationDispatcher:
    """Default dispatcher: records what would be scheduled."""

    def __init__(self):
        self.dispatched: list[ReminderNotification] = []

    async def dispatch(self, notifications: Sequence[ReminderNotification]) -> None:
        for notification in notifications:
            logger.info(
                f"[REMINDER] event={notification.event_id} "
                f"channel={notification.channel.value} "
                f"fire_at={notification.fire_time_utc.isoformat()}"
            )
            self.dispatched.append(notification)
