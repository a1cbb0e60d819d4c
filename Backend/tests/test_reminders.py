"""
Tests for reminder fire times and dispatch.

Run with: pytest Backend/tests/test_reminders.py -v
"""

import logging

import pytest

from booking_engine.domain import Event, NotificationChannel
from booking_engine.reminders import (
    LoggingNotificationDispatcher,
    build_notifications,
    compute_fire_times,
    parse_channels,
)

from conftest import OWNER_ID, utc

START = utc(2031, 3, 3, 14, 0)


def event(*reminders) -> Event:
    return Event(id=7, owner_id=OWNER_ID, start_utc=START, end_utc=utc(2031, 3, 3, 14, 30), reminders=reminders)


class TestComputeFireTimes:
    """Offsets are minutes before the event start."""

    def test_offsets_to_instants(self):
        assert compute_fire_times(event(15, 60)) == {utc(2031, 3, 3, 13, 45), utc(2031, 3, 3, 13, 0)}

    def test_zero_offset_fires_at_start(self):
        assert compute_fire_times(event(0)) == {START}

    def test_duplicate_offsets_collapse(self):
        assert len(compute_fire_times(event(10, 10))) == 1

    def test_no_offsets(self):
        assert compute_fire_times(event()) == set()

    def test_defaults_used_when_event_has_none(self):
        assert compute_fire_times(event(), default_offsets=(30,)) == {utc(2031, 3, 3, 13, 30)}

    def test_event_offsets_beat_defaults(self):
        assert compute_fire_times(event(5), default_offsets=(30,)) == {utc(2031, 3, 3, 13, 55)}

    def test_past_fire_times_still_returned(self):
        """A one-week reminder for an event tomorrow is already due."""
        assert utc(2031, 2, 24, 14, 0) in compute_fire_times(event(7 * 24 * 60))

    def test_negative_default_rejected(self):
        with pytest.raises(ValueError):
            compute_fire_times(event(), default_offsets=(-5,))

    def test_negative_event_offset_rejected(self):
        with pytest.raises(ValueError):
            event(-5)


class TestBuildNotifications:
    """Fire times fan out across channels."""

    def test_one_per_time_and_channel(self):
        notifications = build_notifications(event(15, 60), [NotificationChannel.EMAIL, NotificationChannel.PUSH])
        assert len(notifications) == 4
        assert [n.fire_time_utc for n in notifications] == sorted(n.fire_time_utc for n in notifications)
        assert {n.event_id for n in notifications} == {7}

    def test_default_channel_is_email(self):
        notifications = build_notifications(event(15))
        assert [n.channel for n in notifications] == [NotificationChannel.EMAIL]


class TestParseChannels:
    def test_parse(self):
        assert parse_channels([" Email", "push", "email"]) == [NotificationChannel.EMAIL, NotificationChannel.PUSH]

    def test_unknown_channel(self):
        with pytest.raises(ValueError):
            parse_channels(["pager"])


class TestLoggingNotificationDispatcher:
    @pytest.mark.asyncio
    async def test_records_and_logs(self, caplog):
        dispatcher = LoggingNotificationDispatcher()
        notifications = build_notifications(event(15))

        with caplog.at_level(logging.INFO, logger="booking_engine.reminders"):
            await dispatcher.dispatch(notifications)

        assert dispatcher.dispatched == notifications
        assert "[REMINDER] event=7 channel=email" in caplog.text
