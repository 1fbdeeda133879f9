#!/usr/bin/env python3
"""
Tests for the notification dispatcher.
"""

import pytest
from datetime import timedelta

from clock import FixedClock
from conftest import utc
from dispatcher import NotificationDispatcher
from errors import NotificationError, PermissionDenied


class RecordingPublisher:
    def __init__(self, fail=False):
        self.fail = fail
        self.published = []

    def publish_reminder(self, reminder):
        if self.fail:
            raise NotificationError("broker down")
        self.published.append(reminder)


class TestNotificationDispatcher:
    """Test scheduling, cancelling and firing reminders."""

    def setup_method(self):
        self.clock = FixedClock(utc(2024, 1, 5, 12, 0))
        self.publisher = RecordingPublisher()
        self.dispatcher = NotificationDispatcher(self.clock, publisher=self.publisher)

    def test_schedule_returns_handle(self):
        handle = self.dispatcher.schedule_at("p1", "Title", "Body", utc(2024, 1, 6, 9, 0))

        assert handle
        assert self.dispatcher.pending()[0]["handle"] == handle

    def test_same_id_replaces_pending(self):
        self.dispatcher.schedule_at("p1", "Title", "Body", utc(2024, 1, 6, 9, 0))
        self.dispatcher.schedule_at("p1", "Title", "Body", utc(2024, 1, 7, 9, 0))

        pending = self.dispatcher.pending()
        assert len(pending) == 1
        assert pending[0]["fires_at"] == utc(2024, 1, 7, 9, 0)

    def test_cancel_all(self):
        self.dispatcher.schedule_at("p1", "T", "B", utc(2024, 1, 6, 9, 0))
        self.dispatcher.schedule_at("p2", "T", "B", utc(2024, 1, 6, 9, 0))
        self.dispatcher.cancel_all()

        assert self.dispatcher.pending() == []

    def test_fire_due_delivers_only_due(self):
        self.dispatcher.schedule_at("soon", "T", "B", utc(2024, 1, 5, 11, 0))
        self.dispatcher.schedule_at("later", "T", "B", utc(2024, 1, 6, 9, 0))

        fired = self.dispatcher.fire_due()

        assert [r["id"] for r in fired] == ["soon"]
        assert [r["id"] for r in self.publisher.published] == ["soon"]
        assert [r["id"] for r in self.dispatcher.pending()] == ["later"]

    def test_fire_due_uses_clock(self):
        self.dispatcher.schedule_at("p1", "T", "B", utc(2024, 1, 6, 9, 0))
        assert self.dispatcher.fire_due() == []

        self.clock.advance(days=1)
        assert len(self.dispatcher.fire_due()) == 1

    def test_delivery_failure_is_not_raised(self):
        dispatcher = NotificationDispatcher(self.clock, publisher=RecordingPublisher(fail=True))
        dispatcher.schedule_at("p1", "T", "B", self.clock.now() - timedelta(minutes=1))

        fired = dispatcher.fire_due()

        assert len(fired) == 1
        assert dispatcher.pending() == []

    def test_without_publisher_only_logs(self):
        dispatcher = NotificationDispatcher(self.clock)
        dispatcher.schedule_at("p1", "T", "B", self.clock.now())

        assert len(dispatcher.fire_due()) == 1

    def test_permission_denied(self):
        dispatcher = NotificationDispatcher(self.clock, permission_granted=False)

        with pytest.raises(PermissionDenied):
            dispatcher.schedule_at("p1", "T", "B", utc(2024, 1, 6, 9, 0))
        with pytest.raises(PermissionDenied):
            dispatcher.send_now("T", "B")

    def test_send_now(self):
        reminder = self.dispatcher.send_now("Hello", "World")

        assert self.publisher.published == [reminder]
        assert reminder["fires_at"] == self.clock.now()
