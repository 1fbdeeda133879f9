#!/usr/bin/env python3
"""
Tests for the reminder scheduler.
"""

import pytest
from datetime import timedelta

from clock import FixedClock
from conftest import utc
from dispatcher import NotificationDispatcher
from errors import NotificationError, PermissionDenied
from reminders import ReminderScheduler
from store import default_settings


def _settings(enabled=True, time="09:00", manual=True):
    settings = default_settings()
    settings["manual_watering_mode"] = manual
    settings["notification_settings"] = {"enabled": enabled, "time": time}
    return settings


class TestRescheduleAll:
    """Test the full reschedule pass."""

    def setup_method(self):
        self.clock = FixedClock(utc(2024, 1, 5, 12, 0))
        self.dispatcher = NotificationDispatcher(self.clock)
        self.scheduler = ReminderScheduler(self.dispatcher, self.clock)

    def test_schedules_at_end_of_cycle(self, make_plant):
        plant = make_plant(last_watered=utc(2024, 1, 2, 12, 0), interval=7)
        plan = self.scheduler.reschedule_all([plant], _settings())

        assert plan == {"p1": utc(2024, 1, 9, 9, 0)}
        pending = self.dispatcher.pending()
        assert len(pending) == 1
        assert pending[0]["body"] == "Monstera needs watering today."
        assert pending[0]["data"] == {"plant_id": "p1", "plant_name": "Monstera"}

    def test_due_today_before_reminder_time(self, make_plant):
        plant = make_plant(last_watered=utc(2024, 1, 1), interval=7)
        plan = self.scheduler.reschedule_all([plant], _settings(), now=utc(2024, 1, 8, 6, 0))

        assert plan["p1"] == utc(2024, 1, 8, 9, 0)

    def test_due_today_after_reminder_time_rolls_forward(self, make_plant):
        plant = make_plant(last_watered=utc(2024, 1, 1), interval=7)
        plan = self.scheduler.reschedule_all([plant], _settings(), now=utc(2024, 1, 8, 12, 0))

        assert plan["p1"] == utc(2024, 1, 15, 9, 0)

    def test_fire_time_is_always_in_future(self, make_plant):
        plant = make_plant(last_watered=utc(2023, 12, 1), interval=3)
        now = utc(2024, 1, 5, 12, 0)
        plan = self.scheduler.reschedule_all([plant], _settings(), now=now)

        assert plan["p1"] > now
        assert (plan["p1"] - utc(2023, 12, 1, 9, 0)).days % 3 == 0

    def test_automatic_mode_uses_rolled_cycle(self, make_plant):
        plant = make_plant(last_watered=utc(2024, 1, 1), interval=3)
        plan = self.scheduler.reschedule_all([plant], _settings(manual=False))

        # effective last watered rolls to Jan 4, next due Jan 7
        assert plan["p1"] == utc(2024, 1, 7, 9, 0)

    def test_uses_configured_time(self, make_plant):
        plant = make_plant(last_watered=utc(2024, 1, 2), interval=7)
        plan = self.scheduler.reschedule_all([plant], _settings(time="18:30"))

        assert plan["p1"] == utc(2024, 1, 9, 18, 30)

    def test_idempotent(self, make_plant):
        plants = [make_plant("a", "Fern"), make_plant("b", "Cactus", interval=14)]

        first = self.scheduler.reschedule_all(plants, _settings())
        second = self.scheduler.reschedule_all(plants, _settings())

        assert first == second
        assert sorted(r["id"] for r in self.dispatcher.pending()) == ["a", "b"]

    def test_disabled_cancels_everything(self, make_plant):
        self.scheduler.reschedule_all([make_plant()], _settings())
        assert self.dispatcher.pending()

        plan = self.scheduler.reschedule_all([make_plant()], _settings(enabled=False))

        assert plan == {}
        assert self.dispatcher.pending() == []
        assert self.scheduler.scheduled() == {}

    def test_recently_watered_is_skipped(self, make_plant):
        now = self.clock.now()
        plant = make_plant(last_watered=now, interval=1)

        assert self.scheduler.reschedule_all([plant], _settings()) == {}
        later = self.scheduler.reschedule_all([plant], _settings(), now=now + timedelta(hours=1, minutes=59))
        assert later == {}

    def test_watered_outside_grace_window_is_scheduled(self, make_plant):
        now = self.clock.now()
        plant = make_plant(last_watered=now - timedelta(hours=3), interval=1)

        assert "p1" in self.scheduler.reschedule_all([plant], _settings())

    def test_removed_plant_leaves_no_reminder(self, make_plant):
        fern = make_plant("fern", "Fern")
        cactus = make_plant("cactus", "Cactus")
        self.scheduler.reschedule_all([fern, cactus], _settings())

        self.scheduler.reschedule_all([cactus], _settings())

        assert [r["id"] for r in self.dispatcher.pending()] == ["cactus"]

    def test_invalid_time_raises(self, make_plant):
        with pytest.raises(ValueError):
            self.scheduler.reschedule_all([make_plant()], _settings(time="9am"))


class _PickyDispatcher(NotificationDispatcher):
    """Dispatcher that refuses some plant ids."""

    def __init__(self, clock, denied=(), broken=()):
        super().__init__(clock)
        self.denied = set(denied)
        self.broken = set(broken)

    def schedule_at(self, reminder_id, title, body, fires_at, data=None):
        if reminder_id in self.denied:
            raise PermissionDenied("denied")
        if reminder_id in self.broken:
            raise NotificationError("broken")
        return super().schedule_at(reminder_id, title, body, fires_at, data)


class TestFailureIsolation:
    """One failing plant must not abort the pass."""

    def test_other_plants_still_scheduled(self, make_plant):
        clock = FixedClock(utc(2024, 1, 5, 12, 0))
        dispatcher = _PickyDispatcher(clock, denied={"a"}, broken={"b"})
        scheduler = ReminderScheduler(dispatcher, clock)
        plants = [make_plant("a", "Fern"), make_plant("b", "Palm"), make_plant("c", "Cactus")]

        plan = scheduler.reschedule_all(plants, _settings())

        assert list(plan) == ["c"]
        assert [r["id"] for r in dispatcher.pending()] == ["c"]

    def test_permission_denied_everywhere(self, make_plant):
        clock = FixedClock(utc(2024, 1, 5, 12, 0))
        dispatcher = NotificationDispatcher(clock, permission_granted=False)
        scheduler = ReminderScheduler(dispatcher, clock)

        assert scheduler.reschedule_all([make_plant()], _settings()) == {}


class TestTestNotification:

    def test_send_test_notification_delivers_immediately(self):
        clock = FixedClock(utc(2024, 1, 5, 12, 0))
        delivered = []

        class Publisher:
            def publish_reminder(self, reminder):
                delivered.append(reminder)

        dispatcher = NotificationDispatcher(clock, publisher=Publisher())
        reminder = ReminderScheduler(dispatcher, clock).send_test_notification()

        assert delivered == [reminder]
        assert reminder["data"] == {"type": "test"}
        assert dispatcher.pending() == []
