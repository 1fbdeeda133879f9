import logging
from datetime import timedelta

from config import parse_time
from errors import NotificationError, PermissionDenied
from watering import DAY, days_between, effective_last_watered, next_due_date

log = logging.getLogger(__name__)

DEFAULT_TITLE = "Time to water your plant!"


class ReminderScheduler:
    """Keeps exactly one pending reminder per plant that will become due.

    Every call to reschedule_all() starts by cancelling everything the
    dispatcher holds, so the reminder set always mirrors the plant list
    passed in.
    """

    def __init__(self, dispatcher, clock, grace_period=timedelta(hours=2),
                 title=DEFAULT_TITLE):
        self.dispatcher = dispatcher
        self.clock = clock
        self.grace_period = grace_period
        self.title = title
        self._scheduled = {}

    def reschedule_all(self, plants, settings, now=None):
        """Cancel all reminders, then register one per eligible plant.

        Returns:
            Dict of plant id -> fire time for the reminders registered.
        """
        now = now or self.clock.now()
        self.dispatcher.cancel_all()
        self._scheduled = {}

        notifications = settings["notification_settings"]
        if not notifications["enabled"]:
            log.info("Notifications disabled, no reminders scheduled")
            return {}

        hour, minute = parse_time(notifications["time"])
        manual_mode = settings["manual_watering_mode"]

        for plant in plants:
            try:
                fires_at = self._schedule_plant(plant, manual_mode, hour, minute, now)
            except PermissionDenied as e:
                log.warning("Skipping reminder for %s: %s", plant["name"], e)
                continue
            except NotificationError as e:
                log.error("Failed to schedule reminder for %s: %s", plant["name"], e)
                continue
            if fires_at is not None:
                self._scheduled[plant["id"]] = fires_at

        log.info("Scheduled %d reminders for %d plants", len(self._scheduled), len(plants))
        return dict(self._scheduled)

    def scheduled(self):
        """Return the plan from the last reschedule_all() call."""
        return dict(self._scheduled)

    def fire_time(self, plant, manual_mode, hour, minute, now):
        """Compute when the next reminder for a plant should fire, or None."""
        since_watered = now - plant["last_watered"]
        if since_watered < self.grace_period:
            log.debug("Skipping %s - watered recently (%.1f hours ago)",
                      plant["name"], since_watered.total_seconds() / 3600)
            return None

        due = next_due_date(plant, manual_mode, now)
        fires_at = _at_time(due, hour, minute, now)
        if fires_at > now:
            return fires_at

        # Today's slot has passed: move to the next cycle, never an earlier one
        interval = max(1, int(plant["watering_interval"]))
        cycle_start = effective_last_watered(plant, manual_mode, now)
        fires_at = _at_time(cycle_start + interval * DAY, hour, minute, now)
        if fires_at <= now:
            missed = days_between(fires_at, now) // interval + 1
            fires_at = _at_time(cycle_start + (missed + 1) * interval * DAY, hour, minute, now)
        return fires_at

    def _schedule_plant(self, plant, manual_mode, hour, minute, now):
        fires_at = self.fire_time(plant, manual_mode, hour, minute, now)
        if fires_at is None:
            return None

        self.dispatcher.schedule_at(
            plant["id"],
            self.title,
            f"{plant['name']} needs watering today.",
            fires_at,
            data={"plant_id": plant["id"], "plant_name": plant["name"]},
        )
        log.info("Scheduled reminder for %s at %s", plant["name"], fires_at.strftime("%Y-%m-%d %H:%M"))
        return fires_at

    def send_test_notification(self):
        return self.dispatcher.send_now(
            "Test Notification",
            "This is a test notification for plant watering reminders.",
            data={"type": "test"},
        )


def _at_time(day, hour, minute, now):
    """Combine the calendar day of `day` (in now's timezone) with HH:MM."""
    if day.tzinfo is not None and now.tzinfo is not None:
        day = day.astimezone(now.tzinfo)
    return day.replace(hour=hour, minute=minute, second=0, microsecond=0)
