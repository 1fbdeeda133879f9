import logging
import threading
import uuid

from errors import NotificationError, PermissionDenied

log = logging.getLogger(__name__)


class NotificationDispatcher:
    """Holds scheduled reminders until they are due and hands them to a publisher.

    The publisher is anything with a publish_reminder(reminder) method
    (normally the MQTT client). Without one, due reminders are only logged.
    """

    def __init__(self, clock, publisher=None, permission_granted=True):
        self.clock = clock
        self.publisher = publisher
        self.permission_granted = permission_granted
        self._pending = {}
        self._lock = threading.Lock()

    def schedule_at(self, reminder_id, title, body, fires_at, data=None):
        """Register a reminder, replacing any pending one with the same id."""
        if not self.permission_granted:
            raise PermissionDenied("Notification permission not granted")

        handle = uuid.uuid4().hex
        with self._lock:
            self._pending[reminder_id] = {
                "id": reminder_id,
                "handle": handle,
                "title": title,
                "body": body,
                "data": data or {},
                "fires_at": fires_at,
            }
        return handle

    def cancel_all(self):
        with self._lock:
            count = len(self._pending)
            self._pending.clear()
        if count:
            log.debug("Cancelled %d pending reminders", count)

    def pending(self):
        """Return pending reminders sorted by fire time."""
        with self._lock:
            reminders = [dict(r) for r in self._pending.values()]
        return sorted(reminders, key=lambda r: r["fires_at"])

    def fire_due(self, now=None):
        """Deliver every reminder whose fire time has come. Returns the fired reminders."""
        now = now or self.clock.now()
        with self._lock:
            due = [r for r in self._pending.values() if r["fires_at"] <= now]
            for reminder in due:
                del self._pending[reminder["id"]]

        for reminder in sorted(due, key=lambda r: r["fires_at"]):
            self._deliver(reminder)
        return due

    def send_now(self, title, body, data=None):
        """Deliver a reminder immediately without queueing it."""
        if not self.permission_granted:
            raise PermissionDenied("Notification permission not granted")
        reminder = {
            "id": f"immediate-{uuid.uuid4().hex[:8]}",
            "handle": None,
            "title": title,
            "body": body,
            "data": data or {},
            "fires_at": self.clock.now(),
        }
        self._deliver(reminder)
        return reminder

    def _deliver(self, reminder):
        log.info("Reminder: %s - %s", reminder["title"], reminder["body"])
        if self.publisher is None:
            return
        try:
            self.publisher.publish_reminder(reminder)
        except NotificationError as e:
            log.warning("Failed to deliver reminder %s: %s", reminder["id"], e)
