import logging
import random
import threading
import uuid

from config import parse_time
from errors import PersistenceError, ValidationError
from filters import filter_plants
from images import DEFAULT_IMAGES, delete_image, is_remote_image, owns_image, store_image
from store import FILTER_TYPES, default_settings, parse_timestamp
from watering import get_watering_status

log = logging.getLogger(__name__)

ROOMS = ("living-room", "kitchen", "bathroom", "bedroom", "office")

EDITABLE_FIELDS = ("name", "scientific_name", "room", "image", "watering_interval", "notes", "last_watered")


def validate_plant_fields(fields, partial=False, plant_id=None):
    """Check plant form input before any mutation.

    A local image reference is only accepted when it is the picture owned
    by plant_id; new plants get local pictures through image uploads.

    Returns:
        Cleaned dict containing only editable fields.
    """
    cleaned = {k: fields[k] for k in EDITABLE_FIELDS if k in fields}

    for key in ("name", "scientific_name"):
        if key in cleaned or not partial:
            value = str(cleaned.get(key) or "").strip()
            if not value:
                raise ValidationError(f"Please enter a {key.replace('_', ' ')}")
            cleaned[key] = value

    if "watering_interval" in cleaned or not partial:
        try:
            interval = int(round(float(cleaned.get("watering_interval", 7))))
        except (TypeError, ValueError):
            raise ValidationError("Watering interval must be a number of days")
        if interval < 1:
            raise ValidationError("Watering interval must be at least 1 day")
        cleaned["watering_interval"] = interval

    if "last_watered" in cleaned:
        try:
            cleaned["last_watered"] = parse_timestamp(cleaned["last_watered"])
        except (TypeError, ValueError):
            raise ValidationError("Last watered must be an ISO-8601 timestamp")

    if "image" in cleaned:
        image = str(cleaned["image"] or "").strip()
        if image and not is_remote_image(image) and not owns_image(plant_id, image):
            raise ValidationError("Image must be an http(s) URL or an uploaded picture")
        cleaned["image"] = image

    if "room" in cleaned:
        cleaned["room"] = str(cleaned["room"] or "living-room").strip()
    if "notes" in cleaned:
        cleaned["notes"] = str(cleaned["notes"] or "")

    return cleaned


class AppState:
    """Application state owned by the entry point and shared with the web layer.

    Every mutation computes the new in-memory state, persists it, then
    re-plans reminders, all while holding one lock so a reschedule never
    sees a half-applied change.
    """

    def __init__(self, config, repository, reminders, clock):
        self.config = config
        self.repository = repository
        self.reminders = reminders
        self.clock = clock
        self.plants = []
        self.settings = default_settings()
        self._lock = threading.RLock()

    # --- Lifecycle ---

    def load(self):
        """Load plants and settings from disk and schedule reminders."""
        with self._lock:
            try:
                plants = self.repository.load_plants()
            except PersistenceError as e:
                log.error("Failed to load plants: %s", e)
                plants = None
            self.plants = plants or []

            seed_settings = False
            try:
                settings = self.repository.load_settings()
            except PersistenceError as e:
                log.error("Failed to load settings: %s", e)
                settings = None
            if settings is None:
                settings = default_settings()
                settings["notification_settings"] = {
                    "enabled": bool(self.config["notifications"]["enabled"]),
                    "time": self.config["notifications"]["time"],
                }
                seed_settings = True
            self.settings = settings

            log.info("Loaded %d plants (manual mode: %s)",
                     len(self.plants), self.settings["manual_watering_mode"])
            if seed_settings:
                self._persist_settings()
            self.reschedule()

    # --- Reads ---

    def now(self):
        return self.clock.now()

    def get_plant(self, plant_id):
        with self._lock:
            for plant in self.plants:
                if plant["id"] == plant_id:
                    return plant
        raise KeyError(plant_id)

    def plant_status(self, plant, now=None):
        return get_watering_status(plant, self.settings["manual_watering_mode"], now or self.now())

    def list_plants(self, search_term=None, filter_type=None):
        """Return plants filtered and sorted per settings, each with its status."""
        with self._lock:
            now = self.now()
            if search_term is None:
                search_term = self.settings["search_term"]
            if filter_type is None:
                filter_type = self.settings["filter_type"]
            manual_mode = self.settings["manual_watering_mode"]
            plants = filter_plants(self.plants, search_term, filter_type, manual_mode, now)
            return [(plant, get_watering_status(plant, manual_mode, now)) for plant in plants]

    # --- Plant mutations ---

    def add_plant(self, fields, image_file=None):
        cleaned = validate_plant_fields(fields)
        with self._lock:
            plant = {
                "id": uuid.uuid4().hex,
                "name": cleaned["name"],
                "scientific_name": cleaned["scientific_name"],
                "room": cleaned.get("room", ROOMS[0]),
                "image": cleaned.get("image") or random.choice(DEFAULT_IMAGES),
                "last_watered": cleaned.get("last_watered") or self.now(),
                "watering_interval": cleaned["watering_interval"],
                "notes": cleaned.get("notes", ""),
            }
            if image_file:
                plant["image"] = store_image(self.config, plant["id"], image_file)
            self.plants = self.plants + [plant]
            log.info("Added plant %s (%s)", plant["name"], plant["id"])
            self._commit_plants()
            return plant

    def update_plant(self, plant_id, updates):
        cleaned = validate_plant_fields(updates, partial=True, plant_id=plant_id)
        with self._lock:
            plant = self.get_plant(plant_id)
            old_image = plant["image"]
            updated = dict(plant, **cleaned)
            self.plants = [updated if p["id"] == plant_id else p for p in self.plants]
            if old_image != updated["image"]:
                self._drop_image(plant)
            self._commit_plants()
            return updated

    def set_plant_image(self, plant_id, source):
        with self._lock:
            plant = self.get_plant(plant_id)
            ref = store_image(self.config, plant_id, source)
            updated = dict(plant, image=ref)
            self.plants = [updated if p["id"] == plant_id else p for p in self.plants]
            self._commit_plants()
            return updated

    def water_plant(self, plant_id):
        with self._lock:
            plant = self.get_plant(plant_id)
            updated = dict(plant, last_watered=self.now())
            self.plants = [updated if p["id"] == plant_id else p for p in self.plants]
            log.info("Watered %s", plant["name"])
            self._commit_plants()
            return updated

    def remove_plant(self, plant_id):
        with self._lock:
            plant = self.get_plant(plant_id)
            self.plants = [p for p in self.plants if p["id"] != plant_id]
            self._drop_image(plant)
            log.info("Removed plant %s", plant["name"])
            self._commit_plants()
            return plant

    # --- Settings ---

    def update_settings(self, changes):
        with self._lock:
            settings = dict(self.settings)
            settings["notification_settings"] = dict(self.settings["notification_settings"])

            if "manual_watering_mode" in changes:
                settings["manual_watering_mode"] = bool(changes["manual_watering_mode"])
            if "search_term" in changes:
                settings["search_term"] = str(changes["search_term"] or "")
            if "filter_type" in changes:
                if changes["filter_type"] not in FILTER_TYPES:
                    raise ValidationError(f"Unknown filter type: {changes['filter_type']}")
                settings["filter_type"] = changes["filter_type"]
            if "notification_settings" in changes:
                settings["notification_settings"].update(
                    _clean_notification_settings(changes["notification_settings"]))

            self.settings = settings
            self._persist_settings()
            self.reschedule()
            return settings

    def set_notification_settings(self, changes):
        return self.update_settings({"notification_settings": changes})["notification_settings"]

    # --- Reminders ---

    def reschedule(self):
        with self._lock:
            return self.reminders.reschedule_all(self.plants, self.settings, self.now())

    def set_time_offset(self, days):
        """Shift the clock by a number of days (debug only, not persisted)."""
        if not hasattr(self.clock, "offset_days"):
            raise ValidationError("Clock does not support a debug offset")
        try:
            days = int(days)
        except (TypeError, ValueError):
            raise ValidationError("Time offset must be a whole number of days")
        with self._lock:
            self.clock.offset_days = days
            log.warning("Debug time offset set to %+d days", self.clock.offset_days)
            self.reschedule()

    def _drop_image(self, plant):
        """Delete the picture a plant owns; references to other files are left alone."""
        if not owns_image(plant["id"], plant["image"]):
            return
        try:
            delete_image(self.config, plant["image"])
        except OSError as e:
            log.warning("Failed to delete image for %s: %s", plant["name"], e)

    def _commit_plants(self):
        try:
            self.repository.save_plants(self.plants)
        except PersistenceError as e:
            log.error("Failed to save plants: %s", e)
        self.reschedule()

    def _persist_settings(self):
        try:
            self.repository.save_settings(self.settings)
        except PersistenceError as e:
            log.error("Failed to save settings: %s", e)


def _clean_notification_settings(changes):
    if not isinstance(changes, dict):
        raise ValidationError("notification_settings must be an object")
    cleaned = {}
    if "enabled" in changes:
        cleaned["enabled"] = bool(changes["enabled"])
    if "time" in changes:
        try:
            parse_time(changes["time"])
        except ValueError as e:
            raise ValidationError(str(e))
        cleaned["time"] = changes["time"]
    return cleaned
