import json
import logging
import os
import tempfile
from datetime import datetime

from config import parse_time
from errors import PersistenceError

log = logging.getLogger(__name__)

FILTER_TYPES = ("default", "alphabetical", "room", "watering-priority")

DEFAULT_SETTINGS = {
    "manual_watering_mode": True,
    "search_term": "",
    "filter_type": "default",
    "notification_settings": {"enabled": True, "time": "09:00"},
}


def default_settings():
    settings = dict(DEFAULT_SETTINGS)
    settings["notification_settings"] = dict(DEFAULT_SETTINGS["notification_settings"])
    return settings


def parse_timestamp(value):
    """Parse an ISO-8601 string into an aware datetime (naive means local time)."""
    if isinstance(value, datetime):
        ts = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        ts = datetime.fromisoformat(text)
    if ts.tzinfo is None:
        ts = ts.astimezone()
    return ts


def plant_to_dict(plant):
    data = dict(plant)
    data["last_watered"] = plant["last_watered"].isoformat()
    return data


def plant_from_dict(data):
    return {
        "id": str(data["id"]),
        "name": data.get("name", ""),
        "scientific_name": data.get("scientific_name", ""),
        "room": data.get("room", "living-room"),
        "image": data.get("image", ""),
        "last_watered": parse_timestamp(data["last_watered"]),
        "watering_interval": max(1, int(data.get("watering_interval", 7))),
        "notes": data.get("notes", ""),
    }


class PlantRepository:
    """Stores the plant list and app settings as two JSON files."""

    def __init__(self, config):
        self.plants_path = config["storage"]["plants_file"]
        self.settings_path = config["storage"]["settings_file"]

    def load_plants(self):
        """Return the stored plants, or None if nothing has been saved yet."""
        data = self._read(self.plants_path)
        if data is None:
            return None
        try:
            return [plant_from_dict(item) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(f"Corrupt plant record in {self.plants_path}: {e}") from e

    def save_plants(self, plants):
        self._write(self.plants_path, [plant_to_dict(p) for p in plants])
        log.debug("Saved %d plants to %s", len(plants), self.plants_path)

    def load_settings(self):
        """Return stored settings merged over defaults, or None if none saved."""
        data = self._read(self.settings_path)
        if data is None:
            return None
        if not isinstance(data, dict):
            raise PersistenceError(f"Corrupt settings file {self.settings_path}")

        settings = default_settings()
        for key in ("manual_watering_mode", "search_term", "filter_type"):
            if key in data:
                settings[key] = data[key]
        if settings["filter_type"] not in FILTER_TYPES:
            settings["filter_type"] = "default"
        notifications = data.get("notification_settings") or {}
        if not isinstance(notifications, dict):
            log.warning("Ignoring malformed notification settings in %s", self.settings_path)
            notifications = {}
        if "enabled" in notifications:
            settings["notification_settings"]["enabled"] = bool(notifications["enabled"])
        if "time" in notifications:
            try:
                parse_time(notifications["time"])
                settings["notification_settings"]["time"] = notifications["time"]
            except ValueError as e:
                log.warning("%s in %s, using %s", e, self.settings_path,
                            settings["notification_settings"]["time"])
        return settings

    def save_settings(self, settings):
        self._write(self.settings_path, settings)

    def _read(self, path):
        if not os.path.exists(path):
            return None
        try:
            with open(path) as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise PersistenceError(f"Failed to read {path}: {e}") from e

    def _write(self, path, data):
        """Overwrite the file wholesale via a temp file in the same directory."""
        try:
            directory = os.path.dirname(path)
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except (OSError, TypeError) as e:
            raise PersistenceError(f"Failed to write {path}: {e}") from e
