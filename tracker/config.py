import logging
import os
import re

import yaml

log = logging.getLogger(__name__)

TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_time(value):
    """Parse an "HH:MM" string into (hour, minute). Raises ValueError."""
    match = TIME_RE.match(str(value))
    if not match:
        raise ValueError(f"Invalid time (expected HH:MM): {value!r}")
    return int(match.group(1)), int(match.group(2))


def load_config(path="config.yaml"):
    """Load and validate configuration from YAML file."""
    if not os.path.isabs(path):
        path = os.path.join(os.path.dirname(__file__), path)

    if os.path.exists(path):
        with open(path) as f:
            config = yaml.safe_load(f) or {}
    else:
        log.warning("Config file %s not found, using defaults", path)
        config = {}

    config.setdefault("storage", {})
    config["storage"].setdefault("data_dir", "data")
    config["storage"].setdefault("plants_file", "plants.json")
    config["storage"].setdefault("settings_file", "settings.json")
    config["storage"].setdefault("image_dir", "images")
    config["storage"].setdefault("image_max_px", 1024)

    config.setdefault("notifications", {})
    config["notifications"].setdefault("enabled", True)
    config["notifications"].setdefault("time", "09:00")
    config["notifications"].setdefault("grace_hours", 2)
    config["notifications"].setdefault("title", "Time to water your plant!")
    mqtt = config["notifications"].get("mqtt")
    if mqtt:
        if "broker" not in mqtt:
            raise ValueError("Missing required field: notifications.mqtt.broker")
        mqtt.setdefault("port", 1883)
        mqtt.setdefault("topic", "plant-tracker/reminders")

    config.setdefault("scheduler", {})
    config["scheduler"].setdefault("fire_check_seconds", 60)
    config["scheduler"].setdefault("replan_time", "00:05")

    config.setdefault("web", {})
    config["web"].setdefault("host", "0.0.0.0")
    config["web"].setdefault("port", 8080)

    config.setdefault("debug", {})
    config["debug"].setdefault("time_offset_days", 0)

    config.setdefault("logging", {})
    config["logging"].setdefault("level", "INFO")

    # Validate values
    parse_time(config["notifications"]["time"])
    parse_time(config["scheduler"]["replan_time"])
    if config["notifications"]["grace_hours"] < 0:
        raise ValueError("notifications.grace_hours must not be negative")

    # Resolve storage paths relative to tracker directory
    base_dir = os.path.dirname(__file__)
    data_dir = config["storage"]["data_dir"]
    if not os.path.isabs(data_dir):
        data_dir = os.path.join(base_dir, data_dir)
    config["storage"]["data_dir"] = data_dir
    for key in ["plants_file", "settings_file", "image_dir"]:
        if not os.path.isabs(config["storage"][key]):
            config["storage"][key] = os.path.join(data_dir, config["storage"][key])

    # Debug offset may come from the environment (never persisted)
    offset = os.environ.get("PLANT_TRACKER_TIME_OFFSET_DAYS")
    if offset:
        config["debug"]["time_offset_days"] = int(offset)

    return config
