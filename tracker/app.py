#!/usr/bin/env python3
"""Plant Tracker - Main entry point."""

import logging
import os
from datetime import timedelta

from clock import OffsetClock, SystemClock
from config import load_config
from dispatcher import NotificationDispatcher
from mqtt_client import MQTTClient
from reminders import ReminderScheduler
from scheduler import start_scheduler
from state import AppState
from store import PlantRepository
from web import create_app

log = logging.getLogger("plant-tracker")


def build_state(config, clock=None, publisher=None):
    """Wire the repository, dispatcher and reminder scheduler into an AppState."""
    clock = clock or OffsetClock(SystemClock(), config["debug"]["time_offset_days"])
    dispatcher = NotificationDispatcher(clock, publisher=publisher)
    reminders = ReminderScheduler(
        dispatcher,
        clock,
        grace_period=timedelta(hours=config["notifications"]["grace_hours"]),
        title=config["notifications"]["title"],
    )
    state = AppState(config, PlantRepository(config), reminders, clock)
    return state, dispatcher


def main():
    config = load_config(os.environ.get("PLANT_TRACKER_CONFIG", "config.yaml"))

    logging.basicConfig(
        level=config["logging"]["level"],
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Ensure storage directories exist
    os.makedirs(config["storage"]["data_dir"], exist_ok=True)
    os.makedirs(config["storage"]["image_dir"], exist_ok=True)

    # Start MQTT client if a broker is configured
    mqtt = None
    if config["notifications"].get("mqtt"):
        mqtt = MQTTClient(config)
        mqtt.start()

    state, dispatcher = build_state(config, publisher=mqtt)
    if config["debug"]["time_offset_days"]:
        log.warning("Debug time offset active: %+d days", config["debug"]["time_offset_days"])
    state.load()

    # Start scheduler (reminder delivery, daily re-plan)
    start_scheduler(config, state, dispatcher)

    # Start Flask web server
    app = create_app(config, state, dispatcher, mqtt)
    log.info("Starting web API on %s:%d", config["web"]["host"], config["web"]["port"])
    app.run(
        host=config["web"]["host"],
        port=config["web"]["port"],
        threaded=True,
    )


if __name__ == "__main__":
    main()
