import logging
import threading
import time

import schedule

log = logging.getLogger(__name__)


def _fire_job(dispatcher):
    """Deliver reminders whose time has come."""
    try:
        fired = dispatcher.fire_due()
        if fired:
            log.info("Fired %d reminders", len(fired))
    except Exception as e:
        log.error("Reminder delivery failed: %s", e)


def _replan_job(state):
    """Re-plan reminders so automatic-mode cycles roll over."""
    try:
        state.reschedule()
    except Exception as e:
        log.error("Reminder re-plan failed: %s", e)


def register_jobs(config, state, dispatcher, scheduler=None):
    """Register the reminder jobs on a schedule.Scheduler (the default one if None)."""
    scheduler = scheduler or schedule.default_scheduler
    seconds = config["scheduler"]["fire_check_seconds"]
    replan_time = config["scheduler"]["replan_time"]

    scheduler.every(seconds).seconds.do(_fire_job, dispatcher)
    scheduler.every().day.at(replan_time).do(_replan_job, state)
    return scheduler


def start_scheduler(config, state, dispatcher):
    """Start the scheduler in a background thread."""
    scheduler = register_jobs(config, state, dispatcher)
    seconds = config["scheduler"]["fire_check_seconds"]

    def _run():
        log.info("Scheduler started (reminder check every %d s, re-plan at %s)",
                 seconds, config["scheduler"]["replan_time"])
        while True:
            scheduler.run_pending()
            time.sleep(min(seconds, 30))

    thread = threading.Thread(target=_run, daemon=True)
    thread.start()
    return thread
