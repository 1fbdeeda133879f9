from datetime import timedelta

DAY = timedelta(days=1)

PENDING = "pending"
READY = "ready"
OVERDUE = "overdue"


def _interval(plant):
    return max(1, int(plant["watering_interval"]))


def _same_day(a, b):
    """True if both timestamps fall on the same calendar day in b's timezone."""
    if a.tzinfo is not None and b.tzinfo is not None:
        a = a.astimezone(b.tzinfo)
    return a.date() == b.date()


def days_between(start, end):
    """Whole days from start to end, floored (negative if end is earlier)."""
    return (end - start) // DAY


def effective_last_watered(plant, manual_mode, now):
    """Return the last-watered time the schedule should count from.

    In manual mode this is the stored timestamp. In automatic mode the
    schedule resets itself every interval: the plant shows "ready" on the
    due day and starts a fresh cycle the day after.
    """
    last = plant["last_watered"]
    if manual_mode:
        return last

    interval = _interval(plant)
    days = days_between(last, now)
    if days < interval:
        return last
    cycles = (days - 1) // interval
    return last + cycles * interval * DAY


def get_watering_status(plant, manual_mode, now):
    """Compute the watering status of a plant at a given time.

    Returns:
        Dict with effective_last_watered, days_since, progress (0-100),
        status (pending/ready/overdue), days_left, overdue_days and
        needs_watering.
    """
    interval = _interval(plant)
    effective = effective_last_watered(plant, manual_mode, now)

    days = days_between(effective, now)
    # Watered earlier today counts as today regardless of the hour
    if manual_mode and _same_day(plant["last_watered"], now):
        days = 0
    # Future timestamps (clock skew) clamp to a fresh cycle
    days = max(0, days)

    progress = int(min(max(0, days / interval * 100), 100))

    if days < interval:
        status = PENDING
    elif days == interval:
        status = READY
    else:
        status = OVERDUE

    return {
        "effective_last_watered": effective,
        "days_since": days,
        "progress": progress,
        "status": status,
        "days_left": max(0, interval - days),
        "overdue_days": max(0, days - interval),
        "needs_watering": status != PENDING,
    }


def next_due_date(plant, manual_mode, now):
    """Return the day the plant is next due: now if already due, else the end of its cycle."""
    interval = _interval(plant)
    effective = effective_last_watered(plant, manual_mode, now)
    if days_between(effective, now) >= interval:
        return now
    return effective + interval * DAY
