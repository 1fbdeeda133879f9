from datetime import datetime, timedelta


class SystemClock:
    """Real local time, timezone-aware."""

    def now(self):
        return datetime.now().astimezone()


class OffsetClock:
    """Wraps another clock and shifts it by a number of days (debug aid)."""

    def __init__(self, base=None, offset_days=0):
        self.base = base or SystemClock()
        self.offset_days = int(offset_days)

    def now(self):
        return self.base.now() + timedelta(days=self.offset_days)


class FixedClock:
    """Always returns the same instant. Used by tests and replays."""

    def __init__(self, moment):
        self.moment = moment

    def now(self):
        return self.moment

    def advance(self, **kwargs):
        self.moment = self.moment + timedelta(**kwargs)
        return self.moment
