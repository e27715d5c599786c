from datetime import datetime, timedelta


class SystemClock:
    """Wall clock, local timezone, always timezone-aware."""

    def now(self):
        return datetime.now().astimezone()


class ManualClock:
    """A clock that only moves when told to."""

    def __init__(self, start=None):
        self._now = start or datetime.now().astimezone()
        if self._now.tzinfo is None:
            raise ValueError("ManualClock needs a timezone-aware start time")

    def now(self):
        return self._now

    def set(self, moment):
        if moment.tzinfo is None:
            raise ValueError("ManualClock needs timezone-aware datetimes")
        self._now = moment

    def advance(self, **kwargs):
        self._now = self._now + timedelta(**kwargs)
        return self._now
