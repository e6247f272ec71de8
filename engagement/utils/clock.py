"""
Clock sources and calendar helpers.

All day boundaries are evaluated in one configured pytz zone. Services never
read the wall clock directly; they ask a clock, so tests can pin or advance
time and simulate a day rollover.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional

import pytz

from engagement.config import Config


class SystemClock:
    """Wall-clock time in the configured time zone."""

    def __init__(self, tz=None):
        self.tz = tz or Config.get_timezone()

    def now(self) -> datetime:
        return datetime.now(self.tz)


class FixedClock:
    """Clock pinned to an instant until explicitly moved."""

    def __init__(self, now: datetime, tz=None):
        self.tz = tz or Config.get_timezone()
        self._now = self._aware(now)

    def _aware(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return self.tz.localize(value)
        return value

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime):
        self._now = self._aware(now)

    def advance(self, **kwargs) -> datetime:
        """Move the clock forward by a timedelta built from kwargs."""
        self._now = self._now + timedelta(**kwargs)
        return self._now


def calendar_day(now: datetime, tz) -> date:
    """The calendar date of an instant in the given zone."""
    return now.astimezone(tz).date()


def start_of_day(day: date, tz) -> datetime:
    """Midnight at the start of a calendar day, zone aware."""
    return tz.localize(datetime.combine(day, time.min))


def next_midnight(now: datetime, tz) -> datetime:
    """Start of the calendar day after the one containing now."""
    return start_of_day(calendar_day(now, tz) + timedelta(days=1), tz)


def week_start(day: date) -> date:
    """Monday of the week containing day."""
    return day - timedelta(days=day.weekday())


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.astimezone(pytz.utc)
