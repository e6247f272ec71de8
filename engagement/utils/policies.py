import math
from datetime import datetime, timedelta
from typing import Optional, Tuple

from engagement.constants import TaskConstants
from engagement.utils.clock import calendar_day


class ResetPolicy:
    """Decides whether a stored daily record belongs to an earlier day"""

    @staticmethod
    def needs_reset(record, now: datetime, tz) -> bool:
        """
        Check whether a record must be replaced before it is used

        Args:
            record: Object with a ``day`` attribute, or None when no record exists
            now: Current instant
            tz: Zone in which calendar days are evaluated

        Returns:
            True when there is no record or its day differs from today's
        """
        if record is None:
            return True
        return record.day != calendar_day(now, tz)


class CooldownPolicy:
    """Computes the cooldown window from the last completion time"""

    COOLDOWN = timedelta(seconds=TaskConstants.COOLDOWN_SECONDS)

    @staticmethod
    def cooldown_until(last_completed_at: Optional[datetime]) -> Optional[datetime]:
        if last_completed_at is None:
            return None
        return last_completed_at + CooldownPolicy.COOLDOWN

    @staticmethod
    def is_cooldown_active(last_completed_at: Optional[datetime], now: datetime) -> Tuple[bool, int]:
        """
        Check whether a new completion is blocked by the cooldown

        Args:
            last_completed_at: Time of the most recent completion, if any
            now: Current instant

        Returns:
            (active, remaining_seconds) with remaining_seconds rounded up and never negative
        """
        if last_completed_at is None:
            return False, 0

        window_end = last_completed_at + CooldownPolicy.COOLDOWN
        if now >= window_end:
            return False, 0

        remaining = math.ceil((window_end - now).total_seconds())
        return True, max(remaining, 0)
