"""
Streak service for the weekly check-in grid.

One check-in is credited per calendar day. The grid is keyed by weekday, so
the record also keeps the date of the last check-in (to tell today from the
same weekday last week) and the Monday the flags belong to (so a new week
starts with an empty grid).
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from engagement.constants import PointConstants, StreakConstants
from engagement.database.models import StreakRecord
from engagement.data_models.streak import StreakResult
from engagement.services.base import BaseService
from engagement.utils.clock import calendar_day, week_start

logger = logging.getLogger(__name__)


class StreakService(BaseService):
    """Daily check-ins on a Monday-to-Sunday grid."""

    def __init__(self, session_factory, ledger, clock, tz=None, user_locks=None, timeout=None):
        super().__init__(session_factory, user_locks, timeout)
        self.ledger = ledger
        self.clock = clock
        self.tz = tz or clock.tz

    async def check_in(self, user_id: str, now: Optional[datetime] = None) -> StreakResult:
        """
        Check in for today.

        Repeated calls on the same calendar day return the unchanged grid and
        credit nothing. The first call of a day sets today's weekday flag and
        credits the ledger.
        """
        now = now or self.clock.now()
        today = calendar_day(now, self.tz)
        monday = week_start(today)
        day_key = StreakConstants.WEEKDAY_KEYS[today.weekday()]

        async def _check_in(session: AsyncSession) -> StreakResult:
            result = await session.execute(
                select(StreakRecord).where(StreakRecord.user_id == user_id).with_for_update()
            )
            streak = result.scalar_one_or_none()

            if streak is None:
                streak = StreakRecord(user_id=user_id, week_start=monday, updated_at=now)
                streak.clear_week()
                session.add(streak)

            if streak.last_check_in_date == today:
                return self._result(user_id, streak, monday, today, points_awarded=0)

            if streak.week_start != monday:
                streak.clear_week()
                streak.week_start = monday

            setattr(streak, day_key, True)
            streak.last_check_in_date = today
            streak.updated_at = now

            entry = await self.ledger.credit_atomic(
                session, user_id,
                PointConstants.CHECK_IN_POINTS,
                PointConstants.REASON_STREAK_CHECK_IN,
                now
            )
            return self._result(user_id, streak, monday, today, points_awarded=entry.change_amount)

        streak_result = await self.run_exclusive(user_id, "check_in", _check_in)

        if streak_result.points_awarded:
            logger.info(f"User {user_id} checked in on {today} ({day_key}), +{streak_result.points_awarded} points")
        else:
            logger.info(f"User {user_id} already checked in on {today}")
        return streak_result

    async def get_streak(self, user_id: str, now: Optional[datetime] = None) -> StreakResult:
        """Read the current week's grid; a grid from an earlier week reads as empty."""
        now = now or self.clock.now()
        today = calendar_day(now, self.tz)
        monday = week_start(today)

        async def _read(session: AsyncSession) -> StreakResult:
            streak = await session.get(StreakRecord, user_id)
            if streak is None or streak.week_start != monday:
                return StreakResult(
                    user_id=user_id,
                    days={key: False for key in StreakConstants.WEEKDAY_KEYS},
                    week_start=monday,
                    last_check_in_date=streak.last_check_in_date if streak else None,
                    checked_in_today=False,
                    points_awarded=0,
                    days_checked_in=0
                )
            return self._result(user_id, streak, monday, today, points_awarded=0)

        return await self.run_unlocked("get_streak", _read)

    @staticmethod
    def _result(user_id: str, streak: StreakRecord, monday, today, points_awarded: int) -> StreakResult:
        return StreakResult(
            user_id=user_id,
            days=streak.days,
            week_start=monday,
            last_check_in_date=streak.last_check_in_date,
            checked_in_today=streak.last_check_in_date == today,
            points_awarded=points_awarded,
            days_checked_in=streak.days_checked_in
        )
