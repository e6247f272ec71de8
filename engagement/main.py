import asyncio
import logging
import traceback
from datetime import datetime
from typing import List, Optional, Union

from engagement.config import Config
from engagement.database.database import Database
from engagement.data_models.daily import CompletionResult, CooldownStatus, DailyStatusView
from engagement.data_models.leaderboard import AccountView, LeaderboardEntry, LedgerEntryView
from engagement.data_models.streak import StreakResult
from engagement.services import (
    DailyTaskService, LeaderboardService, PointsLedgerService, StreakService, UserLocks
)
from engagement.utils.clock import SystemClock
from engagement.utils.logger import setup_logger


class EngagementEngine:
    """
    Entry point for the collaborator layer.

    The caller is expected to have authenticated the user already; every
    operation trusts the user id it is given.
    """

    def __init__(self, database: Optional[Database] = None, clock=None,
                 leaderboard_cache_ttl: Optional[float] = None):
        self.logger = setup_logger(__name__)
        self.db = database or Database()
        self.clock = clock or SystemClock()
        self.tz = self.clock.tz
        self.user_locks = UserLocks()
        self.leaderboard_cache_ttl = leaderboard_cache_ttl

        self.ledger: Optional[PointsLedgerService] = None
        self.daily_tasks: Optional[DailyTaskService] = None
        self.streaks: Optional[StreakService] = None
        self.leaderboard: Optional[LeaderboardService] = None

    async def start(self):
        """Initialize the store and wire the services"""
        self.logger.info("Starting engagement engine...")
        Config.validate()

        await self.db.initialize()
        session_factory = self.db.session_factory

        self.ledger = PointsLedgerService(session_factory, self.clock, self.user_locks)
        self.daily_tasks = DailyTaskService(
            session_factory, self.ledger, self.clock, self.tz, self.user_locks
        )
        self.streaks = StreakService(
            session_factory, self.ledger, self.clock, self.tz, self.user_locks
        )
        self.leaderboard = LeaderboardService(session_factory, cache_ttl=self.leaderboard_cache_ttl)

        self.logger.info(f"Engagement engine ready (time zone {self.tz.zone})")

    async def close(self):
        """Cleanup when the engine is shutting down"""
        self.logger.info("Shutting down engagement engine...")
        await self.db.close()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # Daily tasks
    async def daily_status(self, user_id: str, now: Optional[datetime] = None) -> DailyStatusView:
        return await self.daily_tasks.get_daily_status(user_id, now)

    async def complete_task(self, user_id: str, task: Union[int, str],
                            now: Optional[datetime] = None) -> CompletionResult:
        return await self.daily_tasks.complete_task(user_id, task, now)

    async def cooldown_status(self, user_id: str, now: Optional[datetime] = None) -> CooldownStatus:
        return await self.daily_tasks.get_cooldown_status(user_id, now)

    async def purge_stale_records(self, now: Optional[datetime] = None,
                                  retention_days: Optional[int] = None) -> int:
        return await self.daily_tasks.purge_stale_records(now, retention_days)

    # Streaks
    async def check_in(self, user_id: str, now: Optional[datetime] = None) -> StreakResult:
        return await self.streaks.check_in(user_id, now)

    async def streak(self, user_id: str, now: Optional[datetime] = None) -> StreakResult:
        return await self.streaks.get_streak(user_id, now)

    # Points and rankings
    async def register_user(self, user_id: str, display_name: str) -> AccountView:
        account = await self.ledger.register_user(user_id, display_name)
        await self.leaderboard.invalidate()
        return account

    async def balance(self, user_id: str) -> int:
        return await self.ledger.get_balance(user_id)

    async def points_history(self, user_id: str, limit: int = 20) -> List[LedgerEntryView]:
        return await self.ledger.get_history(user_id, limit)

    async def get_leaderboard(self, limit: Optional[int] = None) -> List[LeaderboardEntry]:
        return await self.leaderboard.get_leaderboard(limit)

    async def user_rank(self, user_id: str) -> Optional[LeaderboardEntry]:
        return await self.leaderboard.get_user_rank(user_id)


async def main():
    """Housekeeping entry point: drop daily records past the retention window"""
    engine = EngagementEngine()
    try:
        await engine.start()
        removed = await engine.purge_stale_records()
        engine.logger.info(f"Housekeeping complete, {removed} stale daily records removed")
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        traceback.print_exc()
        raise
    finally:
        await engine.close()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
