"""
Leaderboard service

Ranks users by ledger point totals. The leaderboard is polled by clients, so
ranked pages are served from a short TTL cache; a poll may miss a credit
committed within the last TTL seconds.
"""

from typing import List, Optional
import asyncio
import time
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from engagement.config import Config
from engagement.database.models import PointsAccount
from engagement.data_models.leaderboard import LeaderboardEntry
from engagement.services.base import BaseService

logger = logging.getLogger(__name__)


class LeaderboardService(BaseService):
    """Read projection over the points ledger with caching."""

    def __init__(self, session_factory, cache_ttl: Optional[float] = None, timeout=None):
        super().__init__(session_factory, timeout=timeout)
        # TTL cache for ranked pages
        self._cache = {}
        self._cache_timestamps = {}
        self._cache_ttl = Config.LEADERBOARD_CACHE_TTL if cache_ttl is None else cache_ttl
        self._cache_max_size = 100
        self._cache_lock = asyncio.Lock()

    async def _is_cache_valid(self, key: str) -> bool:
        """Check if cached leaderboard data is still valid."""
        if self._cache_ttl <= 0:
            return False
        async with self._cache_lock:
            if key not in self._cache_timestamps:
                return False
            return time.time() - self._cache_timestamps[key] < self._cache_ttl

    async def _cleanup_cache(self):
        """Remove expired entries and enforce size limits."""
        async with self._cache_lock:
            current_time = time.time()
            expired_keys = [
                key for key, timestamp in self._cache_timestamps.items()
                if current_time - timestamp >= self._cache_ttl
            ]
            for key in expired_keys:
                self._cache.pop(key, None)
                self._cache_timestamps.pop(key, None)

            # Enforce size limit by removing oldest entries
            if len(self._cache) > self._cache_max_size:
                sorted_keys = sorted(self._cache_timestamps.items(), key=lambda x: x[1])
                for key, _ in sorted_keys[:len(self._cache) - self._cache_max_size]:
                    self._cache.pop(key, None)
                    self._cache_timestamps.pop(key, None)

    async def invalidate(self):
        """Drop every cached page."""
        async with self._cache_lock:
            self._cache.clear()
            self._cache_timestamps.clear()

    @staticmethod
    def normalize_limit(limit: Optional[int]) -> int:
        """Fall back to the default for missing or non-positive limits, cap at the maximum."""
        if limit is None or limit <= 0:
            return Config.LEADERBOARD_DEFAULT_LIMIT
        return min(limit, Config.LEADERBOARD_MAX_LIMIT)

    async def get_leaderboard(self, limit: Optional[int] = None) -> List[LeaderboardEntry]:
        """
        Get the top users by points.

        Users with equal totals share a rank and the next total skips ahead
        (1, 1, 3). Within a tie, whoever reached the total first is listed
        first, then user id.
        """
        limit = self.normalize_limit(limit)
        cache_key = f"leaderboard:{limit}"
        if await self._is_cache_valid(cache_key):
            async with self._cache_lock:
                return self._cache[cache_key]

        await self._cleanup_cache()

        async def _query(session: AsyncSession) -> List[LeaderboardEntry]:
            result = await session.execute(
                select(
                    PointsAccount.user_id,
                    PointsAccount.display_name,
                    PointsAccount.total_points,
                    PointsAccount.reached_at,
                    func.rank().over(order_by=PointsAccount.total_points.desc()).label('rank')
                )
                .order_by(
                    PointsAccount.total_points.desc(),
                    PointsAccount.reached_at.asc(),
                    PointsAccount.user_id.asc()
                )
                .limit(limit)
            )
            return [
                LeaderboardEntry(
                    rank=row.rank,
                    user_id=row.user_id,
                    display_name=row.display_name,
                    points=row.total_points,
                    reached_at=row.reached_at
                )
                for row in result.all()
            ]

        entries = await self.run_unlocked("get_leaderboard", _query)

        if self._cache_ttl > 0:
            async with self._cache_lock:
                self._cache[cache_key] = entries
                self._cache_timestamps[cache_key] = time.time()

        logger.debug(f"Leaderboard refreshed with {len(entries)} entries (limit {limit})")
        return entries

    async def get_user_rank(self, user_id: str) -> Optional[LeaderboardEntry]:
        """Get one user's rank: one more than the number of users with strictly more points."""
        async def _query(session: AsyncSession) -> Optional[LeaderboardEntry]:
            account = await session.get(PointsAccount, user_id)
            if account is None:
                return None
            higher = await session.scalar(
                select(func.count()).select_from(PointsAccount)
                .where(PointsAccount.total_points > account.total_points)
            )
            return LeaderboardEntry(
                rank=(higher or 0) + 1,
                user_id=account.user_id,
                display_name=account.display_name,
                points=account.total_points,
                reached_at=account.reached_at
            )

        return await self.run_unlocked("get_user_rank", _query)
