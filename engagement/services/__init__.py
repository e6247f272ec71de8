"""
Services package for the daily engagement engine.

Each service owns one component: daily tasks, streak check-ins, the points
ledger and the leaderboard. Services that mutate a user's state share one
UserLocks registry.
"""

from .base import BaseService, UserLocks
from .daily_tasks import DailyTaskService
from .leaderboard import LeaderboardService
from .points_ledger import PointsLedgerService
from .streak import StreakService

__all__ = [
    'BaseService', 'UserLocks', 'DailyTaskService', 'LeaderboardService',
    'PointsLedgerService', 'StreakService'
]
