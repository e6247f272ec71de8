"""
Leaderboard data models.

Provides immutable data transfer objects for ranked point totals.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class LeaderboardEntry:
    """Single leaderboard row."""
    rank: int
    user_id: str
    display_name: str
    points: int
    reached_at: datetime


@dataclass(frozen=True)
class LedgerEntryView:
    """Single point credit from a user's history."""
    change_amount: int
    reason: str
    balance_after: int
    related_task_id: Optional[str]
    timestamp: datetime


@dataclass(frozen=True)
class AccountView:
    """A user's points account as registered."""
    user_id: str
    display_name: str
    total_points: int
    reached_at: datetime
