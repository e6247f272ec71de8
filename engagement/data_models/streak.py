from dataclasses import dataclass
from datetime import date
from typing import Dict, Optional


@dataclass(frozen=True)
class StreakResult:
    """Weekly check-in grid after a check-in or a read."""
    user_id: str
    days: Dict[str, bool]
    week_start: date
    last_check_in_date: Optional[date]
    checked_in_today: bool
    points_awarded: int
    days_checked_in: int
