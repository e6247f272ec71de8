"""
Daily task data models.

Immutable snapshots handed to the presentation layer, so callers never hold
live ORM objects.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional


@dataclass(frozen=True)
class SlotView:
    """One of the five daily task slots."""
    slot_number: int
    task_id: str
    completed: bool
    completed_at: Optional[datetime] = None


@dataclass(frozen=True)
class DailyRecordSnapshot:
    """A user's checklist for one calendar day."""
    user_id: str
    day: date
    slots: List[SlotView]
    completed_count: int
    last_completed_at: Optional[datetime] = None


@dataclass(frozen=True)
class CompletionResult:
    """Outcome of an accepted completion."""
    record: DailyRecordSnapshot
    completed_slot: SlotView
    completed_count: int
    points_awarded: int
    total_points: int
    cooldown_until: datetime
    next_reset_at: datetime


@dataclass(frozen=True)
class DailyStatusView:
    """Everything needed to render today's checklist without a second query."""
    user_id: str
    day: date
    slots: List[SlotView]
    completed_count: int
    last_completed_at: Optional[datetime]
    cooldown_active: bool
    remaining_seconds: int
    cooldown_until: Optional[datetime]
    next_reset_at: datetime


@dataclass(frozen=True)
class CooldownStatus:
    """Lightweight cooldown probe."""
    active: bool
    remaining_seconds: int
    cooldown_until: Optional[datetime]
    last_completed_at: Optional[datetime]
    completed_count: int
