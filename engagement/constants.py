"""
Engine-wide constants for the daily engagement engine.

The daily task rules are fixed game rules rather than configuration: every
user gets the same five slots, the same cooldown and the same rewards.
"""

class TaskConstants:
    """Constants for the daily task checklist."""
    
    # Number of task slots handed out per user per calendar day
    DAILY_SLOT_COUNT = 5
    
    # Minimum spacing between two accepted completions
    COOLDOWN_SECONDS = 300  # 5 minutes

class PointConstants:
    """Point rewards credited to the ledger."""
    
    TASK_COMPLETION_POINTS = 20
    CHECK_IN_POINTS = 5
    
    # Ledger reasons
    REASON_TASK_COMPLETION = "TASK_COMPLETION"
    REASON_STREAK_CHECK_IN = "STREAK_CHECK_IN"

class StreakConstants:
    """Constants for the weekly check-in grid."""
    
    # Ordered Monday first, matching datetime.date.weekday()
    WEEKDAY_KEYS = ('mon', 'tue', 'wed', 'thu', 'fri', 'sat', 'sun')
