"""
Custom exceptions for the engagement engine with user-friendly error messages.

Policy rejections (quota, cooldown, unknown task) are terminal outcomes of a
single call. StoreUnavailable is transient and safe to retry from outside the
engine. InvariantViolation means a stored record is inconsistent.
"""

from datetime import datetime
from typing import Any, Dict, Optional, Union


class EngagementError(Exception):
    """Base exception for engagement engine errors."""
    code = "engagement_error"
    retryable = False

    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

    def details(self) -> Dict[str, Any]:
        return {}

    def to_payload(self) -> Dict[str, Any]:
        """Structured rejection the presentation layer can render without re-querying."""
        return {
            'error': self.code,
            'message': self.user_message,
            'retryable': self.retryable,
            **self.details()
        }


class QuotaExceeded(EngagementError):
    """Raised when every daily slot is already completed."""
    code = "quota_exceeded"

    def __init__(self, completed_count: int, limit: int):
        self.completed_count = completed_count
        self.limit = limit
        super().__init__(
            f"Daily quota reached ({completed_count}/{limit})",
            f"All {limit} daily tasks are done. Come back after the daily reset!"
        )

    def details(self):
        return {'completed_count': self.completed_count, 'limit': self.limit}


class CooldownActive(EngagementError):
    """Raised when a completion arrives inside the cooldown window."""
    code = "cooldown_active"

    def __init__(self, remaining_seconds: int, cooldown_until: datetime, completed_count: int):
        self.remaining_seconds = remaining_seconds
        self.cooldown_until = cooldown_until
        self.completed_count = completed_count
        super().__init__(
            f"Cooldown active, {remaining_seconds}s remaining",
            f"Please wait {remaining_seconds} seconds before completing another task."
        )

    def details(self):
        return {
            'remaining_seconds': self.remaining_seconds,
            'cooldown_until': self.cooldown_until.isoformat(),
            'completed_count': self.completed_count
        }


class UnknownTask(EngagementError):
    """Raised when a task reference does not resolve to an open slot today."""
    code = "unknown_task"

    def __init__(self, task_ref: Union[int, str], completed_count: int):
        self.task_ref = task_ref
        self.completed_count = completed_count
        super().__init__(
            f"Task '{task_ref}' is not an open slot in today's record",
            "That task is not available. Refresh your task list and try again."
        )

    def details(self):
        return {'task': str(self.task_ref), 'completed_count': self.completed_count}


class StoreUnavailable(EngagementError):
    """Raised when the durable store fails, times out or loses a version race."""
    code = "store_unavailable"
    retryable = True

    def __init__(self, operation: str, details: Optional[str] = None):
        self.operation = operation
        self.reason = details
        super().__init__(
            f"Store unavailable during {operation}: {details}",
            "Service temporarily unavailable. Please try again."
        )

    def details(self):
        return {'operation': self.operation}


class InvariantViolation(EngagementError):
    """Raised when a loaded record is internally inconsistent."""
    code = "invariant_violation"

    def __init__(self, user_id: str, details: str):
        self.user_id = user_id
        self.reason = details
        super().__init__(
            f"Invariant violated for user {user_id}: {details}",
            "Something went wrong with your daily tasks. Please contact support."
        )
