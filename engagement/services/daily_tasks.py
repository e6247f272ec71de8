"""
Daily task service: the five-slot checklist with cooldown enforcement.

Every mutating call runs as one unit of work under the user's lock:
load (or lazily replace) today's record, check quota, check cooldown,
resolve the slot, mark it complete and credit the ledger, all in one
transaction. A rejected call changes nothing.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from engagement.config import Config
from engagement.constants import TaskConstants, PointConstants
from engagement.database.models import DailyRecord, TaskSlot
from engagement.data_models.daily import (
    SlotView, DailyRecordSnapshot, CompletionResult, DailyStatusView, CooldownStatus
)
from engagement.services.base import BaseService
from engagement.utils.clock import calendar_day, next_midnight
from engagement.utils.exceptions import (
    QuotaExceeded, CooldownActive, UnknownTask, InvariantViolation
)
from engagement.utils.policies import ResetPolicy, CooldownPolicy

logger = logging.getLogger(__name__)

TaskRef = Union[int, str]


class DailyTaskService(BaseService):
    """Owns task-completion state, cooldown timers and the lazy daily reset."""

    def __init__(self, session_factory, ledger, clock, tz=None, user_locks=None, timeout=None):
        super().__init__(session_factory, user_locks, timeout)
        self.ledger = ledger
        self.clock = clock
        self.tz = tz or clock.tz

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def complete_task(self, user_id: str, task_ref: TaskRef,
                            now: Optional[datetime] = None) -> CompletionResult:
        """
        Complete one slot of today's checklist.

        Args:
            user_id: Authenticated user identifier
            task_ref: Slot number (1-5, int or digit string) or the slot's external task id
            now: Request time, defaults to the service clock

        Returns:
            CompletionResult with the updated snapshot and the next cooldown window

        Raises:
            QuotaExceeded, CooldownActive, UnknownTask: policy rejections, nothing is written
            InvariantViolation: the stored record is inconsistent
            StoreUnavailable: the store failed or timed out
        """
        now = now or self.clock.now()

        async def _complete(session: AsyncSession) -> CompletionResult:
            record = await self._get_or_reset(session, user_id, now)
            completed_count = record.completed_count

            if completed_count >= TaskConstants.DAILY_SLOT_COUNT:
                raise QuotaExceeded(completed_count, TaskConstants.DAILY_SLOT_COUNT)

            # Re-checked here, under the lock, whatever the client saw earlier
            active, remaining = CooldownPolicy.is_cooldown_active(record.last_completed_at, now)
            if active:
                raise CooldownActive(
                    remaining,
                    CooldownPolicy.cooldown_until(record.last_completed_at),
                    completed_count
                )

            slot = self._resolve_slot(record, task_ref)
            if slot is None or slot.completed:
                raise UnknownTask(task_ref, completed_count)

            slot.completed = True
            slot.completed_at = now
            record.last_completed_at = now

            entry = await self.ledger.credit_atomic(
                session, user_id,
                PointConstants.TASK_COMPLETION_POINTS,
                PointConstants.REASON_TASK_COMPLETION,
                now,
                related_task_id=slot.task_id
            )

            snapshot = self._snapshot(record)
            return CompletionResult(
                record=snapshot,
                completed_slot=self._slot_view(slot),
                completed_count=snapshot.completed_count,
                points_awarded=entry.change_amount,
                total_points=entry.balance_after,
                cooldown_until=CooldownPolicy.cooldown_until(now),
                next_reset_at=next_midnight(now, self.tz)
            )

        try:
            result = await self.run_exclusive(user_id, "complete_task", _complete)
        except QuotaExceeded as e:
            logger.info(f"User {user_id} completion of {task_ref!r} rejected: quota {e.completed_count}/{e.limit}")
            raise
        except CooldownActive as e:
            logger.info(f"User {user_id} completion of {task_ref!r} rejected: cooldown {e.remaining_seconds}s")
            raise
        except UnknownTask:
            logger.info(f"User {user_id} completion rejected: unknown or completed task {task_ref!r}")
            raise

        logger.info(
            f"User {user_id} completed slot {result.completed_slot.slot_number} "
            f"({result.completed_count}/{TaskConstants.DAILY_SLOT_COUNT}), +{result.points_awarded} points"
        )
        return result

    async def get_daily_status(self, user_id: str, now: Optional[datetime] = None) -> DailyStatusView:
        """
        Get today's checklist, lazily creating it under the user's lock.

        A stale record is replaced exactly as complete_task would replace it,
        so the task ids handed out here stay valid for the rest of the day.
        """
        now = now or self.clock.now()

        async def _status(session: AsyncSession) -> DailyStatusView:
            record = await self._get_or_reset(session, user_id, now)
            active, remaining = CooldownPolicy.is_cooldown_active(record.last_completed_at, now)
            snapshot = self._snapshot(record)
            return DailyStatusView(
                user_id=user_id,
                day=snapshot.day,
                slots=snapshot.slots,
                completed_count=snapshot.completed_count,
                last_completed_at=snapshot.last_completed_at,
                cooldown_active=active,
                remaining_seconds=remaining,
                cooldown_until=CooldownPolicy.cooldown_until(record.last_completed_at) if active else None,
                next_reset_at=next_midnight(now, self.tz)
            )

        return await self.run_exclusive(user_id, "get_daily_status", _status)

    async def get_cooldown_status(self, user_id: str, now: Optional[datetime] = None) -> CooldownStatus:
        """Read-only cooldown probe; never creates or replaces a record."""
        now = now or self.clock.now()

        async def _probe(session: AsyncSession) -> CooldownStatus:
            record = await self._load_latest(session, user_id, now)
            if ResetPolicy.needs_reset(record, now, self.tz):
                return CooldownStatus(
                    active=False,
                    remaining_seconds=0,
                    cooldown_until=None,
                    last_completed_at=None,
                    completed_count=0
                )

            active, remaining = CooldownPolicy.is_cooldown_active(record.last_completed_at, now)
            return CooldownStatus(
                active=active,
                remaining_seconds=remaining,
                cooldown_until=CooldownPolicy.cooldown_until(record.last_completed_at) if active else None,
                last_completed_at=record.last_completed_at,
                completed_count=record.completed_count
            )

        return await self.run_unlocked("get_cooldown_status", _probe)

    async def purge_stale_records(self, now: Optional[datetime] = None,
                                  retention_days: Optional[int] = None) -> int:
        """
        Delete daily records older than the retention window.

        Args:
            now: Reference time, defaults to the service clock
            retention_days: Days of history to keep, today included; at least 1

        Returns:
            Number of daily records removed
        """
        now = now or self.clock.now()
        if retention_days is None:
            retention_days = Config.RECORD_RETENTION_DAYS
        if retention_days < 1:
            raise ValueError("retention_days must be at least 1")

        cutoff = calendar_day(now, self.tz) - timedelta(days=retention_days - 1)

        async def _purge(session: AsyncSession) -> int:
            stale_ids = select(DailyRecord.id).where(DailyRecord.day < cutoff)
            await session.execute(
                delete(TaskSlot).where(TaskSlot.record_id.in_(stale_ids)).execution_options(synchronize_session=False)
            )
            result = await session.execute(
                delete(DailyRecord).where(DailyRecord.day < cutoff).execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

        removed = await self.run_unlocked("purge_stale_records", _purge)
        logger.info(f"Purged {removed} daily records older than {cutoff}")
        return removed

    # ------------------------------------------------------------------
    # Record loading and validation
    # ------------------------------------------------------------------

    async def _load_latest(self, session: AsyncSession, user_id: str, now: datetime) -> Optional[DailyRecord]:
        """Most recent record not dated after today."""
        today = calendar_day(now, self.tz)
        result = await session.execute(
            select(DailyRecord)
            .where(DailyRecord.user_id == user_id, DailyRecord.day <= today)
            .order_by(DailyRecord.day.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _get_or_reset(self, session: AsyncSession, user_id: str, now: datetime) -> DailyRecord:
        record = await self._load_latest(session, user_id, now)

        if ResetPolicy.needs_reset(record, now, self.tz):
            today = calendar_day(now, self.tz)
            if record is not None:
                logger.info(f"Daily reset for user {user_id}: {record.day} -> {today}")
            record = DailyRecord.fresh(user_id, today, now)
            session.add(record)
            await session.flush()
            return record

        self._check_invariants(user_id, record)
        return record

    def _check_invariants(self, user_id: str, record: DailyRecord):
        numbers = sorted(slot.slot_number for slot in record.slots)
        expected = list(range(1, TaskConstants.DAILY_SLOT_COUNT + 1))
        problem = None

        if numbers != expected:
            problem = f"slot numbers {numbers} on {record.day}, expected {expected}"
        elif any(slot.completed and slot.completed_at is None for slot in record.slots):
            problem = f"completed slot without completion time on {record.day}"
        else:
            completion_times = [slot.completed_at for slot in record.slots if slot.completed]
            latest = max(completion_times) if completion_times else None
            if latest != record.last_completed_at:
                problem = (
                    f"last_completed_at {record.last_completed_at} does not match "
                    f"latest slot completion {latest} on {record.day}"
                )

        if problem:
            logger.error(f"Invariant violation for user {user_id}: {problem}")
            raise InvariantViolation(user_id, problem)

    @staticmethod
    def _resolve_slot(record: DailyRecord, task_ref: TaskRef) -> Optional[TaskSlot]:
        if isinstance(task_ref, bool):
            return None
        if isinstance(task_ref, int):
            return record.slot_by_number(task_ref)
        if isinstance(task_ref, str):
            task_ref = task_ref.strip()
            # ASCII digits only; slot numbers never need more than two
            if task_ref.isascii() and task_ref.isdigit():
                if len(task_ref) > 2:
                    return None
                return record.slot_by_number(int(task_ref))
            return record.slot_by_task_id(task_ref)
        return None

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    @staticmethod
    def _slot_view(slot: TaskSlot) -> SlotView:
        return SlotView(
            slot_number=slot.slot_number,
            task_id=slot.task_id,
            completed=bool(slot.completed),
            completed_at=slot.completed_at
        )

    def _snapshot(self, record: DailyRecord) -> DailyRecordSnapshot:
        return DailyRecordSnapshot(
            user_id=record.user_id,
            day=record.day,
            slots=[self._slot_view(slot) for slot in record.slots],
            completed_count=record.completed_count,
            last_completed_at=record.last_completed_at
        )
