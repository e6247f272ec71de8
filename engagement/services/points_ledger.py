"""
Points ledger service.

Keeps a cached total per user and an append-only history of credits. Credits
are only ever written inside the caller's transaction so the action that
earned them and the credit commit together.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from engagement.database.models import PointsAccount, PointsLedgerEntry
from engagement.data_models.leaderboard import AccountView, LedgerEntryView
from engagement.services.base import BaseService

logger = logging.getLogger(__name__)


class PointsLedgerService(BaseService):
    """Accumulates points awarded by completions and check-ins."""

    def __init__(self, session_factory, clock, user_locks=None, timeout=None):
        super().__init__(session_factory, user_locks, timeout)
        self.clock = clock

    async def register_user(self, user_id: str, display_name: str, now: Optional[datetime] = None) -> AccountView:
        """Create a zero-point account or update the display name of an existing one."""
        now = now or self.clock.now()

        async def _register(session: AsyncSession) -> AccountView:
            account = await session.get(PointsAccount, user_id)
            if account is None:
                account = PointsAccount(
                    user_id=user_id,
                    display_name=display_name,
                    total_points=0,
                    reached_at=now,
                    created_at=now,
                    updated_at=now
                )
                session.add(account)
                logger.info(f"Registered points account for user {user_id}")
            else:
                account.display_name = display_name
                account.updated_at = now
            await session.flush()
            return AccountView(
                user_id=account.user_id,
                display_name=account.display_name,
                total_points=account.total_points,
                reached_at=account.reached_at
            )

        return await self.run_exclusive(user_id, "register_user", _register)

    async def credit_atomic(self, session: AsyncSession, user_id: str, amount: int, reason: str,
                            now: datetime, related_task_id: Optional[str] = None) -> PointsLedgerEntry:
        """
        Credit points inside an existing transaction (session-aware).

        The account row is locked for the balance update where the backend
        supports it. The caller owns the commit.
        """
        if amount <= 0:
            raise ValueError(f"Credits must be positive, got {amount}")

        result = await session.execute(
            select(PointsAccount).where(PointsAccount.user_id == user_id).with_for_update()
        )
        account = result.scalar_one_or_none()

        if account is None:
            account = PointsAccount(
                user_id=user_id,
                display_name=user_id,
                total_points=0,
                created_at=now
            )
            session.add(account)

        new_balance = (account.total_points or 0) + amount
        account.total_points = new_balance
        account.reached_at = now
        account.updated_at = now

        entry = PointsLedgerEntry(
            user_id=user_id,
            change_amount=amount,
            reason=reason,
            balance_after=new_balance,
            related_task_id=related_task_id,
            timestamp=now
        )
        session.add(entry)
        await session.flush()

        logger.debug(f"Credited {amount} points to {user_id} ({reason}), balance {new_balance}")
        return entry

    async def get_balance(self, user_id: str) -> int:
        """Get current point total for a user"""
        async def _balance(session: AsyncSession) -> int:
            result = await session.execute(
                select(PointsAccount.total_points).where(PointsAccount.user_id == user_id)
            )
            balance = result.scalar_one_or_none()
            return balance if balance is not None else 0

        return await self.run_unlocked("get_balance", _balance)

    async def get_history(self, user_id: str, limit: int = 20) -> List[LedgerEntryView]:
        """Get point credit history for a user, newest first"""
        async def _history(session: AsyncSession) -> List[LedgerEntryView]:
            result = await session.execute(
                select(PointsLedgerEntry)
                .where(PointsLedgerEntry.user_id == user_id)
                .order_by(PointsLedgerEntry.timestamp.desc(), PointsLedgerEntry.id.desc())
                .limit(limit)
            )
            return [
                LedgerEntryView(
                    change_amount=entry.change_amount,
                    reason=entry.reason,
                    balance_after=entry.balance_after,
                    related_task_id=entry.related_task_id,
                    timestamp=entry.timestamp
                )
                for entry in result.scalars().all()
            ]

        return await self.run_unlocked("get_history", _history)

    async def verify_balance_integrity(self, user_id: str) -> dict:
        """Verify the cached balance against the sum of ledger entries"""
        async def _verify(session: AsyncSession) -> dict:
            cached = await session.scalar(
                select(PointsAccount.total_points).where(PointsAccount.user_id == user_id)
            )
            calculated = await session.scalar(
                select(func.sum(PointsLedgerEntry.change_amount)).where(PointsLedgerEntry.user_id == user_id)
            )
            cached_balance = cached or 0
            calculated_balance = calculated or 0
            return {
                'user_id': user_id,
                'cached_balance': cached_balance,
                'calculated_balance': calculated_balance,
                'integrity_check': cached_balance == calculated_balance
            }

        return await self.run_unlocked("verify_balance_integrity", _verify)
