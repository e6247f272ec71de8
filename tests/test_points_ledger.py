"""
Tests for the points ledger
"""

import dataclasses
from datetime import timedelta

import pytest

from engagement.constants import PointConstants
from engagement.data_models.leaderboard import AccountView
from engagement.database.models import PointsAccount

USER = "ledger-user"


async def test_balance_of_unknown_user_is_zero(engine):
    assert await engine.balance("nobody") == 0
    assert await engine.points_history("nobody") == []


async def test_register_creates_zero_point_account(engine):
    account = await engine.register_user(USER, "Ledger User")
    assert account.total_points == 0
    assert account.display_name == "Ledger User"
    assert await engine.balance(USER) == 0


async def test_register_returns_a_detached_view(engine, clock):
    account = await engine.register_user(USER, "Ledger User")
    assert isinstance(account, AccountView)
    assert account.reached_at == clock.now()
    with pytest.raises(dataclasses.FrozenInstanceError):
        account.total_points = 100


async def test_register_again_updates_display_name_only(engine, clock):
    await engine.register_user(USER, "Old Name")
    await engine.complete_task(USER, 1)

    account = await engine.register_user(USER, "New Name")
    assert account.display_name == "New Name"
    assert account.total_points == 20


async def test_history_records_every_credit(engine, clock):
    first = await engine.complete_task(USER, 1)
    clock.advance(minutes=5)
    await engine.check_in(USER)
    second = await engine.complete_task(USER, 2)

    history = await engine.points_history(USER)
    assert [entry.change_amount for entry in history] == [20, 5, 20]
    assert [entry.balance_after for entry in history] == [45, 25, 20]
    assert history[0].related_task_id == second.completed_slot.task_id
    assert history[1].related_task_id is None
    assert history[2].related_task_id == first.completed_slot.task_id
    assert history[2].reason == PointConstants.REASON_TASK_COMPLETION


async def test_history_limit(engine, clock):
    for number in range(1, 4):
        await engine.complete_task(USER, number)
        clock.advance(minutes=5)
    assert len(await engine.points_history(USER, limit=2)) == 2


async def test_balance_matches_ledger_sum(engine, clock):
    for day in range(3):
        await engine.check_in(USER)
        await engine.complete_task(USER, 1)
        clock.advance(days=1)

    integrity = await engine.ledger.verify_balance_integrity(USER)
    assert integrity['cached_balance'] == 75
    assert integrity['calculated_balance'] == 75
    assert integrity['integrity_check'] is True


async def test_credit_moves_reached_at(engine, clock):
    await engine.register_user(USER, "Ledger User")
    clock.advance(hours=1)
    await engine.complete_task(USER, 1)

    async with engine.db.get_session() as session:
        account = await session.get(PointsAccount, USER)
    assert account.reached_at == clock.now()


async def test_credit_rejects_non_positive_amounts(engine, clock):
    async with engine.db.transaction() as session:
        with pytest.raises(ValueError):
            await engine.ledger.credit_atomic(session, USER, 0, "BONUS", clock.now())
    assert await engine.balance(USER) == 0


async def test_credit_atomic_joins_callers_transaction(engine, clock):
    with pytest.raises(RuntimeError):
        async with engine.db.transaction() as session:
            await engine.ledger.credit_atomic(
                session, USER, 10, "BONUS", clock.now() + timedelta(seconds=1)
            )
            raise RuntimeError("caller failed after crediting")

    assert await engine.balance(USER) == 0
    assert await engine.points_history(USER) == []
