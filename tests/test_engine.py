"""
Tests for engine wiring and cross-service concurrency: one lock registry
per engine, serialized credits for one user, and lost races between two
engines sharing a database.
"""

import asyncio

import pytest
from sqlalchemy import select

from engagement.database.database import Database
from engagement.database.models import DailyRecord
from engagement.main import EngagementEngine
from engagement.utils.clock import calendar_day
from engagement.utils.exceptions import StoreUnavailable

USER = "shared-user"


@pytest.fixture
async def other_engine(database_url, clock):
    """Second engine on the same database file, as another process would be."""
    eng = EngagementEngine(database=Database(database_url), clock=clock, leaderboard_cache_ttl=0)
    await eng.start()
    yield eng
    await eng.close()


async def test_services_share_one_lock_registry(engine):
    assert engine.daily_tasks.user_locks is engine.user_locks
    assert engine.streaks.user_locks is engine.user_locks
    assert engine.ledger.user_locks is engine.user_locks


async def test_engines_do_not_share_lock_registries(engine, other_engine):
    assert engine.user_locks is not other_engine.user_locks


async def test_completion_and_check_in_are_serialized(engine, clock):
    outcomes = await asyncio.gather(
        engine.complete_task(USER, 1),
        engine.check_in(USER),
        engine.register_user(USER, "Shared User")
    )
    completion, check_in, _ = outcomes
    assert completion.points_awarded == 20
    assert check_in.points_awarded == 5

    assert await engine.balance(USER) == 25
    history = await engine.points_history(USER)
    assert sorted(entry.balance_after for entry in history) in ([5, 25], [20, 25])
    integrity = await engine.ledger.verify_balance_integrity(USER)
    assert integrity['integrity_check'] is True


async def test_check_in_waits_for_a_held_user_lock(engine):
    async with engine.user_locks.get(USER):
        pending = asyncio.create_task(engine.check_in(USER))
        await asyncio.sleep(0.05)
        assert not pending.done()
    result = await pending
    assert result.points_awarded == 5


async def test_concurrent_check_ins_credit_once(engine):
    results = await asyncio.gather(*[engine.check_in(USER) for _ in range(6)])

    assert sorted(result.points_awarded for result in results) == [0, 0, 0, 0, 0, 5]
    assert all(result.checked_in_today for result in results)
    assert all(result.days_checked_in == 1 for result in results)
    assert await engine.balance(USER) == 5
    assert len(await engine.points_history(USER)) == 1


async def test_version_conflict_from_another_engine_is_store_unavailable(engine, other_engine, clock):
    await engine.daily_status(USER)

    async def stale_write(session):
        record = (await session.execute(
            select(DailyRecord).where(DailyRecord.user_id == USER)
        )).scalar_one()
        # The other engine commits a completion between this read and the write
        await other_engine.complete_task(USER, 1)
        record.last_completed_at = clock.now()
        await session.flush()

    with pytest.raises(StoreUnavailable) as exc_info:
        await engine.daily_tasks.run_exclusive(USER, "complete_task", stale_write)
    assert exc_info.value.retryable is True

    status = await engine.daily_status(USER)
    assert status.completed_count == 1
    assert await engine.balance(USER) == 20


async def test_duplicate_day_record_from_another_engine_is_store_unavailable(engine, other_engine, clock):
    async def racing_create(session):
        service = engine.daily_tasks
        assert await service._load_latest(session, USER, clock.now()) is None
        # The other engine creates today's record first
        await other_engine.daily_status(USER)
        session.add(DailyRecord.fresh(USER, calendar_day(clock.now(), service.tz), clock.now()))
        await session.flush()

    with pytest.raises(StoreUnavailable):
        await engine.daily_tasks.run_exclusive(USER, "get_daily_status", racing_create)

    async with engine.db.get_session() as session:
        days = (await session.execute(
            select(DailyRecord.day).where(DailyRecord.user_id == USER)
        )).scalars().all()
    assert len(days) == 1
