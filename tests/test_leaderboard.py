"""
Tests for leaderboard ranking, limits and caching
"""

from datetime import timedelta

import pytest

from engagement.config import Config
from engagement.services import LeaderboardService


async def earn(engine, user_id, tasks, start):
    """Complete the first `tasks` slots, five minutes apart, starting at `start`."""
    for number in range(1, tasks + 1):
        await engine.complete_task(user_id, number, now=start + timedelta(minutes=5 * (number - 1)))


@pytest.fixture
async def ranked(engine, clock):
    t0 = clock.now()
    await engine.register_user("alice", "Alice")
    await engine.register_user("bob", "Bob")
    await earn(engine, "alice", 3, t0)
    await earn(engine, "bob", 3, t0 + timedelta(minutes=1))
    await earn(engine, "carol", 2, t0)
    return engine


async def test_ties_share_rank_and_next_rank_skips(ranked):
    board = await ranked.get_leaderboard()

    assert [entry.user_id for entry in board] == ["alice", "bob", "carol"]
    assert [entry.points for entry in board] == [60, 60, 40]
    assert [entry.rank for entry in board] == [1, 1, 3]


async def test_earlier_total_is_listed_first_within_a_tie(ranked):
    board = await ranked.get_leaderboard()
    assert board[0].reached_at < board[1].reached_at


async def test_entries_carry_display_names(ranked):
    board = await ranked.get_leaderboard()
    names = {entry.user_id: entry.display_name for entry in board}
    assert names == {"alice": "Alice", "bob": "Bob", "carol": "carol"}


async def test_leaderboard_respects_limit(ranked):
    board = await ranked.get_leaderboard(2)
    assert [entry.user_id for entry in board] == ["alice", "bob"]


async def test_registered_user_without_points_is_ranked_last(ranked):
    await ranked.register_user("dave", "Dave")
    board = await ranked.get_leaderboard()
    assert board[-1].user_id == "dave"
    assert board[-1].points == 0
    assert board[-1].rank == 4


@pytest.mark.parametrize("requested, expected", [
    (None, 10),
    (0, 10),
    (-5, 10),
    (1, 1),
    (50, 50),
    (500, 100),
])
def test_normalize_limit(requested, expected):
    assert Config.LEADERBOARD_DEFAULT_LIMIT == 10
    assert Config.LEADERBOARD_MAX_LIMIT == 100
    assert LeaderboardService.normalize_limit(requested) == expected


async def test_leaderboard_never_exceeds_limit(engine, clock):
    for n in range(12):
        await engine.complete_task(f"user-{n:02d}", 1)

    assert len(await engine.get_leaderboard()) == 10
    assert len(await engine.get_leaderboard(0)) == 10
    assert len(await engine.get_leaderboard(500)) == 12
    assert all(entry.rank == 1 for entry in await engine.get_leaderboard(500))


async def test_empty_leaderboard(engine):
    assert await engine.get_leaderboard() == []


async def test_user_rank(ranked):
    alice = await ranked.user_rank("alice")
    bob = await ranked.user_rank("bob")
    carol = await ranked.user_rank("carol")

    assert (alice.rank, alice.points) == (1, 60)
    assert (bob.rank, bob.points) == (1, 60)
    assert (carol.rank, carol.points) == (3, 40)
    assert await ranked.user_rank("nobody") is None


async def test_cached_page_is_served_until_invalidated(engine, clock):
    cached = LeaderboardService(engine.db.session_factory, cache_ttl=60)
    await engine.complete_task("alice", 1)

    first = await cached.get_leaderboard()
    assert [entry.points for entry in first] == [20]

    await engine.complete_task("bob", 1)
    stale = await cached.get_leaderboard()
    assert [entry.user_id for entry in stale] == ["alice"]

    await cached.invalidate()
    fresh = await cached.get_leaderboard()
    assert [entry.user_id for entry in fresh] == ["alice", "bob"]


async def test_uncached_service_sees_credits_immediately(engine, clock):
    await engine.complete_task("alice", 1)
    assert len(await engine.get_leaderboard()) == 1
    await engine.complete_task("bob", 1)
    assert len(await engine.get_leaderboard()) == 2
