import pytest
import pytz
from datetime import datetime

from engagement.database.database import Database
from engagement.main import EngagementEngine
from engagement.utils.clock import FixedClock

# Monday 2 June 2025, 09:00 UTC
MONDAY_MORNING = datetime(2025, 6, 2, 9, 0, tzinfo=pytz.utc)


@pytest.fixture
def clock():
    return FixedClock(MONDAY_MORNING, tz=pytz.utc)


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'engagement.db'}"


@pytest.fixture
async def engine(database_url, clock):
    """Fully wired engine on a fresh database with the leaderboard cache off."""
    eng = EngagementEngine(database=Database(database_url), clock=clock, leaderboard_cache_ttl=0)
    await eng.start()
    yield eng
    await eng.close()
