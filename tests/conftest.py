"""Shared fixtures: virtual clock, settings and a service with mocked collaborators."""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from charterboard.cache.memory_cache import LeaderboardCache
from charterboard.cache.position_store import InMemoryPositionStore
from charterboard.clients.engine_client import DispatchResult, EngineClient, NotificationClient
from charterboard.config.settings import Settings
from charterboard.services.realtime_service import LeaderboardRealtimeService


class FakeClock:
    """Manually advanced clock returning aware UTC datetimes."""

    def __init__(self, start: datetime = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


SAMPLE_ROWS = [
    {"position": 1, "userId": "captain_a", "compositeScore": 912.5},
    {"position": 2, "userId": "angler_b", "compositeScore": 880.0},
    {"position": 3, "userId": "angler_c", "compositeScore": 731.2},
]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def test_settings():
    return Settings(nextauth_url="http://charter.test", redis_url=None)


@pytest.fixture
def cache(clock):
    return LeaderboardCache(clock=clock)


@pytest.fixture
def engine():
    engine = AsyncMock(spec=EngineClient)
    engine.fetch_leaderboard.return_value = {
        "leaderboard": list(SAMPLE_ROWS),
        "metadata": {"totalPlayers": 3},
    }
    engine.fetch_user_position.return_value = None
    engine.trigger_recalculation.return_value = DispatchResult(ok=True, status=200)
    return engine


@pytest.fixture
def notifier():
    notifier = AsyncMock(spec=NotificationClient)
    notifier.send.return_value = DispatchResult(ok=True, status=200, sent=1)
    return notifier


@pytest.fixture
def positions():
    return InMemoryPositionStore()


@pytest.fixture
def service(cache, engine, notifier, positions, test_settings, clock):
    return LeaderboardRealtimeService(
        cache=cache,
        engine=engine,
        notifier=notifier,
        positions=positions,
        settings=test_settings,
        clock=clock,
    )
