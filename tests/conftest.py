"""Shared pytest fixtures for all test modules."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from argon2 import PasswordHasher

from gp51link.auth.offline import OfflineSessionStore
from gp51link.gp51.client import GP51Client
from gp51link.reliability.types import RateLimitConfig
from gp51link.store.supabase import SupabaseStore
from gp51link.store.types import GP51Session, utc_now

VALID_TOKEN = "a1b2c3d4e5f6a7b8c9d0e1f2a3b4c5d6"


def make_session(
    username: str = "fleet_admin",
    token: object = VALID_TOKEN,
    expires_in: timedelta = timedelta(hours=12),
    session_id: str | None = "session-1",
) -> GP51Session:
    return GP51Session(
        id=session_id,
        username=username,
        gp51_token=token,
        token_expires_at=utc_now() + expires_in,
        api_url="https://www.gps51.com/webapi",
    )


@pytest.fixture
def fast_config() -> RateLimitConfig:
    """No interval spacing and no batch pause, so only backoff sleeps remain."""
    return RateLimitConfig(min_request_interval=0.0, batch_delay=0.0)


@pytest.fixture
def valid_session() -> GP51Session:
    return make_session()


@pytest.fixture
def expired_session() -> GP51Session:
    return make_session(expires_in=-timedelta(hours=1))


@pytest.fixture
def mock_store() -> AsyncMock:
    return AsyncMock(spec=SupabaseStore)


@pytest.fixture
def mock_client() -> AsyncMock:
    client = AsyncMock(spec=GP51Client)
    client.api_url = "https://www.gps51.com/webapi"
    return client


@pytest.fixture
def session_factory():
    return make_session


@pytest.fixture
def offline_store(tmp_path) -> OfflineSessionStore:
    """Offline sessions under tmp_path, hashed with minimal argon2 cost."""
    hasher = PasswordHasher(time_cost=1, memory_cost=1024, parallelism=1)
    return OfflineSessionStore(tmp_path, hasher=hasher)
