"""Root test fixtures shared across all test types.

This conftest contains fixtures that can be used by both unit and integration tests.
Database-specific fixtures are in tests/integration/conftest.py.
"""

import os

os.environ.setdefault("APP_ENV", "testing")
# Disable SSL for local test database (PostgreSQL without SSL support)
os.environ.setdefault("DATABASE_SSL_MODE", "disable")
os.environ.setdefault("AUTOMATION_SERVICE_KEY", "test-service-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-that-is-at-least-32-characters")
os.environ.setdefault("REDIS_URL", "")

# ruff: noqa: E402 - Imports must be after env var setup
from collections.abc import AsyncGenerator

import pytest
from fakeredis import aioredis as fakeredis_aio
from redis.asyncio import Redis

from src.automata.core import circuit_breaker
from src.automata.core import redis as redis_core
from src.automata.core.config import EngineConfig, get_settings

# Clear settings cache to ensure test environment variables are picked up
get_settings.cache_clear()

SERVICE_KEY = os.environ["AUTOMATION_SERVICE_KEY"]


@pytest.fixture
def engine_config() -> EngineConfig:
    """Small, fast tunables for orchestration tests."""
    return EngineConfig(
        batch_size=5,
        lease_seconds=60,
        breaker_window_seconds=60,
        breaker_max_executions=3,
        breaker_cooldown_seconds=120,
        retry_max_attempts=3,
        retry_backoff_base_seconds=60,
        retry_backoff_max_seconds=3600,
        outbound_timeout_seconds=2.0,
    )


# --- Redis Test Fixtures (shared) ---


@pytest.fixture
async def fake_redis() -> AsyncGenerator[Redis]:
    """Provides a fakeredis client for testing.

    Returns an in-memory Redis implementation (with Lua scripting) that
    behaves like a real Redis server but doesn't require external dependencies.
    """
    circuit_breaker.reset_script_cache()
    client = fakeredis_aio.FakeRedis(decode_responses=True)
    yield client
    await client.aclose()
    circuit_breaker.reset_script_cache()


@pytest.fixture
async def mock_redis(fake_redis: Redis, monkeypatch: pytest.MonkeyPatch) -> AsyncGenerator[Redis]:
    """Patches get_redis() to return fakeredis client."""
    redis_core.reset_redis_state()

    async def _get_fake_redis() -> Redis:
        return fake_redis

    monkeypatch.setattr("src.automata.core.redis.get_redis", _get_fake_redis)
    monkeypatch.setattr("src.automata.core.health.get_redis", _get_fake_redis)
    yield fake_redis
    redis_core.reset_redis_state()


@pytest.fixture
async def mock_redis_unavailable(monkeypatch: pytest.MonkeyPatch) -> AsyncGenerator[None]:
    """Patches get_redis() to return None (simulates Redis unavailable)."""
    redis_core.reset_redis_state()

    async def _get_none() -> None:
        return None

    monkeypatch.setattr("src.automata.core.redis.get_redis", _get_none)
    monkeypatch.setattr("src.automata.core.health.get_redis", _get_none)
    yield
    redis_core.reset_redis_state()
