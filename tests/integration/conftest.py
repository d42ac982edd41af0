"""Integration test fixtures for database operations.

These fixtures require external resources (PostgreSQL database).
Uses polyfactory for type-safe test data generation.
"""

import asyncio
from collections.abc import AsyncGenerator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

from src.automata.core import redis as redis_core
from src.automata.core.config import get_settings
from src.automata.core.db import dispose_engine, run_migrations_sync

_ENGINE_TABLES = ("automation_logs", "automation_runs", "automation_queue", "automation_flows")


@pytest.fixture(autouse=True)
async def _reset_redis_between_tests() -> AsyncGenerator[None]:
    """Close the Redis client after each test; it is bound to the test's event loop."""
    redis_core.reset_redis_state()
    yield
    await redis_core.close_redis()


@pytest.fixture(scope="function")
async def engine() -> AsyncGenerator[AsyncEngine]:
    """Create test database engine and ensure migrations are applied."""
    await dispose_engine()

    settings = get_settings()
    test_engine = create_async_engine(settings.database_url, poolclass=NullPool)

    await asyncio.to_thread(run_migrations_sync)

    yield test_engine
    await test_engine.dispose()


@pytest.fixture
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    """Provide an async session for database operations.

    The session does NOT auto-commit. Tests call `await session.commit()`
    to make rows visible to other sessions.
    """
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
async def tenant_id(engine: AsyncEngine) -> AsyncGenerator[UUID]:
    """A fresh tenant id whose engine rows are removed after the test."""
    tenant = uuid4()
    yield tenant

    async with engine.connect() as conn:
        for table in _ENGINE_TABLES:
            await conn.execute(
                text(f"DELETE FROM public.{table} WHERE tenant_id = :tenant_id"),
                {"tenant_id": tenant},
            )
        await conn.commit()
