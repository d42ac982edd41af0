"""Tests for the per-tenant circuit breaker (src/automata/core/circuit_breaker.py)."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.automata.core.circuit_breaker import (
    BreakerDecision,
    CircuitBreaker,
    breaker_key,
    reset_script_cache,
)
from src.automata.core.config import EngineConfig

pytestmark = pytest.mark.unit

NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture(autouse=True)
def _reset_script_sha():
    """Each test may bring its own Redis; never reuse a cached script SHA."""
    reset_script_cache()
    yield
    reset_script_cache()


class Clock:
    def __init__(self, start: float = 1_000_000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig(breaker_window_seconds=60, breaker_max_executions=3, breaker_cooldown_seconds=120)


def ledger(count: int = 0) -> AsyncMock:
    counter = AsyncMock()
    counter.count_claimed_since.return_value = count
    return counter


class TestRedisWindow:
    async def test_trips_once_limit_reached(self, config, fake_redis):
        clock = Clock()
        breaker = CircuitBreaker(config, fake_redis, clock=clock)
        tenant_id = uuid4()

        decisions = [await breaker.check(tenant_id, ledger()) for _ in range(4)]

        assert [d.tripped for d in decisions] == [False, False, False, True]
        assert decisions[2].executions_in_window == 3
        assert decisions[3] == BreakerDecision(tripped=True, executions_in_window=3, limit=3)
        # A tripped check records nothing
        assert await fake_redis.zcard(breaker_key(tenant_id)) == 3

    async def test_window_rolls_forward(self, config, fake_redis):
        clock = Clock()
        breaker = CircuitBreaker(config, fake_redis, clock=clock)
        tenant_id = uuid4()
        for _ in range(3):
            await breaker.check(tenant_id, ledger())

        clock.value += 61
        decision = await breaker.check(tenant_id, ledger())

        assert not decision.tripped
        assert decision.executions_in_window == 1

    async def test_tenants_are_independent(self, config, fake_redis):
        breaker = CircuitBreaker(config, fake_redis, clock=Clock())
        busy, quiet = uuid4(), uuid4()
        for _ in range(3):
            await breaker.check(busy, ledger())

        assert (await breaker.check(busy, ledger())).tripped
        assert not (await breaker.check(quiet, ledger())).tripped

    async def test_does_not_consult_ledger(self, config, fake_redis):
        counter = ledger(999)
        breaker = CircuitBreaker(config, fake_redis, clock=Clock())
        await breaker.check(uuid4(), counter)
        counter.count_claimed_since.assert_not_awaited()

    async def test_redis_error_falls_back_to_ledger(self, config):
        redis = AsyncMock()
        redis.script_load.side_effect = RedisConnectionError("down")
        breaker = CircuitBreaker(config, redis, now=lambda: NOW)
        counter = ledger(5)

        decision = await breaker.check(uuid4(), counter)

        assert decision.tripped
        assert decision.executions_in_window == 5


class TestLedgerWindow:
    async def test_counts_claims_in_window(self, config):
        breaker = CircuitBreaker(config, None, now=lambda: NOW)
        tenant_id = uuid4()
        counter = ledger(2)

        decision = await breaker.check(tenant_id, counter)

        assert not decision.tripped
        counter.count_claimed_since.assert_awaited_once_with(tenant_id, NOW - timedelta(seconds=60))

    async def test_trips_at_limit(self, config):
        breaker = CircuitBreaker(config, None, now=lambda: NOW)
        assert (await breaker.check(uuid4(), ledger(3))).tripped


def test_cooldown_and_description(config):
    breaker = CircuitBreaker(config, None, now=lambda: NOW)
    assert breaker.cooldown_until() == NOW + timedelta(minutes=2)
    decision = BreakerDecision(tripped=True, executions_in_window=3, limit=3)
    assert decision.describe(60) == "Circuit breaker: 3 executions in last 60s (limit: 3)"
