"""Per-tenant circuit breaker over a rolling execution window.

Counts live in shared storage so every worker process sees the same totals:
a Redis sorted set per tenant when Redis is configured, otherwise the
automation_runs ledger. A tripped breaker defers work; it never drops it.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol
from uuid import UUID, uuid4

from redis.asyncio import Redis

from src.automata.core.config import EngineConfig
from src.automata.core.logging import get_logger
from src.automata.models.base import utc_now

logger = get_logger(__name__)

# Lua script for an atomic rolling-window check-and-record.
# Returns {tripped, executions_in_window}. A tripped call records nothing.
_REDIS_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local member = ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)

if count >= limit then
    return {1, count}
end

redis.call('ZADD', key, now, member)
redis.call('EXPIRE', key, window + 60)
return {0, count + 1}
"""

# Cache for registered Lua script SHA
_script_sha: str | None = None


class LedgerCounter(Protocol):
    async def count_claimed_since(self, tenant_id: UUID, since: datetime) -> int: ...


@dataclass(frozen=True)
class BreakerDecision:
    tripped: bool
    executions_in_window: int
    limit: int

    def describe(self, window_seconds: int) -> str:
        return (
            f"Circuit breaker: {self.executions_in_window} executions in last "
            f"{window_seconds}s (limit: {self.limit})"
        )


def breaker_key(tenant_id: UUID) -> str:
    return f"automation:breaker:{tenant_id}"


async def _get_or_register_script(redis: Redis) -> str:
    global _script_sha
    if _script_sha is None:
        _script_sha = await redis.script_load(_REDIS_WINDOW_SCRIPT)
    return _script_sha


def reset_script_cache() -> None:
    global _script_sha
    _script_sha = None


class CircuitBreaker:
    """Decides whether a tenant may run another pass right now."""

    def __init__(
        self,
        config: EngineConfig,
        redis: Redis | None = None,
        clock: Callable[[], float] = time.time,
        now: Callable[[], datetime] = utc_now,
    ):
        self._config = config
        self._redis = redis
        self._clock = clock
        self._now = now

    @property
    def limit(self) -> int:
        return self._config.breaker_max_executions

    @property
    def window_seconds(self) -> int:
        return self._config.breaker_window_seconds

    def cooldown_until(self) -> datetime:
        return self._now() + timedelta(seconds=self._config.breaker_cooldown_seconds)

    async def check(self, tenant_id: UUID, ledger: LedgerCounter) -> BreakerDecision:
        """Check the tenant's window. With Redis the execution is also recorded.

        Redis errors fall back to counting ledger rows for this call.
        """
        if self._redis is not None:
            try:
                return await self._check_redis(tenant_id)
            except Exception as e:
                logger.warning(
                    "Redis breaker check failed, falling back to ledger",
                    error=str(e),
                    tenant_id=str(tenant_id),
                )
                # Reset script SHA in case Redis restarted
                reset_script_cache()

        return await self._check_ledger(tenant_id, ledger)

    async def _check_redis(self, tenant_id: UUID) -> BreakerDecision:
        assert self._redis is not None
        sha = await _get_or_register_script(self._redis)
        now = self._clock()
        tripped, count = await self._redis.evalsha(  # type: ignore[misc]
            sha,
            1,
            breaker_key(tenant_id),
            str(now),
            str(self.window_seconds),
            str(self.limit),
            f"{now}:{uuid4().hex}",
        )
        return BreakerDecision(
            tripped=bool(int(tripped)),
            executions_in_window=int(count),
            limit=self.limit,
        )

    async def _check_ledger(self, tenant_id: UUID, ledger: LedgerCounter) -> BreakerDecision:
        since = self._now() - timedelta(seconds=self.window_seconds)
        count = await ledger.count_claimed_since(tenant_id, since)
        return BreakerDecision(
            tripped=count >= self.limit,
            executions_in_window=count,
            limit=self.limit,
        )
