"""Optional Redis client shared by worker processes.

When Redis is not configured or unreachable, callers get None and the
circuit breaker counts executions in the ledger table instead.
"""

from redis.asyncio import ConnectionPool, Redis

from src.automata.core.config import get_settings
from src.automata.core.logging import get_logger

logger = get_logger(__name__)

_pool: ConnectionPool | None = None
_redis: Redis | None = None
_connection_attempted: bool = False


async def get_redis() -> Redis | None:
    """Get Redis client, or None when unavailable.

    The connection is lazily initialized on first call and reused thereafter.
    A failed connection attempt is not retried until close_redis() is called.
    """
    global _pool, _redis, _connection_attempted

    if _redis is not None:
        return _redis

    if _connection_attempted:
        return None

    _connection_attempted = True
    settings = get_settings()

    if not settings.redis_url:
        logger.info("Redis not configured, breaker will use the ledger table")
        return None

    try:
        _pool = ConnectionPool.from_url(
            settings.redis_url,
            max_connections=settings.redis_pool_size,
            decode_responses=True,
        )
        _redis = Redis(connection_pool=_pool)
        await _redis.ping()  # type: ignore[misc]
        logger.info("Redis connected successfully")
        return _redis

    except Exception as e:
        logger.warning("Redis connection failed, using ledger table for breaker", error=str(e))
        if _redis:
            await _redis.aclose()
            _redis = None
        if _pool:
            await _pool.disconnect()
            _pool = None
        return None


async def close_redis() -> None:
    """Close Redis connection pool. Called during shutdown."""
    global _pool, _redis, _connection_attempted

    if _redis:
        await _redis.aclose()
        logger.info("Redis connection closed")
    if _pool:
        await _pool.disconnect()

    _redis = None
    _pool = None
    _connection_attempted = False


def reset_redis_state() -> None:
    """Forget the cached client so tests can reinitialize it."""
    global _pool, _redis, _connection_attempted
    _redis = None
    _pool = None
    _connection_attempted = False
