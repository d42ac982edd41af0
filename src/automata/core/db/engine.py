"""Async engine shared by the API and the polling worker."""

import ssl
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from src.automata.core.config import Settings, get_settings

_engine: AsyncEngine | None = None


def _ssl_context(mode: str) -> ssl.SSLContext | None:
    """Map a libpq-style sslmode onto an SSLContext for asyncpg."""
    if mode == "disable":
        return None

    context = ssl.create_default_context()
    if mode in ("verify-ca", "verify-full"):
        context.check_hostname = mode == "verify-full"
        context.verify_mode = ssl.CERT_REQUIRED
    else:
        # prefer / require: encrypt without verifying the server
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def _connect_args(settings: Settings) -> dict[str, Any]:
    connect_args: dict[str, Any] = {
        "statement_cache_size": settings.database_statement_cache_size,
        # Shows up in pg_stat_activity next to the row locks a worker holds
        "server_settings": {"application_name": settings.app_name.lower()},
    }
    context = _ssl_context(settings.database_ssl_mode)
    if context is not None:
        connect_args["ssl"] = context
    return connect_args


def get_engine() -> AsyncEngine:
    """Get or create the database engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
            connect_args=_connect_args(settings),
        )
    return _engine


async def dispose_engine() -> None:
    """Dispose the database engine. Call during shutdown."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
