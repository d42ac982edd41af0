"""Wiring for the engine's collaborators, shared by the API and the polling worker."""

import httpx
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine

from src.automata.core.circuit_breaker import CircuitBreaker
from src.automata.core.config import EngineConfig, Settings
from src.automata.engine import ActionDispatcher, DryRunTracer, FlowInterpreter
from src.automata.integrations import (
    ResendEmailSender,
    SqlJobStore,
    SqlNotificationStore,
    UnconfiguredSmsSender,
)
from src.automata.services.worker_service import AutomationWorker, sql_work_units


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Client for outbound webhooks. Every request is bounded by the timeout."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.outbound_timeout_seconds),
        follow_redirects=False,
        headers={"User-Agent": f"{settings.app_name}-webhooks"},
    )


def build_dispatcher(settings: Settings, http_client: httpx.AsyncClient) -> ActionDispatcher:
    return ActionDispatcher(
        email=ResendEmailSender.from_settings(settings),
        sms=UnconfiguredSmsSender(),
        notifications=SqlNotificationStore(),
        jobs=SqlJobStore(),
        http_client=http_client,
        timeout_seconds=settings.outbound_timeout_seconds,
    )


def build_tracer(settings: Settings, http_client: httpx.AsyncClient) -> DryRunTracer:
    return DryRunTracer(FlowInterpreter(build_dispatcher(settings, http_client)))


def build_worker(
    settings: Settings,
    http_client: httpx.AsyncClient,
    redis: Redis | None,
    engine: AsyncEngine | None = None,
    worker_id: str | None = None,
) -> AutomationWorker:
    config = EngineConfig.from_settings(settings)
    return AutomationWorker(
        config=config,
        interpreter=FlowInterpreter(build_dispatcher(settings, http_client)),
        breaker=CircuitBreaker(config, redis),
        units=sql_work_units(engine),
        worker_id=worker_id,
    )
