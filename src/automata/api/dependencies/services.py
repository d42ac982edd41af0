"""Service factory dependencies."""

from typing import Annotated

import httpx
from fastapi import Depends, Request

from src.automata.api.dependencies.db import DBSession
from src.automata.api.dependencies.repositories import FlowRepo, QueueRepo
from src.automata.core.config import EngineConfig, get_settings
from src.automata.core.redis import get_redis
from src.automata.engine import DryRunTracer
from src.automata.services import AutomationWorker, EventService
from src.automata.services.runtime import build_tracer, build_worker


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Outbound client opened in the app lifespan."""
    client: httpx.AsyncClient = request.app.state.http_client
    return client


HttpClient = Annotated[httpx.AsyncClient, Depends(get_http_client)]


def get_engine_config() -> EngineConfig:
    return EngineConfig.from_settings(get_settings())


async def get_automation_worker(http_client: HttpClient) -> AutomationWorker:
    """Worker with its own per-item sessions, independent of the request session."""
    return build_worker(get_settings(), http_client, await get_redis())


def get_dry_run_tracer(http_client: HttpClient) -> DryRunTracer:
    return build_tracer(get_settings(), http_client)


def get_event_service(
    flow_repo: FlowRepo,
    queue_repo: QueueRepo,
    session: DBSession,
    config: Annotated[EngineConfig, Depends(get_engine_config)],
) -> EventService:
    return EventService(flow_repo, queue_repo, session, config)


Worker = Annotated[AutomationWorker, Depends(get_automation_worker)]
Tracer = Annotated[DryRunTracer, Depends(get_dry_run_tracer)]
EventSvc = Annotated[EventService, Depends(get_event_service)]
