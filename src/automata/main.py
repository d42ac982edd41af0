from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from asgi_correlation_id import CorrelationIdMiddleware, correlation_id
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import RequestResponseEndpoint

from src.automata.api.v1.router import api_router
from src.automata.core.config import get_settings
from src.automata.core.db import dispose_engine
from src.automata.core.exceptions import setup_exception_handlers
from src.automata.core.health import setup_health_endpoint, setup_metrics
from src.automata.core.logging import (
    bind_request_context,
    clear_request_context,
    get_logger,
    setup_logging,
)
from src.automata.core.redis import close_redis
from src.automata.core.shutdown import request_tracker
from src.automata.services.runtime import build_http_client

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan - startup and shutdown."""
    settings = get_settings()
    setup_logging(settings.debug)
    logger.info("Starting service", app_name=settings.app_name, env=settings.app_env)

    app.state.http_client = build_http_client(settings)

    yield

    # Graceful shutdown: let in-flight batches finish before closing pools
    grace_period = settings.shutdown_grace_period
    logger.info("Shutdown initiated", in_flight_requests=request_tracker.in_flight_count)

    await request_tracker.start_shutdown()
    drained = await request_tracker.wait_for_drain(timeout=grace_period)
    if not drained:
        logger.warning(
            "Shutdown timeout, requests may not have completed",
            grace_period=grace_period,
            in_flight_requests=request_tracker.in_flight_count,
        )

    logger.info("Closing connections...")
    await app.state.http_client.aclose()
    await close_redis()
    await dispose_engine()
    logger.info("Shutdown complete")


OPENAPI_TAGS = [
    {"name": "automation", "description": "Batch execution, dry runs and event intake"},
]


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Automation execution engine",
        version="0.1.0",
        openapi_tags=OPENAPI_TAGS,
        lifespan=lifespan,
        openapi_url="/openapi.json" if settings.enable_openapi else None,
    )

    setup_exception_handlers(app)

    # Add correlation ID middleware first (outermost middleware)
    app.add_middleware(CorrelationIdMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type", "X-Dry-Run", "X-Request-ID"],
    )

    @app.middleware("http")
    async def logging_context_middleware(
        request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Bind request_id to log context for all requests."""
        clear_request_context()
        bind_request_context(correlation_id.get())
        try:
            return await call_next(request)
        finally:
            clear_request_context()

    @app.middleware("http")
    async def track_requests_middleware(
        request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Track in-flight requests for graceful shutdown."""
        if request.url.path in ["/health", "/metrics"]:
            return await call_next(request)

        async with request_tracker.track_request():
            return await call_next(request)

    app.include_router(api_router)
    setup_metrics(app)
    setup_health_endpoint(app)

    return app


app = create_app()
