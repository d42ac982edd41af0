"""Automation error taxonomy and exception handlers with request_id in responses."""

from asgi_correlation_id import correlation_id
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.automata.core.logging import get_logger

logger = get_logger(__name__)


class AutomationError(Exception):
    """Base class for engine errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def describe(self) -> str:
        """Render as the error string stored in traces, ledger rows and logs."""
        return f"{type(self).__name__}: {self}"


class FlowValidationError(AutomationError):
    """A flow or block definition is malformed."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class AuthorizationError(AutomationError):
    """Caller may not act on this tenant."""

    status_code = status.HTTP_403_FORBIDDEN


class ProviderError(AutomationError):
    """A downstream email/sms/webhook/store call failed."""

    status_code = status.HTTP_502_BAD_GATEWAY


class MissingRecipient(ProviderError):
    """The resolved recipient of an action is empty."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class RateLimited(AutomationError):
    """Tenant circuit breaker is tripped. Work is deferred, never dropped."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class DuplicateExecution(AutomationError):
    """The (flow, trigger event) key has already been claimed."""

    status_code = status.HTTP_409_CONFLICT


class NotFoundError(AutomationError):
    """A flow or queue item does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


def setup_exception_handlers(app: FastAPI) -> None:
    """Configure exception handlers that include request_id in responses."""

    @app.exception_handler(StarletteHTTPException)
    async def starlette_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.detail,
                "request_id": correlation_id.get(),
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.detail,
                "request_id": correlation_id.get(),
            },
        )

    @app.exception_handler(AutomationError)
    async def automation_exception_handler(
        request: Request, exc: AutomationError
    ) -> JSONResponse:
        logger.info(
            "Automation request rejected",
            error=exc.describe(),
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": str(exc),
                "error": type(exc).__name__,
                "request_id": correlation_id.get(),
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = correlation_id.get()
        logger.exception(
            "Unhandled exception",
            exc_info=exc,
            request_id=request_id,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "request_id": request_id,
            },
        )
