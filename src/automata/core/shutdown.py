"""In-flight work tracking for graceful shutdown.

Used by the API for requests and by the polling worker for batches, so a
stop signal lets the current unit of work finish before connections close.
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from src.automata.core.logging import get_logger

logger = get_logger(__name__)


class RequestTracker:
    """Counts in-flight units of work and signals when they have drained."""

    def __init__(self) -> None:
        self._in_flight = 0
        self._shutting_down = False
        self._lock = asyncio.Lock()
        self._drain_event = asyncio.Event()

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def in_flight_count(self) -> int:
        return self._in_flight

    @asynccontextmanager
    async def track_request(self) -> AsyncGenerator[None]:
        """Count the enclosed block as in-flight work."""
        async with self._lock:
            self._in_flight += 1
        try:
            yield
        finally:
            async with self._lock:
                self._in_flight -= 1
                if self._in_flight == 0 and self._shutting_down:
                    self._drain_event.set()

    def request_shutdown(self) -> None:
        """Stop accepting new work. Safe to call from a signal handler."""
        self._shutting_down = True

    async def start_shutdown(self) -> None:
        """Stop accepting new work and arm the drain event."""
        logger.info("Shutdown started", in_flight=self._in_flight)
        self._shutting_down = True
        async with self._lock:
            if self._in_flight == 0:
                self._drain_event.set()

    async def wait_for_drain(self, timeout: float) -> bool:
        """Wait until in-flight work finishes.

        Returns:
            True if everything drained within timeout, False otherwise.
        """
        try:
            await asyncio.wait_for(self._drain_event.wait(), timeout=timeout)
            logger.info("In-flight work drained")
            return True
        except TimeoutError:
            logger.warning(
                "Shutdown timed out with work still in flight",
                timeout=timeout,
                in_flight=self._in_flight,
            )
            return False

    def reset(self) -> None:
        """Reset tracker state. For testing only."""
        self._in_flight = 0
        self._shutting_down = False
        self._drain_event = asyncio.Event()


# Global request tracker instance
request_tracker = RequestTracker()
