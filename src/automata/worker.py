"""
Automation polling worker - separate process from the API.

Run with:
    uv run python -m src.automata.worker            # Poll forever
    uv run python -m src.automata.worker --once     # Process one batch and exit
"""

import argparse
import asyncio
import signal

from src.automata.core.config import get_settings
from src.automata.core.db import dispose_engine
from src.automata.core.logging import get_logger, setup_logging
from src.automata.core.redis import close_redis, get_redis
from src.automata.core.shutdown import RequestTracker
from src.automata.services.runtime import build_http_client, build_worker
from src.automata.services.worker_service import AutomationWorker

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the polling loop."""
    parser = argparse.ArgumentParser(description="Automation queue worker")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Process a single batch and exit",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds to sleep between batches (default: WORKER_POLL_INTERVAL_SECONDS)",
    )
    return parser.parse_args(argv)


async def run_loop(
    worker: AutomationWorker,
    tracker: RequestTracker,
    interval: float,
    once: bool = False,
) -> int:
    """Run batches until stopped. Returns the number of batches processed.

    A stop request never interrupts a batch: the loop exits at the next
    boundary, after the in-flight batch has committed.
    """
    batches = 0
    while not tracker.is_shutting_down:
        async with tracker.track_request():
            stats = await worker.process_batch()
        batches += 1

        if once:
            break
        # A full batch means more work is likely waiting
        if stats.processed >= worker.config.batch_size:
            continue

        try:
            await asyncio.wait_for(_wait_for_shutdown(tracker), timeout=interval)
        except TimeoutError:
            pass
    return batches


async def _wait_for_shutdown(tracker: RequestTracker) -> None:
    while not tracker.is_shutting_down:
        await asyncio.sleep(0.5)


def handle_stop_signal(tracker: RequestTracker, sig: signal.Signals) -> None:
    """Finish the current batch, then exit. The drain itself happens in main()."""
    logger.info("Shutdown signal received", signal=sig.name)
    tracker.request_shutdown()


async def main(argv: list[str] | None = None) -> None:
    """Main entry point for the polling worker."""
    args = parse_args(argv)
    settings = get_settings()
    setup_logging(settings.debug)

    tracker = RequestTracker()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_stop_signal, tracker, sig)

    http_client = build_http_client(settings)
    worker = build_worker(settings, http_client, await get_redis())
    interval = args.interval if args.interval is not None else settings.worker_poll_interval_seconds

    logger.info(
        "Starting automation worker",
        worker_id=worker.worker_id,
        batch_size=worker.config.batch_size,
        interval=interval,
        once=args.once,
    )

    try:
        batches = await run_loop(worker, tracker, interval, once=args.once)
        logger.info("Automation worker stopped", batches=batches)
    finally:
        await tracker.start_shutdown()
        await tracker.wait_for_drain(timeout=settings.shutdown_grace_period)
        await http_client.aclose()
        await close_redis()
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
