"""Batch loop: claim queued items and run one flow pass per item."""

import os
import socket
import time
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from src.automata.core.circuit_breaker import CircuitBreaker
from src.automata.core.config import EngineConfig
from src.automata.core.db import get_session
from src.automata.core.exceptions import (
    DuplicateExecution,
    FlowValidationError,
    NotFoundError,
    RateLimited,
)
from src.automata.core.logging import bind_item_context, clear_item_context, get_logger
from src.automata.engine import (
    ExecutionMode,
    FlowDefinition,
    FlowInterpreter,
    PassOutcome,
    PassResult,
    build_context,
)
from src.automata.engine.trace import dump_trace
from src.automata.models import AutomationFlow, AutomationQueueItem, RunStatus
from src.automata.models.base import utc_now
from src.automata.repositories import (
    FlowRepository,
    LogRepository,
    QueueRepository,
    RunRepository,
)

logger = get_logger(__name__)

INACTIVE_FLOW_NOTE = "Flow is no longer active"
DUPLICATE_NOTE = "Idempotency: already executed"


@dataclass
class BatchStats:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    retried: int = 0
    dead_lettered: int = 0
    deferred: int = 0
    duplicates: int = 0
    duration_ms: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class WorkUnit(Protocol):
    """Repositories sharing one transaction."""

    queue: QueueRepository
    runs: RunRepository
    flows: FlowRepository
    logs: LogRepository

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


@dataclass
class SqlWorkUnit:
    session: AsyncSession
    queue: QueueRepository
    runs: RunRepository
    flows: FlowRepository
    logs: LogRepository

    @classmethod
    def for_session(cls, session: AsyncSession) -> "SqlWorkUnit":
        return cls(
            session=session,
            queue=QueueRepository(session),
            runs=RunRepository(session),
            flows=FlowRepository(session),
            logs=LogRepository(session),
        )

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()


def sql_work_units(
    engine: AsyncEngine | None = None,
) -> Callable[[], AbstractAsyncContextManager[WorkUnit]]:
    """Factory yielding a fresh session-backed unit per call."""

    @asynccontextmanager
    async def unit() -> AsyncIterator[WorkUnit]:
        async with get_session(engine) as session:
            yield SqlWorkUnit.for_session(session)

    return unit


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"


class AutomationWorker:
    """Processes up to `batch_size` queue items sequentially.

    Each item gets its own transaction. Failures in one item are recorded
    against that item and never stop the batch.
    """

    def __init__(
        self,
        config: EngineConfig,
        interpreter: FlowInterpreter,
        breaker: CircuitBreaker,
        units: Callable[[], AbstractAsyncContextManager[WorkUnit]],
        worker_id: str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.interpreter = interpreter
        self.breaker = breaker
        self.units = units
        self.worker_id = worker_id or default_worker_id()
        self.clock = clock

    async def process_batch(self) -> BatchStats:
        stats = BatchStats()
        started = time.perf_counter()

        for _ in range(self.config.batch_size):
            if not await self._process_next(stats):
                break

        stats.duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info("Automation batch finished", worker_id=self.worker_id, **stats.to_dict())
        return stats

    async def _process_next(self, stats: BatchStats) -> bool:
        """Claim and process one item. False when nothing is claimable."""
        async with self.units() as unit:
            try:
                item = await unit.queue.claim_next(
                    self.worker_id, self.clock(), self.config.lease_seconds
                )
                await unit.commit()
            except SQLAlchemyError as e:
                logger.error("Queue claim failed, ending batch", error=str(e))
                await unit.rollback()
                return False

            if item is None:
                return False

            stats.processed += 1
            item_id = item.id
            bind_item_context(item.id, item.flow_id, item.tenant_id, item.trigger_event_id)
            try:
                await self.process_item(unit, item, stats)
                await unit.commit()
            except Exception as e:
                logger.exception("Queue item processing failed")
                await unit.rollback()
                await self._recover(item_id, f"{type(e).__name__}: {e}", stats)
            finally:
                clear_item_context()
        return True

    async def process_item(
        self, unit: WorkUnit, item: AutomationQueueItem, stats: BatchStats
    ) -> None:
        """Run the claimed item through status check, breaker, ledger and one pass."""
        now = self.clock()

        flow = await unit.flows.get_by_id(item.flow_id)
        if flow is None or flow.tenant_id != item.tenant_id:
            error = NotFoundError(f"Flow {item.flow_id} not found")
            logger.warning("Queue item references a missing flow")
            unit.queue.dead_letter(item, error.describe(), now)
            stats.failed += 1
            stats.dead_lettered += 1
            return

        if not flow.is_active:
            logger.info("Skipping item for inactive flow", flow_status=flow.status)
            unit.queue.complete(item, INACTIVE_FLOW_NOTE, now)
            stats.skipped += 1
            return

        try:
            definition = FlowDefinition.parse(flow)
        except FlowValidationError as e:
            await self._reject_invalid_flow(unit, item, flow, e, now, stats)
            return

        decision = await self.breaker.check(item.tenant_id, unit.runs)
        if decision.tripped:
            limited = RateLimited(decision.describe(self.breaker.window_seconds))
            logger.warning(
                "Circuit breaker tripped, deferring item",
                error=limited.describe(),
                executions_in_window=decision.executions_in_window,
                limit=decision.limit,
            )
            unit.queue.defer(item, self.breaker.cooldown_until(), str(limited))
            stats.skipped += 1
            return

        run = await unit.runs.try_claim(item.tenant_id, flow.id, item.trigger_event_id, now)
        if run is None:
            duplicate = DuplicateExecution(DUPLICATE_NOTE)
            logger.info("Duplicate execution blocked", error=duplicate.describe())
            unit.queue.complete(item, str(duplicate), now)
            stats.skipped += 1
            stats.duplicates += 1
            return

        context = build_context(item.tenant_id, item.event_data or {}, item.context_payload)
        result = await self.interpreter.run_pass(
            definition,
            context,
            item.block_index,
            item.trigger_event_id,
            ExecutionMode.LIVE,
        )

        run_status = await self._finalize(unit, item, flow, result, now, stats)
        trace = dump_trace(result.trace)
        unit.runs.finish(run, run_status, trace, result.error, result.duration_ms, self.clock())
        unit.logs.append(
            tenant_id=item.tenant_id,
            flow_id=flow.id,
            queue_item_id=item.id,
            status=run_status.value,
            trigger_data=item.event_data or {},
            trace=trace,
            error=result.error,
            execution_time_ms=result.duration_ms,
        )
        if run_status is not RunStatus.FAILED:
            await unit.flows.record_run(flow.id, now)

    async def _finalize(
        self,
        unit: WorkUnit,
        item: AutomationQueueItem,
        flow: AutomationFlow,
        result: PassResult,
        now: datetime,
        stats: BatchStats,
    ) -> RunStatus:
        match result.outcome:
            case PassOutcome.DEFERRED:
                # Deferral is always set alongside DEFERRED
                assert result.deferral is not None
                await unit.queue.enqueue(
                    tenant_id=item.tenant_id,
                    flow_id=flow.id,
                    trigger_event_id=result.deferral.trigger_event_id,
                    event_data=item.event_data or {},
                    context_payload=result.deferral.context,
                    block_index=result.deferral.block_index,
                    execute_at=result.deferral.execute_at,
                    max_attempts=self.config.retry_max_attempts,
                )
                logger.info(
                    "Flow deferred",
                    resume_at=result.deferral.execute_at.isoformat(),
                    block_index=result.deferral.block_index,
                )
                unit.queue.complete(item, None, now)
                stats.succeeded += 1
                stats.deferred += 1
                return RunStatus.SUCCESS
            case PassOutcome.COMPLETED if result.skipped:
                unit.queue.complete(item, "Conditions not met", now)
                stats.skipped += 1
                return RunStatus.SKIPPED
            case PassOutcome.COMPLETED:
                unit.queue.complete(item, None, now)
                stats.succeeded += 1
                return RunStatus.SUCCESS
            case PassOutcome.FAILED:
                error = result.error or "Pass failed"
                decision = unit.queue.retry_or_dead_letter(item, error, now, self.config)
                stats.failed += 1
                if decision == "retry":
                    stats.retried += 1
                else:
                    stats.dead_lettered += 1
                logger.warning("Flow pass failed", error=error, decision=decision)
                return RunStatus.FAILED

    async def _reject_invalid_flow(
        self,
        unit: WorkUnit,
        item: AutomationQueueItem,
        flow: AutomationFlow,
        error: FlowValidationError,
        now: datetime,
        stats: BatchStats,
    ) -> None:
        """A malformed flow cannot succeed on retry: record it and dead-letter now."""
        message = error.describe()
        logger.warning("Flow definition is invalid", error=message)

        run = await unit.runs.try_claim(item.tenant_id, flow.id, item.trigger_event_id, now)
        if run is not None:
            unit.runs.finish(run, RunStatus.FAILED, [], message, 0, now)
        unit.logs.append(
            tenant_id=item.tenant_id,
            flow_id=flow.id,
            queue_item_id=item.id,
            status=RunStatus.FAILED.value,
            trigger_data=item.event_data or {},
            trace=[],
            error=message,
            execution_time_ms=0,
        )
        unit.queue.dead_letter(item, message, now)
        stats.failed += 1
        stats.dead_lettered += 1

    async def _recover(self, item_id: UUID, error: str, stats: BatchStats) -> None:
        """After an unexpected fault, count the attempt in a fresh transaction."""
        async with self.units() as unit:
            try:
                item = await unit.queue.get_by_id(item_id)
                if item is None:
                    return
                decision = unit.queue.retry_or_dead_letter(item, error, self.clock(), self.config)
                await unit.commit()
            except SQLAlchemyError as e:
                # The lease expires and another worker reclaims the item
                logger.error("Could not record item failure", error=str(e))
                await unit.rollback()
                return

        stats.failed += 1
        if decision == "retry":
            stats.retried += 1
        else:
            stats.dead_lettered += 1


def summarize(stats: BatchStats) -> dict[str, Any]:
    """Batch response body."""
    return {"success": True, **stats.to_dict()}
