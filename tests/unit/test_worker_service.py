"""Tests for the batch loop (src/automata/services/worker_service.py).

The worker runs against in-memory repositories (tests/fakes.py) so every
branch of item processing can be driven without PostgreSQL.
"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import httpx
import pytest

from src.automata.core.circuit_breaker import CircuitBreaker
from src.automata.core.config import EngineConfig
from src.automata.core.exceptions import ProviderError
from src.automata.engine import ActionDispatcher, FlowInterpreter
from src.automata.models import QueueStatus, RunStatus
from src.automata.services.worker_service import (
    DUPLICATE_NOTE,
    INACTIVE_FLOW_NOTE,
    AutomationWorker,
    BatchStats,
    summarize,
)
from tests.factories import (
    AutomationFlowFactory,
    AutomationQueueItemFactory,
    AutomationRunFactory,
    delay_block,
    email_block,
)
from tests.fakes import FakeWorkUnit, unit_factory

pytestmark = pytest.mark.unit

T0 = datetime(2026, 3, 1, 12, 0, 0)


class Clock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def email() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def unit() -> FakeWorkUnit:
    return FakeWorkUnit()


@pytest.fixture
def worker(engine_config: EngineConfig, unit: FakeWorkUnit, email: AsyncMock, clock: Clock):
    dispatcher = ActionDispatcher(
        email=email,
        sms=AsyncMock(),
        notifications=AsyncMock(),
        jobs=AsyncMock(),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))),
        timeout_seconds=1.0,
    )
    return AutomationWorker(
        config=engine_config,
        interpreter=FlowInterpreter(dispatcher, clock=clock),
        breaker=CircuitBreaker(engine_config, None, now=clock),
        units=unit_factory(unit),
        worker_id="test-worker",
        clock=clock,
    )


def seed(unit: FakeWorkUnit, flow=None, **item_kwargs):
    flow = flow or AutomationFlowFactory.build()
    unit.flows.flows[flow.id] = flow
    item = AutomationQueueItemFactory.for_flow(flow, execute_at=T0 - timedelta(minutes=1), **item_kwargs)
    unit.queue.add_item(item)
    return flow, item


class TestHappyPath:
    async def test_executes_flow_and_records_everything(self, worker, unit, email):
        flow, item = seed(unit)

        stats = await worker.process_batch()

        assert stats.processed == 1
        assert stats.succeeded == 1
        assert stats.failed == 0
        email.send.assert_awaited_once_with(
            to="client@example.com", subject="Hi Ada", html="Welcome"
        )
        assert item.status == QueueStatus.COMPLETED.value
        assert item.locked_by is None

        run = unit.runs.get(flow.tenant_id, flow.id, item.trigger_event_id)
        assert run.status == RunStatus.SUCCESS.value
        assert run.trace[0]["step"] == "action_0"
        assert run.finished_at == T0

        assert len(unit.logs.entries) == 1
        assert unit.logs.entries[0].status == RunStatus.SUCCESS.value
        assert unit.logs.entries[0].queue_item_id == item.id
        assert flow.run_count == 1
        assert flow.last_run == T0

    async def test_empty_queue(self, worker):
        stats = await worker.process_batch()
        assert stats == BatchStats(duration_ms=stats.duration_ms)

    async def test_batch_size_bounds_the_loop(self, worker, unit, engine_config):
        flow = AutomationFlowFactory.build()
        for _ in range(engine_config.batch_size + 2):
            seed(unit, flow)

        stats = await worker.process_batch()

        assert stats.processed == engine_config.batch_size
        untouched = [
            i
            for i in unit.queue.items.values()
            if i.status == QueueStatus.PENDING.value and i.execute_at < T0
        ]
        assert len(untouched) == 2

    async def test_future_items_are_not_claimed(self, worker, unit):
        flow = AutomationFlowFactory.build()
        unit.flows.flows[flow.id] = flow
        unit.queue.add_item(AutomationQueueItemFactory.for_flow(flow, execute_at=T0 + timedelta(hours=1)))

        stats = await worker.process_batch()

        assert stats.processed == 0


class TestSkips:
    async def test_inactive_flow_completes_without_retry(self, worker, unit, email):
        flow, item = seed(unit, AutomationFlowFactory.paused())

        stats = await worker.process_batch()

        assert stats.skipped == 1
        assert item.status == QueueStatus.COMPLETED.value
        assert item.last_error == INACTIVE_FLOW_NOTE
        assert item.attempt_count == 0
        email.send.assert_not_awaited()

    async def test_duplicate_is_blocked(self, worker, unit, email):
        flow, item = seed(unit)
        unit.runs.runs[(flow.tenant_id, flow.id, item.trigger_event_id)] = AutomationRunFactory.build(
            tenant_id=flow.tenant_id,
            flow_id=flow.id,
            trigger_event_id=item.trigger_event_id,
            status=RunStatus.SUCCESS.value,
            claimed_at=T0 - timedelta(days=1),
        )

        stats = await worker.process_batch()

        assert stats.skipped == 1
        assert stats.duplicates == 1
        assert item.status == QueueStatus.COMPLETED.value
        assert item.last_error == DUPLICATE_NOTE
        assert unit.logs.entries == []
        email.send.assert_not_awaited()

    async def test_conditions_not_met(self, worker, unit, email):
        flow = AutomationFlowFactory.build(conditions={"==": [{"var": "trigger.name"}, "Grace"]})
        _, item = seed(unit, flow)

        stats = await worker.process_batch()

        assert stats.skipped == 1
        run = unit.runs.get(flow.tenant_id, flow.id, item.trigger_event_id)
        assert run.status == RunStatus.SKIPPED.value
        assert item.status == QueueStatus.COMPLETED.value
        assert flow.run_count == 1
        email.send.assert_not_awaited()

    async def test_circuit_breaker_defers(self, worker, unit, email, engine_config):
        flow, item = seed(unit)
        for _ in range(engine_config.breaker_max_executions):
            run = AutomationRunFactory.build(tenant_id=flow.tenant_id, claimed_at=T0 - timedelta(seconds=5))
            unit.runs.runs[(run.tenant_id, run.flow_id, run.trigger_event_id)] = run

        stats = await worker.process_batch()

        assert stats.skipped == 1
        assert stats.failed == 0
        assert item.status == QueueStatus.PENDING.value
        assert item.execute_at == T0 + timedelta(seconds=engine_config.breaker_cooldown_seconds)
        assert item.attempt_count == 0
        assert item.last_error.startswith("Circuit breaker: 3 executions")
        assert unit.runs.get(flow.tenant_id, flow.id, item.trigger_event_id) is None
        email.send.assert_not_awaited()


class TestFailures:
    async def test_failed_action_is_retried_with_backoff(self, worker, unit, email):
        email.send.side_effect = ProviderError("Email provider not configured")
        flow, item = seed(unit)

        stats = await worker.process_batch()

        assert (stats.failed, stats.retried, stats.dead_lettered) == (1, 1, 0)
        assert item.status == QueueStatus.PENDING.value
        assert item.attempt_count == 1
        assert item.execute_at == T0 + timedelta(seconds=60)
        assert item.last_error == "ProviderError: Email provider not configured"

        run = unit.runs.get(flow.tenant_id, flow.id, item.trigger_event_id)
        assert run.status == RunStatus.FAILED.value
        assert run.error_details == "ProviderError: Email provider not configured"
        assert unit.logs.entries[0].status == RunStatus.FAILED.value
        assert flow.run_count == 0

    async def test_retry_reclaims_the_failed_run(self, worker, unit, email, clock):
        email.send.side_effect = [ProviderError("flaky"), None]
        flow, item = seed(unit)

        await worker.process_batch()
        clock.now = T0 + timedelta(minutes=2)
        stats = await worker.process_batch()

        assert stats.succeeded == 1
        run = unit.runs.get(flow.tenant_id, flow.id, item.trigger_event_id)
        assert run.status == RunStatus.SUCCESS.value
        assert run.attempt == 2
        assert item.status == QueueStatus.COMPLETED.value

    async def test_last_attempt_dead_letters(self, worker, unit, email):
        email.send.side_effect = ProviderError("down")
        _, item = seed(unit, attempt_count=2, max_attempts=3)

        stats = await worker.process_batch()

        assert (stats.failed, stats.retried, stats.dead_lettered) == (1, 0, 1)
        assert item.status == QueueStatus.DEAD_LETTER.value
        assert item.attempt_count == 3

    async def test_invalid_flow_is_dead_lettered(self, worker, unit):
        flow = AutomationFlowFactory.build(blocks=[{"type": "teleport"}])
        _, item = seed(unit, flow)

        stats = await worker.process_batch()

        assert (stats.failed, stats.dead_lettered) == (1, 1)
        assert item.status == QueueStatus.DEAD_LETTER.value
        assert item.last_error.startswith("FlowValidationError:")
        run = unit.runs.get(flow.tenant_id, flow.id, item.trigger_event_id)
        assert run.status == RunStatus.FAILED.value
        assert unit.logs.entries[0].error == item.last_error

    async def test_missing_flow_is_dead_lettered(self, worker, unit):
        flow = AutomationFlowFactory.build()
        item = AutomationQueueItemFactory.for_flow(flow, execute_at=T0)
        unit.queue.add_item(item)

        stats = await worker.process_batch()

        assert (stats.failed, stats.dead_lettered) == (1, 1)
        assert item.status == QueueStatus.DEAD_LETTER.value
        assert item.last_error == f"NotFoundError: Flow {flow.id} not found"

    async def test_unexpected_fault_is_recovered_and_batch_continues(self, worker, unit, email):
        flow, broken = seed(unit)
        _, healthy = seed(unit, flow)
        broken.execute_at = T0 - timedelta(minutes=5)

        original = unit.logs.append
        calls = {"n": 0}

        def append_once_broken(**kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("disk full")
            return original(**kwargs)

        unit.logs.append = append_once_broken

        stats = await worker.process_batch()

        assert stats.processed == 2
        assert stats.succeeded == 1
        assert (stats.failed, stats.retried) == (1, 1)
        assert unit.rollbacks == 1
        assert broken.status == QueueStatus.PENDING.value
        assert broken.attempt_count == 1
        assert broken.last_error == "RuntimeError: disk full"
        assert healthy.status == QueueStatus.COMPLETED.value


class TestDelays:
    async def test_delay_enqueues_resumption(self, worker, unit, email, clock):
        flow = AutomationFlowFactory.build(
            blocks=[
                {"id": "t", "type": "trigger", "config": {}},
                delay_block(duration="1h"),
                email_block(subject="Follow-up"),
            ]
        )
        _, item = seed(unit, flow, trigger_event_id="evt_abc")

        stats = await worker.process_batch()

        assert (stats.succeeded, stats.deferred) == (1, 1)
        email.send.assert_not_awaited()
        assert item.status == QueueStatus.COMPLETED.value

        resumption = unit.queue.find(flow.tenant_id, flow.id, "evt_abc_delay_0")
        assert resumption is not None
        assert resumption.block_index == 1
        assert resumption.execute_at == T0 + timedelta(hours=1)
        assert resumption.status == QueueStatus.PENDING.value
        assert resumption.context_payload["trigger"] == item.event_data

        clock.now = T0 + timedelta(hours=1, seconds=1)
        stats = await worker.process_batch()

        assert stats.succeeded == 1
        email.send.assert_awaited_once()
        assert email.send.await_args.kwargs["subject"] == "Follow-up"
        resumed_run = unit.runs.get(flow.tenant_id, flow.id, "evt_abc_delay_0")
        assert resumed_run.status == RunStatus.SUCCESS.value
        assert flow.run_count == 2


def test_summarize():
    stats = BatchStats(processed=2, succeeded=1, skipped=1, duration_ms=12)
    body = summarize(stats)
    assert body["success"] is True
    assert body["processed"] == 2
    assert body["duration_ms"] == 12
