"""In-memory stand-ins for the repositories behind a WorkUnit.

They subclass the real repositories so queue/ledger mutators (complete,
defer, retry_or_dead_letter, finish) run their production code; only the
statements that need PostgreSQL are replaced.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from unittest.mock import MagicMock
from uuid import UUID, uuid4

from src.automata.models import (
    AutomationFlow,
    AutomationLog,
    AutomationQueueItem,
    AutomationRun,
    FlowStatus,
    QueueStatus,
    RunStatus,
)
from src.automata.repositories import (
    FlowRepository,
    LogRepository,
    QueueRepository,
    RunRepository,
)


class FakeQueue(QueueRepository):
    def __init__(self, items: list[AutomationQueueItem] | None = None):
        super().__init__(MagicMock())
        self.items: dict[UUID, AutomationQueueItem] = {item.id: item for item in items or []}

    def add_item(self, item: AutomationQueueItem) -> None:
        self.items[item.id] = item

    async def get_by_id(self, id: UUID) -> AutomationQueueItem | None:
        return self.items.get(id)

    async def claim_next(
        self, worker_id: str, now: datetime, lease_seconds: int
    ) -> AutomationQueueItem | None:
        stale_before = now - timedelta(seconds=lease_seconds)
        due = [
            item
            for item in self.items.values()
            if (item.status == QueueStatus.PENDING.value and item.execute_at <= now)
            or (
                item.status == QueueStatus.PROCESSING.value
                and item.locked_at is not None
                and item.locked_at < stale_before
            )
        ]
        if not due:
            return None
        item = min(due, key=lambda i: i.execute_at)
        item.status = QueueStatus.PROCESSING.value
        item.locked_at = now
        item.locked_by = worker_id
        return item

    async def enqueue(
        self,
        *,
        tenant_id: UUID,
        flow_id: UUID,
        trigger_event_id: str,
        event_data: dict[str, Any],
        context_payload: dict[str, Any] | None = None,
        block_index: int = 0,
        execute_at: datetime | None = None,
        max_attempts: int = 3,
    ) -> UUID | None:
        existing = self.find(tenant_id, flow_id, trigger_event_id)
        if existing is not None:
            if existing.status != QueueStatus.PENDING.value:
                return None
            existing.event_data = event_data
            existing.context_payload = context_payload or {}
            existing.block_index = block_index
            existing.execute_at = execute_at or existing.execute_at
            return existing.id

        item = AutomationQueueItem(
            id=uuid4(),
            tenant_id=tenant_id,
            flow_id=flow_id,
            trigger_event_id=trigger_event_id,
            event_data=event_data,
            context_payload=context_payload or {},
            block_index=block_index,
            max_attempts=max_attempts,
        )
        if execute_at is not None:
            item.execute_at = execute_at
        self.items[item.id] = item
        return item.id

    def find(
        self, tenant_id: UUID, flow_id: UUID, trigger_event_id: str
    ) -> AutomationQueueItem | None:
        for item in self.items.values():
            if (item.tenant_id, item.flow_id, item.trigger_event_id) == (
                tenant_id,
                flow_id,
                trigger_event_id,
            ):
                return item
        return None


class FakeRuns(RunRepository):
    def __init__(self, runs: list[AutomationRun] | None = None):
        super().__init__(MagicMock())
        self.runs: dict[tuple[UUID, UUID, str], AutomationRun] = {
            (run.tenant_id, run.flow_id, run.trigger_event_id): run for run in runs or []
        }

    async def try_claim(
        self,
        tenant_id: UUID,
        flow_id: UUID,
        trigger_event_id: str,
        now: datetime | None = None,
    ) -> AutomationRun | None:
        key = (tenant_id, flow_id, trigger_event_id)
        run = self.runs.get(key)
        if run is None:
            run = AutomationRun(
                tenant_id=tenant_id,
                flow_id=flow_id,
                trigger_event_id=trigger_event_id,
            )
            if now is not None:
                run.claimed_at = now
            self.runs[key] = run
            return run
        if run.status != RunStatus.FAILED.value:
            return None
        run.status = RunStatus.CLAIMED.value
        run.attempt += 1
        run.finished_at = None
        run.error_details = None
        if now is not None:
            run.claimed_at = now
        return run

    async def count_claimed_since(self, tenant_id: UUID, since: datetime) -> int:
        return sum(
            1 for run in self.runs.values() if run.tenant_id == tenant_id and run.claimed_at >= since
        )

    def get(self, tenant_id: UUID, flow_id: UUID, trigger_event_id: str) -> AutomationRun | None:
        return self.runs.get((tenant_id, flow_id, trigger_event_id))


class FakeFlows(FlowRepository):
    def __init__(self, flows: list[AutomationFlow] | None = None):
        super().__init__(MagicMock())
        self.flows: dict[UUID, AutomationFlow] = {flow.id: flow for flow in flows or []}

    async def get_by_id(self, id: UUID) -> AutomationFlow | None:
        return self.flows.get(id)

    async def list_active_for_tenant(self, tenant_id: UUID) -> list[AutomationFlow]:
        return [
            flow
            for flow in self.flows.values()
            if flow.tenant_id == tenant_id and flow.status == FlowStatus.ACTIVE.value
        ]

    async def record_run(self, flow_id: UUID, now: datetime) -> None:
        flow = self.flows[flow_id]
        flow.run_count += 1
        flow.last_run = now


class FakeLogs(LogRepository):
    def __init__(self) -> None:
        super().__init__(MagicMock())
        self.entries: list[AutomationLog] = []

    def append(self, **kwargs: Any) -> AutomationLog:
        entry = super().append(**kwargs)
        self.entries.append(entry)
        return entry


@dataclass
class FakeWorkUnit:
    queue: FakeQueue = field(default_factory=FakeQueue)
    runs: FakeRuns = field(default_factory=FakeRuns)
    flows: FakeFlows = field(default_factory=FakeFlows)
    logs: FakeLogs = field(default_factory=FakeLogs)
    commits: int = 0
    rollbacks: int = 0

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


def unit_factory(unit: FakeWorkUnit):
    """A `units` callable that hands out the same in-memory unit every time."""

    @asynccontextmanager
    async def units() -> AsyncIterator[FakeWorkUnit]:
        yield unit

    return units
