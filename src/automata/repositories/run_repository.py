"""Idempotency ledger: one execution right per (flow, trigger event, tenant)."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert
from sqlmodel import col, select

from src.automata.models import AutomationRun, RunStatus
from src.automata.models.base import utc_now
from src.automata.repositories.base import BaseRepository


class RunRepository(BaseRepository[AutomationRun]):
    """Ledger rows are claimed atomically and finished once per pass."""

    model = AutomationRun

    async def try_claim(
        self,
        tenant_id: UUID,
        flow_id: UUID,
        trigger_event_id: str,
        now: datetime | None = None,
    ) -> AutomationRun | None:
        """Claim execution rights for a key.

        A new key, or one whose last pass failed, is claimed and returned.
        A key that is claimed, succeeded or skipped returns None (duplicate).
        Concurrent callers race on the unique constraint; exactly one wins.
        """
        now = now or utc_now()
        stmt = insert(AutomationRun).values(
            id=uuid4(),
            tenant_id=tenant_id,
            flow_id=flow_id,
            trigger_event_id=trigger_event_id,
            status=RunStatus.CLAIMED.value,
            trace=[],
            attempt=1,
            claimed_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["flow_id", "trigger_event_id", "tenant_id"],
            set_={
                "status": RunStatus.CLAIMED.value,
                "attempt": col(AutomationRun.attempt) + 1,
                "claimed_at": now,
                "finished_at": None,
                "error_details": None,
            },
            where=col(AutomationRun.status) == RunStatus.FAILED.value,
        ).returning(AutomationRun)

        result = await self.session.execute(
            stmt, execution_options={"populate_existing": True}
        )
        return result.scalar_one_or_none()

    def finish(
        self,
        run: AutomationRun,
        status: RunStatus,
        trace: list[dict[str, Any]],
        error: str | None,
        execution_time_ms: int,
        now: datetime | None = None,
    ) -> None:
        """Record the pass result on the claimed row (no commit)."""
        run.status = status.value
        run.trace = trace
        run.error_details = error[:2000] if error else None
        run.execution_time_ms = execution_time_ms
        run.finished_at = now or utc_now()
        self.session.add(run)

    async def count_claimed_since(self, tenant_id: UUID, since: datetime) -> int:
        """Executions claimed by a tenant since `since` (circuit breaker fallback)."""
        result = await self.session.execute(
            select(func.count())
            .select_from(AutomationRun)
            .where(
                AutomationRun.tenant_id == tenant_id,
                col(AutomationRun.claimed_at) >= since,
            )
        )
        return int(result.scalar_one())

    async def get_by_key(
        self, tenant_id: UUID, flow_id: UUID, trigger_event_id: str
    ) -> AutomationRun | None:
        result = await self.session.execute(
            select(AutomationRun).where(
                AutomationRun.tenant_id == tenant_id,
                AutomationRun.flow_id == flow_id,
                AutomationRun.trigger_event_id == trigger_event_id,
            )
        )
        return result.scalar_one_or_none()
