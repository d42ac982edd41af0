"""Repository for AutomationFlow entity."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import update
from sqlmodel import col, select

from src.automata.models import AutomationFlow, FlowStatus
from src.automata.repositories.base import BaseRepository


class FlowRepository(BaseRepository[AutomationFlow]):
    """Flows are authored elsewhere; the engine reads them and bumps run counters."""

    model = AutomationFlow

    async def list_active_for_tenant(self, tenant_id: UUID) -> list[AutomationFlow]:
        """List the tenant's active flows, oldest first."""
        result = await self.session.execute(
            select(AutomationFlow)
            .where(
                AutomationFlow.tenant_id == tenant_id,
                AutomationFlow.status == FlowStatus.ACTIVE.value,
            )
            .order_by(col(AutomationFlow.created_at))
        )
        return list(result.scalars().all())

    async def record_run(self, flow_id: UUID, now: datetime) -> None:
        """Increment run_count and set last_run in one statement."""
        await self.session.execute(
            update(AutomationFlow)
            .where(col(AutomationFlow.id) == flow_id)
            .values(run_count=col(AutomationFlow.run_count) + 1, last_run=now)
            .execution_options(synchronize_session=False)
        )
