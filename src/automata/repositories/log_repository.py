"""Repository for AutomationLog entity (append-only)."""

from typing import Any
from uuid import UUID

from src.automata.models import AutomationLog
from src.automata.repositories.base import BaseRepository


class LogRepository(BaseRepository[AutomationLog]):
    model = AutomationLog

    def append(
        self,
        *,
        tenant_id: UUID,
        flow_id: UUID,
        queue_item_id: UUID | None,
        status: str,
        trigger_data: dict[str, Any],
        trace: list[dict[str, Any]],
        error: str | None,
        execution_time_ms: int | None,
    ) -> AutomationLog:
        """Add a log entry to the session (no commit)."""
        entry = AutomationLog(
            tenant_id=tenant_id,
            flow_id=flow_id,
            queue_item_id=queue_item_id,
            status=status,
            trigger_data=trigger_data,
            trace=trace,
            error=error[:2000] if error else None,
            execution_time_ms=execution_time_ms,
        )
        self.add(entry)
        return entry
