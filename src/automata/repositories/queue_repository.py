"""Work queue access: lease-based claiming, enqueue and finalization."""

from datetime import datetime, timedelta
from typing import Any, Literal
from uuid import UUID, uuid4

from sqlalchemy import and_, or_, update
from sqlalchemy.dialects.postgresql import insert
from sqlmodel import col, select

from src.automata.core.config import EngineConfig
from src.automata.models import AutomationQueueItem, QueueStatus
from src.automata.models.base import utc_now
from src.automata.repositories.base import BaseRepository

RetryDecision = Literal["retry", "dead_letter"]


class QueueRepository(BaseRepository[AutomationQueueItem]):
    """Queue items move pending -> processing -> completed | dead_letter.

    Only claim_next takes row locks. The mutators below change the
    claimed item in the session; the service layer commits.
    """

    model = AutomationQueueItem

    async def claim_next(
        self,
        worker_id: str,
        now: datetime,
        lease_seconds: int,
    ) -> AutomationQueueItem | None:
        """Atomically lease the next due item, skipping rows other workers hold.

        Items left in processing longer than the lease (a crashed worker) are
        claimable again.
        """
        stale_before = now - timedelta(seconds=lease_seconds)
        candidate = (
            select(AutomationQueueItem.id)
            .where(
                or_(
                    and_(
                        col(AutomationQueueItem.status) == QueueStatus.PENDING.value,
                        col(AutomationQueueItem.execute_at) <= now,
                    ),
                    and_(
                        col(AutomationQueueItem.status) == QueueStatus.PROCESSING.value,
                        col(AutomationQueueItem.locked_at) < stale_before,
                    ),
                )
            )
            .order_by(col(AutomationQueueItem.execute_at))
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(AutomationQueueItem)
            .where(col(AutomationQueueItem.id) == candidate)
            .values(
                status=QueueStatus.PROCESSING.value,
                locked_at=now,
                locked_by=worker_id,
            )
            .returning(AutomationQueueItem)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

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
        """Insert an item, or refresh it if the same key is still pending.

        Returns the item id, or None when the key exists and has already been
        picked up (processing, completed or dead-lettered).
        """
        stmt = insert(AutomationQueueItem).values(
            id=uuid4(),
            tenant_id=tenant_id,
            flow_id=flow_id,
            trigger_event_id=trigger_event_id,
            event_data=event_data,
            context_payload=context_payload or {},
            block_index=block_index,
            execute_at=execute_at or utc_now(),
            status=QueueStatus.PENDING.value,
            attempt_count=0,
            max_attempts=max_attempts,
            created_at=utc_now(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["tenant_id", "flow_id", "trigger_event_id"],
            set_={
                "event_data": stmt.excluded.event_data,
                "context_payload": stmt.excluded.context_payload,
                "block_index": stmt.excluded.block_index,
                "execute_at": stmt.excluded.execute_at,
            },
            where=col(AutomationQueueItem.status) == QueueStatus.PENDING.value,
        ).returning(col(AutomationQueueItem.id))

        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    def complete(
        self, item: AutomationQueueItem, note: str | None = None, now: datetime | None = None
    ) -> None:
        item.status = QueueStatus.COMPLETED.value
        item.completed_at = now or utc_now()
        item.last_error = note
        self._release(item)

    def defer(self, item: AutomationQueueItem, execute_at: datetime, note: str | None = None) -> None:
        """Return the item to pending without counting an attempt."""
        item.status = QueueStatus.PENDING.value
        item.execute_at = execute_at
        item.last_error = note
        self._release(item)

    def dead_letter(
        self, item: AutomationQueueItem, error: str, now: datetime | None = None
    ) -> None:
        """Move the item to dead_letter immediately (non-retryable failure)."""
        item.attempt_count += 1
        item.status = QueueStatus.DEAD_LETTER.value
        item.last_error = error[:2000]
        item.completed_at = now or utc_now()
        self._release(item)

    def retry_or_dead_letter(
        self,
        item: AutomationQueueItem,
        error: str,
        now: datetime,
        config: EngineConfig,
    ) -> RetryDecision:
        """Count a failed attempt and either reschedule with backoff or give up."""
        attempts = item.attempt_count + 1
        max_attempts = item.max_attempts or config.retry_max_attempts
        if attempts >= max_attempts:
            self.dead_letter(item, error, now)
            return "dead_letter"

        item.attempt_count = attempts
        item.status = QueueStatus.PENDING.value
        item.last_error = error[:2000]
        item.execute_at = now + timedelta(seconds=config.backoff_seconds(attempts))
        self._release(item)
        return "retry"

    def _release(self, item: AutomationQueueItem) -> None:
        item.locked_at = None
        item.locked_by = None
        self.session.add(item)
