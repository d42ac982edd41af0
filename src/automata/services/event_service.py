"""Event intake: match an incoming event to flows and enqueue one item per flow."""

from typing import Any
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from src.automata.core.config import EngineConfig
from src.automata.core.logging import get_logger
from src.automata.engine.values import resolve_path, to_js_string
from src.automata.models import AutomationFlow
from src.automata.models.base import utc_now
from src.automata.repositories import FlowRepository, QueueRepository
from src.automata.schemas import AutomationEvent, EventIngestResponse

logger = get_logger(__name__)


def matches_trigger(flow: AutomationFlow, event: AutomationEvent) -> bool:
    """True when the flow's trigger_config names this event type.

    An optional `condition` of the form "key=value" must also match the
    payload value at `key` (dotted paths allowed). Conditions in any other
    form are ignored.
    """
    trigger = flow.trigger_config or {}
    if not trigger.get("event"):
        return False
    if trigger["event"] != event.type:
        return False

    condition = trigger.get("condition")
    if isinstance(condition, str) and condition:
        parts = condition.split("=")
        if len(parts) == 2:
            key, expected = parts
            actual = resolve_path(event.payload, key.strip())
            if to_js_string(actual) != expected.strip():
                return False
    return True


def build_event_data(event: AutomationEvent) -> dict[str, Any]:
    data = dict(event.payload)
    data["event_type"] = event.type
    if event.entity_id is not None:
        data["entity_id"] = event.entity_id
    if event.entity_type is not None:
        data["entity_type"] = event.entity_type
    return data


class EventService:
    """Turns events into queue items. Execution happens later, in the worker."""

    def __init__(
        self,
        flow_repo: FlowRepository,
        queue_repo: QueueRepository,
        session: AsyncSession,
        config: EngineConfig,
    ):
        self.flow_repo = flow_repo
        self.queue_repo = queue_repo
        self.session = session
        self.config = config

    async def ingest(self, event: AutomationEvent) -> EventIngestResponse:
        """Enqueue the event for every active matching flow.

        Re-ingesting an event with the same id does not create duplicates.
        """
        trigger_event_id = event.id or f"evt_{uuid4().hex}"
        flows = await self.flow_repo.list_active_for_tenant(event.tenant_id)
        matched = [flow for flow in flows if matches_trigger(flow, event)]

        event_data = build_event_data(event)
        now = utc_now()
        enqueued = 0
        for flow in matched:
            item_id = await self.queue_repo.enqueue(
                tenant_id=event.tenant_id,
                flow_id=flow.id,
                trigger_event_id=trigger_event_id,
                event_data=event_data,
                block_index=0,
                execute_at=now,
                max_attempts=self.config.retry_max_attempts,
            )
            if item_id is not None:
                enqueued += 1

        await self.session.commit()
        logger.info(
            "Event ingested",
            event_type=event.type,
            tenant_id=str(event.tenant_id),
            trigger_event_id=trigger_event_id,
            flows_matched=len(matched),
            enqueued=enqueued,
        )
        return EventIngestResponse(
            flows_matched=len(matched),
            enqueued=enqueued,
            trigger_event_id=trigger_event_id,
        )
