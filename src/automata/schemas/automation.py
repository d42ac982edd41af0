from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from src.automata.engine.trace import TraceStep


class AutomationEvent(BaseModel):
    """A business event that may trigger flows."""

    id: str | None = Field(default=None, max_length=200)
    type: str = Field(min_length=1, max_length=100, examples=["job.completed"])
    tenant_id: UUID
    entity_type: str | None = None
    entity_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)


class EventIngestResponse(BaseModel):
    flows_matched: int
    enqueued: int
    trigger_event_id: str


class BatchResponse(BaseModel):
    success: bool = True
    processed: int
    succeeded: int
    failed: int
    skipped: int
    retried: int
    dead_lettered: int
    deferred: int
    duplicates: int
    duration_ms: int


class DryRunRequest(BaseModel):
    """Body of a dry run. Batch calls may send `{}`; flow_id is checked only for dry runs."""

    flow_id: UUID | None = None
    mock_payload: dict[str, Any] = Field(default_factory=dict)


class DryRunResponse(BaseModel):
    """Preview of a flow. Durations aside, identical inputs give identical traces."""

    status: Literal["success", "conditions_failed"]
    trace: list[TraceStep]
    duration_ms: int
