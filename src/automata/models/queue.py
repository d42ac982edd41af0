"""Automation work queue model."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Column, Index, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from src.automata.models.base import utc_now
from src.automata.models.enums import QueueStatus


class AutomationQueueItem(SQLModel, table=True):
    """One pending (or resumed) pass of a flow for one trigger event.

    Items are invisible to claimers before execute_at. Delay blocks create a
    follow-up item with an advanced block_index and a suffixed trigger_event_id.
    """

    __tablename__ = "automation_queue"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "flow_id",
            "trigger_event_id",
            name="uq_automation_queue_event",
        ),
        Index("ix_automation_queue_status_execute_at", "status", "execute_at"),
        {"schema": "public"},
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(index=True)
    flow_id: UUID = Field(index=True)
    # Grows by a _delay_{i} suffix per resumption point, so unbounded
    trigger_event_id: str = Field(sa_column=Column(Text, nullable=False))
    event_data: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSONB, nullable=False, server_default="{}"),
    )
    context_payload: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSONB, nullable=False, server_default="{}"),
    )
    block_index: int = Field(default=0)
    execute_at: datetime = Field(default_factory=utc_now)
    status: str = Field(default=QueueStatus.PENDING.value, max_length=20)
    attempt_count: int = Field(default=0)
    max_attempts: int = Field(default=3)
    last_error: str | None = Field(default=None, max_length=2000)

    # Lease
    locked_at: datetime | None = Field(default=None)
    locked_by: str | None = Field(default=None, max_length=100)

    created_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = Field(default=None)
