"""Idempotency ledger model."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Column, Index, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from src.automata.models.base import utc_now
from src.automata.models.enums import RunStatus


class AutomationRun(SQLModel, table=True):
    """Execution rights for one (flow, trigger event) key.

    The unique constraint is the ledger: exactly one claim per key succeeds.
    """

    __tablename__ = "automation_runs"
    __table_args__ = (
        UniqueConstraint(
            "flow_id",
            "trigger_event_id",
            "tenant_id",
            name="uq_automation_runs_key",
        ),
        Index("ix_automation_runs_tenant_claimed", "tenant_id", "claimed_at"),
        {"schema": "public"},
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID
    flow_id: UUID
    # Grows by a _delay_{i} suffix per resumption point, so unbounded
    trigger_event_id: str = Field(sa_column=Column(Text, nullable=False))
    status: str = Field(default=RunStatus.CLAIMED.value, max_length=20)
    trace: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSONB, nullable=False, server_default="[]"),
    )
    error_details: str | None = Field(default=None, max_length=2000)
    execution_time_ms: int | None = Field(default=None)
    attempt: int = Field(default=1)
    claimed_at: datetime = Field(default_factory=utc_now)
    finished_at: datetime | None = Field(default=None)
