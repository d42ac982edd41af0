"""Execution log model for observability."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Column, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from src.automata.models.base import utc_now


class AutomationLog(SQLModel, table=True):
    """Immutable record of one finished pass. Never updated."""

    __tablename__ = "automation_logs"
    __table_args__ = (
        Index("ix_automation_logs_flow_created", "flow_id", "created_at"),
        {"schema": "public"},
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(index=True)
    flow_id: UUID
    queue_item_id: UUID | None = Field(default=None)
    status: str = Field(max_length=20)  # RunStatus value
    trigger_data: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSONB, nullable=False, server_default="{}"),
    )
    trace: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSONB, nullable=False, server_default="[]"),
    )
    error: str | None = Field(default=None, max_length=2000)
    execution_time_ms: int | None = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
