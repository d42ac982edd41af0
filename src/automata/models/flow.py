"""Automation flow definition model."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Column, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from src.automata.models.base import utc_now
from src.automata.models.enums import FlowStatus


class AutomationFlow(SQLModel, table=True):
    """A tenant's automation: trigger, optional rule tree, ordered blocks."""

    __tablename__ = "automation_flows"
    __table_args__ = (
        Index("ix_automation_flows_tenant_status", "tenant_id", "status"),
        {"schema": "public"},
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(index=True)
    name: str = Field(max_length=200)
    status: str = Field(default=FlowStatus.DRAFT.value, max_length=20)
    trigger_config: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSONB, nullable=False, server_default="{}"),
    )
    conditions: Any | None = Field(
        default=None,
        sa_column=Column(JSONB(none_as_null=True), nullable=True),
    )
    blocks: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSONB, nullable=False, server_default="[]"),
    )
    run_count: int = Field(default=0)
    last_run: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_active(self) -> bool:
        return self.status == FlowStatus.ACTIVE.value
