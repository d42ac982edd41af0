"""Tenant membership model (owned by the auth system, read-only here)."""

from datetime import datetime
from uuid import UUID

from sqlmodel import Field, SQLModel

from src.automata.models.base import utc_now
from src.automata.models.enums import MembershipRole


class UserTenantMembership(SQLModel, table=True):
    """Junction table for user-tenant membership."""

    __tablename__ = "user_tenant_membership"
    __table_args__ = {"schema": "public"}

    user_id: UUID = Field(primary_key=True)
    tenant_id: UUID = Field(primary_key=True)
    role: str = Field(default=MembershipRole.MEMBER.value, max_length=50)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now)
