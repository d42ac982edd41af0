"""Repository for UserTenantMembership entity."""

from uuid import UUID

from sqlmodel import select

from src.automata.models import UserTenantMembership
from src.automata.repositories.base import BaseRepository


class MembershipRepository(BaseRepository[UserTenantMembership]):
    """Read-only access to memberships owned by the auth system."""

    model = UserTenantMembership

    async def get_active_membership(
        self, user_id: UUID, tenant_id: UUID
    ) -> UserTenantMembership | None:
        """Get active membership for a user in a tenant."""
        result = await self.session.execute(
            select(UserTenantMembership).where(
                UserTenantMembership.user_id == user_id,
                UserTenantMembership.tenant_id == tenant_id,
                UserTenantMembership.is_active == True,  # noqa: E712
            )
        )
        return result.scalar_one_or_none()

    async def user_has_active_membership(self, user_id: UUID, tenant_id: UUID) -> bool:
        """Check if user has an active membership in tenant."""
        membership = await self.get_active_membership(user_id, tenant_id)
        return membership is not None
