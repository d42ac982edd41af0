"""Caller authentication for the automation endpoints.

Two credentials are accepted as a Bearer token: the shared service key
(schedulers, other backends) and a user access token. Users may only act on
tenants they are active members of.
"""

from dataclasses import dataclass
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status

from src.automata.api.dependencies.repositories import MembershipRepo
from src.automata.core.exceptions import AuthorizationError
from src.automata.core.logging import get_logger
from src.automata.core.security import decode_token, is_service_key

logger = get_logger(__name__)


@dataclass(frozen=True)
class Caller:
    is_service: bool
    user_id: UUID | None = None


def _bearer_token(authorization: str | None) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header",
        )
    return authorization[7:]


async def get_caller(authorization: Annotated[str | None, Header()] = None) -> Caller:
    """Identify the caller from the Authorization header."""
    token = _bearer_token(authorization)
    if is_service_key(token):
        return Caller(is_service=True)

    payload = decode_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    try:
        return Caller(is_service=False, user_id=UUID(str(user_id)))
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user_id in token",
        ) from e


CurrentCaller = Annotated[Caller, Depends(get_caller)]


async def require_service(caller: CurrentCaller) -> Caller:
    """Only the service credential may run batches or ingest events."""
    if not caller.is_service:
        raise AuthorizationError("This operation requires the service credential")
    return caller


ServiceCaller = Annotated[Caller, Depends(require_service)]


async def authorize_tenant(
    caller: Caller, tenant_id: UUID, membership_repo: MembershipRepo
) -> None:
    """Raise AuthorizationError unless the caller may act on the tenant."""
    if caller.is_service:
        return
    assert caller.user_id is not None
    if not await membership_repo.user_has_active_membership(caller.user_id, tenant_id):
        logger.warning(
            "Tenant access denied",
            user_id=str(caller.user_id),
            tenant_id=str(tenant_id),
        )
        raise AuthorizationError("No access to this tenant")
