"""Repository factory dependencies."""

from typing import Annotated

from fastapi import Depends

from src.automata.api.dependencies.db import DBSession
from src.automata.repositories import (
    FlowRepository,
    MembershipRepository,
    QueueRepository,
)


def get_flow_repository(session: DBSession) -> FlowRepository:
    return FlowRepository(session)


def get_queue_repository(session: DBSession) -> QueueRepository:
    return QueueRepository(session)


def get_membership_repository(session: DBSession) -> MembershipRepository:
    return MembershipRepository(session)


FlowRepo = Annotated[FlowRepository, Depends(get_flow_repository)]
QueueRepo = Annotated[QueueRepository, Depends(get_queue_repository)]
MembershipRepo = Annotated[MembershipRepository, Depends(get_membership_repository)]
