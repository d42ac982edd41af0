"""FastAPI dependencies."""

from src.automata.api.dependencies.auth import (
    Caller,
    CurrentCaller,
    ServiceCaller,
    authorize_tenant,
)
from src.automata.api.dependencies.db import DBSession
from src.automata.api.dependencies.repositories import FlowRepo, MembershipRepo, QueueRepo
from src.automata.api.dependencies.services import EventSvc, Tracer, Worker

__all__ = [
    "Caller",
    "CurrentCaller",
    "DBSession",
    "EventSvc",
    "FlowRepo",
    "MembershipRepo",
    "QueueRepo",
    "ServiceCaller",
    "Tracer",
    "Worker",
    "authorize_tenant",
]
