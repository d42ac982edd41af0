"""Repository layer - data access abstraction."""

from src.automata.repositories.base import BaseRepository
from src.automata.repositories.flow_repository import FlowRepository
from src.automata.repositories.log_repository import LogRepository
from src.automata.repositories.membership_repository import MembershipRepository
from src.automata.repositories.queue_repository import QueueRepository, RetryDecision
from src.automata.repositories.run_repository import RunRepository

__all__ = [
    "BaseRepository",
    "FlowRepository",
    "LogRepository",
    "MembershipRepository",
    "QueueRepository",
    "RetryDecision",
    "RunRepository",
]
