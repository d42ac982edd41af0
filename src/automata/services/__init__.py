"""Service layer - business logic."""

from src.automata.services.event_service import EventService, matches_trigger
from src.automata.services.worker_service import AutomationWorker, BatchStats, WorkUnit

__all__ = [
    "AutomationWorker",
    "BatchStats",
    "EventService",
    "WorkUnit",
    "matches_trigger",
]
