"""Request and response schemas."""

from src.automata.schemas.automation import (
    AutomationEvent,
    BatchResponse,
    DryRunRequest,
    DryRunResponse,
    EventIngestResponse,
)

__all__ = [
    "AutomationEvent",
    "BatchResponse",
    "DryRunRequest",
    "DryRunResponse",
    "EventIngestResponse",
]
