"""Trace steps recorded for every evaluated block."""

from enum import Enum
from typing import Any

from pydantic import BaseModel

CONDITIONS_STEP = "conditions"


class StepStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SIMULATED = "simulated"
    SKIPPED = "skipped"
    ERROR = "error"


class TraceStep(BaseModel):
    step: str
    status: StepStatus
    description: str | None = None
    evaluation: str | None = None
    data: dict[str, Any] | None = None
    duration_ms: int | None = None

    def to_json(self) -> dict[str, Any]:
        """JSON-ready dict without unset fields, as stored in ledger and log rows."""
        return self.model_dump(mode="json", exclude_none=True)


def dump_trace(steps: list[TraceStep]) -> list[dict[str, Any]]:
    return [step.to_json() for step in steps]
