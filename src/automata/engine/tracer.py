"""Side-effect-free preview of a flow ("dry run")."""

import time
from dataclasses import dataclass
from typing import Any, Literal

from src.automata.core.logging import get_logger
from src.automata.engine.actions import ExecutionMode
from src.automata.engine.blocks import FlowDefinition
from src.automata.engine.interpreter import FlowInterpreter, build_context
from src.automata.engine.trace import TraceStep

logger = get_logger(__name__)

DRY_RUN_EVENT_ID = "dry_run"

DryRunStatus = Literal["success", "conditions_failed"]


@dataclass
class DryRunReport:
    status: DryRunStatus
    trace: list[TraceStep]
    duration_ms: int


class DryRunTracer:
    """Runs a flow against a mock payload in SIMULATE mode.

    Nothing is enqueued, claimed or written. Two traces of the same flow and
    payload are identical apart from their durations.
    """

    def __init__(self, interpreter: FlowInterpreter):
        self._interpreter = interpreter

    async def trace(self, flow: FlowDefinition, mock_payload: dict[str, Any]) -> DryRunReport:
        started = time.perf_counter()
        context = build_context(flow.tenant_id, mock_payload)

        result = await self._interpreter.run_pass(
            flow, context, 0, DRY_RUN_EVENT_ID, ExecutionMode.SIMULATE
        )
        status: DryRunStatus = "conditions_failed" if result.skipped else "success"

        logger.info(
            "Dry run traced",
            flow_id=str(flow.flow_id),
            status=status,
            steps=len(result.trace),
        )
        return DryRunReport(
            status=status,
            trace=result.trace,
            duration_ms=int((time.perf_counter() - started) * 1000),
        )
