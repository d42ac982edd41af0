"""Resumable flow interpreter.

One call to `run_pass` walks a flow's steps from a resume point until it
finishes, fails, or reaches a delay. Delays are never slept on: the pass
returns a Deferral and the caller decides how to persist it.
"""

import json
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, assert_never
from uuid import UUID

from src.automata.core.logging import get_logger
from src.automata.engine.actions import ActionDispatcher, ActionResult, ExecutionMode
from src.automata.engine.blocks import (
    ActionBlock,
    DelayBlock,
    FieldConditionBlock,
    FlowDefinition,
)
from src.automata.engine.rules import rule_passes
from src.automata.engine.trace import CONDITIONS_STEP, StepStatus, TraceStep
from src.automata.models.base import utc_now

logger = get_logger(__name__)


class PassOutcome(str, Enum):
    COMPLETED = "completed"
    DEFERRED = "deferred"
    FAILED = "failed"


@dataclass(frozen=True)
class Deferral:
    """Where and when the flow resumes after a delay block."""

    block_index: int
    execute_at: datetime
    trigger_event_id: str
    context: dict[str, Any]


@dataclass
class PassResult:
    outcome: PassOutcome
    trace: list[TraceStep] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)
    skipped: bool = False  # flow-level conditions evaluated false
    short_circuited: bool = False  # a field condition block evaluated false
    error: str | None = None
    deferral: Deferral | None = None
    duration_ms: int = 0


def build_context(
    tenant_id: UUID,
    event_data: dict[str, Any],
    context_payload: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """The namespace templates and rules resolve against."""
    return {
        "trigger": event_data,
        "workspace": {"id": str(tenant_id)},
        **(context_payload or {}),
    }


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class FlowInterpreter:
    def __init__(
        self,
        dispatcher: ActionDispatcher,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._dispatcher = dispatcher
        self._clock = clock

    async def run_pass(
        self,
        flow: FlowDefinition,
        context: dict[str, Any],
        start_index: int,
        trigger_event_id: str,
        mode: ExecutionMode,
    ) -> PassResult:
        """Run one pass of `flow` starting at step `start_index`.

        Flow-level conditions are only checked on the first pass. In SIMULATE
        mode delays do not stop the walk and a conditions step is always
        recorded, so a preview covers the whole flow. A failed action ends a
        LIVE pass; a SIMULATE pass records it and keeps going.
        """
        started = time.perf_counter()
        result = PassResult(outcome=PassOutcome.COMPLETED, context=dict(context))
        simulate = mode is ExecutionMode.SIMULATE

        if start_index == 0 and not self._check_conditions(flow, result, simulate):
            result.skipped = True
            result.duration_ms = _elapsed_ms(started)
            return result

        for index in range(start_index, len(flow.steps)):
            block = flow.steps[index]
            step_started = time.perf_counter()

            match block:
                case DelayBlock():
                    stop = self._delay(block, index, trigger_event_id, result, simulate)
                case FieldConditionBlock():
                    stop = self._field_condition(block, index, result)
                case ActionBlock():
                    stop = await self._action(block, index, flow, result, mode)
                case _:
                    assert_never(block)

            result.trace[-1].duration_ms = _elapsed_ms(step_started)
            if stop:
                break

        result.duration_ms = _elapsed_ms(started)
        return result

    def _check_conditions(self, flow: FlowDefinition, result: PassResult, simulate: bool) -> bool:
        if not flow.has_conditions:
            if simulate:
                result.trace.append(
                    TraceStep(
                        step=CONDITIONS_STEP,
                        status=StepStatus.PASSED,
                        description="No conditions configured",
                        duration_ms=0,
                    )
                )
            return True

        step_started = time.perf_counter()
        passed = rule_passes(flow.conditions, result.context)
        result.trace.append(
            TraceStep(
                step=CONDITIONS_STEP,
                status=StepStatus.PASSED if passed else StepStatus.FAILED,
                evaluation=json.dumps(flow.conditions_raw, default=str),
                description=(
                    "All conditions evaluated to true"
                    if passed
                    else "Conditions evaluated to false, automation aborted"
                ),
                duration_ms=_elapsed_ms(step_started),
            )
        )
        return passed

    def _delay(
        self,
        block: DelayBlock,
        index: int,
        trigger_event_id: str,
        result: PassResult,
        simulate: bool,
    ) -> bool:
        step = f"delay_{index}"

        if simulate:
            shown = block.label or (str(block.duration) if not block.duration.is_zero else "?")
            result.trace.append(
                TraceStep(
                    step=step,
                    status=StepStatus.SIMULATED,
                    description=f"Would wait {shown} before continuing",
                )
            )
            return False

        if block.duration.is_zero:
            result.trace.append(
                TraceStep(step=step, status=StepStatus.SKIPPED, description="No wait configured")
            )
            return False

        result.deferral = Deferral(
            block_index=index + 1,
            execute_at=self._clock() + block.duration.as_timedelta(),
            trigger_event_id=f"{trigger_event_id}_delay_{index}",
            context=dict(result.context),
        )
        result.outcome = PassOutcome.DEFERRED
        result.trace.append(
            TraceStep(
                step=step,
                status=StepStatus.PASSED,
                description=f"Deferred {block.duration.minutes}m",
            )
        )
        return True

    def _field_condition(self, block: FieldConditionBlock, index: int, result: PassResult) -> bool:
        actual = block.actual(result.context)
        passed = block.evaluate(result.context)
        result.trace.append(
            TraceStep(
                step=f"condition_{index}",
                status=StepStatus.PASSED if passed else StepStatus.FAILED,
                evaluation=block.describe(actual, passed),
            )
        )
        if not passed:
            result.short_circuited = True
            return True
        return False

    async def _action(
        self,
        block: ActionBlock,
        index: int,
        flow: FlowDefinition,
        result: PassResult,
        mode: ExecutionMode,
    ) -> bool:
        try:
            outcome = await self._dispatcher.dispatch(
                block.action, result.context, flow.tenant_id, mode
            )
        except Exception as e:
            logger.exception("Action dispatch raised", step=f"action_{index}")
            outcome = ActionResult.failed(f"{type(e).__name__}: {e}")

        if outcome.simulated:
            status = StepStatus.SIMULATED
            description = f"Would execute: {json.dumps(outcome.output, default=str)}"
        elif outcome.success:
            status = StepStatus.PASSED
            description = f"Executed: {json.dumps(outcome.output, default=str)}"
        else:
            status = StepStatus.ERROR
            description = outcome.error or "Action failed"

        result.trace.append(
            TraceStep(
                step=f"action_{index}",
                status=status,
                description=description,
                data=outcome.output,
            )
        )

        if not outcome.success:
            result.outcome = PassOutcome.FAILED
            result.error = result.error or outcome.error or "Action failed"
            # A preview reports every failing action instead of stopping at the first
            return mode is ExecutionMode.LIVE

        if outcome.output:
            result.context.update(outcome.output)
        return False
