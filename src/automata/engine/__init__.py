"""Flow execution engine: rules, templates, blocks, actions and the interpreter."""

from src.automata.engine.actions import ActionDispatcher, ActionResult, ExecutionMode
from src.automata.engine.blocks import FlowDefinition
from src.automata.engine.interpreter import (
    Deferral,
    FlowInterpreter,
    PassOutcome,
    PassResult,
    build_context,
)
from src.automata.engine.tracer import DryRunReport, DryRunTracer
from src.automata.engine.trace import StepStatus, TraceStep

__all__ = [
    "ActionDispatcher",
    "ActionResult",
    "Deferral",
    "DryRunReport",
    "DryRunTracer",
    "ExecutionMode",
    "FlowDefinition",
    "FlowInterpreter",
    "PassOutcome",
    "PassResult",
    "StepStatus",
    "TraceStep",
    "build_context",
]
