"""Flow definitions parsed into typed blocks.

A stored flow carries free-form JSON. `FlowDefinition.parse` turns it into
a tagged union of blocks once, so the interpreter never inspects raw
config maps. Trigger blocks are kept aside and never counted as steps.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, assert_never
from uuid import UUID

from src.automata.core.exceptions import FlowValidationError
from src.automata.core.logging import get_logger
from src.automata.engine.actions import ACTION_KINDS, Action, parse_action
from src.automata.engine.durations import Duration
from src.automata.engine.rules import Rule, parse_rule
from src.automata.engine.values import UNDEFINED, resolve_path, to_js_string, to_number
from src.automata.models import AutomationFlow

logger = get_logger(__name__)


class FieldOperator(str, Enum):
    """Operators understood by legacy per-field condition blocks."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"
    UNKNOWN = "unknown"


_FIELD_OPERATOR_ALIASES = {
    "equals": FieldOperator.EQUALS,
    "eq": FieldOperator.EQUALS,
    "==": FieldOperator.EQUALS,
    "not_equals": FieldOperator.NOT_EQUALS,
    "neq": FieldOperator.NOT_EQUALS,
    "!=": FieldOperator.NOT_EQUALS,
    "contains": FieldOperator.CONTAINS,
    "greater_than": FieldOperator.GREATER_THAN,
    "gt": FieldOperator.GREATER_THAN,
    ">": FieldOperator.GREATER_THAN,
    "less_than": FieldOperator.LESS_THAN,
    "lt": FieldOperator.LESS_THAN,
    "<": FieldOperator.LESS_THAN,
    "exists": FieldOperator.EXISTS,
    "not_exists": FieldOperator.NOT_EXISTS,
}


@dataclass(frozen=True)
class TriggerBlock:
    id: str
    config: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DelayBlock:
    id: str
    duration: Duration
    label: str = ""  # as written in the flow, for trace descriptions


@dataclass(frozen=True)
class FieldConditionBlock:
    id: str
    field: str
    operator: FieldOperator
    operator_label: str
    value: Any = ""

    def actual(self, context: dict[str, Any]) -> Any:
        return resolve_path(context, self.field)

    def evaluate(self, context: dict[str, Any]) -> bool:
        return compare_field(self.actual(context), self.operator, self.value)

    def describe(self, actual: Any, passed: bool) -> str:
        return (
            f"{self.field} {self.operator_label} {to_js_string(self.value)}"
            f" → actual: {_json_or_undefined(actual)} → {'true' if passed else 'false'}"
        )


@dataclass(frozen=True)
class ActionBlock:
    id: str
    action: Action


Block = TriggerBlock | DelayBlock | FieldConditionBlock | ActionBlock
StepBlock = DelayBlock | FieldConditionBlock | ActionBlock


def compare_field(actual: Any, operator: FieldOperator, expected: Any) -> bool:
    """Evaluate one legacy field condition."""
    match operator:
        case FieldOperator.EQUALS:
            return to_js_string(actual) == to_js_string(expected)
        case FieldOperator.NOT_EQUALS:
            return to_js_string(actual) != to_js_string(expected)
        case FieldOperator.CONTAINS:
            return to_js_string(expected) in to_js_string(actual)
        case FieldOperator.GREATER_THAN:
            return to_number(actual) > to_number(expected)
        case FieldOperator.LESS_THAN:
            return to_number(actual) < to_number(expected)
        case FieldOperator.EXISTS:
            return actual is not UNDEFINED and actual is not None and actual != ""
        case FieldOperator.NOT_EXISTS:
            return actual is UNDEFINED or actual is None or actual == ""
        case FieldOperator.UNKNOWN:
            logger.warning("Unknown condition operator, treating as true")
            return True
        case _:
            assert_never(operator)


def _json_or_undefined(value: Any) -> str:
    if value is UNDEFINED:
        return "undefined"
    return json.dumps(value, default=str)


def parse_block(raw: Any, position: int) -> Block:
    """Parse one raw block.

    Raises:
        FlowValidationError: the block is not an object, its type is unknown,
            or its config is invalid for its type.
    """
    if not isinstance(raw, dict):
        raise FlowValidationError(f"Block {position} must be an object")

    block_id = str(raw.get("id") or f"block_{position}")
    block_type = raw.get("type")
    config = raw.get("config") or {}
    if not isinstance(config, dict):
        raise FlowValidationError(f"Block {block_id} config must be an object")

    match block_type:
        case "trigger":
            return TriggerBlock(id=block_id, config=config)
        case "delay":
            raw_duration = config.get("duration") or config.get("delay_minutes") or ""
            return DelayBlock(
                id=block_id,
                duration=Duration.from_config(config),
                label=to_js_string(raw_duration) if raw_duration else "",
            )
        case "condition":
            operator_label = str(config.get("operator") or "equals")
            operator = _FIELD_OPERATOR_ALIASES.get(operator_label, FieldOperator.UNKNOWN)
            return FieldConditionBlock(
                id=block_id,
                field=str(config.get("field") or ""),
                operator=operator,
                operator_label=operator_label,
                value=config.get("value") or "",
            )
        case "action":
            kind = config.get("action")
            if not kind:
                raise FlowValidationError(f"Block {block_id} is missing config.action")
            return ActionBlock(id=block_id, action=parse_action(str(kind), config))
        case str() if block_type in ACTION_KINDS:
            kind = config.get("action") or block_type
            return ActionBlock(id=block_id, action=parse_action(str(kind), config))
        case _:
            raise FlowValidationError(f"Block {block_id} has unknown type {block_type!r}")


@dataclass(frozen=True)
class FlowDefinition:
    """An executable view of a stored flow.

    `steps` holds the non-trigger blocks in execution order; resume points
    and step names index into it.
    """

    flow_id: UUID
    tenant_id: UUID
    name: str
    conditions_raw: Any
    conditions: Rule | None
    triggers: tuple[TriggerBlock, ...]
    steps: tuple[StepBlock, ...]

    @property
    def has_conditions(self) -> bool:
        return self.conditions is not None

    @classmethod
    def parse(cls, flow: AutomationFlow) -> "FlowDefinition":
        """Parse a stored flow.

        Raises:
            FlowValidationError: blocks are malformed.
        """
        raw_blocks = flow.blocks if flow.blocks is not None else []
        if not isinstance(raw_blocks, list):
            raise FlowValidationError("Flow blocks must be a list")

        triggers: list[TriggerBlock] = []
        steps: list[StepBlock] = []
        for position, raw in enumerate(raw_blocks):
            block = parse_block(raw, position)
            if isinstance(block, TriggerBlock):
                triggers.append(block)
            else:
                steps.append(block)

        return cls(
            flow_id=flow.id,
            tenant_id=flow.tenant_id,
            name=flow.name,
            conditions_raw=flow.conditions,
            conditions=parse_rule(flow.conditions),
            triggers=tuple(triggers),
            steps=tuple(steps),
        )
