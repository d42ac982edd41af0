"""Flow-level condition rules: a JSON-Logic subset.

Rules are parsed once into a small AST when a flow is loaded and evaluated
against the execution context by `evaluate`. Supported operators:

    and, or, not/!, var, ==/===, !=/!==, >, >=, <, <=, in, if

Any other operator parses to `UnknownOp` and evaluates to True after logging
a warning (fail-open). Parsing never rejects a rule.
"""

from dataclasses import dataclass, field
from typing import Any, assert_never

from src.automata.core.logging import get_logger
from src.automata.engine.values import (
    UNDEFINED,
    is_truthy,
    resolve_path,
    to_js_string,
    to_number,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Var:
    path: str
    default: Any = UNDEFINED


@dataclass(frozen=True)
class And:
    args: tuple["Rule", ...]


@dataclass(frozen=True)
class Or:
    args: tuple["Rule", ...]


@dataclass(frozen=True)
class Not:
    arg: "Rule"


@dataclass(frozen=True)
class Compare:
    op: str  # one of COMPARATORS
    left: "Rule"
    right: "Rule"


@dataclass(frozen=True)
class In:
    needle: "Rule"
    haystack: "Rule"


@dataclass(frozen=True)
class If:
    branches: tuple["Rule", ...]


@dataclass(frozen=True)
class UnknownOp:
    operator: str
    raw: Any = field(compare=False)


Rule = Literal | Var | And | Or | Not | Compare | In | If | UnknownOp

COMPARATORS = ("==", "!=", ">", ">=", "<", "<=")
_ALIASES = {"===": "==", "!==": "!=", "!": "not"}


def parse_rule(raw: Any) -> Rule | None:
    """Parse a JSON rule tree. None means "no conditions"."""
    if raw is None:
        return None
    return _parse(raw)


def _parse(raw: Any) -> Rule:
    if not isinstance(raw, dict):
        # Booleans, numbers, strings and arrays evaluate to themselves
        return Literal(raw)
    if not raw:
        return UnknownOp("", raw)

    operator = next(iter(raw))
    args = raw[operator]
    op = _ALIASES.get(operator, operator)

    match op:
        case "and":
            return And(tuple(_parse(a) for a in _as_list(args)))
        case "or":
            return Or(tuple(_parse(a) for a in _as_list(args)))
        case "not":
            if isinstance(args, list):
                args = args[0] if args else None
            return Not(_parse(args))
        case "var":
            return _parse_var(args)
        case "in":
            needle, haystack = _operands(args)
            return In(needle, haystack)
        case "if":
            return If(tuple(_parse(a) for a in _as_list(args)))
        case _ if op in COMPARATORS:
            left, right = _operands(args)
            return Compare(op, left, right)
        case _:
            return UnknownOp(operator, raw)


def _parse_var(args: Any) -> Var:
    if isinstance(args, list):
        if not args:
            return Var("")
        default = args[1] if len(args) > 1 else UNDEFINED
        return Var(to_js_string(args[0]) if args[0] is not None else "", default)
    if args is None:
        return Var("")
    return Var(args if isinstance(args, str) else to_js_string(args))


def _operands(args: Any) -> tuple[Rule, Rule]:
    """Binary operands. Only operator objects are evaluated; arrays stay literal."""
    items = _as_list(args)
    left = _operand(items[0]) if len(items) > 0 else Literal(UNDEFINED)
    right = _operand(items[1]) if len(items) > 1 else Literal(UNDEFINED)
    return left, right


def _operand(raw: Any) -> Rule:
    return _parse(raw) if isinstance(raw, dict) else Literal(raw)


def _as_list(args: Any) -> list[Any]:
    return args if isinstance(args, list) else [args]


def evaluate(rule: Rule | None, context: dict[str, Any]) -> Any:
    """Evaluate a parsed rule against the context. A missing rule is True."""
    if rule is None:
        return True

    match rule:
        case Literal(value=value):
            return value
        case Var(path=path, default=default):
            value = resolve_path(context, path)
            if (value is UNDEFINED or value is None) and default is not UNDEFINED:
                return default
            return value
        case And(args=args):
            return all(is_truthy(evaluate(a, context)) for a in args)
        case Or(args=args):
            return any(is_truthy(evaluate(a, context)) for a in args)
        case Not(arg=arg):
            return not is_truthy(evaluate(arg, context))
        case Compare(op=op, left=left, right=right):
            return _compare(op, evaluate(left, context), evaluate(right, context))
        case In(needle=needle, haystack=haystack):
            return _contains(evaluate(haystack, context), evaluate(needle, context))
        case If(branches=branches):
            for i in range(0, len(branches) - 1, 2):
                if is_truthy(evaluate(branches[i], context)):
                    return evaluate(branches[i + 1], context)
            if len(branches) % 2 == 1:
                return evaluate(branches[-1], context)
            return None
        case UnknownOp(operator=operator):
            logger.warning("Unknown rule operator, treating as true", operator=operator)
            return True
        case _:
            assert_never(rule)


def rule_passes(rule: Rule | None, context: dict[str, Any]) -> bool:
    """Evaluate and apply truthiness."""
    return is_truthy(evaluate(rule, context))


def evaluate_raw(raw: Any, context: dict[str, Any]) -> Any:
    """Parse and evaluate in one step, for callers holding an unparsed tree."""
    return evaluate(parse_rule(raw), context)


def _compare(op: str, a: Any, b: Any) -> bool:
    match op:
        case "==":
            return to_js_string(a) == to_js_string(b)
        case "!=":
            return to_js_string(a) != to_js_string(b)
        case ">":
            return to_number(a) > to_number(b)
        case ">=":
            return to_number(a) >= to_number(b)
        case "<":
            return to_number(a) < to_number(b)
        case "<=":
            return to_number(a) <= to_number(b)
    raise ValueError(f"not a comparator: {op}")


def _contains(haystack: Any, needle: Any) -> bool:
    if isinstance(haystack, str):
        return to_js_string(needle) in haystack
    if isinstance(haystack, list):
        return needle in haystack
    return False
