"""Value lookup and coercion shared by rules, templates and field conditions.

Flow definitions and trigger payloads come from JSON produced by a JavaScript
dashboard, so comparisons follow JavaScript's String()/Number() rendering
rather than Python's str()/float().
"""

import json
import math
from typing import Any, Final


class _Undefined:
    """Marker for a path that does not resolve. Distinct from JSON null."""

    _instance: "_Undefined | None" = None

    def __new__(cls) -> "_Undefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


UNDEFINED: Final = _Undefined()


def resolve_path(data: Any, path: str) -> Any:
    """Walk a dotted path through dicts (by key) and lists (by index).

    Returns UNDEFINED as soon as a segment is missing. Never raises.
    """
    if not isinstance(path, str) or path == "":
        return UNDEFINED

    current = data
    for key in path.split("."):
        if current is None or current is UNDEFINED:
            return UNDEFINED
        if isinstance(current, dict):
            current = current.get(key, UNDEFINED)
        elif isinstance(current, list):
            try:
                current = current[int(key)]
            except (ValueError, IndexError):
                return UNDEFINED
        else:
            return UNDEFINED
    return current


def to_js_string(value: Any) -> str:
    """Render a value the way JavaScript's String() would."""
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, list):
        return ",".join("" if v is None or v is UNDEFINED else to_js_string(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, default=str)
    return str(value)


def to_number(value: Any) -> float:
    """Coerce a value the way JavaScript's Number() would. NaN when not numeric."""
    if value is UNDEFINED:
        return math.nan
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        stripped = value.strip()
        if stripped == "":
            return 0.0
        try:
            return float(stripped)
        except ValueError:
            return math.nan
    if isinstance(value, list):
        if not value:
            return 0.0
        if len(value) == 1:
            return to_number(value[0])
    return math.nan


def is_truthy(value: Any) -> bool:
    """JavaScript truthiness: empty containers are truthy, NaN is falsy."""
    if value is UNDEFINED or value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int | float):
        return not (value == 0 or (isinstance(value, float) and math.isnan(value)))
    if isinstance(value, str):
        return value != ""
    return True


def to_text(value: Any) -> str:
    """Render a value for templates: missing and null become empty strings."""
    if value is None or value is UNDEFINED:
        return ""
    return to_js_string(value)
