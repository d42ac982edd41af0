"""`{{path}}` placeholder interpolation."""

import re
from typing import Any

from src.automata.engine.values import resolve_path, to_text

PLACEHOLDER = re.compile(r"\{\{([^}]+)\}\}")


def interpolate(template: str, context: dict[str, Any]) -> str:
    """Replace each `{{dotted.path}}` with the value found in context.

    Missing paths and nulls render as empty strings. Substituted text is not
    scanned again, so a value containing `{{...}}` is emitted verbatim.
    """
    if not template:
        return ""
    return PLACEHOLDER.sub(
        lambda match: to_text(resolve_path(context, match.group(1).strip())),
        template,
    )
