"""Delay durations for delay blocks."""

import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from src.automata.core.exceptions import FlowValidationError

_COMPACT = re.compile(r"^(\d+)(m|h|d)$", re.IGNORECASE)
_UNIT_MINUTES = {"m": 1, "h": 60, "d": 1440}


@dataclass(frozen=True, order=True)
class Duration:
    """A non-negative wait, in whole minutes."""

    minutes: int = 0

    @property
    def is_zero(self) -> bool:
        return self.minutes <= 0

    def as_timedelta(self) -> timedelta:
        return timedelta(minutes=self.minutes)

    def __str__(self) -> str:
        if self.minutes and self.minutes % 1440 == 0:
            return f"{self.minutes // 1440}d"
        if self.minutes and self.minutes % 60 == 0:
            return f"{self.minutes // 60}h"
        return f"{self.minutes}m"

    @classmethod
    def parse_compact(cls, value: str) -> "Duration | None":
        """Parse "30m", "2h" or "7d" (any case). None when the string does not match."""
        match = _COMPACT.match(value.strip())
        if match is None:
            return None
        return cls(int(match.group(1)) * _UNIT_MINUTES[match.group(2).lower()])

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "Duration":
        """Build a duration from a delay block's config.

        A compact `duration` string wins when it parses to a positive value.
        Otherwise delay_minutes + delay_hours + delay_days are summed.
        """
        raw = config.get("duration")
        if isinstance(raw, str):
            compact = cls.parse_compact(raw)
            if compact is not None and not compact.is_zero:
                return compact

        total = (
            _whole(config, "delay_minutes")
            + _whole(config, "delay_hours") * 60
            + _whole(config, "delay_days") * 1440
        )
        return cls(max(total, 0))


def _whole(config: dict[str, Any], key: str) -> int:
    value = config.get(key)
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise FlowValidationError(f"{key} must be a number, got {value!r}")
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError) as e:
        raise FlowValidationError(f"{key} must be a number, got {value!r}") from e
