"""Tests for delay durations (src/automata/engine/durations.py)."""

from datetime import timedelta

import pytest

from src.automata.core.exceptions import FlowValidationError
from src.automata.engine.durations import Duration

pytestmark = pytest.mark.unit


class TestParseCompact:
    @pytest.mark.parametrize(
        ("raw", "minutes"),
        [
            ("30m", 30),
            ("2h", 120),
            ("7d", 10080),
            (" 5m ", 5),
            ("0m", 0),
            ("2H", 120),
            ("7D", 10080),
            ("45M", 45),
        ],
    )
    def test_valid(self, raw, minutes):
        assert Duration.parse_compact(raw) == Duration(minutes)

    @pytest.mark.parametrize("raw", ["", "5", "m5", "1.5h", "2w", "-3m", "3 m"])
    def test_invalid(self, raw):
        assert Duration.parse_compact(raw) is None


class TestFromConfig:
    def test_compact_string_wins(self):
        config = {"duration": "1h", "delay_minutes": 5}
        assert Duration.from_config(config) == Duration(60)

    def test_zero_compact_falls_back_to_fields(self):
        assert Duration.from_config({"duration": "0m", "delay_minutes": 5}) == Duration(5)

    def test_uppercase_compact_string_defers(self):
        duration = Duration.from_config({"duration": "2H"})
        assert duration.minutes == 120
        assert not duration.is_zero

    def test_sums_minutes_hours_days(self):
        config = {"delay_minutes": 15, "delay_hours": "2", "delay_days": 1}
        assert Duration.from_config(config) == Duration(15 + 120 + 1440)

    def test_unparseable_duration_string_uses_fields(self):
        assert Duration.from_config({"duration": "soon", "delay_hours": 1}) == Duration(60)

    def test_empty_config_is_zero(self):
        duration = Duration.from_config({})
        assert duration.is_zero
        assert duration.as_timedelta() == timedelta(0)

    def test_negative_total_clamps_to_zero(self):
        assert Duration.from_config({"delay_minutes": -30}).is_zero

    @pytest.mark.parametrize("bad", ["abc", True, [1], "1e400", "inf", float("inf")])
    def test_non_numeric_field_is_rejected(self, bad):
        with pytest.raises(FlowValidationError):
            Duration.from_config({"delay_minutes": bad})


def test_str_uses_largest_whole_unit():
    assert str(Duration(2880)) == "2d"
    assert str(Duration(180)) == "3h"
    assert str(Duration(90)) == "90m"
    assert str(Duration(0)) == "0m"


def test_ordering():
    assert Duration(5) < Duration(60)
    assert Duration(60).as_timedelta() == timedelta(hours=1)
