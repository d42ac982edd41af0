"""Tests for placeholder interpolation and value coercion."""

import math

import pytest
from hypothesis import given
from hypothesis import strategies as st

from src.automata.engine.templates import interpolate
from src.automata.engine.values import (
    UNDEFINED,
    is_truthy,
    resolve_path,
    to_js_string,
    to_number,
)

pytestmark = pytest.mark.unit


CONTEXT = {
    "trigger": {
        "client_name": "Ada",
        "amount": 99.5,
        "count": 3,
        "paid": True,
        "items": [{"sku": "A-1"}, {"sku": "B-2"}],
        "note": None,
    },
    "workspace": {"id": "ws-1"},
}


class TestInterpolate:
    def test_replaces_placeholders(self):
        assert interpolate("Hi {{trigger.client_name}}!", CONTEXT) == "Hi Ada!"

    def test_whitespace_inside_braces_is_ignored(self):
        assert interpolate("{{ trigger.client_name }}", CONTEXT) == "Ada"

    def test_missing_and_null_render_empty(self):
        assert interpolate("[{{trigger.nope}}][{{trigger.note}}]", CONTEXT) == "[][]"

    def test_values_render_like_javascript(self):
        rendered = interpolate(
            "{{trigger.amount}} {{trigger.count}} {{trigger.paid}} {{trigger.items.1.sku}}",
            CONTEXT,
        )
        assert rendered == "99.5 3 true B-2"

    def test_empty_template(self):
        assert interpolate("", CONTEXT) == ""

    def test_substituted_text_is_not_rescanned(self):
        context = {"trigger": {"a": "{{trigger.b}}", "b": "secret"}}
        assert interpolate("{{trigger.a}}", context) == "{{trigger.b}}"

    def test_unclosed_placeholder_is_left_alone(self):
        assert interpolate("{{trigger.client_name", CONTEXT) == "{{trigger.client_name"


@given(text=st.text(alphabet=st.characters(blacklist_characters="{}"), max_size=80))
def test_text_without_placeholders_is_unchanged(text: str):
    assert interpolate(text, CONTEXT) == text


@given(value=st.text(max_size=40))
def test_single_placeholder_renders_value(value: str):
    assert interpolate("<{{trigger.v}}>", {"trigger": {"v": value}}) == f"<{value}>"


class TestValues:
    def test_resolve_path(self):
        assert resolve_path(CONTEXT, "trigger.items.0.sku") == "A-1"
        assert resolve_path(CONTEXT, "trigger.items.9.sku") is UNDEFINED
        assert resolve_path(CONTEXT, "trigger.client_name.length") is UNDEFINED
        assert resolve_path(CONTEXT, "") is UNDEFINED
        assert resolve_path(CONTEXT, "trigger.note") is None
        assert resolve_path(CONTEXT, "trigger.note.x") is UNDEFINED

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, "null"),
            (UNDEFINED, "undefined"),
            (True, "true"),
            (3.0, "3"),
            (0.1, "0.1"),
            (float("nan"), "NaN"),
            ([1, None, "x"], "1,,x"),
            ("text", "text"),
        ],
    )
    def test_to_js_string(self, value, expected):
        assert to_js_string(value) == expected

    def test_to_number(self):
        assert to_number("  12 ") == 12.0
        assert to_number("") == 0.0
        assert to_number(None) == 0.0
        assert to_number(True) == 1.0
        assert to_number(["7"]) == 7.0
        assert math.isnan(to_number("abc"))
        assert math.isnan(to_number(UNDEFINED))
        assert math.isnan(to_number({"a": 1}))

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (0, False),
            ("", False),
            (None, False),
            (UNDEFINED, False),
            (float("nan"), False),
            ([], True),
            ({}, True),
            ("0", True),
            (-1, True),
        ],
    )
    def test_is_truthy(self, value, expected):
        assert is_truthy(value) is expected
