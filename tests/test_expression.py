"""Tests for guard and transition expression evaluation."""

from __future__ import annotations

import math

import pytest

from litestar_blueprints.core.expression import (
    evaluate_expression,
    is_truthy,
    parse_literal,
    resolve_path,
    split_top_level,
    to_number,
)
from litestar_blueprints.core.types import UNDEFINED


@pytest.mark.unit
class TestEvaluateExpression:
    """Tests for evaluate_expression."""

    def test_range_check(self) -> None:
        assert evaluate_expression("data.count > 2 && data.count < 5", {"data": {"count": 3}}) is True
        assert evaluate_expression("data.count > 2 && data.count < 5", {"data": {"count": 5}}) is False

    @pytest.mark.parametrize("expression", [None, "", "   "])
    def test_blank_expression_passes(self, expression: str | None) -> None:
        assert evaluate_expression(expression, {"data": {}}) is True

    def test_or_binds_looser_than_and(self) -> None:
        ctx = {"data": {"a": 0, "b": 1, "c": 1}}
        assert evaluate_expression("data.a === 1 && data.b === 1 || data.c === 1", ctx) is True
        assert evaluate_expression("data.a === 1 && data.b === 1 || data.c === 2", ctx) is False

    def test_negation(self) -> None:
        assert evaluate_expression("!data.locked", {"data": {"locked": False}}) is True
        assert evaluate_expression("!data.locked", {"data": {"locked": True}}) is False

    def test_bare_path_truthiness(self) -> None:
        assert evaluate_expression("input.approved", {"data": {}, "input": {"approved": True}}) is True
        assert evaluate_expression("input.approved", {"data": {}, "input": {}}) is False
        assert evaluate_expression("output", {"data": {}}) is False

    def test_strict_equality_distinguishes_types(self) -> None:
        ctx = {"data": {"amount": "10"}}
        assert evaluate_expression("data.amount === 10", ctx) is False
        assert evaluate_expression("data.amount == 10", ctx) is True
        assert evaluate_expression("data.amount !== 10", ctx) is True

    def test_string_literals_with_operators_inside(self) -> None:
        ctx = {"data": {"note": "a || b"}}
        assert evaluate_expression('data.note === "a || b"', ctx) is True

    def test_null_and_undefined(self) -> None:
        ctx = {"data": {"value": None}}
        assert evaluate_expression("data.value === null", ctx) is True
        assert evaluate_expression("data.missing === undefined", ctx) is True
        assert evaluate_expression("data.value == undefined", ctx) is True
        assert evaluate_expression("data.value === undefined", ctx) is False

    def test_indexed_paths(self) -> None:
        ctx = {"data": {"items": [{"name": "first"}, {"name": "second"}]}}
        assert evaluate_expression('data.items[1].name === "second"', ctx) is True
        assert evaluate_expression("data.items[5].name", ctx) is False

    def test_numeric_comparison_coerces_strings(self) -> None:
        assert evaluate_expression("data.total >= 100", {"data": {"total": "150"}}) is True
        assert evaluate_expression("data.total >= 100", {"data": {"total": "abc"}}) is False

    def test_literal_term(self) -> None:
        assert evaluate_expression("true", {"data": {}}) is True
        assert evaluate_expression("0", {"data": {}}) is False


@pytest.mark.unit
class TestExpressionHelpers:
    """Tests for the path, literal and coercion helpers."""

    def test_split_top_level_ignores_quoted_operators(self) -> None:
        assert split_top_level("a && 'x && y' && b", "&&") == ["a", "'x && y'", "b"]

    def test_resolve_path_missing_segment(self) -> None:
        assert resolve_path({"a": {"b": 1}}, "a.c.d") is UNDEFINED
        assert resolve_path({"a": {"b": 1}}, "a.b") == 1

    def test_resolve_path_skips_private_attributes(self) -> None:
        class Holder:
            _secret = "hidden"
            public = "shown"

        assert resolve_path(Holder(), "public") == "shown"
        assert resolve_path(Holder(), "_secret") is UNDEFINED

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("'text'", "text"), ('"text"', "text"), ("42", 42), ("-1.5", -1.5), ("true", True), ("null", None)],
    )
    def test_parse_literal(self, raw: str, expected: object) -> None:
        assert parse_literal(raw) == expected

    def test_parse_literal_undefined(self) -> None:
        assert parse_literal("undefined") is UNDEFINED

    @pytest.mark.parametrize("value", [None, UNDEFINED, False, 0, "", math.nan])
    def test_falsy_values(self, value: object) -> None:
        assert is_truthy(value) is False

    @pytest.mark.parametrize("value", [[], {}, "0", 1, -1, True])
    def test_truthy_values(self, value: object) -> None:
        assert is_truthy(value) is True

    def test_to_number(self) -> None:
        assert to_number(None) == 0.0
        assert to_number(True) == 1.0
        assert to_number(" 12 ") == 12.0
        assert to_number("") == 0.0
        assert math.isnan(to_number("twelve"))
        assert math.isnan(to_number([1]))
