"""Tests for sandboxed policy conditions."""

from __future__ import annotations

from typing import Any

import pytest

from litestar_blueprints.policy.conditions import (
    ALLOWED_FUNCTIONS,
    evaluate_condition,
    normalize_condition,
    validate_condition,
)
from litestar_blueprints.policy.engine import PolicyResource, PolicySubject

SUBJECT = PolicySubject(id="u1", roles=["agent"], attributes={"department": "sales", "level": 3})
RESOURCE = PolicyResource(type="contact", id="c1", attributes={"department": "sales", "tags": ["vip", "eu"]})


def _evaluate(expression: str, context: dict[str, Any] | None = None) -> bool:
    return evaluate_condition(expression, subject=SUBJECT, resource=RESOURCE, context=context)


@pytest.mark.unit
class TestNormalizeCondition:
    """Tests for JavaScript to Python operator rewriting."""

    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ("a === b", "a == b"),
            ("a !== b", "a != b"),
            ("a && b || c", "a and b or c"),
            ("!a", "not a"),
            ("x == null", "x == None"),
            ("flag === true", "flag == True"),
            ("subject.true", "subject.true"),
            ("'a && b' == x", "'a && b' == x"),
        ],
    )
    def test_rewrites(self, expression: str, expected: str) -> None:
        assert " ".join(normalize_condition(expression).split()) == expected


@pytest.mark.unit
class TestEvaluateCondition:
    """Tests for condition evaluation."""

    @pytest.mark.parametrize(
        "expression",
        [
            "subject.attributes.department == resource.attributes.department",
            "subject.attributes.level >= 3 and 'agent' in subject.roles",
            "'vip' in resource.attributes.tags",
            "resource.attributes.tags[0] === 'vip'",
            "len(resource.attributes.tags) == 2",
            "subject.attributes.level * 2 > 5",
            "context.channel === 'web' || context.override",
            "resource.attributes.missing === null",
            "'yes' if subject.id == 'u1' else ''",
        ],
    )
    def test_true(self, expression: str) -> None:
        assert _evaluate(expression, {"channel": "web"}) is True

    @pytest.mark.parametrize(
        "expression",
        [
            "subject.attributes.department != resource.attributes.department",
            "!context.channel",
            "resource.attributes.missing > 1",
            "resource.attributes.tags[5] == 'vip'",
            "'admin' in subject.roles",
        ],
    )
    def test_false(self, expression: str) -> None:
        assert _evaluate(expression, {"channel": "web"}) is False

    @pytest.mark.parametrize(
        "expression",
        [
            "__import__('os').system('true')",
            "subject.__class__",
            "subject._private",
            "open('/etc/passwd')",
            "[x for x in subject.roles]",
            "lambda: True",
            "subject.attributes.level / 0",
            "subject.attributes.department +",
            "other.value == 1",
        ],
    )
    def test_fails_closed(self, expression: str) -> None:
        assert _evaluate(expression) is False

    @pytest.mark.parametrize(
        "expression",
        [
            "context.text * 4000000000 == 'x'",
            "4000000000 * context.text == 'x'",
            "context.items * 4000000000 == []",
            "[1] * 3 == [1, 1, 1]",
        ],
    )
    def test_repetition_fails_closed(self, expression: str) -> None:
        assert _evaluate(expression, {"text": "ab", "items": [1]}) is False

    def test_memory_error_fails_closed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def exhausted(*_args: Any) -> Any:
            raise MemoryError

        monkeypatch.setitem(ALLOWED_FUNCTIONS, "len", exhausted)

        assert _evaluate("len(resource.attributes.tags) == 2") is False


@pytest.mark.unit
class TestValidateCondition:
    """Tests for static condition validation."""

    def test_valid(self) -> None:
        assert validate_condition("subject.attributes.level > 2 && context.ok") == []

    def test_empty(self) -> None:
        assert validate_condition("   ") == ["Condition must have a non-empty expression"]

    @pytest.mark.parametrize(
        ("expression", "message"),
        [
            ("os.sep == '/'", "Disallowed name: os"),
            ("subject._secret", "Disallowed attribute access: _secret"),
            ("subject.roles.pop()", "Disallowed function call: subject.roles.pop"),
            ("subject ==", "Syntax error"),
        ],
    )
    def test_rejections(self, expression: str, message: str) -> None:
        errors = validate_condition(expression)

        assert len(errors) == 1
        assert errors[0].startswith(message)
