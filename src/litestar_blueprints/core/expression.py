"""Guard and transition expression evaluation.

Workflow authors write guards and transition conditions as small boolean
expressions over ``data``, ``input`` and ``output``::

    data.amount > 1000 && data.region === "eu"
    !data.flags[0] || input.approved

The grammar is deliberately tiny: ``||`` splits first, then ``&&``, a leading
``!`` negates, and each term is either a comparison, a bare path (truthiness),
or a literal (truthiness). There are no function calls and no parentheses.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping, Sequence
from typing import Any

from litestar_blueprints.core.types import UNDEFINED

__all__ = [
    "evaluate_expression",
    "is_truthy",
    "parse_literal",
    "resolve_path",
    "split_top_level",
    "to_number",
]

_COMPARISON = re.compile(r"^(data|input|output)\.([\w$.\[\]]+)\s*(===|!==|==|!=|>=|<=|>|<)\s*(.+)$", re.DOTALL)
_BARE_PATH = re.compile(r"^(data|input|output)(?:\.([\w$.\[\]]+))?$")
_NUMBER = re.compile(r"^-?\d+(?:\.\d+)?$")
_PATH_TOKEN = re.compile(r"([^.\[\]]+)|\[(\d+)\]")


def evaluate_expression(expression: str | None, context: Mapping[str, Any]) -> bool:
    """Evaluate an expression against a ``{data, input, output}`` context.

    Args:
        expression: The expression. ``None`` or blank always passes.
        context: Mapping with a ``data`` key and optional ``input``/``output``.

    Returns:
        The boolean result.

    Example:
        >>> evaluate_expression("data.count > 2 && data.count < 5", {"data": {"count": 3}})
        True
    """
    if expression is None or not expression.strip():
        return True
    return any(
        all(_evaluate_term(term, context) for term in split_top_level(branch, "&&"))
        for branch in split_top_level(expression, "||")
    )


def split_top_level(expression: str, operator: str) -> list[str]:
    """Split on an operator, ignoring occurrences inside quoted strings.

    Args:
        expression: The text to split.
        operator: The operator, e.g. ``"||"``.

    Returns:
        The stripped parts, in order.
    """
    parts: list[str] = []
    quote: str | None = None
    start = 0
    index = 0
    while index < len(expression):
        char = expression[index]
        if quote:
            if char == "\\":
                index += 2
                continue
            if char == quote:
                quote = None
        elif char in {"'", '"'}:
            quote = char
        elif expression.startswith(operator, index):
            parts.append(expression[start:index].strip())
            index += len(operator)
            start = index
            continue
        index += 1
    parts.append(expression[start:].strip())
    return parts


def _evaluate_term(term: str, context: Mapping[str, Any]) -> bool:
    term = term.strip()
    if term.startswith("!") and not term.startswith("!="):
        return not _evaluate_term(term[1:], context)

    match = _COMPARISON.match(term)
    if match:
        root, path, operator, raw = match.groups()
        left = resolve_path(context.get(root, UNDEFINED), path)
        return _compare(left, operator, parse_literal(raw))

    match = _BARE_PATH.match(term)
    if match:
        root, path = match.groups()
        value = context.get(root, UNDEFINED)
        return is_truthy(resolve_path(value, path) if path else value)

    return is_truthy(parse_literal(term))


def resolve_path(value: Any, path: str) -> Any:
    """Walk a dotted/indexed path such as ``items[0].name``.

    Args:
        value: The root value.
        path: The path below the root.

    Returns:
        The resolved value, or ``UNDEFINED`` when any segment is missing.
    """
    current = value
    for name, index in _PATH_TOKEN.findall(path):
        if current is UNDEFINED or current is None:
            return UNDEFINED
        segment: str | int = int(index) if index else name
        if isinstance(current, Mapping):
            current = current.get(segment if isinstance(segment, str) else str(segment), UNDEFINED)
        elif isinstance(current, Sequence) and not isinstance(current, str):
            position = segment if isinstance(segment, int) else _as_index(segment)
            if position is None or not 0 <= position < len(current):
                return UNDEFINED
            current = current[position]
        elif isinstance(segment, str) and not segment.startswith("_"):
            current = getattr(current, segment, UNDEFINED)
        else:
            return UNDEFINED
    return current


def _as_index(segment: str) -> int | None:
    return int(segment) if segment.isdigit() else None


def parse_literal(raw: str) -> Any:
    """Parse the right-hand side of a comparison.

    Quoted strings, integers, decimals, ``true``, ``false``, ``null`` and
    ``undefined`` are recognised; anything else is returned as raw text.
    """
    text = raw.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in {"'", '"'}:
        return text[1:-1]
    if _NUMBER.match(text):
        return float(text) if "." in text else int(text)
    return {"true": True, "false": False, "null": None, "undefined": UNDEFINED}.get(text, text)


def is_truthy(value: Any) -> bool:
    """Expression-dialect truthiness.

    ``None``, ``UNDEFINED``, ``False``, zero, ``NaN`` and the empty string are
    falsy. Containers are truthy even when empty.
    """
    if value is None or value is UNDEFINED:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def to_number(value: Any) -> float:
    """Coerce a value to a number the way the expression dialect does."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def _strict_equals(left: Any, right: Any) -> bool:
    if left is UNDEFINED or right is UNDEFINED or left is None or right is None:
        return left is right
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if type(left) is not type(right):
        return False
    return bool(left == right)


def _loose_equals(left: Any, right: Any) -> bool:
    left_nullish = left is None or left is UNDEFINED
    right_nullish = right is None or right is UNDEFINED
    if left_nullish or right_nullish:
        return left_nullish and right_nullish
    scalars = (bool, int, float, str)
    if isinstance(left, scalars) and isinstance(right, scalars) and type(left) is not type(right):
        if isinstance(left, str) and isinstance(right, str):
            return left == right
        return to_number(left) == to_number(right)
    return bool(left == right)


def _compare(left: Any, operator: str, right: Any) -> bool:
    if operator == "===":
        return _strict_equals(left, right)
    if operator == "!==":
        return not _strict_equals(left, right)
    if operator == "==":
        return _loose_equals(left, right)
    if operator == "!=":
        return not _loose_equals(left, right)
    lhs, rhs = to_number(left), to_number(right)
    if operator == ">":
        return lhs > rhs
    if operator == ">=":
        return lhs >= rhs
    if operator == "<":
        return lhs < rhs
    return lhs <= rhs
