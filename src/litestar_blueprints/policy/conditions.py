"""Sandboxed policy condition expressions.

Policy rules may carry free-form conditions such as::

    subject.attributes.department == resource.attributes.department && !context.after_hours

Conditions are parsed into a Python AST and checked against a fixed set of
node types before a small interpreter walks the tree. Nothing is compiled or
passed to ``eval``; the only names in scope are ``subject``, ``resource`` and
``context``, and private attributes (leading underscore) are never read.

Both Python (``and``, ``or``, ``not``, ``True``, ``None``) and JavaScript
spellings (``&&``, ``||``, ``!``, ``===``, ``true``, ``null``) are accepted.

Evaluation fails closed: an invalid expression, a disallowed construct or a
runtime error yields ``False``.
"""

from __future__ import annotations

import ast
import operator
from collections.abc import Mapping, Sequence
from functools import lru_cache
from typing import Any

import structlog

from litestar_blueprints.core.expression import is_truthy

__all__ = [
    "ALLOWED_FUNCTIONS",
    "CONDITION_ROOTS",
    "evaluate_condition",
    "normalize_condition",
    "validate_condition",
]

logger = structlog.get_logger(__name__)

CONDITION_ROOTS: frozenset[str] = frozenset({"subject", "resource", "context"})
"""Names a condition may reference."""

ALLOWED_FUNCTIONS: dict[str, Any] = {"abs": abs, "len": len, "min": min, "max": max}
"""Functions a condition may call."""

_KEYWORDS = {"true": "True", "false": "False", "null": "None", "undefined": "None"}

_ALLOWED_NODES: tuple[type[ast.AST], ...] = (
    ast.Expression,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.UnaryOp,
    ast.Not,
    ast.USub,
    ast.UAdd,
    ast.Compare,
    ast.Eq,
    ast.NotEq,
    ast.Lt,
    ast.LtE,
    ast.Gt,
    ast.GtE,
    ast.In,
    ast.NotIn,
    ast.Is,
    ast.IsNot,
    ast.BinOp,
    ast.Add,
    ast.Sub,
    ast.Mult,
    ast.Div,
    ast.Mod,
    ast.Attribute,
    ast.Subscript,
    ast.Name,
    ast.Load,
    ast.Constant,
    ast.List,
    ast.Tuple,
    ast.IfExp,
    ast.Call,
)

_COMPARATORS: dict[type[ast.cmpop], Any] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

_BINARY: dict[type[ast.operator], Any] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
}

# operands `*` refuses to repeat
_SEQUENCES = (str, bytes, list, tuple)


class _Rejected(Exception):
    """A construct outside the condition grammar."""


def normalize_condition(expression: str) -> str:
    """Rewrite JavaScript operators and literals into their Python spelling.

    String literals are copied untouched.

    Example:
        >>> " ".join(normalize_condition("subject.active === true && !context.locked").split())
        'subject.active == True and not context.locked'
    """
    out: list[str] = []
    index = 0
    length = len(expression)
    while index < length:
        char = expression[index]
        if char in "'\"":
            end = index + 1
            while end < length and expression[end] != char:
                end += 2 if expression[end] == "\\" else 1
            out.append(expression[index : end + 1])
            index = end + 1
        elif expression.startswith(("===", "!=="), index):
            out.append("==" if char == "=" else "!=")
            index += 3
        elif expression.startswith(("==", "!="), index):
            out.append(expression[index : index + 2])
            index += 2
        elif expression.startswith("&&", index):
            out.append(" and ")
            index += 2
        elif expression.startswith("||", index):
            out.append(" or ")
            index += 2
        elif char == "!":
            out.append(" not ")
            index += 1
        elif char.isalpha() or char == "_":
            end = index
            while end < length and (expression[end].isalnum() or expression[end] == "_"):
                end += 1
            word = expression[index:end]
            is_attribute = bool(out) and out[-1] == "."
            out.append(word if is_attribute else _KEYWORDS.get(word, word))
            index = end
        else:
            out.append(char)
            index += 1
    return "".join(out)


@lru_cache(maxsize=512)
def _compile(expression: str) -> ast.Expression:
    try:
        tree = ast.parse(normalize_condition(expression).strip(), mode="eval")
    except SyntaxError as exc:
        msg = f"Syntax error: {exc.msg}"
        raise _Rejected(msg) from exc

    # function names are checked by the Call branch, not as scope names
    callees = {id(node.func) for node in ast.walk(tree) if isinstance(node, ast.Call)}
    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            msg = f"Disallowed construct: {type(node).__name__}"
            raise _Rejected(msg)
        if isinstance(node, ast.Name) and node.id not in CONDITION_ROOTS and id(node) not in callees:
            msg = f"Disallowed name: {node.id}"
            raise _Rejected(msg)
        if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            msg = f"Disallowed attribute access: {node.attr}"
            raise _Rejected(msg)
        if isinstance(node, ast.Call) and (
            not isinstance(node.func, ast.Name) or node.func.id not in ALLOWED_FUNCTIONS or node.keywords
        ):
            msg = f"Disallowed function call: {ast.unparse(node.func)}"
            raise _Rejected(msg)
        if isinstance(node, ast.Constant) and not isinstance(node.value, (int, float, str, bool, type(None))):
            msg = f"Disallowed constant type: {type(node.value).__name__}"
            raise _Rejected(msg)
    return tree


def validate_condition(expression: str) -> list[str]:
    """Check a condition without evaluating it.

    Returns:
        Error messages; empty when the expression is acceptable.
    """
    if not expression.strip():
        return ["Condition must have a non-empty expression"]
    try:
        _compile(expression)
    except _Rejected as exc:
        return [str(exc)]
    return []


def evaluate_condition(
    expression: str,
    *,
    subject: Any,
    resource: Any,
    context: Mapping[str, Any] | None = None,
) -> bool:
    """Evaluate a policy condition.

    Args:
        expression: The condition.
        subject: Bound to ``subject``; attributes are read from mappings or public attributes.
        resource: Bound to ``resource``.
        context: Bound to ``context``.

    Returns:
        The truthiness of the result, or ``False`` when the expression is
        invalid or fails at runtime.
    """
    scope = {"subject": subject, "resource": resource, "context": context or {}}
    try:
        tree = _compile(expression)
        return is_truthy(_evaluate(tree.body, scope))
    except (_Rejected, ArithmeticError, TypeError, ValueError, RecursionError, MemoryError) as exc:
        logger.debug("policy.condition_failed", expression=expression, error=str(exc))
        return False


def _member(value: Any, name: str) -> Any:
    if value is None:
        return None
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


def _item(value: Any, key: Any) -> Any:
    if isinstance(value, Mapping):
        return value.get(key)
    if isinstance(value, Sequence) and not isinstance(value, str) and isinstance(key, int):
        return value[key] if -len(value) <= key < len(value) else None
    return None


def _evaluate(node: ast.AST, scope: dict[str, Any]) -> Any:  # noqa: PLR0911, PLR0912
    if isinstance(node, ast.Constant):
        return node.value

    if isinstance(node, ast.Name):
        return scope[node.id]

    if isinstance(node, ast.Attribute):
        return _member(_evaluate(node.value, scope), node.attr)

    if isinstance(node, ast.Subscript):
        return _item(_evaluate(node.value, scope), _evaluate(node.slice, scope))

    if isinstance(node, ast.BoolOp):
        result: Any = None
        for value in node.values:
            result = _evaluate(value, scope)
            if isinstance(node.op, ast.And) and not is_truthy(result):
                return result
            if isinstance(node.op, ast.Or) and is_truthy(result):
                return result
        return result

    if isinstance(node, ast.UnaryOp):
        operand = _evaluate(node.operand, scope)
        if isinstance(node.op, ast.Not):
            return not is_truthy(operand)
        return -operand if isinstance(node.op, ast.USub) else +operand

    if isinstance(node, ast.Compare):
        left = _evaluate(node.left, scope)
        for op, comparator in zip(node.ops, node.comparators, strict=True):
            right = _evaluate(comparator, scope)
            if not _compare(op, left, right):
                return False
            left = right
        return True

    if isinstance(node, ast.BinOp):
        left, right = _evaluate(node.left, scope), _evaluate(node.right, scope)
        if isinstance(node.op, ast.Mult) and (isinstance(left, _SEQUENCES) or isinstance(right, _SEQUENCES)):
            msg = "Repetition of strings or lists is not supported"
            raise _Rejected(msg)
        return _BINARY[type(node.op)](left, right)

    if isinstance(node, (ast.List, ast.Tuple)):
        return [_evaluate(element, scope) for element in node.elts]

    if isinstance(node, ast.IfExp):
        branch = node.body if is_truthy(_evaluate(node.test, scope)) else node.orelse
        return _evaluate(branch, scope)

    if isinstance(node, ast.Call):
        function = ALLOWED_FUNCTIONS[node.func.id]  # type: ignore[attr-defined]
        return function(*(_evaluate(argument, scope) for argument in node.args))

    msg = f"Unsupported node: {type(node).__name__}"
    raise _Rejected(msg)


def _compare(op: ast.cmpop, left: Any, right: Any) -> bool:
    if isinstance(op, (ast.In, ast.NotIn)):
        found = right is not None and left in right
        return found if isinstance(op, ast.In) else not found
    if isinstance(op, (ast.Lt, ast.LtE, ast.Gt, ast.GtE)) and (left is None or right is None):
        return False
    return bool(_COMPARATORS[type(op)](left, right))
