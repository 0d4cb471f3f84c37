"""Skip conditions for playbook steps.

A condition is a single comparison ``A <op> B`` where each side is a numeric
literal or a field reference and ``op`` is one of ``== != > >= < <=``.
Native booleans and the strings ``"true"``/``"false"`` pass through.
Anything else fails loudly: conditions are written by playbook authors and a
malformed one should surface, not silently run or skip a step.

Comparison is strict. Two numbers (int, float or finite Decimal) compare
numerically. Otherwise ``==`` and ``!=`` only consider values of the same
type equal, and ordering operators on non-numbers fail.
"""

from __future__ import annotations

import operator
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Union

from finlogic.errors import ExpressionEvaluationError, ExpressionSyntaxError
from finlogic.expression.arithmetic import is_number
from finlogic.expression.lexer import Token, TokenKind, tokenize
from finlogic.expression.nodes import FieldReference, Number, resolve_reference

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}

_USAGE = "Use the form: intake.field <op> number or intake.field <op> intake.field2"

Operand = Union[Number, FieldReference]


@dataclass(frozen=True)
class Comparison:
    """A parsed ``left <op> right`` condition."""

    left: Operand
    operator: str
    right: Operand


def _unsupported(text: str, token: Token) -> ExpressionSyntaxError:
    return ExpressionSyntaxError(
        f'Unsupported condition syntax: "{text}" (unexpected {token.describe()} '
        f"at position {token.position}). {_USAGE}",
        token.position,
    )


def parse_condition(text: str) -> Comparison:
    """Parse condition text into a comparison.

    Raises:
        ExpressionSyntaxError: If the text is not a single comparison
    """
    tokens = tokenize(text, allow_comparators=True)
    pos = 0

    def operand() -> Operand:
        nonlocal pos
        token = tokens[pos]
        negative = False
        if token.kind is TokenKind.MINUS:
            negative = True
            pos += 1
            token = tokens[pos]
        if token.kind is TokenKind.NUMBER:
            pos += 1
            return Number(-token.value if negative else token.value)
        if token.kind is TokenKind.FIELD_REF and not negative:
            pos += 1
            namespace, name = token.value
            return FieldReference(namespace, name, token.position)
        raise _unsupported(text, token)

    left = operand()
    token = tokens[pos]
    if token.kind is not TokenKind.COMPARATOR:
        raise _unsupported(text, token)
    pos += 1
    right = operand()
    if tokens[pos].kind is not TokenKind.EOF:
        raise _unsupported(text, tokens[pos])

    return Comparison(left, token.value, right)


def _operand_value(
    node: Operand,
    values: Mapping[str, Any],
    step_outputs: Mapping[str, Mapping[str, Any]] | None,
) -> Any:
    if isinstance(node, Number):
        return node.value
    return resolve_reference(node, values, step_outputs)


def compare(op: str, left: Any, right: Any) -> bool:
    """Apply a comparison operator with strict typing."""
    if is_number(left) and is_number(right):
        return _OPERATORS[op](left, right)
    if op in ("==", "!="):
        equal = type(left) is type(right) and left == right
        return equal if op == "==" else not equal
    raise ExpressionEvaluationError(
        f"Cannot apply {op} to {type(left).__name__} and {type(right).__name__}"
    )


def evaluate_condition(
    condition: str | bool,
    values: Mapping[str, Any],
    step_outputs: Mapping[str, Mapping[str, Any]] | None = None,
) -> bool:
    """Evaluate a skip condition.

    Args:
        condition: Condition text or a native boolean
        values: Intake values keyed by field id
        step_outputs: Outputs of earlier succeeded steps keyed by step id

    Returns:
        True if the step should run, False if it should be skipped

    Raises:
        ExpressionSyntaxError: If the condition is malformed or not text
        UnknownFieldError: If a referenced field is absent
        ExpressionEvaluationError: If the operands cannot be compared
    """
    if isinstance(condition, bool):
        return condition
    if not isinstance(condition, str):
        raise ExpressionSyntaxError(
            f"Condition must be a string or boolean, got {type(condition).__name__}"
        )

    stripped = condition.strip()
    if stripped == "true":
        return True
    if stripped == "false":
        return False

    comparison = parse_condition(condition)
    left = _operand_value(comparison.left, values, step_outputs)
    right = _operand_value(comparison.right, values, step_outputs)
    return compare(comparison.operator, left, right)
