"""Arithmetic expressions for derived step inputs.

Grammar (standard precedence, left associative)::

    expr   := term (('+' | '-') term)*
    term   := factor (('*' | '/') factor)*
    factor := NUMBER | FIELD_REF | '(' expr ')' | '-' factor

Parsing is recursive descent with one token of lookahead. Evaluation never
produces Infinity or NaN: division by zero and non-finite results fail.
Fields may hold ints, floats or Decimals; an operation with a Decimal operand
is carried out in Decimal.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from finlogic.errors import ContractViolation, ExpressionEvaluationError, ExpressionSyntaxError
from finlogic.expression.lexer import Token, TokenKind, tokenize
from finlogic.expression.nodes import (
    BinaryOp,
    FieldReference,
    Node,
    Number,
    UnaryNegate,
    resolve_reference,
)

_ADDITIVE = (TokenKind.PLUS, TokenKind.MINUS)
_MULTIPLICATIVE = (TokenKind.STAR, TokenKind.SLASH)


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, tokens: list[Token]) -> None:
        self._tokens = tokens
        self._pos = 0

    def parse(self) -> Node:
        node = self._expr()
        token = self._peek()
        if token.kind is not TokenKind.EOF:
            raise ExpressionSyntaxError(
                f"Unexpected {token.describe()} at position {token.position} after expression end",
                token.position,
            )
        return node

    def _peek(self) -> Token:
        return self._tokens[self._pos]

    def _advance(self) -> Token:
        token = self._tokens[self._pos]
        self._pos += 1
        return token

    def _expect(self, kind: TokenKind) -> Token:
        token = self._peek()
        if token.kind is not kind:
            raise ExpressionSyntaxError(
                f"Expected {kind.value} but got {token.describe()} at position {token.position}",
                token.position,
            )
        return self._advance()

    def _expr(self) -> Node:
        node = self._term()
        while self._peek().kind in _ADDITIVE:
            operator = self._advance().value
            node = BinaryOp(operator, node, self._term())
        return node

    def _term(self) -> Node:
        node = self._factor()
        while self._peek().kind in _MULTIPLICATIVE:
            operator = self._advance().value
            node = BinaryOp(operator, node, self._factor())
        return node

    def _factor(self) -> Node:
        token = self._peek()

        if token.kind is TokenKind.NUMBER:
            self._advance()
            return Number(token.value)

        if token.kind is TokenKind.FIELD_REF:
            self._advance()
            namespace, name = token.value
            return FieldReference(namespace, name, token.position)

        if token.kind is TokenKind.LPAREN:
            self._advance()
            node = self._expr()
            self._expect(TokenKind.RPAREN)
            return node

        if token.kind is TokenKind.MINUS:
            self._advance()
            return UnaryNegate(self._factor())

        raise ExpressionSyntaxError(
            f"Unexpected {token.describe()} at position {token.position} while parsing expression",
            token.position,
        )


def is_number(value: Any) -> bool:
    """Whether a value is an int, float or finite Decimal (bools excluded)."""
    if isinstance(value, Decimal):
        return value.is_finite()
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_finite(value: int | float | Decimal) -> bool:
    if isinstance(value, Decimal):
        return value.is_finite()
    return isinstance(value, int) or math.isfinite(value)


def _to_decimal(value: int | float | Decimal) -> Decimal:
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def parse_expression(text: str) -> Node:
    """Parse arithmetic expression text into a syntax tree.

    Raises:
        ContractViolation: If text is not a string
        ExpressionSyntaxError: If the text is empty or malformed
    """
    if not isinstance(text, str):
        raise ContractViolation(f"Expression must be a string, got {type(text).__name__}")
    if not text.strip():
        raise ExpressionSyntaxError("Expression must be a non-empty string")
    return _Parser(tokenize(text)).parse()


def evaluate(
    node: Node,
    values: Mapping[str, Any],
    step_outputs: Mapping[str, Mapping[str, Any]] | None = None,
) -> int | float | Decimal:
    """Evaluate a parsed expression against field values.

    Args:
        node: Root of the syntax tree
        values: Intake values keyed by field id
        step_outputs: Outputs of earlier succeeded steps keyed by step id

    Returns:
        The finite numeric result

    Raises:
        UnknownFieldError: If a referenced field is absent
        ExpressionEvaluationError: On division by zero, a non-numeric field
            or a non-finite result
    """
    if isinstance(node, Number):
        return node.value

    if isinstance(node, FieldReference):
        value = resolve_reference(node, values, step_outputs)
        if not is_number(value) or not _is_finite(value):
            raise ExpressionEvaluationError(
                f'Field "{node.path}" used in derived expression must be a finite number, '
                f"got {type(value).__name__}"
            )
        return value

    if isinstance(node, UnaryNegate):
        return -evaluate(node.operand, values, step_outputs)

    if isinstance(node, BinaryOp):
        left = evaluate(node.left, values, step_outputs)
        right = evaluate(node.right, values, step_outputs)
        if isinstance(left, Decimal) or isinstance(right, Decimal):
            left, right = _to_decimal(left), _to_decimal(right)
        try:
            if node.operator == "+":
                result = left + right
            elif node.operator == "-":
                result = left - right
            elif node.operator == "*":
                result = left * right
            elif node.operator == "/":
                if right == 0:
                    raise ExpressionEvaluationError("Division by zero in derived expression")
                result = left / right
            else:
                raise ExpressionEvaluationError(f"Unknown operator: {node.operator!r}")
        except ArithmeticError as e:
            raise ExpressionEvaluationError(f"Derived expression could not be computed: {e!r}") from e
        if not _is_finite(result):
            raise ExpressionEvaluationError("Derived expression produced a non-finite result")
        return result

    raise ContractViolation(f"Not an expression node: {type(node).__name__}")


def evaluate_expression(
    text: str,
    values: Mapping[str, Any],
    step_outputs: Mapping[str, Mapping[str, Any]] | None = None,
) -> int | float | Decimal:
    """Parse and evaluate arithmetic expression text in one call."""
    return evaluate(parse_expression(text), values, step_outputs)
