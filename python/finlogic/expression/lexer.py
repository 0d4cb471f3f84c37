"""Tokenizer shared by the arithmetic and condition grammars.

Recognizes decimal numbers (``12``, ``3.5``, ``.5``), field references with a
reserved dotted prefix (``intake.salary``, ``steps.tax.amount``), the four
arithmetic operators, parentheses and, for conditions only, the six
comparison operators. Whitespace is skipped. Any other character fails
immediately with its position.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from finlogic.errors import ExpressionSyntaxError

INTAKE_PREFIX = "intake."
STEPS_PREFIX = "steps."

# Prefix -> number of dotted name segments that follow it
FIELD_PREFIXES: dict[str, int] = {
    INTAKE_PREFIX: 1,
    STEPS_PREFIX: 2,
}

_DIGITS = frozenset("0123456789")

COMPARATORS = ("==", "!=", ">=", "<=", ">", "<")

_SINGLE_CHAR_TOKENS = {
    "+": "PLUS",
    "-": "MINUS",
    "*": "STAR",
    "/": "SLASH",
    "(": "LPAREN",
    ")": "RPAREN",
}


class TokenKind(str, Enum):
    """Kinds of lexical tokens."""

    NUMBER = "NUMBER"
    FIELD_REF = "FIELD_REF"
    PLUS = "PLUS"
    MINUS = "MINUS"
    STAR = "STAR"
    SLASH = "SLASH"
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    COMPARATOR = "COMPARATOR"
    EOF = "EOF"


@dataclass(frozen=True)
class Token:
    """A single lexical token.

    ``value`` holds the parsed number for NUMBER, a ``(namespace, name)``
    tuple for FIELD_REF, and the source text for operators.
    """

    kind: TokenKind
    value: Any
    position: int

    def describe(self) -> str:
        if self.kind is TokenKind.EOF:
            return "end of expression"
        if self.kind is TokenKind.FIELD_REF:
            namespace, name = self.value
            return f'field reference "{namespace}.{name}"'
        return f'"{self.value}"'


def _is_name_char(ch: str) -> bool:
    return ch.isascii() and (ch.isalnum() or ch == "_")


def _scan_number(text: str, start: int) -> tuple[Token, int]:
    i = start
    while i < len(text) and (text[i] in _DIGITS or text[i] == "."):
        i += 1
    literal = text[start:i]
    if literal.count(".") > 1:
        raise ExpressionSyntaxError(
            f'Invalid numeric literal "{literal}" at position {start}', start
        )
    try:
        value: int | float = float(literal) if "." in literal else int(literal)
    except ValueError:
        value = math.inf
    if isinstance(value, float) and math.isinf(value):
        raise ExpressionSyntaxError(
            f"Numeric literal at position {start} is out of range", start
        )
    return Token(TokenKind.NUMBER, value, start), i


def _scan_field(text: str, start: int, prefix: str) -> tuple[Token, int]:
    segments: list[str] = []
    i = start + len(prefix)
    for index in range(FIELD_PREFIXES[prefix]):
        if index > 0:
            if i >= len(text) or text[i] != ".":
                raise ExpressionSyntaxError(
                    f'"{prefix}" reference at position {start} needs '
                    f"{FIELD_PREFIXES[prefix]} dotted name segments",
                    start,
                )
            i += 1
        segment_start = i
        while i < len(text) and _is_name_char(text[i]):
            i += 1
        if i == segment_start:
            raise ExpressionSyntaxError(
                f'"{prefix}" reference at position {start} must be followed by a field name',
                start,
            )
        segments.append(text[segment_start:i])
    namespace = prefix.rstrip(".")
    return Token(TokenKind.FIELD_REF, (namespace, ".".join(segments)), start), i


def tokenize(text: str, allow_comparators: bool = False) -> list[Token]:
    """Tokenize expression text into a flat token list ending with EOF.

    Args:
        text: The expression source.
        allow_comparators: Whether comparison operators are legal tokens.

    Returns:
        List of tokens, always terminated by an EOF token.

    Raises:
        ExpressionSyntaxError: On any unrecognized character.
    """
    tokens: list[Token] = []
    i = 0

    while i < len(text):
        ch = text[i]

        if ch.isspace():
            i += 1
            continue

        if ch in _DIGITS or (ch == "." and text[i + 1 : i + 2] in _DIGITS):
            token, i = _scan_number(text, i)
            tokens.append(token)
            continue

        prefix = next((p for p in FIELD_PREFIXES if text.startswith(p, i)), None)
        if prefix is not None:
            token, i = _scan_field(text, i, prefix)
            tokens.append(token)
            continue

        if ch in _SINGLE_CHAR_TOKENS:
            tokens.append(Token(TokenKind(_SINGLE_CHAR_TOKENS[ch]), ch, i))
            i += 1
            continue

        if allow_comparators:
            comparator = next((c for c in COMPARATORS if text.startswith(c, i)), None)
            if comparator is not None:
                tokens.append(Token(TokenKind.COMPARATOR, comparator, i))
                i += len(comparator)
                continue

        raise ExpressionSyntaxError(
            f'Unexpected character "{ch}" at position {i} in expression: "{text}"', i
        )

    tokens.append(Token(TokenKind.EOF, "", len(text)))
    return tokens
