"""Hand-written expression grammars for playbooks.

This package provides:
- Arithmetic expressions for derived step inputs
- Single-comparison conditions for step skip logic

Neither grammar hands author text to a dynamic evaluator.
"""

from finlogic.expression.arithmetic import (
    evaluate,
    evaluate_expression,
    parse_expression,
)
from finlogic.expression.condition import (
    Comparison,
    evaluate_condition,
    parse_condition,
)
from finlogic.expression.lexer import Token, TokenKind, tokenize
from finlogic.expression.nodes import (
    BinaryOp,
    FieldReference,
    Node,
    Number,
    UnaryNegate,
)

__all__ = [
    # Lexer
    "Token",
    "TokenKind",
    "tokenize",
    # Syntax tree
    "Node",
    "Number",
    "FieldReference",
    "BinaryOp",
    "UnaryNegate",
    # Arithmetic
    "parse_expression",
    "evaluate",
    "evaluate_expression",
    # Conditions
    "Comparison",
    "parse_condition",
    "evaluate_condition",
]
