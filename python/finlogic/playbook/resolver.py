"""Step input resolution.

Turns a step's declared input map into concrete values. Each entry is one of:

- a literal scalar, used as-is
- a field reference string such as ``"intake.salary"`` or
  ``"steps.tax.amount"``, looked up in the supplied values
- a derived expression object ``{"derived": "intake.salary + 5000"}``,
  evaluated with the arithmetic grammar
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

from finlogic.errors import ContractViolation, ExpressionSyntaxError
from finlogic.expression.arithmetic import evaluate_expression
from finlogic.expression.lexer import FIELD_PREFIXES, TokenKind, tokenize
from finlogic.expression.nodes import FieldReference, resolve_reference

_SCALARS = (str, int, float, bool, type(None))


class DerivedInput(BaseModel):
    """An input computed from an arithmetic expression."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    derived: str


def is_field_reference(mapping: Any) -> bool:
    """Whether a mapping value is a field reference string."""
    return isinstance(mapping, str) and mapping.startswith(tuple(FIELD_PREFIXES))


def parse_field_reference(text: str) -> FieldReference:
    """Parse a string that must consist of exactly one field reference.

    Raises:
        ExpressionSyntaxError: If the text is anything else
    """
    tokens = tokenize(text.strip())
    if len(tokens) != 2 or tokens[0].kind is not TokenKind.FIELD_REF:
        raise ExpressionSyntaxError(
            f'Input reference "{text}" must be a single field reference; '
            'use {"derived": ...} for expressions',
            0,
        )
    namespace, name = tokens[0].value
    return FieldReference(namespace, name, 0)


def resolve_input(
    mapping: Any,
    intake_values: Mapping[str, Any],
    step_outputs: Mapping[str, Mapping[str, Any]] | None = None,
) -> Any:
    """Resolve a single input map entry to a concrete value.

    Raises:
        UnknownFieldError: If a referenced field is absent
        ExpressionError: If a derived expression fails
        ContractViolation: If the entry has an unsupported shape
    """
    if isinstance(mapping, DerivedInput):
        return evaluate_expression(mapping.derived, intake_values, step_outputs)

    if isinstance(mapping, Mapping):
        if set(mapping.keys()) != {"derived"}:
            raise ContractViolation(
                f"Input map objects must have exactly one key 'derived', got {sorted(mapping.keys())}"
            )
        return evaluate_expression(mapping["derived"], intake_values, step_outputs)

    if is_field_reference(mapping):
        return resolve_reference(parse_field_reference(mapping), intake_values, step_outputs)

    if isinstance(mapping, _SCALARS):
        return mapping

    raise ContractViolation(f"Unsupported input map value of type {type(mapping).__name__}")


def resolve_inputs(
    input_map: Mapping[str, Any] | None,
    intake_values: Mapping[str, Any],
    step_outputs: Mapping[str, Mapping[str, Any]] | None = None,
) -> dict[str, Any]:
    """Build the concrete inputs for a step.

    Args:
        input_map: Input id -> literal, field reference or derived expression
        intake_values: Intake values keyed by field id
        step_outputs: Outputs of earlier succeeded steps keyed by step id

    Returns:
        A new dict of resolved inputs; the arguments are not modified
    """
    if input_map is None:
        return {}
    if not isinstance(input_map, Mapping):
        raise ContractViolation(f"input_map must be a mapping, got {type(input_map).__name__}")

    return {
        key: resolve_input(mapping, intake_values, step_outputs)
        for key, mapping in input_map.items()
    }
