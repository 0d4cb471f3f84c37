"""Expression syntax tree and field lookup."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Union

from finlogic.errors import UnknownFieldError


@dataclass(frozen=True)
class Number:
    """A numeric literal."""

    value: int | float


@dataclass(frozen=True)
class FieldReference:
    """A reference to an intake field or an earlier step's output."""

    namespace: str
    name: str
    position: int | None = None

    @property
    def path(self) -> str:
        return f"{self.namespace}.{self.name}"


@dataclass(frozen=True)
class BinaryOp:
    """An arithmetic operation on two sub-expressions."""

    operator: str
    left: Node
    right: Node


@dataclass(frozen=True)
class UnaryNegate:
    """Arithmetic negation of a sub-expression."""

    operand: Node


Node = Union[Number, FieldReference, BinaryOp, UnaryNegate]


def resolve_reference(
    ref: FieldReference,
    values: Mapping[str, Any],
    step_outputs: Mapping[str, Mapping[str, Any]] | None = None,
) -> Any:
    """Look up the raw value a field reference points at.

    Args:
        ref: The reference to resolve
        values: Intake values keyed by field id
        step_outputs: Outputs of earlier succeeded steps keyed by step id

    Returns:
        The referenced value, unconverted

    Raises:
        UnknownFieldError: If the reference does not resolve
    """
    if ref.namespace == "intake":
        if ref.name not in values:
            raise UnknownFieldError(ref.path, ref.position)
        return values[ref.name]

    if ref.namespace == "steps":
        step_id, _, output = ref.name.partition(".")
        outputs = (step_outputs or {}).get(step_id)
        if outputs is None or output not in outputs:
            raise UnknownFieldError(ref.path, ref.position)
        return outputs[output]

    raise UnknownFieldError(ref.path, ref.position)


def iter_references(node: Node) -> Iterator[FieldReference]:
    """Yield every field reference in a syntax tree, left to right."""
    if isinstance(node, FieldReference):
        yield node
    elif isinstance(node, BinaryOp):
        yield from iter_references(node.left)
        yield from iter_references(node.right)
    elif isinstance(node, UnaryNegate):
        yield from iter_references(node.operand)
