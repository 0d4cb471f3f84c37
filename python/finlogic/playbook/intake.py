"""Intake validation for playbook runs."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from types import MappingProxyType
from typing import Any

from finlogic.playbook.loader import IntakeField

INTAKE_TYPES = ("number", "string", "boolean")


def _type_error(field: IntakeField, value: Any) -> str | None:
    if field.type == "number":
        if (
            isinstance(value, bool)
            or not isinstance(value, (int, float))
            or (isinstance(value, float) and not math.isfinite(value))
        ):
            return f'Intake field "{field.id}" must be a finite number, got {type(value).__name__}'
    elif field.type == "string":
        if not isinstance(value, str):
            return f'Intake field "{field.id}" must be a string, got {type(value).__name__}'
    elif field.type == "boolean":
        if not isinstance(value, bool):
            return f'Intake field "{field.id}" must be a boolean, got {type(value).__name__}'
    else:
        return (
            f'Intake field "{field.id}" declares unknown type "{field.type}". '
            f"Allowed types: {', '.join(INTAKE_TYPES)}"
        )
    return None


def validate_intake(fields: Sequence[IntakeField], intake: Any) -> list[str]:
    """Check intake values against the declared fields.

    Every violation is reported; an empty list means the intake is valid.
    Undeclared keys are allowed.
    """
    if not isinstance(intake, Mapping):
        return [f"Intake must be a mapping, got {type(intake).__name__}"]

    errors: list[str] = []
    for field in fields:
        if field.id not in intake:
            errors.append(f'Missing required intake field: "{field.id}"')
            continue
        error = _type_error(field, intake[field.id])
        if error:
            errors.append(error)
    return errors


def freeze_intake(intake: Mapping[str, Any]) -> Mapping[str, Any]:
    """Snapshot intake values into a read-only mapping."""
    return MappingProxyType(dict(intake))
