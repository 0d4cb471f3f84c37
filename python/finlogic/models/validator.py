"""Input validation against a model manifest."""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from finlogic.models.loader import ModelManifest

VALID_TYPES = ("number", "string", "boolean", "enum")


class ValidationResult(BaseModel):
    """Result of validating candidate inputs."""

    model_config = ConfigDict(frozen=True)

    valid: bool = Field(description="Whether the inputs satisfy the manifest")
    errors: list[str] = Field(default_factory=list, description="List of violations")
    warnings: list[str] = Field(default_factory=list, description="List of non-fatal findings")

    @classmethod
    def ok(cls, warnings: list[str] | None = None) -> ValidationResult:
        """Create a successful validation result."""
        return cls(valid=True, warnings=warnings or [])

    @classmethod
    def error(cls, errors: list[str]) -> ValidationResult:
        """Create a failed validation result."""
        return cls(valid=False, errors=errors)


class InputValidator(Protocol):
    """Protocol for input validators."""

    def validate(self, manifest: ModelManifest, inputs: Mapping[str, Any]) -> ValidationResult:
        """Check candidate inputs against a manifest."""
        ...


def _is_finite_number(value: Any) -> bool:
    if isinstance(value, Decimal):
        return value.is_finite()
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not isinstance(value, float) or math.isfinite(value)


def _show(value: Any) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)


class ManifestInputValidator:
    """Validates inputs against the types declared in a manifest.

    Rules:
    - Every declared input must be present
    - Extra keys are ignored
    - ``number`` must be a finite int, float or Decimal (not a bool)
    - ``string`` and ``boolean`` must match exactly
    - ``enum`` values must appear in the declared ``values`` list
    """

    def validate(self, manifest: ModelManifest, inputs: Mapping[str, Any]) -> ValidationResult:
        if not isinstance(inputs, Mapping):
            return ValidationResult.error(["inputs must be a mapping"])

        errors: list[str] = []
        for spec in manifest.inputs:
            if spec.id not in inputs:
                errors.append(f'Missing required input: "{spec.id}"')
                continue

            value = inputs[spec.id]

            if spec.type not in VALID_TYPES:
                errors.append(
                    f'Input "{spec.id}" declares unknown type "{spec.type}". '
                    f"Allowed types: {', '.join(VALID_TYPES)}"
                )
            elif spec.type == "number":
                if not _is_finite_number(value):
                    errors.append(
                        f'Input "{spec.id}" must be a finite number, '
                        f"got {type(value).__name__} ({_show(value)})"
                    )
            elif spec.type == "string":
                if not isinstance(value, str):
                    errors.append(
                        f'Input "{spec.id}" must be a string, got {type(value).__name__} ({_show(value)})'
                    )
            elif spec.type == "boolean":
                if not isinstance(value, bool):
                    errors.append(
                        f'Input "{spec.id}" must be a boolean, got {type(value).__name__} ({_show(value)})'
                    )
            elif spec.type == "enum":
                if not spec.values:
                    errors.append(
                        f'Input "{spec.id}" is declared as enum but has no "values" list in the manifest'
                    )
                elif value not in spec.values:
                    allowed = ", ".join(_show(v) for v in spec.values)
                    errors.append(
                        f'Input "{spec.id}" value {_show(value)} is not one of the allowed enum values: {allowed}'
                    )

        if errors:
            return ValidationResult.error(errors)
        return ValidationResult.ok()
