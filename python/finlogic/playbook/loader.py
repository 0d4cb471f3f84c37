"""Playbook loader for parsing and validating YAML playbook definitions.

This module provides:
- Playbook data models using Pydantic v2
- The PlaybookSource protocol the runner depends on
- YAML playbook loading from a directory or a string
- Static validation of conditions, derived expressions and references
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, Union

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from finlogic.errors import (
    ExpressionError,
    PlaybookNotFoundError,
    PlaybookValidationError,
)
from finlogic.expression.arithmetic import parse_expression
from finlogic.expression.condition import parse_condition
from finlogic.expression.nodes import FieldReference, iter_references
from finlogic.models.validator import ValidationResult
from finlogic.playbook.resolver import DerivedInput, is_field_reference, parse_field_reference

logger = structlog.get_logger()

_PLAYBOOK_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


# =============================================================================
# Playbook Models
# =============================================================================


class OnError(str, Enum):
    """Failure policy for a step."""

    ABORT = "abort"
    WARN_AND_CONTINUE = "warn_and_continue"


class IntakeField(BaseModel):
    """A named, typed value supplied once per playbook run."""

    model_config = ConfigDict(extra="allow", frozen=True)

    id: str
    type: str = Field(default="number", description="number, string or boolean")
    label: str = ""


InputMapping = Union[DerivedInput, bool, int, float, str, None]


def _coerce_version(v: Any) -> Any:
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


class StepDefinition(BaseModel):
    """A single model invocation in a playbook."""

    model_config = ConfigDict(
        extra="allow",
        frozen=True,
        populate_by_name=True,
        protected_namespaces=(),
    )

    id: str = Field(alias="run_id", description="Step id, unique within the playbook")
    model_id: str = Field(description="Id of the model to execute")
    condition: Union[bool, str, None] = Field(
        default=None, description="Skip condition; the step runs only if it holds"
    )
    input_map: dict[str, InputMapping] = Field(
        default_factory=dict, description="Input id -> literal, field reference or derived expression"
    )
    on_error: OnError = Field(default=OnError.WARN_AND_CONTINUE)
    section_label: str = Field(default="", description="Display label for the report section")

    @model_validator(mode="before")
    @classmethod
    def default_step_id(cls, data: Any) -> Any:
        """Steps without an explicit id are named after their model."""
        if isinstance(data, dict) and not data.get("run_id") and not data.get("id"):
            data = {**data, "run_id": data.get("model_id")}
        return data

    @field_validator("model_id")
    @classmethod
    def model_id_not_empty(cls, v: str) -> str:
        """Ensure model id is not empty."""
        if not v or not v.strip():
            raise ValueError("model_id cannot be empty")
        return v.strip()

    @field_validator("input_map", mode="before")
    @classmethod
    def parse_input_map(cls, v: Any) -> Any:
        """An absent input map means no inputs."""
        if v is None:
            return {}
        return v

    @property
    def label(self) -> str:
        return self.section_label or self.model_id


class PlaybookDefinition(BaseModel):
    """A complete playbook: intake schema plus ordered steps."""

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    id: str = Field(description="Playbook id")
    version: str = Field(description="Playbook version")
    name: str = Field(default="", description="Playbook name")
    description: str = Field(default="", description="Playbook description")
    intake_fields: list[IntakeField] = Field(default_factory=list)
    steps: list[StepDefinition] = Field(alias="models", min_length=1)

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v: Any) -> Any:
        """YAML reads ``version: 1.0`` as a float; keep it textual."""
        return _coerce_version(v)

    @field_validator("intake_fields", mode="before")
    @classmethod
    def parse_intake_fields(cls, v: Any) -> Any:
        if v is None:
            return []
        return v

    @model_validator(mode="after")
    def step_ids_unique(self) -> PlaybookDefinition:
        """Ensure step ids are unique."""
        ids = [step.id for step in self.steps]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate step ids: {', '.join(duplicates)}")
        return self

    def get_step(self, step_id: str) -> StepDefinition | None:
        """Get a step by id."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


# =============================================================================
# Playbook Source Protocol
# =============================================================================


class PlaybookSource(Protocol):
    """Protocol for playbook sources."""

    def load(self, playbook_id: str) -> PlaybookDefinition:
        """Resolve a playbook id to a definition.

        Raises:
            PlaybookNotFoundError: If no document exists for the id
            PlaybookValidationError: If the document is malformed
        """
        ...


# =============================================================================
# Playbook Loader
# =============================================================================


class PlaybookLoader:
    """Loader for YAML playbook definitions.

    This class handles:
    - Resolving ``<playbooks_dir>/<playbook_id>.yaml``
    - Parsing into PlaybookDefinition
    - Validating conditions, derived expressions and references

    Example:
        loader = PlaybookLoader("playbooks")
        playbook = loader.load("retirement-check")
        result = loader.validate(playbook)
        if not result.valid:
            print(f"Validation errors: {result.errors}")
    """

    def __init__(self, playbooks_dir: str | Path | None = None) -> None:
        """Initialize the playbook loader.

        Args:
            playbooks_dir: Directory of playbook documents; only needed for load()
        """
        self._playbooks_dir = Path(playbooks_dir).resolve() if playbooks_dir else None
        self._logger = logger.bind(component="playbook_loader")

    def load(self, playbook_id: str) -> PlaybookDefinition:
        """Load a playbook by id.

        Raises:
            PlaybookNotFoundError: If the document does not exist
            PlaybookValidationError: If the document is malformed
        """
        if self._playbooks_dir is None:
            raise PlaybookNotFoundError(playbook_id, "no playbooks directory configured")
        if not isinstance(playbook_id, str) or not _PLAYBOOK_ID_PATTERN.match(playbook_id) or ".." in playbook_id:
            raise PlaybookNotFoundError(str(playbook_id))

        path = self._playbooks_dir / f"{playbook_id}.yaml"
        if not path.is_file():
            raise PlaybookNotFoundError(playbook_id, str(path))

        self._logger.info("loading_playbook", path=str(path))
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise PlaybookValidationError(f"Failed to read playbook: {e}") from e

        playbook = self.load_from_string(content)

        self._logger.info(
            "playbook_loaded",
            playbook_id=playbook.id,
            version=playbook.version,
            steps=len(playbook.steps),
        )
        return playbook

    def load_from_string(self, content: str) -> PlaybookDefinition:
        """Load a playbook from a YAML string.

        Raises:
            PlaybookValidationError: If the YAML is invalid or malformed
        """
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise PlaybookValidationError(f"Invalid YAML: {e}") from e

        return self.load_from_dict(data)

    def load_from_dict(self, data: Any) -> PlaybookDefinition:
        """Build a playbook from an already-parsed document.

        Raises:
            PlaybookValidationError: If required fields are missing or invalid
        """
        if not isinstance(data, dict):
            raise PlaybookValidationError("Playbook must be a YAML mapping")

        errors: list[str] = []
        if not data.get("id"):
            errors.append('Playbook must declare an "id" field')
        if data.get("version") in (None, ""):
            errors.append('Playbook must declare a "version" field')
        steps = data.get("steps", data.get("models"))
        if not isinstance(steps, list) or not steps:
            errors.append('Playbook must declare a non-empty "steps" list')
        if errors:
            raise PlaybookValidationError(f"Malformed playbook: {'; '.join(errors)}", errors)

        try:
            return PlaybookDefinition(**data)
        except ValidationError as e:
            details = [
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
            ]
            raise PlaybookValidationError(f"Failed to parse playbook: {e}", details) from e

    def validate(self, playbook: PlaybookDefinition) -> ValidationResult:
        """Check a playbook's expressions and references without running it.

        Checks:
        - Conditions and derived expressions parse
        - Field reference strings are single references
        - ``steps.`` references point at an earlier step
        - ``intake.`` references name a declared intake field (warning)

        Returns:
            ValidationResult with any errors or warnings
        """
        errors: list[str] = []
        warnings: list[str] = []
        declared = {field.id for field in playbook.intake_fields}
        earlier: set[str] = set()

        self._logger.info("validating_playbook", playbook_id=playbook.id)

        for index, step in enumerate(playbook.steps):
            where = f"steps[{index}] ({step.id})"
            refs: list[FieldReference] = []

            if isinstance(step.condition, str) and step.condition.strip() not in ("true", "false"):
                try:
                    comparison = parse_condition(step.condition)
                except ExpressionError as e:
                    errors.append(f"{where}: invalid condition: {e}")
                else:
                    refs.extend(
                        op for op in (comparison.left, comparison.right) if isinstance(op, FieldReference)
                    )

            for key, mapping in step.input_map.items():
                try:
                    if isinstance(mapping, DerivedInput):
                        refs.extend(iter_references(parse_expression(mapping.derived)))
                    elif is_field_reference(mapping):
                        refs.append(parse_field_reference(mapping))
                except ExpressionError as e:
                    errors.append(f"{where}: input '{key}': {e}")

            for ref in refs:
                if ref.namespace == "steps":
                    step_id = ref.name.partition(".")[0]
                    if step_id not in earlier:
                        errors.append(f"{where}: reference to '{ref.path}' does not name an earlier step")
                elif declared and ref.name not in declared:
                    warnings.append(f"{where}: '{ref.path}' is not a declared intake field")

            earlier.add(step.id)

        result = ValidationResult(valid=not errors, errors=errors, warnings=warnings)

        self._logger.info(
            "validation_complete",
            valid=result.valid,
            error_count=len(errors),
            warning_count=len(warnings),
        )
        return result
