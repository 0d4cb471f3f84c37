"""Tests for the playbook loader."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from finlogic.errors import PlaybookNotFoundError, PlaybookValidationError
from finlogic.playbook import DerivedInput, OnError, PlaybookDefinition, PlaybookLoader


# =============================================================================
# Test Fixtures
# =============================================================================


MINIMAL_PLAYBOOK_YAML = """
id: minimal
version: "1.0"
steps:
  - model_id: double
    input_map:
      value: 2
"""

RETIREMENT_PLAYBOOK_YAML = """
id: retirement-check
version: 2.1
name: Retirement check
description: Project savings and pension eligibility

intake_fields:
  - id: salary
    type: number
    label: Annual salary
  - id: age
    type: number

models:
  - model_id: double
    run_id: projected
    section_label: Projection
    input_map:
      value: intake.salary
  - model_id: double
    run_id: boosted
    input_map:
      value:
        derived: intake.salary + 5000
  - model_id: pension
    condition: intake.age > 65
    on_error: abort
    input_map:
      base: steps.projected.result
      rate: 0.04
"""


@pytest.fixture
def loader(playbooks_dir: Path) -> PlaybookLoader:
    return PlaybookLoader(playbooks_dir)


@pytest.fixture
def retirement_playbook(loader: PlaybookLoader) -> PlaybookDefinition:
    return loader.load_from_string(RETIREMENT_PLAYBOOK_YAML)


# =============================================================================
# Loading Tests
# =============================================================================


class TestPlaybookLoader:
    """Tests for PlaybookLoader."""

    def test_load_from_string_minimal(self, loader: PlaybookLoader) -> None:
        playbook = loader.load_from_string(MINIMAL_PLAYBOOK_YAML)
        assert playbook.id == "minimal"
        assert playbook.version == "1.0"
        assert len(playbook.steps) == 1
        step = playbook.steps[0]
        assert step.id == "double"
        assert step.on_error is OnError.WARN_AND_CONTINUE
        assert step.condition is None
        assert playbook.intake_fields == []

    def test_load_from_string_complete(self, retirement_playbook: PlaybookDefinition) -> None:
        """Test aliases, version coercion and input map shapes."""
        assert retirement_playbook.version == "2.1"
        assert [s.id for s in retirement_playbook.steps] == ["projected", "boosted", "pension"]
        assert [f.id for f in retirement_playbook.intake_fields] == ["salary", "age"]

        projected = retirement_playbook.steps[0]
        assert projected.input_map == {"value": "intake.salary"}
        assert projected.label == "Projection"

        boosted = retirement_playbook.steps[1]
        assert boosted.input_map["value"] == DerivedInput(derived="intake.salary + 5000")

        pension = retirement_playbook.steps[2]
        assert pension.on_error is OnError.ABORT
        assert pension.condition == "intake.age > 65"
        assert pension.input_map["rate"] == 0.04
        assert pension.label == "pension"

    def test_load_from_file(self, loader: PlaybookLoader, playbooks_dir: Path) -> None:
        (playbooks_dir / "minimal.yaml").write_text(MINIMAL_PLAYBOOK_YAML, encoding="utf-8")
        playbook = loader.load("minimal")
        assert playbook.id == "minimal"

    def test_load_nonexistent(self, loader: PlaybookLoader) -> None:
        with pytest.raises(PlaybookNotFoundError) as exc_info:
            loader.load("nonexistent")
        assert exc_info.value.playbook_id == "nonexistent"

    def test_load_path_traversal(self, loader: PlaybookLoader) -> None:
        with pytest.raises(PlaybookNotFoundError):
            loader.load("../secrets")

    def test_load_without_directory(self) -> None:
        with pytest.raises(PlaybookNotFoundError):
            PlaybookLoader().load("minimal")

    def test_load_invalid_yaml(self, loader: PlaybookLoader) -> None:
        """Test loading invalid YAML raises PlaybookValidationError."""
        with pytest.raises(PlaybookValidationError) as exc_info:
            loader.load_from_string("id: test\ninvalid: [unclosed")
        assert "Invalid YAML" in str(exc_info.value)

    def test_load_empty_yaml(self, loader: PlaybookLoader) -> None:
        with pytest.raises(PlaybookValidationError):
            loader.load_from_string("")

    def test_missing_required_fields(self, loader: PlaybookLoader) -> None:
        """Test every missing top-level field is reported."""
        with pytest.raises(PlaybookValidationError) as exc_info:
            loader.load_from_string("name: nothing here\n")
        errors = exc_info.value.errors
        assert len(errors) == 3
        assert any('"id"' in e for e in errors)
        assert any('"version"' in e for e in errors)
        assert any('"steps"' in e for e in errors)

    def test_empty_steps(self, loader: PlaybookLoader) -> None:
        with pytest.raises(PlaybookValidationError, match="non-empty"):
            loader.load_from_string('id: x\nversion: "1"\nsteps: []\n')

    def test_duplicate_step_ids(self, loader: PlaybookLoader) -> None:
        playbook_yaml = """
id: dupes
version: "1"
steps:
  - model_id: double
  - model_id: double
"""
        with pytest.raises(PlaybookValidationError, match="Duplicate step ids: double"):
            loader.load_from_string(playbook_yaml)

    def test_invalid_on_error(self, loader: PlaybookLoader) -> None:
        playbook_yaml = """
id: bad-policy
version: "1"
steps:
  - model_id: double
    on_error: retry
"""
        with pytest.raises(PlaybookValidationError) as exc_info:
            loader.load_from_string(playbook_yaml)
        assert any("on_error" in e for e in exc_info.value.errors)

    def test_derived_object_with_extra_keys(self, loader: PlaybookLoader) -> None:
        playbook_yaml = """
id: bad-derived
version: "1"
steps:
  - model_id: double
    input_map:
      value:
        derived: intake.a + 1
        fallback: 0
"""
        with pytest.raises(PlaybookValidationError):
            loader.load_from_string(playbook_yaml)

    def test_definition_is_frozen(self, retirement_playbook: PlaybookDefinition) -> None:
        with pytest.raises(ValidationError):
            retirement_playbook.steps[0].model_id = "other"  # type: ignore[misc]

    def test_get_step(self, retirement_playbook: PlaybookDefinition) -> None:
        step = retirement_playbook.get_step("boosted")
        assert step is not None
        assert step.model_id == "double"
        assert retirement_playbook.get_step("missing") is None


# =============================================================================
# Static Validation Tests
# =============================================================================


class TestPlaybookValidation:
    """Tests for PlaybookLoader.validate."""

    def test_validate_complete_playbook(
        self, loader: PlaybookLoader, retirement_playbook: PlaybookDefinition
    ) -> None:
        result = loader.validate(retirement_playbook)
        assert result.valid is True
        assert result.errors == []
        assert result.warnings == []

    def test_invalid_condition(self, loader: PlaybookLoader) -> None:
        playbook = loader.load_from_string(
            'id: x\nversion: "1"\nsteps:\n  - model_id: double\n    condition: "age is over 65"\n'
        )
        result = loader.validate(playbook)
        assert result.valid is False
        assert "invalid condition" in result.errors[0]

    def test_invalid_derived_expression(self, loader: PlaybookLoader) -> None:
        playbook = loader.load_from_string(
            'id: x\nversion: "1"\nsteps:\n  - model_id: double\n    input_map:\n'
            '      value:\n        derived: "intake.a +"\n'
        )
        result = loader.validate(playbook)
        assert result.valid is False
        assert "input 'value'" in result.errors[0]

    def test_forward_step_reference(self, loader: PlaybookLoader) -> None:
        """Test a step may only reference outputs of earlier steps."""
        playbook_yaml = """
id: forward
version: "1"
steps:
  - model_id: double
    run_id: first
    input_map:
      value: steps.second.result
  - model_id: double
    run_id: second
"""
        result = loader.validate(loader.load_from_string(playbook_yaml))
        assert result.valid is False
        assert "earlier step" in result.errors[0]

    def test_undeclared_intake_field_warns(self, loader: PlaybookLoader) -> None:
        playbook_yaml = """
id: undeclared
version: "1"
intake_fields:
  - id: salary
steps:
  - model_id: double
    input_map:
      value: intake.bonus
"""
        result = loader.validate(loader.load_from_string(playbook_yaml))
        assert result.valid is True
        assert len(result.warnings) == 1
        assert "intake.bonus" in result.warnings[0]

    def test_boolean_conditions_skip_parsing(self, loader: PlaybookLoader) -> None:
        playbook_yaml = """
id: flags
version: "1"
steps:
  - model_id: double
    condition: false
  - model_id: double
    run_id: again
    condition: "true"
"""
        playbook = loader.load_from_string(playbook_yaml)
        assert playbook.steps[0].condition is False
        assert loader.validate(playbook).valid is True
