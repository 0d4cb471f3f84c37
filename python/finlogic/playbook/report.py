"""Playbook run results.

A step ends in exactly one of three states, each its own type:

- ``StepSucceeded`` carries the model's outputs
- ``StepFailed`` carries the error message
- ``StepSkipped`` carries the reason the condition did not hold

All three expose ``outputs``, ``error`` and ``skipped`` so callers can read
any result with the same shape.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Union


class StepStatus(str, Enum):
    """Terminal state of a step."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


def _readonly(value: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(value or {}))


# =============================================================================
# Step Results
# =============================================================================


@dataclass(frozen=True, kw_only=True)
class _StepOutcome:
    step_id: str
    model_id: str
    section_label: str = ""
    inputs: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "inputs", _readonly(self.inputs))

    def _common_dict(self, status: StepStatus) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "model_id": self.model_id,
            "section_label": self.section_label,
            "status": status.value,
            "inputs": dict(self.inputs),
        }


@dataclass(frozen=True, kw_only=True)
class StepSucceeded(_StepOutcome):
    """A step whose model ran and returned outputs."""

    outputs: Mapping[str, Any]
    model_version: str | None = None

    status = StepStatus.SUCCEEDED

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "outputs", _readonly(self.outputs))

    @property
    def error(self) -> None:
        return None

    @property
    def skipped(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        data = self._common_dict(self.status)
        data.update(
            outputs=dict(self.outputs),
            error=None,
            skipped=False,
            model_version=self.model_version,
        )
        return data


@dataclass(frozen=True, kw_only=True)
class StepFailed(_StepOutcome):
    """A step that could not produce outputs."""

    error: str
    error_code: str | None = None

    status = StepStatus.FAILED

    @property
    def outputs(self) -> None:
        return None

    @property
    def skipped(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        data = self._common_dict(self.status)
        data.update(outputs=None, error=self.error, error_code=self.error_code, skipped=False)
        return data


@dataclass(frozen=True, kw_only=True)
class StepSkipped(_StepOutcome):
    """A step whose condition evaluated false."""

    reason: str = ""

    status = StepStatus.SKIPPED

    @property
    def outputs(self) -> None:
        return None

    @property
    def error(self) -> None:
        return None

    @property
    def skipped(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        data = self._common_dict(self.status)
        data.update(outputs=None, error=None, skipped=True, reason=self.reason)
        return data


StepResult = Union[StepSucceeded, StepFailed, StepSkipped]


# =============================================================================
# Report
# =============================================================================


@dataclass(frozen=True)
class Summary:
    """Counts over a run's step results."""

    total: int
    executed: int
    skipped: int
    failed: int
    success: bool

    @classmethod
    def from_steps(cls, steps: Sequence[StepResult]) -> Summary:
        executed = sum(1 for s in steps if s.status is StepStatus.SUCCEEDED)
        skipped = sum(1 for s in steps if s.status is StepStatus.SKIPPED)
        failed = sum(1 for s in steps if s.status is StepStatus.FAILED)
        return cls(
            total=len(steps),
            executed=executed,
            skipped=skipped,
            failed=failed,
            success=failed == 0,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "total": self.total,
            "executed": self.executed,
            "skipped": self.skipped,
            "failed": self.failed,
            "success": self.success,
        }


@dataclass(frozen=True)
class PlaybookReport:
    """Immutable record of a completed playbook run."""

    playbook_id: str
    version: str
    intake: Mapping[str, Any]
    steps: tuple[StepResult, ...]
    summary: Summary
    executed_at: str

    @classmethod
    def build(
        cls,
        playbook_id: str,
        version: str,
        intake: Mapping[str, Any],
        steps: Sequence[StepResult],
    ) -> PlaybookReport:
        """Assemble a report, computing the summary once."""
        steps = tuple(steps)
        return cls(
            playbook_id=playbook_id,
            version=version,
            intake=_readonly(intake),
            steps=steps,
            summary=Summary.from_steps(steps),
            executed_at=datetime.now(timezone.utc).isoformat(),
        )

    def get_step(self, step_id: str) -> StepResult | None:
        """Get a step result by id."""
        for step in self.steps:
            if step.step_id == step_id:
                return step
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "playbook_id": self.playbook_id,
            "version": self.version,
            "intake": dict(self.intake),
            "steps": [s.to_dict() for s in self.steps],
            "summary": self.summary.to_dict(),
            "executed_at": self.executed_at,
        }
