"""Playbook loading, input resolution and orchestration.

This package provides:
- YAML playbook parsing and static validation
- Step input resolution from intake values and earlier outputs
- Sequential step execution with skip conditions and failure policies
- Immutable run reports
"""

from finlogic.playbook.intake import freeze_intake, validate_intake
from finlogic.playbook.loader import (
    IntakeField,
    OnError,
    PlaybookDefinition,
    PlaybookLoader,
    PlaybookSource,
    StepDefinition,
)
from finlogic.playbook.report import (
    PlaybookReport,
    StepFailed,
    StepResult,
    StepSkipped,
    StepStatus,
    StepSucceeded,
    Summary,
)
from finlogic.playbook.resolver import DerivedInput, resolve_input, resolve_inputs
from finlogic.playbook.runner import ModelExecutor, PlaybookRunner

__all__ = [
    # Loader
    "PlaybookLoader",
    "PlaybookSource",
    "PlaybookDefinition",
    "StepDefinition",
    "IntakeField",
    "OnError",
    # Resolver
    "DerivedInput",
    "resolve_input",
    "resolve_inputs",
    # Intake
    "validate_intake",
    "freeze_intake",
    # Runner
    "PlaybookRunner",
    "ModelExecutor",
    # Report
    "PlaybookReport",
    "StepResult",
    "StepSucceeded",
    "StepFailed",
    "StepSkipped",
    "StepStatus",
    "Summary",
]
