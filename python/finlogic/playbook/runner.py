"""Playbook runner for multi-step model pipelines.

This module provides:
- Fail-fast intake validation
- Sequential step execution with skip conditions
- Per-step failure policies (abort, warn_and_continue)
- Publication of step outputs for later steps
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Any, Protocol

import structlog

from finlogic.config import RuntimeConfig
from finlogic.errors import (
    ContractViolation,
    InputValidationError,
    IntakeValidationError,
    OrchestrationAbort,
)
from finlogic.expression.condition import evaluate_condition
from finlogic.models.loader import DirectoryModelLoader, ModelLoader
from finlogic.models.validator import InputValidator, ManifestInputValidator
from finlogic.playbook.intake import freeze_intake, validate_intake
from finlogic.playbook.loader import OnError, PlaybookDefinition, PlaybookLoader, PlaybookSource, StepDefinition
from finlogic.playbook.report import PlaybookReport, StepFailed, StepResult, StepSkipped, StepSucceeded
from finlogic.playbook.resolver import resolve_inputs
from finlogic.sandbox.executor import SandboxExecutor

logger = structlog.get_logger()


# =============================================================================
# Executor Protocol
# =============================================================================


class ModelExecutor(Protocol):
    """Protocol for model executors."""

    def execute(self, payload: str, inputs: Mapping[str, Any]) -> dict[str, Any]:
        """Run a logic payload against inputs.

        Args:
            payload: Model logic source
            inputs: Validated input values

        Returns:
            Dict of output values
        """
        ...


# =============================================================================
# Playbook Runner
# =============================================================================


class PlaybookRunner:
    """Runs playbooks step by step against a single intake.

    This class handles:
    - Loading the playbook through a PlaybookSource
    - Validating intake before the first step
    - Evaluating skip conditions and resolving step inputs
    - Loading, validating and executing each step's model

    Example:
        runner = PlaybookRunner.from_config(RuntimeConfig.from_env())
        report = runner.run("retirement-check", {"salary": 50000, "age": 30})
        if report.summary.success:
            print(f"Executed {report.summary.executed} steps")
    """

    def __init__(
        self,
        playbook_source: PlaybookSource,
        model_loader: ModelLoader,
        input_validator: InputValidator,
        executor: ModelExecutor,
    ) -> None:
        """Initialize the runner.

        Args:
            playbook_source: Resolves playbook ids to definitions
            model_loader: Resolves model ids to manifests and logic
            input_validator: Checks resolved inputs against a manifest
            executor: Runs model logic in isolation
        """
        self._playbook_source = playbook_source
        self._model_loader = model_loader
        self._input_validator = input_validator
        self._executor = executor
        self._logger = logger.bind(component="playbook_runner")

    @classmethod
    def from_config(cls, config: RuntimeConfig | None = None) -> PlaybookRunner:
        """Wire the default filesystem collaborators and sandbox."""
        config = config or RuntimeConfig()
        return cls(
            playbook_source=PlaybookLoader(config.playbooks_dir),
            model_loader=DirectoryModelLoader(config.models_dir),
            input_validator=ManifestInputValidator(),
            executor=SandboxExecutor.from_config(config.sandbox),
        )

    def run(self, playbook_id: str, intake: Mapping[str, Any]) -> PlaybookReport:
        """Load a playbook by id and run it.

        Raises:
            PlaybookNotFoundError: If the playbook does not exist
            PlaybookValidationError: If the playbook is malformed
            IntakeValidationError: If intake fails the declared schema
            OrchestrationAbort: If a step with on_error=abort fails
        """
        playbook = self._playbook_source.load(playbook_id)
        return self.run_playbook(playbook, intake)

    def run_playbook(self, playbook: PlaybookDefinition, intake: Mapping[str, Any]) -> PlaybookReport:
        """Run an already-loaded playbook.

        Args:
            playbook: The playbook definition
            intake: Intake values keyed by field id

        Returns:
            PlaybookReport with one result per attempted step
        """
        errors = validate_intake(playbook.intake_fields, intake)
        if errors:
            self._logger.warning(
                "intake_validation_failed",
                playbook_id=playbook.id,
                error_count=len(errors),
            )
            raise IntakeValidationError(errors)

        intake_values = freeze_intake(intake)
        start_time = time.time()

        self._logger.info(
            "playbook_run_start",
            playbook_id=playbook.id,
            version=playbook.version,
            steps=len(playbook.steps),
        )

        results: list[StepResult] = []
        step_outputs: dict[str, Mapping[str, Any]] = {}

        for step in playbook.steps:
            result = self._run_step(playbook, step, intake_values, step_outputs)
            results.append(result)
            if isinstance(result, StepSucceeded):
                step_outputs[step.id] = result.outputs

        report = PlaybookReport.build(
            playbook_id=playbook.id,
            version=playbook.version,
            intake=intake_values,
            steps=results,
        )

        self._logger.info(
            "playbook_run_complete",
            playbook_id=playbook.id,
            success=report.summary.success,
            executed=report.summary.executed,
            skipped=report.summary.skipped,
            failed=report.summary.failed,
            execution_time_seconds=time.time() - start_time,
        )
        return report

    def _run_step(
        self,
        playbook: PlaybookDefinition,
        step: StepDefinition,
        intake_values: Mapping[str, Any],
        step_outputs: Mapping[str, Mapping[str, Any]],
    ) -> StepResult:
        """Run a single step and classify its outcome."""
        inputs: dict[str, Any] = {}
        try:
            if step.condition is not None and not evaluate_condition(
                step.condition, intake_values, step_outputs
            ):
                self._logger.info(
                    "step_skipped",
                    playbook_id=playbook.id,
                    step_id=step.id,
                    condition=step.condition,
                )
                return StepSkipped(
                    step_id=step.id,
                    model_id=step.model_id,
                    section_label=step.label,
                    reason=f"Condition not met: {step.condition}",
                )

            inputs = resolve_inputs(step.input_map, intake_values, step_outputs)
            model = self._model_loader.load(step.model_id)

            validation = self._input_validator.validate(model.manifest, inputs)
            if not validation.valid:
                raise InputValidationError(
                    f"Input validation failed for model {step.model_id}: {'; '.join(validation.errors)}",
                    validation.errors,
                )

            self._logger.debug("step_execution_start", step_id=step.id, model_id=step.model_id)
            outputs = self._executor.execute(model.logic_payload, inputs)

        except ContractViolation:
            raise
        except Exception as e:
            if step.on_error is OnError.ABORT:
                self._logger.error(
                    "playbook_aborted",
                    playbook_id=playbook.id,
                    step_id=step.id,
                    model_id=step.model_id,
                    error=str(e),
                )
                raise OrchestrationAbort(
                    f"Playbook {playbook.id} aborted at step {step.id}: {e}",
                    playbook_id=playbook.id,
                    step_id=step.id,
                    model_id=step.model_id,
                    cause=e,
                ) from e

            self._logger.warning(
                "step_failed",
                playbook_id=playbook.id,
                step_id=step.id,
                model_id=step.model_id,
                error=str(e),
            )
            return StepFailed(
                step_id=step.id,
                model_id=step.model_id,
                section_label=step.label,
                inputs=inputs,
                error=str(e),
                error_code=getattr(e, "error_code", None),
            )

        self._logger.info(
            "step_succeeded",
            playbook_id=playbook.id,
            step_id=step.id,
            output_keys=list(outputs.keys()),
        )
        return StepSucceeded(
            step_id=step.id,
            model_id=step.model_id,
            section_label=step.label,
            inputs=inputs,
            outputs=outputs,
            model_version=model.manifest.version,
        )
