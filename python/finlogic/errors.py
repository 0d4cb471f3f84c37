"""Error taxonomy for the finlogic core.

Every error carries a machine-readable ``error_code`` so presentation layers
can render distinct messages without parsing exception text.
"""

from __future__ import annotations

from typing import Any


class ErrorCode:
    """Error codes for client-side handling."""

    CONTRACT_VIOLATION = "CONTRACT_VIOLATION"
    SANDBOX_TIMEOUT = "SANDBOX_TIMEOUT"
    SANDBOX_EXECUTION_ERROR = "SANDBOX_EXECUTION_ERROR"
    EXPRESSION_SYNTAX_ERROR = "EXPRESSION_SYNTAX_ERROR"
    EXPRESSION_UNKNOWN_FIELD = "EXPRESSION_UNKNOWN_FIELD"
    EXPRESSION_EVALUATION_ERROR = "EXPRESSION_EVALUATION_ERROR"
    MODEL_LOAD_ERROR = "MODEL_LOAD_ERROR"
    INPUT_VALIDATION_FAILED = "INPUT_VALIDATION_FAILED"
    PLAYBOOK_NOT_FOUND = "PLAYBOOK_NOT_FOUND"
    PLAYBOOK_MALFORMED = "PLAYBOOK_MALFORMED"
    INTAKE_VALIDATION_FAILED = "INTAKE_VALIDATION_FAILED"
    ORCHESTRATION_ABORTED = "ORCHESTRATION_ABORTED"


class FinlogicError(Exception):
    """Base class for all errors raised by the finlogic core."""

    error_code: str = "FINLOGIC_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"error_code": self.error_code, "message": str(self)}


class ContractViolation(FinlogicError, TypeError):
    """Raised when a caller passes arguments of the wrong shape.

    Always a programmer error; never recovered.
    """

    error_code = ErrorCode.CONTRACT_VIOLATION


# =============================================================================
# Sandbox Errors
# =============================================================================


class SandboxError(FinlogicError):
    """Base class for failures inside the isolated executor."""


class SandboxTimeout(SandboxError):
    """Raised when a payload exceeds its wall-clock budget."""

    error_code = ErrorCode.SANDBOX_TIMEOUT

    def __init__(self, phase: str, timeout_ms: int):
        super().__init__(f"Model execution timed out after {timeout_ms}ms during {phase}")
        self.phase = phase
        self.timeout_ms = timeout_ms

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(phase=self.phase, timeout_ms=self.timeout_ms)
        return data


class SandboxExecutionError(SandboxError):
    """Raised for any other failure inside the payload."""

    error_code = ErrorCode.SANDBOX_EXECUTION_ERROR


# =============================================================================
# Expression Errors
# =============================================================================


class ExpressionError(FinlogicError):
    """Base class for arithmetic and condition expression failures."""


class ExpressionSyntaxError(ExpressionError):
    """Raised when expression text is malformed."""

    error_code = ErrorCode.EXPRESSION_SYNTAX_ERROR

    def __init__(self, message: str, position: int | None = None):
        super().__init__(message)
        self.position = position

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["position"] = self.position
        return data


class UnknownFieldError(ExpressionSyntaxError):
    """Raised when an expression references a field that was not supplied."""

    error_code = ErrorCode.EXPRESSION_UNKNOWN_FIELD

    def __init__(self, field: str, position: int | None = None):
        super().__init__(f'Expression references unknown field: "{field}"', position)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        return data


class ExpressionEvaluationError(ExpressionError):
    """Raised when a well-formed expression cannot produce a finite value."""

    error_code = ErrorCode.EXPRESSION_EVALUATION_ERROR


# =============================================================================
# Collaborator Errors
# =============================================================================


class ModelLoadError(FinlogicError):
    """Raised when a model or its files are missing or malformed."""

    error_code = ErrorCode.MODEL_LOAD_ERROR

    def __init__(self, message: str, model_id: str | None = None):
        super().__init__(message)
        self.model_id = model_id


class InputValidationError(FinlogicError):
    """Raised when resolved inputs do not satisfy a model's manifest."""

    error_code = ErrorCode.INPUT_VALIDATION_FAILED

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = list(self.errors)
        return data


# =============================================================================
# Playbook Errors
# =============================================================================


class PlaybookNotFoundError(FinlogicError):
    """Raised when no playbook document exists for the requested id."""

    error_code = ErrorCode.PLAYBOOK_NOT_FOUND

    def __init__(self, playbook_id: str, location: str | None = None):
        where = f" at {location}" if location else ""
        super().__init__(f"Playbook not found: {playbook_id}{where}")
        self.playbook_id = playbook_id


class PlaybookValidationError(FinlogicError):
    """Raised when a playbook document is malformed."""

    error_code = ErrorCode.PLAYBOOK_MALFORMED

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = list(self.errors)
        return data


class IntakeValidationError(FinlogicError):
    """Raised when intake values fail the playbook's declared schema.

    Carries every violation, not just the first.
    """

    error_code = ErrorCode.INTAKE_VALIDATION_FAILED

    def __init__(self, errors: list[str]):
        joined = "\n  ".join(errors)
        super().__init__(f"Playbook intake validation failed:\n  {joined}")
        self.errors = list(errors)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = list(self.errors)
        return data


class OrchestrationAbort(FinlogicError):
    """Raised when a step with ``on_error: abort`` fails."""

    error_code = ErrorCode.ORCHESTRATION_ABORTED

    def __init__(
        self,
        message: str,
        playbook_id: str,
        step_id: str,
        model_id: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.playbook_id = playbook_id
        self.step_id = step_id
        self.model_id = model_id
        self.cause = cause

    @property
    def context(self) -> dict[str, Any]:
        """Structured context identifying where the run stopped."""
        return {
            "playbook_id": self.playbook_id,
            "step_id": self.step_id,
            "model_id": self.model_id,
        }

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(self.context)
        return data
