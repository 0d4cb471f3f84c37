"""
finlogic - Isolated execution and orchestration of financial models

This package runs author-supplied model logic in a restricted, disposable
worker process and chains models together into playbooks.

Submodules:
    - finlogic.sandbox: Isolated executor and capability policy
    - finlogic.expression: Arithmetic and condition grammars
    - finlogic.models: Model loading and input validation
    - finlogic.playbook: Playbook loading, input resolution and orchestration
    - finlogic.config: Runtime configuration
    - finlogic.errors: Error taxonomy

Example:
    from finlogic import PlaybookRunner, RuntimeConfig

    runner = PlaybookRunner.from_config(RuntimeConfig.from_env())
    report = runner.run("retirement-check", {"salary": 50000, "age": 30})
"""

from finlogic.config import RuntimeConfig, SandboxConfig
from finlogic.errors import (
    ContractViolation,
    ErrorCode,
    ExpressionError,
    ExpressionEvaluationError,
    ExpressionSyntaxError,
    FinlogicError,
    InputValidationError,
    IntakeValidationError,
    ModelLoadError,
    OrchestrationAbort,
    PlaybookNotFoundError,
    PlaybookValidationError,
    SandboxError,
    SandboxExecutionError,
    SandboxTimeout,
    UnknownFieldError,
)
from finlogic.expression import evaluate_condition, evaluate_expression, parse_expression
from finlogic.playbook import PlaybookLoader, PlaybookReport, PlaybookRunner, resolve_inputs
from finlogic.sandbox import SandboxExecutor

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Config
    "RuntimeConfig",
    "SandboxConfig",
    # Core
    "SandboxExecutor",
    "PlaybookRunner",
    "PlaybookLoader",
    "PlaybookReport",
    "resolve_inputs",
    "parse_expression",
    "evaluate_expression",
    "evaluate_condition",
    # Errors
    "ErrorCode",
    "FinlogicError",
    "ContractViolation",
    "SandboxError",
    "SandboxTimeout",
    "SandboxExecutionError",
    "ExpressionError",
    "ExpressionSyntaxError",
    "UnknownFieldError",
    "ExpressionEvaluationError",
    "ModelLoadError",
    "InputValidationError",
    "PlaybookNotFoundError",
    "PlaybookValidationError",
    "IntakeValidationError",
    "OrchestrationAbort",
]
