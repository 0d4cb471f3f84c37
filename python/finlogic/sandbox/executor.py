"""Isolated executor for model logic payloads.

This module provides:
- Contract checks on the payload and inputs before any isolation is built
- One disposable worker process per execution
- Independent wall-clock budgets for the setup and invoke phases
"""

from __future__ import annotations

import multiprocessing
from collections.abc import Mapping
from typing import Any

import structlog

from finlogic.config import SandboxConfig
from finlogic.errors import ContractViolation, SandboxExecutionError, SandboxTimeout
from finlogic.sandbox.policy import to_plain
from finlogic.sandbox.worker import FAILED, REGISTERED, STARTED, SUCCEEDED, run_payload

logger = structlog.get_logger()

PHASE_STARTUP = "startup"
PHASE_SETUP = "setup"
PHASE_INVOKE = "invoke"


class SandboxExecutor:
    """Runs a logic payload against inputs with no host access beyond an allow-list.

    Every call builds a fresh worker process and restricted namespace, so no
    state survives from one execution to the next. Nothing is retried.

    Example:
        executor = SandboxExecutor(timeout_ms=2000)
        outputs = executor.execute(logic_source, {"principal": 1000})
    """

    def __init__(
        self,
        timeout_ms: int = 5000,
        startup_timeout_ms: int = 30000,
        start_method: str = "spawn",
    ) -> None:
        """Initialize the executor.

        Args:
            timeout_ms: Wall-clock budget for each execution phase
            startup_timeout_ms: Allowance for the worker process to boot
            start_method: multiprocessing start method for workers
        """
        self._timeout_ms = timeout_ms
        self._startup_timeout_ms = startup_timeout_ms
        self._context = multiprocessing.get_context(start_method)
        self._logger = logger.bind(component="sandbox_executor")

    @classmethod
    def from_config(cls, config: SandboxConfig) -> SandboxExecutor:
        return cls(
            timeout_ms=config.timeout_ms,
            startup_timeout_ms=config.startup_timeout_ms,
            start_method=config.start_method,
        )

    @property
    def timeout_ms(self) -> int:
        return self._timeout_ms

    def execute(self, payload: str, inputs: Mapping[str, Any]) -> dict[str, Any]:
        """Execute a logic payload against validated inputs.

        Args:
            payload: Source text that registers a computation entry point
            inputs: Input values keyed by input id

        Returns:
            The mapping returned by the entry point, as plain data

        Raises:
            ContractViolation: If payload is not text or inputs is not a mapping
            SandboxTimeout: If either phase exceeds its budget
            SandboxExecutionError: For any other failure inside the payload
        """
        if not isinstance(payload, str):
            raise ContractViolation(f"logic payload must be a string, got {type(payload).__name__}")
        if not isinstance(inputs, Mapping):
            raise ContractViolation(f"inputs must be a mapping, got {type(inputs).__name__}")
        try:
            plain_inputs = to_plain(inputs, "inputs")
        except TypeError as e:
            raise ContractViolation(str(e)) from e

        receiver, sender = self._context.Pipe(duplex=False)
        process = self._context.Process(
            target=run_payload,
            args=(sender, payload, plain_inputs),
            name="finlogic-sandbox",
            daemon=True,
        )

        self._logger.debug("sandbox_execution_start", input_keys=list(plain_inputs.keys()))
        process.start()
        sender.close()

        try:
            self._receive(receiver, process, STARTED, self._startup_timeout_ms, PHASE_STARTUP)
            self._receive(receiver, process, REGISTERED, self._timeout_ms, PHASE_SETUP)
            outputs = self._receive(receiver, process, SUCCEEDED, self._timeout_ms, PHASE_INVOKE)
        finally:
            receiver.close()
            self._dispose(process)

        if not isinstance(outputs, dict):
            raise SandboxExecutionError(
                "Model logic must return a mapping containing output values"
            )

        self._logger.debug("sandbox_execution_success", output_keys=list(outputs.keys()))
        return outputs

    def _receive(
        self,
        conn: Any,
        process: Any,
        expected: str,
        timeout_ms: int,
        phase: str,
    ) -> Any:
        """Wait for the next worker message within a phase budget."""
        if not conn.poll(timeout_ms / 1000):
            if phase == PHASE_STARTUP:
                raise SandboxExecutionError(f"Sandbox worker did not start within {timeout_ms}ms")
            self._logger.warning("sandbox_timeout", phase=phase, timeout_ms=timeout_ms)
            raise SandboxTimeout(phase, timeout_ms)

        try:
            status, body = conn.recv()
        except EOFError:
            process.join(timeout=1)
            raise SandboxExecutionError(
                f"Sandbox worker exited unexpectedly during {phase} "
                f"(exit code {process.exitcode})"
            ) from None

        if status == FAILED:
            self._logger.info("sandbox_execution_failed", phase=phase, error=body)
            raise SandboxExecutionError(body)
        if status != expected:
            raise SandboxExecutionError(f"Unexpected sandbox message {status!r} during {phase}")
        return body

    def _dispose(self, process: Any) -> None:
        """Make sure the worker is gone before returning to the caller."""
        if process.is_alive():
            process.terminate()
            process.join(timeout=1)
            if process.is_alive():
                process.kill()
        process.join()
        process.close()
