"""Isolated execution of model logic payloads.

This package provides:
- The SandboxExecutor that runs one payload per disposable worker process
- The capability policy: allow-listed bindings and blocked names
"""

from finlogic.sandbox.executor import SandboxExecutor
from finlogic.sandbox.policy import (
    BLOCKED_NAMES,
    ENTRYPOINT_NAME,
    BlockedCapability,
    build_restricted_globals,
    freeze,
)

__all__ = [
    "SandboxExecutor",
    "BLOCKED_NAMES",
    "ENTRYPOINT_NAME",
    "BlockedCapability",
    "build_restricted_globals",
    "freeze",
]
