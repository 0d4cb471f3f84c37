"""Configuration for the finlogic runtime.

Provides Pydantic settings for the isolated executor and the default
filesystem-backed model and playbook collaborators.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ENV_MODELS_DIR = "FINLOGIC_MODELS_DIR"
ENV_PLAYBOOKS_DIR = "FINLOGIC_PLAYBOOKS_DIR"
ENV_SANDBOX_TIMEOUT_MS = "FINLOGIC_SANDBOX_TIMEOUT_MS"


class SandboxConfig(BaseModel):
    """Configuration for the isolated executor."""

    model_config = ConfigDict(frozen=True)

    timeout_ms: int = Field(
        default=5000,
        ge=1,
        description="Wall-clock budget applied to each execution phase",
    )
    startup_timeout_ms: int = Field(
        default=30000,
        ge=1,
        description="Allowance for the worker process to boot before phase 1 starts",
    )
    start_method: Literal["spawn", "forkserver", "fork"] = Field(
        default="spawn",
        description="multiprocessing start method used for worker processes",
    )


class RuntimeConfig(BaseModel):
    """Configuration for a playbook runtime."""

    model_config = ConfigDict(frozen=True)

    models_dir: Path = Field(
        default=Path("models"),
        description="Directory containing one sub-directory per model",
    )
    playbooks_dir: Path = Field(
        default=Path("playbooks"),
        description="Directory containing <playbook_id>.yaml documents",
    )
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)

    @classmethod
    def from_env(cls) -> RuntimeConfig:
        """Build a configuration from FINLOGIC_* environment variables."""
        values: dict = {}
        if os.environ.get(ENV_MODELS_DIR):
            values["models_dir"] = Path(os.environ[ENV_MODELS_DIR])
        if os.environ.get(ENV_PLAYBOOKS_DIR):
            values["playbooks_dir"] = Path(os.environ[ENV_PLAYBOOKS_DIR])
        if os.environ.get(ENV_SANDBOX_TIMEOUT_MS):
            values["sandbox"] = SandboxConfig(timeout_ms=int(os.environ[ENV_SANDBOX_TIMEOUT_MS]))
        return cls(**values)
