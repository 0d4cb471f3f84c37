"""Model loading for playbook steps.

This module provides:
- The ModelLoader protocol the orchestrator depends on
- Manifest data models using Pydantic v2
- A filesystem loader reading ``<models_dir>/<model_id>/manifest.yaml``
  and ``logic.py``
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Protocol

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from finlogic.errors import ModelLoadError

logger = structlog.get_logger()

MANIFEST_FILENAME = "manifest.yaml"
LOGIC_FILENAME = "logic.py"
REQUIRED_MANIFEST_FIELDS = ("id", "name", "version", "inputs", "outputs")

_MODEL_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


# =============================================================================
# Manifest Models
# =============================================================================


class InputSpec(BaseModel):
    """A declared model input."""

    model_config = ConfigDict(extra="allow", frozen=True)

    id: str
    type: str
    label: str = ""
    values: list[Any] | None = None


class OutputSpec(BaseModel):
    """A declared model output."""

    model_config = ConfigDict(extra="allow", frozen=True)

    id: str
    label: str = ""


class ModelManifest(BaseModel):
    """Typed schema of a model."""

    model_config = ConfigDict(extra="allow", frozen=True)

    id: str
    name: str
    version: str
    description: str = ""
    inputs: list[InputSpec] = Field(default_factory=list)
    outputs: list[OutputSpec] = Field(default_factory=list)

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v: Any) -> Any:
        """YAML reads ``version: 1.0`` as a float; keep it textual."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class LoadedModel(BaseModel):
    """A model's manifest together with its logic payload."""

    model_config = ConfigDict(frozen=True)

    manifest: ModelManifest
    logic_payload: str


# =============================================================================
# Loader Protocol
# =============================================================================


class ModelLoader(Protocol):
    """Protocol for model loaders."""

    def load(self, model_id: str) -> LoadedModel:
        """Load a model by id.

        Raises:
            ModelLoadError: If the model or its files are missing or malformed
        """
        ...


# =============================================================================
# Directory Loader
# =============================================================================


class DirectoryModelLoader:
    """Loads models from a directory with one sub-directory per model.

    Example:
        loader = DirectoryModelLoader("packages/models")
        model = loader.load("compound-interest-growth")
        print(model.manifest.version)
    """

    def __init__(self, models_dir: str | Path) -> None:
        self._models_dir = Path(models_dir).resolve()
        self._logger = logger.bind(component="model_loader")

    @property
    def models_dir(self) -> Path:
        return self._models_dir

    def load(self, model_id: str) -> LoadedModel:
        """Load a model's manifest and logic payload.

        Args:
            model_id: Directory name of the model

        Returns:
            LoadedModel with parsed manifest and payload text

        Raises:
            ModelLoadError: If the model or its files are missing or malformed
        """
        if not isinstance(model_id, str) or not _MODEL_ID_PATTERN.match(model_id) or ".." in model_id:
            raise ModelLoadError(f"Invalid model id: {model_id!r}", model_id=str(model_id))

        model_dir = self._models_dir / model_id
        if not model_dir.is_dir():
            raise ModelLoadError(f"Model not found: {model_dir}", model_id=model_id)

        manifest = self._load_manifest(model_dir / MANIFEST_FILENAME, model_id)

        logic_path = model_dir / LOGIC_FILENAME
        if not logic_path.is_file():
            raise ModelLoadError(f"{LOGIC_FILENAME} not found at: {logic_path}", model_id=model_id)
        try:
            logic_payload = logic_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ModelLoadError(f"Failed to read {LOGIC_FILENAME}: {e}", model_id=model_id) from e

        self._logger.info("model_loaded", model_id=model_id, version=manifest.version)
        return LoadedModel(manifest=manifest, logic_payload=logic_payload)

    def _load_manifest(self, path: Path, model_id: str) -> ModelManifest:
        if not path.is_file():
            raise ModelLoadError(f"Manifest not found at: {path}", model_id=model_id)

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ModelLoadError(f"Failed to parse {MANIFEST_FILENAME}: {e}", model_id=model_id) from e

        if not isinstance(data, dict):
            raise ModelLoadError(f"{MANIFEST_FILENAME} must be a non-empty YAML mapping", model_id=model_id)

        missing = [name for name in REQUIRED_MANIFEST_FIELDS if data.get(name) is None]
        if missing:
            raise ModelLoadError(
                f"{MANIFEST_FILENAME} is missing required fields: {', '.join(missing)}",
                model_id=model_id,
            )

        for name in ("inputs", "outputs"):
            if not isinstance(data[name], list):
                raise ModelLoadError(f'{MANIFEST_FILENAME} "{name}" must be a list', model_id=model_id)

        try:
            return ModelManifest(**data)
        except ValidationError as e:
            raise ModelLoadError(f"Invalid {MANIFEST_FILENAME}: {e}", model_id=model_id) from e
