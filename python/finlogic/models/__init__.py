"""Model loading and input validation collaborators."""

from finlogic.models.loader import (
    DirectoryModelLoader,
    InputSpec,
    LoadedModel,
    ModelLoader,
    ModelManifest,
    OutputSpec,
)
from finlogic.models.validator import (
    InputValidator,
    ManifestInputValidator,
    ValidationResult,
)

__all__ = [
    # Loader
    "ModelLoader",
    "DirectoryModelLoader",
    "LoadedModel",
    "ModelManifest",
    "InputSpec",
    "OutputSpec",
    # Validator
    "InputValidator",
    "ManifestInputValidator",
    "ValidationResult",
]
