"""Pytest configuration for finlogic tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml


def pytest_configure(config):
    """Configure custom markers for pytest."""
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow-running (deselect with '-m \"not slow\"')",
    )


# =============================================================================
# Model Directory Helpers
# =============================================================================


DOUBLE_MANIFEST: dict[str, Any] = {
    "id": "double",
    "name": "Double",
    "version": "1.2.0",
    "inputs": [{"id": "value", "type": "number", "label": "Value"}],
    "outputs": [{"id": "result", "label": "Result"}],
}

DOUBLE_LOGIC = """
@register
def compute(inputs):
    return {"result": inputs["value"] * 2}
"""


def write_model(models_dir: Path, model_id: str, manifest: dict[str, Any] | None, logic: str | None) -> Path:
    """Write a model directory; None skips the corresponding file."""
    model_dir = models_dir / model_id
    model_dir.mkdir(parents=True, exist_ok=True)
    if manifest is not None:
        (model_dir / "manifest.yaml").write_text(yaml.safe_dump(manifest), encoding="utf-8")
    if logic is not None:
        (model_dir / "logic.py").write_text(logic, encoding="utf-8")
    return model_dir


@pytest.fixture
def models_dir(tmp_path: Path) -> Path:
    """A models directory holding the ``double`` model."""
    path = tmp_path / "models"
    path.mkdir()
    write_model(path, "double", DOUBLE_MANIFEST, DOUBLE_LOGIC)
    return path


@pytest.fixture
def playbooks_dir(tmp_path: Path) -> Path:
    path = tmp_path / "playbooks"
    path.mkdir()
    return path
