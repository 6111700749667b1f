"""Pipeline configuration.

Typed configuration for the face pipeline. Values come from (in order):
- model defaults
- an optional JSON file
- MESHTRACK_* environment variables
- keyword overrides passed to load_config()
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ENV_PREFIX = "MESHTRACK_"

# How the mesh confidence output is turned into a probability:
# auto treats values outside [0, 1] as logits
ConfidenceActivation = Literal["auto", "sigmoid", "none"]


class DetectorConfig(BaseModel):
    """Face detector stage and box cache policy."""

    model_path: str = "blaze_face_short_range.tflite"
    rotation: bool = True
    max_detected: int = Field(default=1, ge=1)
    skip_frames: int = Field(default=15, ge=0)
    skip_time_ms: float = Field(default=2500, ge=0)
    min_confidence: float = Field(default=0.2, ge=0, le=1)


class MeshConfig(BaseModel):
    """Face mesh refinement model."""

    enabled: bool = True
    model_path: str = "facemesh.onnx"
    confidence_activation: ConfidenceActivation = "auto"


class IrisConfig(BaseModel):
    """Iris refinement model."""

    enabled: bool = True
    model_path: str = "iris.onnx"


class FaceConfig(BaseModel):
    """Face pipeline stages."""

    enabled: bool = True
    detector: DetectorConfig = Field(default_factory=DetectorConfig)
    mesh: MeshConfig = Field(default_factory=MeshConfig)
    iris: IrisConfig = Field(default_factory=IrisConfig)


class Config(BaseModel):
    """Top-level configuration."""

    model_config = ConfigDict(protected_namespaces=())

    model_base_path: str = "models"
    debug: bool = False
    skip_allowed: bool = True
    face: FaceConfig = Field(default_factory=FaceConfig)

    def model_file(self, model_path: str) -> Path:
        """Resolve a model path against model_base_path.

        Args:
            model_path: Relative or absolute model path.

        Returns:
            Path to the model file.
        """
        path = Path(model_path)
        if path.is_absolute():
            return path
        return Path(self.model_base_path) / path


def _env_overrides() -> dict:
    overrides: dict = {}
    base_path = os.environ.get(f"{ENV_PREFIX}MODEL_BASE_PATH")
    if base_path:
        overrides["model_base_path"] = base_path
    debug = os.environ.get(f"{ENV_PREFIX}DEBUG")
    if debug is not None:
        overrides["debug"] = debug.strip().lower() in ("1", "true", "yes", "on")
    return overrides


def load_config(path: Path | str | None = None, **overrides) -> Config:
    """Build a Config from a JSON file, environment and overrides.

    Args:
        path: Optional JSON file with a (partial) config.
        **overrides: Top-level fields that take precedence over everything.

    Returns:
        Validated Config.

    Raises:
        FileNotFoundError: If path is given but does not exist.
        pydantic.ValidationError: If the merged values are invalid.
    """
    data: dict = {}
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        data = json.loads(path.read_text())

    data.update(_env_overrides())
    data.update(overrides)

    return Config.model_validate(data)
