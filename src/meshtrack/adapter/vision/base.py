"""Base face detector interface.

Detectors implement a narrow interface: get_boxes(image) -> DetectorResult.
They must NOT:
- Cache boxes across frames (the pipeline owns the cache)
- Enlarge, squarify or rotate boxes
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import numpy as np

    from meshtrack.config import Config
    from meshtrack.models.domain import DetectorResult


class FaceDetectorBase(ABC):
    """Abstract base class for face detectors."""

    # Detector input size; boxes and keypoints are reported in this frame
    size: int = 128

    @abstractmethod
    def get_boxes(self, image: "np.ndarray", config: "Config") -> "DetectorResult":
        """Detect faces in an image.

        Args:
            image: HxWx3 RGB array.
            config: Pipeline configuration (detector thresholds and limits).

        Returns:
            DetectorResult with boxes in detector coordinates and the scale
            factor that maps them to image pixels.
        """
        pass

    def close(self) -> None:
        """Release detector resources."""
