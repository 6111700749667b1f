"""BlazeFace detection via MediaPipe.

Adapter for the MediaPipe Face Detector (tasks API). Handles:
- Model download and lazy initialization
- Conversion of detections into detector-frame boxes and keypoints
- Graceful fallback when mediapipe is unavailable
"""

from __future__ import annotations

import logging
import urllib.request
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from meshtrack.adapter.vision.base import FaceDetectorBase
from meshtrack.models.domain import Box, DetectorResult

if TYPE_CHECKING:
    from meshtrack.config import Config

logger = logging.getLogger(__name__)

MODEL_URL = (
    "https://storage.googleapis.com/mediapipe-models/face_detector/"
    "blaze_face_short_range/float16/1/blaze_face_short_range.tflite"
)


def _ensure_model_downloaded(model_path: Path) -> Path:
    """Download the detector model if not present.

    Returns:
        Path to the model file.
    """
    if not model_path.exists():
        model_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Downloading face detector model to {model_path}...")
        urllib.request.urlretrieve(MODEL_URL, model_path)
    return model_path


class MediaPipeFaceDetector(FaceDetectorBase):
    """Stateful BlazeFace detector using MediaPipe tasks.

    Boxes and keypoints are reported in a size x size detector frame; the
    scale factor maps that frame to image pixels.

    Usage:
        detector = MediaPipeFaceDetector()
        result = detector.get_boxes(rgb, config)
    """

    size = 128

    def __init__(self):
        self._detector = None
        self._mp = None
        self._available: bool | None = None
        self._min_confidence: float | None = None

    def _ensure_initialized(self, config: "Config") -> bool:
        """Lazy initialization of mediapipe.

        Re-creates the detector when the confidence threshold changes.

        Returns:
            True if mediapipe is available and initialized.
        """
        detector_config = config.face.detector
        if self._available is False:
            return False
        if self._detector is not None and self._min_confidence == detector_config.min_confidence:
            return True

        try:
            import mediapipe as mp
            from mediapipe.tasks import python
            from mediapipe.tasks.python import vision
        except ImportError as e:
            logger.warning(f"MediaPipe not available - face detection disabled: {e}")
            self._available = False
            return False

        try:
            model_path = _ensure_model_downloaded(config.model_file(detector_config.model_path))
            options = vision.FaceDetectorOptions(
                base_options=python.BaseOptions(model_asset_path=str(model_path)),
                running_mode=vision.RunningMode.IMAGE,
                min_detection_confidence=detector_config.min_confidence,
            )
            self.close()
            self._detector = vision.FaceDetector.create_from_options(options)
        except (OSError, RuntimeError, ValueError) as e:
            logger.warning(f"Face detector initialization failed: {e}")
            self._available = False
            return False

        self._mp = mp
        self._min_confidence = detector_config.min_confidence
        self._available = True
        if config.debug:
            logger.debug(f"Load model: {model_path}")
        return True

    def close(self) -> None:
        """Release mediapipe resources."""
        if self._detector is not None:
            self._detector.close()
            self._detector = None

    def get_boxes(self, image: np.ndarray, config: "Config") -> DetectorResult:
        """Detect faces with BlazeFace.

        Args:
            image: HxWx3 RGB array (uint8 or 0-255 float).
            config: Pipeline configuration.

        Returns:
            DetectorResult with up to max_detected boxes, highest score first.
        """
        h, w = image.shape[:2]
        scale_factor = (w / self.size, h / self.size)

        if not self._ensure_initialized(config):
            return DetectorResult(boxes=[], scale_factor=scale_factor)

        rgb = np.ascontiguousarray(np.clip(image, 0, 255).astype(np.uint8))
        mp_image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=rgb)
        result = self._detector.detect(mp_image)

        boxes = []
        for detection in result.detections:
            bb = detection.bounding_box
            score = detection.categories[0].score if detection.categories else 0.0
            keypoints = [[kp.x * self.size, kp.y * self.size] for kp in detection.keypoints]
            boxes.append(
                Box(
                    start_point=(bb.origin_x / scale_factor[0], bb.origin_y / scale_factor[1]),
                    end_point=(
                        (bb.origin_x + bb.width) / scale_factor[0],
                        (bb.origin_y + bb.height) / scale_factor[1],
                    ),
                    landmarks=keypoints,
                    confidence=float(score),
                )
            )

        boxes.sort(key=lambda b: b.confidence, reverse=True)
        return DetectorResult(
            boxes=boxes[: config.face.detector.max_detected],
            scale_factor=scale_factor,
        )


def check_available() -> bool:
    """Check if the mediapipe face detector is available.

    Returns:
        True if mediapipe tasks API can be imported.
    """
    try:
        from mediapipe.tasks.python import vision

        return hasattr(vision, "FaceDetector")
    except ImportError:
        return False
