"""Vision adapters for face detection.

- base: detector interface consumed by the pipeline
- mediapipe_detector: BlazeFace via MediaPipe tasks
"""

from meshtrack.adapter.vision.base import FaceDetectorBase
from meshtrack.adapter.vision.mediapipe_detector import MediaPipeFaceDetector

__all__ = [
    "FaceDetectorBase",
    "MediaPipeFaceDetector",
]
