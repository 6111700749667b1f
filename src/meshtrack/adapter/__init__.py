"""Adapter module for external tools and IO boundaries.

Adapters wrap external dependencies behind domain-focused interfaces.
Pipeline logic should use adapters rather than calling external tools directly.

Structure:
- adapter/media/   - image tensor ops, video decoding (OpenCV)
- adapter/runtime/ - pretrained graph execution (ONNX Runtime)
- adapter/vision/  - face detection (MediaPipe)
"""

# Re-export commonly used items for convenience
from meshtrack.adapter.media import Frame, VideoReader
from meshtrack.adapter.runtime import GraphModel, load_graph_model
from meshtrack.adapter.vision import FaceDetectorBase, MediaPipeFaceDetector

__all__ = [
    # Media
    "Frame",
    "VideoReader",
    # Runtime
    "GraphModel",
    "load_graph_model",
    # Vision
    "FaceDetectorBase",
    "MediaPipeFaceDetector",
]
