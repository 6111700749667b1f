"""Shared pytest fixtures for meshtrack tests."""

import importlib.util

import numpy as np
import pytest

from meshtrack.adapter.vision.base import FaceDetectorBase
from meshtrack.config import Config
from meshtrack.models.domain import Box, DetectorResult
from meshtrack.pipeline.iris import NUM_COORDINATES

MESH_INPUT_SIZE = 64
IRIS_INPUT_SIZE = 64


def opencv_available() -> bool:
    """Check if opencv is available."""
    return importlib.util.find_spec("cv2") is not None


requires_opencv = pytest.mark.skipif(not opencv_available(), reason="opencv not available")


class StubDetector(FaceDetectorBase):
    """Detector returning fixed boxes and counting calls."""

    size = 128

    def __init__(self, boxes: list[Box] | None = None, scale_factor=(2.0, 2.0)):
        self.boxes = boxes if boxes is not None else [upright_detector_box()]
        self.scale_factor = scale_factor
        self.calls = 0
        self.closed = False

    def get_boxes(self, image, config):
        self.calls += 1
        return DetectorResult(boxes=list(self.boxes), scale_factor=self.scale_factor)

    def close(self):
        self.closed = True


class StubMeshModel:
    """Mesh model stand-in returning a fixed 468-point grid."""

    model_url = "stub://facemesh"

    def __init__(self, confidence: float = 0.9, input_size: int = MESH_INPUT_SIZE):
        self.confidence = confidence
        self.input_size = input_size
        self.calls = 0
        self.last_input = None

    def execute(self, tensor):
        self.calls += 1
        self.last_input = tensor
        coords = mesh_grid(self.input_size)
        return [
            np.zeros((1, 266), dtype=np.float32),
            np.array([[self.confidence]], dtype=np.float32),
            coords.reshape(1, -1),
        ]


class StubIrisModel:
    """Iris model stand-in placing every eye point at the crop center.

    batch is the declared batch dimension; a fixed batch of 1 rejects
    larger inputs the way an exported graph does.
    """

    input_size = IRIS_INPUT_SIZE
    model_url = "stub://iris"

    def __init__(self, batch="batch"):
        self.input_shape = [batch, IRIS_INPUT_SIZE, IRIS_INPUT_SIZE, 3]
        self.inputs = []

    @property
    def last_input(self):
        return self.inputs[-1] if self.inputs else None

    def execute(self, tensor):
        if self.input_shape[0] == 1 and tensor.shape[0] != 1:
            raise RuntimeError(f"Got invalid dimensions for input: {tensor.shape}")
        self.inputs.append(tensor)
        point = [IRIS_INPUT_SIZE / 2, IRIS_INPUT_SIZE / 2, 4.0]
        return [np.tile(np.array(point, dtype=np.float32), (tensor.shape[0], NUM_COORDINATES))]


def upright_detector_box(confidence: float = 0.87) -> Box:
    """Detector box in a 128x128 frame with upright keypoints (nose above mouth)."""
    return Box(
        start_point=(32.0, 32.0),
        end_point=(96.0, 96.0),
        landmarks=[
            [48.0, 50.0],  # left eye
            [80.0, 50.0],  # right eye
            [64.0, 64.0],  # nose
            [64.0, 80.0],  # mouth
            [36.0, 56.0],  # left ear
            [92.0, 56.0],  # right ear
        ],
        confidence=confidence,
    )


def mesh_grid(input_size: int = MESH_INPUT_SIZE) -> np.ndarray:
    """468 raw mesh points centered in the crop, symmetry line vertical."""
    quarter = input_size / 4
    coords = np.zeros((468, 3), dtype=np.float32)
    for i in range(468):
        coords[i] = [quarter + (i % 22) * 1.5, quarter + (i // 22) * 1.5, (i % 7) - 3.0]
    # Mouth (13) directly below midway-between-eyes (168)
    coords[13] = [input_size / 2, input_size * 0.7, 0.0]
    coords[168] = [input_size / 2, input_size * 0.35, 0.0]
    return coords


class FakeClock:
    """Millisecond clock advanced manually."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def config():
    """Config with the iris stage disabled and rotation off."""
    cfg = Config()
    cfg.face.iris.enabled = False
    cfg.face.detector.rotation = False
    return cfg


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def image():
    """256x256 RGB test image with a bright square in the middle."""
    img = np.zeros((256, 256, 3), dtype=np.uint8)
    img[64:192, 64:192] = 200
    return img
