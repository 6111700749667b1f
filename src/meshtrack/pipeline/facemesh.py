"""Face mesh pipeline.

Sequences the detector, the face mesh model and the iris model for one
frame at a time. Handles:
- Box caching across frames (detector runs only on refresh)
- Rotation correction of face crops
- Mapping mesh model output back into image space
- Annotation of named landmark groups

The detector is expensive; boxes derived from the previous frame's mesh are
reused for up to skip_frames frames and skip_time_ms milliseconds. Faces
whose mesh confidence drops below min_confidence fall out of the cache, and
the next frame with an empty cache triggers a detector pass.
"""

from __future__ import annotations

import logging
import math
import sys
import time
from typing import TYPE_CHECKING, Callable

import numpy as np

from meshtrack.adapter.media.image import (
    cut_box_from_image_and_resize,
    rotate_with_offset,
    to_rgb_array,
)
from meshtrack.adapter.runtime.graph_model import load_graph_model
from meshtrack.geometry.box import (
    calculate_landmarks_bounding_box,
    enlarge_box,
    get_box_center,
    get_clamped_box,
    get_raw_box,
    round_half_up,
    scale_box_coordinates,
    squarify_box,
)
from meshtrack.geometry.coords import BLAZEFACE_LANDMARKS, MESH_ANNOTATIONS, symmetry_line
from meshtrack.geometry.transform import (
    FIXED_ROTATION_MATRIX,
    Matrix,
    build_rotation_matrix,
    compute_rotation,
    is_large_angle,
    transform_raw_coords,
)
from meshtrack.models.domain import Box, FaceResult
from meshtrack.pipeline.iris import IrisModel

if TYPE_CHECKING:
    from meshtrack.adapter.runtime.graph_model import GraphModel
    from meshtrack.adapter.vision.base import FaceDetectorBase
    from meshtrack.config import Config

logger = logging.getLogger(__name__)

# Mesh box enlargement; detector boxes are enlarged by its square root
ENLARGE_FACTOR = 1.6


def _now_ms() -> float:
    return time.perf_counter() * 1000


def _round_score(value: float) -> float:
    return round_half_up(100 * value) / 100


def _split_mesh_outputs(
    outputs: list[np.ndarray],
    activation: str = "auto",
) -> tuple[float, np.ndarray]:
    """Pick face confidence and mesh coordinates from mesh model outputs.

    Models exported with three outputs return [contours, confidence, coords];
    two-output exports drop the contours. Confidence is the single-value
    output, coordinates the largest output.

    Args:
        outputs: Raw mesh model outputs.
        activation: "sigmoid" for logit outputs, "none" for probabilities,
            "auto" to squash only values outside [0, 1].
    """
    if len(outputs) == 3:
        _, confidence, coords = outputs
    else:
        confidence = next((o for o in outputs if np.size(o) == 1), None)
        if confidence is None:
            raise ValueError(f"No confidence output among {len(outputs)} mesh outputs")
        coords = max(outputs, key=np.size)

    score = float(np.ravel(confidence)[0])
    if activation == "sigmoid" or (activation == "auto" and not 0 <= score <= 1):
        score = 1 / (1 + math.exp(-score))
    return score, np.reshape(coords, (-1, 3))


class FaceMeshPipeline:
    """Stateful face mesh pipeline.

    Holds the box cache and the loaded models between frames. Not
    thread-safe: frames must be fed from a single thread, in order.

    Usage:
        pipeline = FaceMeshPipeline(config, MediaPipeFaceDetector())
        pipeline.load()
        for frame in frames:
            faces = pipeline.predict(frame)
    """

    def __init__(
        self,
        config: "Config",
        detector: "FaceDetectorBase",
        clock: Callable[[], float] | None = None,
    ):
        """Initialize pipeline.

        Args:
            config: Pipeline configuration.
            detector: Face detector stage.
            clock: Millisecond clock for the skip_time policy.
        """
        self.config = config
        self.detector = detector
        self._clock = clock or _now_ms

        self.model: "GraphModel | None" = None
        self.iris = IrisModel()
        self.input_size = 0
        self.box_cache: list[Box] = []
        self.skipped = sys.maxsize
        self.last_time = 0.0

    def load(self) -> "GraphModel | None":
        """Load the mesh model (and iris model when enabled).

        Already loaded models are reused.

        Returns:
            The mesh GraphModel, or None if it could not be loaded.
        """
        face_config = self.config.face
        if self.model is None:
            self.model = load_graph_model(self.config.model_file(face_config.mesh.model_path))
        elif self.config.debug:
            logger.debug(f"Cached model: {self.model.model_url}")

        if face_config.iris.enabled and self.iris.model is None:
            self.iris = IrisModel(
                load_graph_model(self.config.model_file(face_config.iris.model_path))
            )

        self.input_size = self.model.input_size if self.model is not None else 0
        return self.model

    def reset(self) -> None:
        """Drop cached boxes and models."""
        self.model = None
        self.iris = IrisModel()
        self.input_size = 0
        self.box_cache = []
        self.skipped = sys.maxsize
        self.last_time = 0.0

    def close(self) -> None:
        """Release detector and model resources."""
        self.detector.close()
        self.reset()

    def _should_refresh(self) -> bool:
        detector_config = self.config.face.detector
        skip_time = detector_config.skip_time_ms > (self._clock() - self.last_time)
        skip_frame = self.skipped < detector_config.skip_frames
        return (
            not self.config.skip_allowed
            or not skip_time
            or not skip_frame
            or len(self.box_cache) == 0
        )

    def _refresh_boxes(self, image: np.ndarray) -> None:
        """Replace the box cache with fresh detector boxes."""
        result = self.detector.get_boxes(image, self.config)
        self.last_time = self._clock()
        sx, sy = result.scale_factor

        self.box_cache = []
        for possible in result.boxes:
            box = scale_box_coordinates(possible, result.scale_factor)
            box = Box(
                start_point=box.start_point,
                end_point=box.end_point,
                landmarks=[[p[0] * sx, p[1] * sy] for p in possible.landmarks],
                confidence=possible.confidence,
            )
            self.box_cache.append(squarify_box(enlarge_box(box, math.sqrt(ENLARGE_FACTOR))))

        self.skipped = 0
        if self.config.debug:
            logger.debug(f"Detector refresh: {len(self.box_cache)} boxes")

    def _crop_face(self, box: Box, image: np.ndarray) -> tuple[float, Matrix, np.ndarray]:
        """Cut the face crop for a box, rotated upright when needed.

        Returns:
            (angle, rotation_matrix, face tensor).
        """
        face_config = self.config.face
        if not (face_config.detector.rotation and face_config.mesh.enabled):
            size = self.input_size if face_config.mesh.enabled else self.detector.size
            face = cut_box_from_image_and_resize(box, image, (size, size))
            return 0.0, FIXED_ROTATION_MATRIX, face

        return correct_face_rotation(box, image, self.input_size)

    def predict(self, image: np.ndarray) -> list[FaceResult]:
        """Run the pipeline on one frame.

        Args:
            image: RGB frame as HxWx3 or 1xHxWx3 (0-255).

        Returns:
            One FaceResult per cached box. Faces whose mesh confidence is
            below min_confidence are returned with score 0 and no mesh.
        """
        face_config = self.config.face
        if not face_config.enabled:
            return []

        image = to_rgb_array(image)
        height, width = image.shape[:2]

        if self._should_refresh():
            self._refresh_boxes(image)
        else:
            self.skipped += 1

        faces: list[FaceResult] = []
        new_cache: list[Box] = []

        for face_id, box in enumerate(self.box_cache):
            face = FaceResult(id=face_id)
            face.box_score = _round_score(box.confidence)

            if not face_config.mesh.enabled:
                _, _, face.tensor = self._crop_face(box, image)
                self._fill_from_detector(face, box, width, height)
                faces.append(face)
                continue

            if self.model is None:
                if self.config.debug:
                    logger.debug("Face mesh detection requested, but model is not loaded")
                faces.append(face)
                continue

            angle, rotation_matrix, face.tensor = self._crop_face(box, image)
            face_score, raw_coords = _split_mesh_outputs(
                self.model.execute(face.tensor), face_config.mesh.confidence_activation
            )
            face.face_score = _round_score(face_score)

            if face.face_score < face_config.detector.min_confidence:
                if self.config.debug:
                    logger.debug(f"Face {face_id} dropped: mesh confidence {face.face_score}")
                self.box_cache[face_id] = box.with_confidence(face.face_score)
                faces.append(face)
                continue

            coords = raw_coords.tolist()
            if face_config.iris.enabled:
                coords = self.iris.augment(coords, face.tensor, self.input_size, debug=self.config.debug)

            face.mesh = transform_raw_coords(coords, box, angle, rotation_matrix, self.input_size)
            face.mesh_raw = self._normalize_mesh(face.mesh, width, height)
            face.annotations = {
                key: [face.mesh[i] for i in indices]
                for key, indices in MESH_ANNOTATIONS.items()
                if max(indices) < len(face.mesh)
            }

            mesh_box = squarify_box(
                enlarge_box(calculate_landmarks_bounding_box(face.mesh), ENLARGE_FACTOR)
            ).with_confidence(face.face_score)
            face.box = get_clamped_box(mesh_box, width, height)
            face.box_raw = get_raw_box(mesh_box, width, height)
            face.score = face.face_score
            new_cache.append(mesh_box)
            faces.append(face)

        self.box_cache = new_cache
        return faces

    def _fill_from_detector(self, face: FaceResult, box: Box, width: int, height: int) -> None:
        """Populate a result from detector output only (mesh disabled)."""
        face.box = get_clamped_box(box, width, height)
        face.box_raw = get_raw_box(box, width, height)
        face.score = face.box_score
        face.mesh = [[float(p[0]), float(p[1]), 0.0] for p in box.landmarks]
        face.mesh_raw = self._normalize_mesh(face.mesh, width, height)
        face.annotations = {
            key: [face.mesh[index]]
            for key, index in BLAZEFACE_LANDMARKS.items()
            if index < len(face.mesh)
        }

    def _normalize_mesh(self, mesh: list[list[float]], width: int, height: int) -> list[list[float]]:
        depth = self.input_size or 1
        return [[p[0] / width, p[1] / height, p[2] / depth] for p in mesh]


def correct_face_rotation(
    box: Box,
    image: np.ndarray,
    input_size: int,
) -> tuple[float, Matrix, np.ndarray]:
    """Crop a face so its symmetry line is vertical.

    The roll angle comes from the box landmarks (mesh points when the box
    came from a previous mesh, detector keypoints otherwise). Small angles
    are left uncorrected.

    Args:
        box: Face box in image pixels.
        image: HxWx3 image.
        input_size: Mesh model input size.

    Returns:
        (angle, rotation_matrix, face tensor of shape (1, S, S, 3)).
    """
    angle = 0.0
    if box.landmarks:
        line = symmetry_line(len(box.landmarks))
        if max(line) < len(box.landmarks):
            angle = compute_rotation(box.landmarks[line[0]], box.landmarks[line[1]])

    if not is_large_angle(angle):
        face = cut_box_from_image_and_resize(box, image, (input_size, input_size))
        return angle, FIXED_ROTATION_MATRIX, face

    height, width = image.shape[:2]
    center = get_box_center(box)
    rotated = rotate_with_offset(image, angle, (center[0] / width, center[1] / height))
    rotation_matrix = build_rotation_matrix(-angle, center)
    face = cut_box_from_image_and_resize(box, rotated, (input_size, input_size))
    return angle, rotation_matrix, face
