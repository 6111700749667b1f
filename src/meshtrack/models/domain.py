"""Domain types for the face pipeline.

Plain dataclasses passed between the detector stage, the geometry helpers
and the mesh pipeline. Points are tuples or lists of floats in pixel space
unless noted otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    import numpy as np

Point = Sequence[float]


@dataclass(frozen=True)
class Box:
    """Axis-aligned face box with the landmarks it was derived from.

    Attributes:
        start_point: Top-left corner (x, y).
        end_point: Bottom-right corner (x, y).
        landmarks: Detector keypoints or mesh points inside the box.
        confidence: Detector or mesh confidence (0-1).
    """

    start_point: tuple[float, float]
    end_point: tuple[float, float]
    landmarks: list[Point] = field(default_factory=list)
    confidence: float = 0.0

    def with_corners(self, start_point: tuple[float, float], end_point: tuple[float, float]) -> "Box":
        """Return a copy with new corners, keeping landmarks and confidence."""
        return replace(self, start_point=start_point, end_point=end_point)

    def with_confidence(self, confidence: float) -> "Box":
        """Return a copy with a new confidence."""
        return replace(self, confidence=confidence)


@dataclass
class DetectorResult:
    """Boxes from a detector pass.

    Attributes:
        boxes: Boxes in detector input coordinates.
        scale_factor: (sx, sy) mapping detector coordinates to image pixels.
    """

    boxes: list[Box] = field(default_factory=list)
    scale_factor: tuple[float, float] = (1.0, 1.0)


@dataclass
class FaceResult:
    """Face geometry for a single face in a single frame.

    Attributes:
        id: Index of the face within the frame.
        mesh: Image-space [x, y, z] points.
        mesh_raw: Mesh normalized by image width/height and mesh input size.
        box: Clamped [x, y, width, height] in pixels.
        box_raw: [x, y, width, height] normalized by image size.
        score: Overall score (face score with mesh, box score without).
        box_score: Detector confidence, two decimals.
        face_score: Mesh model confidence, two decimals.
        annotations: Named landmark groups (lips, eyes, iris, ...).
        tensor: Face crop fed to the mesh model, float32 [1, S, S, 3].
    """

    id: int
    mesh: list[list[float]] = field(default_factory=list)
    mesh_raw: list[list[float]] = field(default_factory=list)
    box: list[int] = field(default_factory=lambda: [0, 0, 0, 0])
    box_raw: list[float] = field(default_factory=lambda: [0.0, 0.0, 0.0, 0.0])
    score: float = 0.0
    box_score: float = 0.0
    face_score: float = 0.0
    annotations: dict[str, list[list[float]]] = field(default_factory=dict)
    tensor: "np.ndarray | None" = field(default=None, repr=False)


@dataclass
class FaceTrack:
    """Face results across multiple frames.

    Attributes:
        frame_indices: List of frame indices.
        timestamps_ms: List of timestamps in milliseconds.
        faces: Per-frame list of FaceResult.
        fps: Video frame rate used for timing.
    """

    frame_indices: list[int] = field(default_factory=list)
    timestamps_ms: list[int] = field(default_factory=list)
    faces: list[list[FaceResult]] = field(default_factory=list)
    fps: float = 30.0

    @property
    def face_present_mask(self) -> list[bool]:
        """Boolean mask of frames with at least one face that has a mesh or box."""
        return [any(f.score > 0 for f in frame_faces) for frame_faces in self.faces]

    @property
    def frame_count(self) -> int:
        """Number of frames processed."""
        return len(self.faces)
