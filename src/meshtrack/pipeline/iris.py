"""Iris refinement of face mesh coordinates.

The iris model sees a tight crop around each eye and returns 71 eye contour
points plus 5 iris points. Contours replace the mesh eye contours; iris
points are appended to the mesh (left iris first, then right iris).

All coordinates here are raw mesh coordinates: pixels of the mesh model's
input crop, before transform_raw_coords maps them into the image.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

import numpy as np

from meshtrack.adapter.media.image import crop_and_resize, flip_left_right
from meshtrack.geometry.box import (
    calculate_landmarks_bounding_box,
    enlarge_box,
    get_box_size,
    squarify_box,
)
from meshtrack.geometry.coords import MESH_ANNOTATIONS, MESH_TO_IRIS_INDICES_MAP
from meshtrack.models.domain import Box, Point

if TYPE_CHECKING:
    from meshtrack.adapter.runtime.graph_model import GraphModel

logger = logging.getLogger(__name__)

IRIS_ENLARGE = 2.3
UPPER_CENTER = 3
LOWER_CENTER = 4
IRIS_INDEX = 71
NUM_COORDINATES = 76

# Depth difference (mesh z units) below which both eyes are trusted
LOOKING_STRAIGHT_THRESHOLD = 30

LEFT_BOUNDS = (MESH_ANNOTATIONS["leftEyeLower0"][0], MESH_ANNOTATIONS["leftEyeLower0"][-1])
RIGHT_BOUNDS = (MESH_ANNOTATIONS["rightEyeLower0"][0], MESH_ANNOTATIONS["rightEyeLower0"][-1])


@dataclass
class EyeBox:
    """Eye crop and the box it was cut from (mesh coordinates)."""

    box: Box
    box_size: tuple[float, float]
    crop: np.ndarray


def get_left_to_right_eye_depth_difference(raw_coords: Sequence[Point]) -> float:
    """Depth of the left eye corner minus depth of the right eye corner."""
    return raw_coords[LEFT_BOUNDS[0]][2] - raw_coords[RIGHT_BOUNDS[0]][2]


def get_eye_box(
    raw_coords: Sequence[Point],
    face: np.ndarray,
    eye_inner_corner_index: int,
    eye_outer_corner_index: int,
    mesh_size: int,
    input_size: int,
    flip: bool = False,
) -> EyeBox:
    """Crop one eye from the face tensor.

    Args:
        raw_coords: Raw mesh coordinates.
        face: Face crop tensor (1, mesh_size, mesh_size, 3).
        eye_inner_corner_index: Mesh index of one eye corner.
        eye_outer_corner_index: Mesh index of the other eye corner.
        mesh_size: Mesh model input size.
        input_size: Iris model input size.
        flip: Mirror the crop (the iris model expects one eye orientation).

    Returns:
        EyeBox with a (1, input_size, input_size, 3) crop.
    """
    box = squarify_box(
        enlarge_box(
            calculate_landmarks_bounding_box(
                [raw_coords[eye_inner_corner_index], raw_coords[eye_outer_corner_index]]
            ),
            IRIS_ENLARGE,
        )
    )
    box_norm = [
        box.start_point[1] / mesh_size,
        box.start_point[0] / mesh_size,
        box.end_point[1] / mesh_size,
        box.end_point[0] / mesh_size,
    ]
    crop = crop_and_resize(face[0], box_norm, (input_size, input_size))[np.newaxis, ...]
    if flip:
        crop = flip_left_right(crop)
    return EyeBox(box=box, box_size=get_box_size(box), crop=crop)


def get_eye_coords(
    eye_data: Sequence[float],
    eye_box: Box,
    eye_box_size: Sequence[float],
    input_size: int,
    flip: bool = False,
) -> tuple[list[list[float]], list[list[float]]]:
    """Map iris model output back into mesh coordinates.

    Returns:
        (all 76 eye points, the 5 iris points).
    """
    eye_raw_coords = []
    for i in range(NUM_COORDINATES):
        x = float(eye_data[i * 3])
        y = float(eye_data[i * 3 + 1])
        z = float(eye_data[i * 3 + 2])
        x_rel = 1 - x / input_size if flip else x / input_size
        eye_raw_coords.append(
            [
                x_rel * eye_box_size[0] + eye_box.start_point[0],
                (y / input_size) * eye_box_size[1] + eye_box.start_point[1],
                z,
            ]
        )
    return eye_raw_coords, eye_raw_coords[IRIS_INDEX:]


def replace_raw_coordinates(
    raw_coords: list[list[float]],
    new_coords: Sequence[Point],
    prefix: str,
    keys: Sequence[str] | None = None,
) -> None:
    """Replace mesh eye contours in place with iris model contours.

    Args:
        raw_coords: Raw mesh coordinates (modified in place).
        new_coords: Eye points from get_eye_coords.
        prefix: "left" or "right".
        keys: Contour names to replace (e.g. "EyeUpper0"); None replaces all.
    """
    for key, indices in MESH_TO_IRIS_INDICES_MAP:
        if keys is not None and key not in keys:
            continue
        original_indices = MESH_ANNOTATIONS[f"{prefix}{key}"]
        for j, index in enumerate(indices):
            original = original_indices[j]
            raw_coords[original] = [
                new_coords[index][0],
                new_coords[index][1],
                (new_coords[index][2] + raw_coords[original][2]) / 2,
            ]


def get_adjusted_iris_coords(
    raw_coords: Sequence[Point],
    iris_coords: Sequence[Point],
    direction: str,
) -> list[list[float]]:
    """Give iris points the depth of the surrounding eyelids.

    The iris model's z is relative to its eye crop; eyelid depth from the
    mesh is used instead.
    """
    upper_center_z = raw_coords[MESH_ANNOTATIONS[f"{direction}EyeUpper0"][UPPER_CENTER]][2]
    lower_center_z = raw_coords[MESH_ANNOTATIONS[f"{direction}EyeLower0"][LOWER_CENTER]][2]
    average_z = (upper_center_z + lower_center_z) / 2

    adjusted = []
    for i, coord in enumerate(iris_coords):
        if i == 2:
            z = upper_center_z
        elif i == 4:
            z = lower_center_z
        else:
            z = average_z
        adjusted.append([coord[0], coord[1], z])
    return adjusted


class IrisModel:
    """Iris refinement stage.

    Wraps an optional GraphModel; without a model, augment() returns the
    mesh unchanged.
    """

    def __init__(self, model: "GraphModel | None" = None):
        self.model = model

    @property
    def input_size(self) -> int:
        return self.model.input_size if self.model is not None else 0

    def _single_batch(self) -> bool:
        """Whether the model input declares a fixed batch of 1."""
        shape = getattr(self.model, "input_shape", None)
        return bool(shape) and shape[0] == 1

    def _run_eyes(self, crops: list[np.ndarray]) -> np.ndarray:
        """Run the iris model on both eye crops.

        Returns:
            One row of flattened model outputs per crop.
        """
        if self._single_batch():
            rows = []
            for crop in crops:
                outputs = self.model.execute(crop)
                rows.append(np.concatenate([np.ravel(o) for o in outputs]))
            return np.stack(rows)

        outputs = self.model.execute(np.concatenate(crops, axis=0))
        return np.concatenate([np.reshape(o, (len(crops), -1)) for o in outputs], axis=1)

    def augment(
        self,
        raw_coords: Sequence[Point],
        face: np.ndarray,
        mesh_size: int,
        debug: bool = False,
    ) -> list[list[float]]:
        """Refine eye contours and append iris points.

        Args:
            raw_coords: 468 raw mesh coordinates.
            face: Face crop tensor fed to the mesh model.
            mesh_size: Mesh model input size.
            debug: Log when the model is not loaded.

        Returns:
            478 raw coordinates (468 refined + 5 left iris + 5 right iris), or
            the input unchanged if the iris model is not loaded.
        """
        coords = [list(c) for c in raw_coords]
        if self.model is None:
            if debug:
                logger.debug("Face mesh iris detection requested, but model is not loaded")
            return coords

        input_size = self.input_size
        left = get_eye_box(coords, face, LEFT_BOUNDS[0], LEFT_BOUNDS[1], mesh_size, input_size, flip=True)
        right = get_eye_box(coords, face, RIGHT_BOUNDS[0], RIGHT_BOUNDS[1], mesh_size, input_size)

        eye_data = self._run_eyes([left.crop, right.crop])

        left_eye_coords, left_iris = get_eye_coords(
            eye_data[0], left.box, left.box_size, input_size, flip=True
        )
        right_eye_coords, right_iris = get_eye_coords(
            eye_data[1], right.box, right.box_size, input_size, flip=False
        )

        depth_difference = get_left_to_right_eye_depth_difference(coords)
        if abs(depth_difference) < LOOKING_STRAIGHT_THRESHOLD:
            replace_raw_coordinates(coords, left_eye_coords, "left", None)
            replace_raw_coordinates(coords, right_eye_coords, "right", None)
        elif depth_difference < 1:
            # Looking towards the right: only the left eyelids are reliable
            replace_raw_coordinates(coords, left_eye_coords, "left", ["EyeUpper0", "EyeLower0"])
        else:
            replace_raw_coordinates(coords, right_eye_coords, "right", ["EyeUpper0", "EyeLower0"])

        adjusted_left = get_adjusted_iris_coords(coords, left_iris, "left")
        adjusted_right = get_adjusted_iris_coords(coords, right_iris, "right")
        return coords + adjusted_left + adjusted_right
