"""Rotation and homogeneous transform math.

Matrices are 3x3 nested lists acting on homogeneous 2D points [x, y, 1].
The mesh model sees an upright face crop; these helpers map its output back
into the (possibly rotated) image frame.
"""

from __future__ import annotations

import math
from typing import Sequence

from meshtrack.geometry.box import get_box_center, get_box_size, round_half_up
from meshtrack.models.domain import Box, Point

Matrix = list[list[float]]

FIXED_ROTATION_MATRIX: Matrix = [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]]

# Rotations smaller than this (radians) are not corrected
LARGE_ANGLE_THRESHOLD = 0.2


def is_large_angle(angle: float | None) -> bool:
    """Whether a rotation is large enough to correct."""
    return bool(angle) and abs(angle) > LARGE_ANGLE_THRESHOLD


def normalize_radians(angle: float) -> float:
    """Wrap an angle into [-pi, pi)."""
    return angle - 2 * math.pi * math.floor((angle + math.pi) / (2 * math.pi))


def compute_rotation(point1: Point, point2: Point) -> float:
    """Roll angle of the line point1 -> point2 relative to vertical."""
    return normalize_radians(
        math.pi / 2 - math.atan2(-(point2[1] - point1[1]), point2[0] - point1[0])
    )


def build_translation_matrix(x: float, y: float) -> Matrix:
    return [[1.0, 0.0, x], [0.0, 1.0, y], [0.0, 0.0, 1.0]]


def dot(v1: Sequence[float], v2: Sequence[float]) -> float:
    return sum(a * b for a, b in zip(v1, v2))


def multiply_transform_matrices(mat1: Matrix, mat2: Matrix) -> Matrix:
    """3x3 matrix product mat1 @ mat2."""
    size = len(mat1)
    return [
        [dot(mat1[row], [mat2[k][col] for k in range(size)]) for col in range(size)]
        for row in range(size)
    ]


def build_rotation_matrix(rotation: float, center: Sequence[float]) -> Matrix:
    """Rotation by `rotation` radians about `center`."""
    cos_a = math.cos(rotation)
    sin_a = math.sin(rotation)
    rotation_matrix = [[cos_a, -sin_a, 0.0], [sin_a, cos_a, 0.0], [0.0, 0.0, 1.0]]
    translation = build_translation_matrix(center[0], center[1])
    translation_times_rotation = multiply_transform_matrices(translation, rotation_matrix)
    negative_translation = build_translation_matrix(-center[0], -center[1])
    return multiply_transform_matrices(translation_times_rotation, negative_translation)


def invert_transform_matrix(matrix: Matrix) -> Matrix:
    """Inverse of a rigid (rotation + translation) transform."""
    rotation_component = [[matrix[0][0], matrix[1][0]], [matrix[0][1], matrix[1][1]]]
    translation_component = [matrix[0][2], matrix[1][2]]
    inverted_translation = [
        -dot(rotation_component[0], translation_component),
        -dot(rotation_component[1], translation_component),
    ]
    return [
        rotation_component[0] + [inverted_translation[0]],
        rotation_component[1] + [inverted_translation[1]],
        [0.0, 0.0, 1.0],
    ]


def rotate_point(homogeneous_coordinate: Sequence[float], rotation_matrix: Matrix) -> list[float]:
    return [
        dot(homogeneous_coordinate, rotation_matrix[0]),
        dot(homogeneous_coordinate, rotation_matrix[1]),
    ]


def transform_raw_coords(
    coords_raw: Sequence[Point],
    box: Box,
    angle: float,
    rotation_matrix: Matrix,
    input_size: int,
) -> list[list[float]]:
    """Map mesh model output into image space.

    Coordinates are scaled around the crop center by box_size / input_size,
    rotated back by angle when it is large, and moved to the box center.

    Args:
        coords_raw: [x, y, z] points in mesh input pixels (0..input_size).
        box: Box the face crop was cut from.
        angle: Roll angle that was removed from the crop.
        rotation_matrix: Matrix used to rotate the image before cropping.
        input_size: Mesh model input size.

    Returns:
        Integer-valued [x, y, z] points in image pixels.
    """
    box_size = get_box_size(box)
    half = input_size / 2
    # Scaled around the crop center
    coords_scaled = [
        [
            box_size[0] / input_size * (c[0] - half),
            box_size[1] / input_size * (c[1] - half),
            c[2],
        ]
        for c in coords_raw
    ]

    large_angle = is_large_angle(angle)
    if large_angle:
        coords_rotation_matrix = build_rotation_matrix(angle, (0.0, 0.0))
        coords_rotated = [rotate_point(c, coords_rotation_matrix) + [c[2]] for c in coords_scaled]
        inverse_rotation_matrix = invert_transform_matrix(rotation_matrix)
    else:
        coords_rotated = coords_scaled
        inverse_rotation_matrix = FIXED_ROTATION_MATRIX

    box_center = [*get_box_center(box), 1.0]
    offset_x = dot(box_center, inverse_rotation_matrix[0])
    offset_y = dot(box_center, inverse_rotation_matrix[1])

    return [
        [
            round_half_up(c[0] + offset_x),
            round_half_up(c[1] + offset_y),
            round_half_up(c[2] or 0.0),
        ]
        for c in coords_rotated
    ]
