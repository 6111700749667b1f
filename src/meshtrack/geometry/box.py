"""Box helpers for face crops.

All functions are pure and return new Box instances; landmarks and
confidence are carried through unchanged.
"""

from __future__ import annotations

import math
from typing import Sequence

from meshtrack.models.domain import Box, Point


def get_box_size(box: Box) -> tuple[float, float]:
    """Width and height of a box."""
    return (
        abs(box.end_point[0] - box.start_point[0]),
        abs(box.end_point[1] - box.start_point[1]),
    )


def get_box_center(box: Box) -> tuple[float, float]:
    """Center of a box."""
    return (
        box.start_point[0] + (box.end_point[0] - box.start_point[0]) / 2,
        box.start_point[1] + (box.end_point[1] - box.start_point[1]) / 2,
    )


def scale_box_coordinates(box: Box, factor: Sequence[float]) -> Box:
    """Scale box corners by (sx, sy), e.g. detector space to image space."""
    start = (box.start_point[0] * factor[0], box.start_point[1] * factor[1])
    end = (box.end_point[0] * factor[0], box.end_point[1] * factor[1])
    return box.with_corners(start, end)


def enlarge_box(box: Box, factor: float = 1.5) -> Box:
    """Grow a box around its center by factor."""
    center = get_box_center(box)
    size = get_box_size(box)
    half = (factor * size[0] / 2, factor * size[1] / 2)
    return box.with_corners(
        (center[0] - half[0], center[1] - half[1]),
        (center[0] + half[0], center[1] + half[1]),
    )


def squarify_box(box: Box) -> Box:
    """Make a box square using its longer side, with integer corners."""
    center = get_box_center(box)
    half = max(get_box_size(box)) / 2
    return box.with_corners(
        (round_half_up(center[0] - half), round_half_up(center[1] - half)),
        (round_half_up(center[0] + half), round_half_up(center[1] + half)),
    )


def calculate_landmarks_bounding_box(landmarks: Sequence[Point]) -> Box:
    """Tight box around a set of points.

    Raises:
        ValueError: If landmarks is empty.
    """
    if len(landmarks) == 0:
        raise ValueError("Cannot compute bounding box of empty landmarks")

    xs = [p[0] for p in landmarks]
    ys = [p[1] for p in landmarks]
    return Box(
        start_point=(min(xs), min(ys)),
        end_point=(max(xs), max(ys)),
        landmarks=list(landmarks),
    )


def get_clamped_box(box: Box | None, width: int, height: int) -> list[int]:
    """Box as integer [x, y, w, h] clipped to the image."""
    if box is None:
        return [0, 0, 0, 0]

    x = max(0.0, box.start_point[0])
    y = max(0.0, box.start_point[1])
    return [
        math.trunc(x),
        math.trunc(y),
        math.trunc(min(width, box.end_point[0]) - x),
        math.trunc(min(height, box.end_point[1]) - y),
    ]


def get_raw_box(box: Box | None, width: int, height: int) -> list[float]:
    """Box as [x, y, w, h] normalized by image size."""
    if box is None or width == 0 or height == 0:
        return [0.0, 0.0, 0.0, 0.0]

    return [
        box.start_point[0] / width,
        box.start_point[1] / height,
        (box.end_point[0] - box.start_point[0]) / width,
        (box.end_point[1] - box.start_point[1]) / height,
    ]


def round_half_up(value: float) -> float:
    # Half-up rounding; Python's round() is banker's rounding
    return float(math.floor(value + 0.5))
