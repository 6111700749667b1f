"""Geometry helpers: boxes, transforms and landmark tables.

Pure computations on points and boxes. No model or image IO.
"""

from meshtrack.geometry.box import (
    calculate_landmarks_bounding_box,
    enlarge_box,
    get_box_center,
    get_box_size,
    get_clamped_box,
    get_raw_box,
    scale_box_coordinates,
    squarify_box,
)
from meshtrack.geometry.coords import (
    BLAZEFACE_LANDMARKS,
    MESH_ANNOTATIONS,
    MESH_LANDMARKS,
    tesselation_edges,
)
from meshtrack.geometry.transform import (
    FIXED_ROTATION_MATRIX,
    build_rotation_matrix,
    compute_rotation,
    invert_transform_matrix,
    transform_raw_coords,
)

__all__ = [
    # Box
    "calculate_landmarks_bounding_box",
    "enlarge_box",
    "get_box_center",
    "get_box_size",
    "get_clamped_box",
    "get_raw_box",
    "scale_box_coordinates",
    "squarify_box",
    # Coords
    "BLAZEFACE_LANDMARKS",
    "MESH_ANNOTATIONS",
    "MESH_LANDMARKS",
    "tesselation_edges",
    # Transform
    "FIXED_ROTATION_MATRIX",
    "build_rotation_matrix",
    "compute_rotation",
    "invert_transform_matrix",
    "transform_raw_coords",
]
