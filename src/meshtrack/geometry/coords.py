"""Landmark index tables for the face mesh and the detector keypoints.

Index lists refer to the 468-point face mesh. Iris points (468-477) are
only present after iris augmentation appends them: left iris first, then
right iris.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

MESH_ANNOTATIONS: dict[str, list[int]] = {
    "silhouette": [
        10, 338, 297, 332, 284, 251, 389, 356, 454, 323, 361, 288,
        397, 365, 379, 378, 400, 377, 152, 148, 176, 149, 150, 136,
        172, 58, 132, 93, 234, 127, 162, 21, 54, 103, 67, 109,
    ],
    "lipsUpperOuter": [61, 185, 40, 39, 37, 0, 267, 269, 270, 409, 291],
    "lipsLowerOuter": [146, 91, 181, 84, 17, 314, 405, 321, 375, 291],
    "lipsUpperInner": [78, 191, 80, 81, 82, 13, 312, 311, 310, 415, 308],
    "lipsLowerInner": [78, 95, 88, 178, 87, 14, 317, 402, 318, 324, 308],
    "rightEyeUpper0": [246, 161, 160, 159, 158, 157, 173],
    "rightEyeLower0": [33, 7, 163, 144, 145, 153, 154, 155, 133],
    "rightEyeUpper1": [247, 30, 29, 27, 28, 56, 190],
    "rightEyeLower1": [130, 25, 110, 24, 23, 22, 26, 112, 243],
    "rightEyeUpper2": [113, 225, 224, 223, 222, 221, 189],
    "rightEyeLower2": [226, 31, 228, 229, 230, 231, 232, 233, 244],
    "rightEyeLower3": [143, 111, 117, 118, 119, 120, 121, 128, 245],
    "rightEyebrowUpper": [156, 70, 63, 105, 66, 107, 55, 193],
    "rightEyebrowLower": [35, 124, 46, 53, 52, 65],
    "rightEyeIris": [473, 474, 475, 476, 477],
    "leftEyeUpper0": [466, 388, 387, 386, 385, 384, 398],
    "leftEyeLower0": [263, 249, 390, 373, 374, 380, 381, 382, 362],
    "leftEyeUpper1": [467, 260, 259, 257, 258, 286, 414],
    "leftEyeLower1": [359, 255, 339, 254, 253, 252, 256, 341, 463],
    "leftEyeUpper2": [342, 445, 444, 443, 442, 441, 413],
    "leftEyeLower2": [446, 261, 448, 449, 450, 451, 452, 453, 464],
    "leftEyeLower3": [372, 340, 346, 347, 348, 349, 350, 357, 465],
    "leftEyebrowUpper": [383, 300, 293, 334, 296, 336, 285, 417],
    "leftEyebrowLower": [265, 353, 276, 283, 282, 295],
    "leftEyeIris": [468, 469, 470, 471, 472],
    "midwayBetweenEyes": [168],
    "noseTip": [1],
    "noseBottom": [2],
    "noseRightCorner": [98],
    "noseLeftCorner": [327],
    "rightCheek": [205],
    "leftCheek": [425],
}

MESH_LANDMARKS = {
    "count": 468,
    "mouth": 13,
    "symmetry_line": (13, MESH_ANNOTATIONS["midwayBetweenEyes"][0]),
}

# Detector keypoints, in BlazeFace output order
BLAZEFACE_LANDMARKS: dict[str, int] = {
    "leftEye": 0,
    "rightEye": 1,
    "nose": 2,
    "mouth": 3,
    "leftEar": 4,
    "rightEar": 5,
}
BLAZEFACE_SYMMETRY_LINE = (3, 2)

# Iris model contour points that replace mesh eye contours, keyed by the
# contour name without its left/right prefix
MESH_TO_IRIS_INDICES_MAP: list[tuple[str, list[int]]] = [
    ("EyeUpper0", [9, 10, 11, 12, 13, 14, 15]),
    ("EyeUpper1", [25, 26, 27, 28, 29, 30, 31]),
    ("EyeUpper2", [41, 42, 43, 44, 45, 46, 47]),
    ("EyeLower0", [0, 1, 2, 3, 4, 5, 6, 7, 8]),
    ("EyeLower1", [16, 17, 18, 19, 20, 21, 22, 23, 24]),
    ("EyeLower2", [32, 33, 34, 35, 36, 37, 38, 39, 40]),
    ("EyeLower3", [54, 55, 56, 57, 58, 59, 60, 61, 62]),
]


def symmetry_line(landmark_count: int) -> tuple[int, int]:
    """Indices of the two points defining the face's vertical axis.

    Args:
        landmark_count: Number of landmarks attached to a box.

    Returns:
        Mesh symmetry line for full meshes, detector symmetry line otherwise.
    """
    if landmark_count >= MESH_LANDMARKS["count"]:
        return MESH_LANDMARKS["symmetry_line"]
    return BLAZEFACE_SYMMETRY_LINE


_tesselation_edges: list[tuple[int, int]] | None = None


def tesselation_edges() -> list[tuple[int, int]]:
    """Tesselation edges of the 468-point mesh.

    Loaded lazily from MediaPipe's published face landmark connections.

    Raises:
        ImportError: If mediapipe is not installed.
    """
    global _tesselation_edges
    if _tesselation_edges is None:
        from mediapipe.tasks.python.vision import FaceLandmarksConnections

        _tesselation_edges = sorted(
            (c.start, c.end) for c in FaceLandmarksConnections.FACE_LANDMARKS_TESSELATION
        )
        logger.debug(f"Loaded {len(_tesselation_edges)} tesselation edges")
    return _tesselation_edges
