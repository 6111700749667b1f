"""Image tensor operations via OpenCV.

Adapter for the pixel-level operations the pipeline needs around model
calls. Handles:
- Input normalization (HxWx3 or 1xHxWx3 arrays)
- Crop-and-resize with normalized boxes (zero fill outside the image)
- Rotation about an arbitrary center
- Horizontal flips of batched crops
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Sequence

import numpy as np

if TYPE_CHECKING:
    from meshtrack.models.domain import Box


def _cv2():
    try:
        import cv2
    except ImportError as e:
        raise RuntimeError("OpenCV (cv2) is required for image operations") from e
    return cv2


def to_rgb_array(image: np.ndarray) -> np.ndarray:
    """Normalize an input image to an HxWx3 float32 array.

    Args:
        image: RGB image as HxWx3 or 1xHxWx3, uint8 (0-255) or float (0-255).

    Returns:
        HxWx3 float32 array.

    Raises:
        ValueError: If the array does not hold a single 3-channel image.
    """
    arr = np.asarray(image)
    if arr.ndim == 4:
        if arr.shape[0] != 1:
            raise ValueError(f"Expected a single image batch, got shape {arr.shape}")
        arr = arr[0]
    if arr.ndim != 3 or arr.shape[2] != 3:
        raise ValueError(f"Expected HxWx3 image, got shape {arr.shape}")
    return arr.astype(np.float32, copy=False)


def crop_and_resize(
    image: np.ndarray,
    box_norm: Sequence[float],
    size: Sequence[int],
) -> np.ndarray:
    """Crop a normalized box and resize it with bilinear sampling.

    Sampling follows the crop-and-resize convention where box corners map to
    the first and last output pixel centers. Regions outside the image are
    filled with zeros.

    Args:
        image: HxWxC float32 array.
        box_norm: [y1, x1, y2, x2] in 0-1 image coordinates.
        size: Output (height, width).

    Returns:
        Output float32 array of shape (height, width, C).
    """
    cv2 = _cv2()

    h, w = image.shape[:2]
    out_h, out_w = int(size[0]), int(size[1])
    y1, x1, y2, x2 = box_norm

    if out_w > 1:
        sx = (x2 - x1) * (w - 1) / (out_w - 1)
        tx = x1 * (w - 1)
    else:
        sx = 0.0
        tx = 0.5 * (x1 + x2) * (w - 1)
    if out_h > 1:
        sy = (y2 - y1) * (h - 1) / (out_h - 1)
        ty = y1 * (h - 1)
    else:
        sy = 0.0
        ty = 0.5 * (y1 + y2) * (h - 1)

    # Destination -> source mapping
    matrix = np.array([[sx, 0.0, tx], [0.0, sy, ty]], dtype=np.float64)
    crop = cv2.warpAffine(
        np.ascontiguousarray(image, dtype=np.float32),
        matrix,
        (out_w, out_h),
        flags=cv2.INTER_LINEAR | cv2.WARP_INVERSE_MAP,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=0,
    )
    if crop.ndim == 2:
        crop = crop[:, :, np.newaxis]
    return crop


def cut_box_from_image_and_resize(
    box: "Box",
    image: np.ndarray,
    crop_size: Sequence[int],
) -> np.ndarray:
    """Crop a pixel-space box from an image and scale it to 0-1.

    Args:
        box: Box in image pixels.
        image: HxWx3 image (0-255).
        crop_size: Output (height, width).

    Returns:
        float32 tensor of shape (1, height, width, 3) in 0-1.
    """
    h, w = image.shape[:2]
    box_norm = [
        box.start_point[1] / h,
        box.start_point[0] / w,
        box.end_point[1] / h,
        box.end_point[0] / w,
    ]
    crop = crop_and_resize(image, box_norm, crop_size)
    return (crop / 255.0).astype(np.float32)[np.newaxis, ...]


def rotate_with_offset(
    image: np.ndarray,
    radians: float,
    center: Sequence[float] = (0.5, 0.5),
    fill_value: float = 0.0,
) -> np.ndarray:
    """Rotate an image counter-clockwise about a normalized center.

    Args:
        image: HxWxC array.
        radians: Rotation angle.
        center: (x, y) center of rotation in 0-1 image coordinates.
        fill_value: Value for pixels rotated in from outside the image.

    Returns:
        Rotated array with the same shape and dtype.
    """
    cv2 = _cv2()

    h, w = image.shape[:2]
    center_px = (float(center[0] * w), float(center[1] * h))
    matrix = cv2.getRotationMatrix2D(center_px, math.degrees(radians), 1.0)
    rotated = cv2.warpAffine(
        np.ascontiguousarray(image),
        matrix,
        (w, h),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=(fill_value,) * 4,
    )
    if rotated.ndim == 2:
        rotated = rotated[:, :, np.newaxis]
    return rotated


def flip_left_right(tensor: np.ndarray) -> np.ndarray:
    """Mirror a batched NHWC tensor horizontally."""
    return np.ascontiguousarray(tensor[:, :, ::-1, :])
