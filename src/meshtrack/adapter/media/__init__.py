"""Media adapters for images and video files.

- image: crop, resize, rotate and flip image tensors (OpenCV)
- video_decode: frame iteration from video files
"""

from meshtrack.adapter.media.image import (
    crop_and_resize,
    cut_box_from_image_and_resize,
    flip_left_right,
    rotate_with_offset,
    to_rgb_array,
)
from meshtrack.adapter.media.video_decode import Frame, VideoReader, decode_frames

__all__ = [
    "Frame",
    "VideoReader",
    "crop_and_resize",
    "cut_box_from_image_and_resize",
    "decode_frames",
    "flip_left_right",
    "rotate_with_offset",
    "to_rgb_array",
]
