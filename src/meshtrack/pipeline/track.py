"""Run the face mesh pipeline over a sequence of frames.

Frames are fed in order so the pipeline's box cache carries faces from one
frame to the next.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

import numpy as np

from meshtrack.adapter.media.video_decode import Frame, VideoReader
from meshtrack.models.domain import FaceTrack

if TYPE_CHECKING:
    from meshtrack.pipeline.facemesh import FaceMeshPipeline

logger = logging.getLogger(__name__)


def track_frames(
    pipeline: "FaceMeshPipeline",
    frames: Iterable[Frame],
    fps: float = 30.0,
) -> FaceTrack:
    """Run the pipeline on decoded frames.

    Args:
        pipeline: Loaded FaceMeshPipeline.
        frames: Frames in playback order.
        fps: Frame rate recorded on the track.

    Returns:
        FaceTrack with one list of FaceResult per frame.
    """
    track = FaceTrack(fps=fps)
    for frame in frames:
        track.frame_indices.append(frame.index)
        track.timestamps_ms.append(frame.timestamp_ms)
        track.faces.append(pipeline.predict(frame.rgb))
    return track


def track_rgb_arrays(
    pipeline: "FaceMeshPipeline",
    rgb_arrays: list[np.ndarray],
    fps: float = 30.0,
) -> FaceTrack:
    """Run the pipeline on raw RGB arrays.

    Args:
        pipeline: Loaded FaceMeshPipeline.
        rgb_arrays: List of HxWx3 RGB arrays.
        fps: Frame rate used for timestamps.

    Returns:
        FaceTrack with detection results.
    """
    frames = [
        Frame(
            index=i,
            timestamp_ms=int(i / fps * 1000) if fps > 0 else 0,
            bgr=np.ascontiguousarray(rgb[:, :, ::-1]),
        )
        for i, rgb in enumerate(rgb_arrays)
    ]
    return track_frames(pipeline, frames, fps=fps)


def track_video(
    pipeline: "FaceMeshPipeline",
    video_path: Path,
    max_frames: int | None = None,
    sample_every: int = 1,
) -> FaceTrack:
    """Run the pipeline on a video file.

    Args:
        pipeline: Loaded FaceMeshPipeline.
        video_path: Path to video file.
        max_frames: Maximum frames to process (None = all).
        sample_every: Process every Nth frame.

    Returns:
        FaceTrack with detection results.

    Raises:
        FileNotFoundError: If video file doesn't exist.
        RuntimeError: If video cannot be opened.
    """
    with VideoReader(video_path) as reader:
        fps = reader.fps / sample_every
        track = track_frames(
            pipeline,
            reader.iter_frames(max_frames=max_frames, sample_every=sample_every),
            fps=fps,
        )

    present = sum(track.face_present_mask)
    logger.info(f"Tracked {track.frame_count} frames from {video_path}, faces in {present}")
    return track
