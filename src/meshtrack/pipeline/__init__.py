"""Face mesh pipeline: box cache, mesh refinement, iris augmentation."""

from meshtrack.pipeline.facemesh import FaceMeshPipeline, correct_face_rotation
from meshtrack.pipeline.iris import IrisModel
from meshtrack.pipeline.track import track_frames, track_rgb_arrays, track_video

__all__ = [
    "FaceMeshPipeline",
    "IrisModel",
    "correct_face_rotation",
    "track_frames",
    "track_rgb_arrays",
    "track_video",
]
