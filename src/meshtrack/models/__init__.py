"""Domain models and result types."""

from meshtrack.models.domain import Box, DetectorResult, FaceResult, FaceTrack, Point

__all__ = [
    "Box",
    "DetectorResult",
    "FaceResult",
    "FaceTrack",
    "Point",
]
