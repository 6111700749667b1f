"""meshtrack - face mesh post-processing around pretrained face models."""

from meshtrack.config import Config, load_config
from meshtrack.geometry.coords import tesselation_edges
from meshtrack.models.domain import Box, DetectorResult, FaceResult, FaceTrack
from meshtrack.pipeline.facemesh import FaceMeshPipeline

__version__ = "0.1.0"

__all__ = [
    "Box",
    "Config",
    "DetectorResult",
    "FaceMeshPipeline",
    "FaceResult",
    "FaceTrack",
    "load_config",
    "tesselation_edges",
]
