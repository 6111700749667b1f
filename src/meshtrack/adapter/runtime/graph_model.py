"""Opaque model execution via ONNX Runtime.

The face mesh and iris networks are pretrained graphs; this adapter only
feeds them NHWC float tensors and hands back their outputs. Loading degrades
gracefully: a missing file or runtime yields None and a warning.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

logger = logging.getLogger(__name__)

# Used when the model declares a dynamic spatial dimension
DEFAULT_INPUT_SIZE = 64


class GraphModel:
    """A loaded pretrained graph.

    Usage:
        model = load_graph_model(path)
        if model is not None:
            outputs = model.execute(tensor)
    """

    def __init__(self, session, model_url: str):
        """Wrap an existing inference session.

        Args:
            session: onnxruntime.InferenceSession (or anything with the same
                get_inputs/get_outputs/run interface).
            model_url: Where the model was loaded from.
        """
        self._session = session
        self.model_url = model_url
        self._input_name = session.get_inputs()[0].name
        self._output_names = [o.name for o in session.get_outputs()]

    @property
    def input_shape(self) -> list:
        """Declared shape of the first input (entries may be symbolic)."""
        return list(self._session.get_inputs()[0].shape)

    @property
    def input_size(self) -> int:
        """Spatial input size (NHWC width), DEFAULT_INPUT_SIZE when dynamic."""
        shape = self.input_shape
        size = shape[2] if len(shape) > 2 else None
        if not isinstance(size, int) or size <= 0:
            return DEFAULT_INPUT_SIZE
        return size

    def execute(self, tensor: np.ndarray) -> list[np.ndarray]:
        """Run the model.

        Args:
            tensor: NHWC float32 input.

        Returns:
            Model outputs in declared output order.
        """
        feed = {self._input_name: np.ascontiguousarray(tensor, dtype=np.float32)}
        return [np.asarray(o) for o in self._session.run(self._output_names, feed)]


def _select_providers(ort) -> list[str]:
    available = ort.get_available_providers()
    if "CUDAExecutionProvider" in available:
        return ["CUDAExecutionProvider", "CPUExecutionProvider"]
    return ["CPUExecutionProvider"]


def load_graph_model(model_path: Path | str) -> GraphModel | None:
    """Load an ONNX model from disk.

    Args:
        model_path: Path to the .onnx file.

    Returns:
        GraphModel, or None if the file or runtime is unavailable.
    """
    model_path = Path(model_path)
    if not model_path.exists():
        logger.warning(f"Load model failed: {model_path} not found")
        return None

    try:
        import onnxruntime as ort
    except ImportError:
        logger.warning("onnxruntime not available - model execution disabled")
        return None

    providers = _select_providers(ort)
    try:
        session = ort.InferenceSession(str(model_path), providers=providers)
    except Exception as e:
        logger.warning(f"Load model failed: {model_path}: {e}")
        return None

    logger.info(f"Load model: {model_path} ({session.get_providers()[0]})")
    return GraphModel(session, model_url=str(model_path))
