"""Model runtime adapter (ONNX Runtime)."""

from meshtrack.adapter.runtime.graph_model import GraphModel, load_graph_model

__all__ = [
    "GraphModel",
    "load_graph_model",
]
