from .dtypes import DType, float32
from .errors import (
    CrossGraphReferenceError,
    InvalidShapeError,
    IRValidationError,
    ShapeMismatchError,
    TraceGenerationError,
    UnresolvedShapeError,
)
from .graph import Graph
from .op import FusedStep, Node, OpKind
from .shape import Shape, as_shape, broadcast_shapes
from .tensor import GraphTensor

__all__ = [
    "DType",
    "float32",
    "Graph",
    "GraphTensor",
    "Node",
    "OpKind",
    "FusedStep",
    "Shape",
    "as_shape",
    "broadcast_shapes",
    "IRValidationError",
    "ShapeMismatchError",
    "InvalidShapeError",
    "CrossGraphReferenceError",
    "TraceGenerationError",
    "UnresolvedShapeError",
]
