"""tracegraph: build tensor programs as graphs, compile them into traces.

User code records operations on GraphTensor handles; nothing executes until
`Graph.gen_trace()` optimizes a snapshot of the graph and schedules it into
a Trace, which the reference Runtime (or an external prover) consumes.
"""

from .config import ArenaConfig, OptimizerConfig, TraceConfig
from .ir.dtypes import DType, float32
from .ir.errors import (
    CrossGraphReferenceError,
    InvalidShapeError,
    IRValidationError,
    ShapeMismatchError,
    TraceGenerationError,
    UnresolvedShapeError,
)
from .ir.graph import Graph
from .ir.op import OpKind
from .ir.tensor import GraphTensor
from .runtime import Runtime
from .trace import Trace, generate_trace

__all__ = [
    "DType",
    "float32",
    "Graph",
    "GraphTensor",
    "OpKind",
    "Trace",
    "generate_trace",
    "Runtime",
    "TraceConfig",
    "OptimizerConfig",
    "ArenaConfig",
    "IRValidationError",
    "ShapeMismatchError",
    "InvalidShapeError",
    "CrossGraphReferenceError",
    "TraceGenerationError",
    "UnresolvedShapeError",
]
