from .base import NodeTable, Pass
from .cse import CommonSubexpressionPass
from .dce import DeadCodePass
from .folding import ConstantFoldingPass
from .fusion import FusionPass
from .pipeline import Optimizer

__all__ = [
    "NodeTable",
    "Pass",
    "ConstantFoldingPass",
    "CommonSubexpressionPass",
    "DeadCodePass",
    "FusionPass",
    "Optimizer",
]
