from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import ClassVar

from tracegraph.ir.errors import UnresolvedShapeError
from tracegraph.ir.op import Node, OpKind, SOURCE_OPS
from tracegraph.kernels import constant_value, evaluate_node
from tracegraph.passes.base import NodeTable

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ConstantFoldingPass:
    """Replaces nodes whose operands are all constants by a constant node.

    Nodes are visited in id order, so a chain of constant-only nodes folds
    completely in one run. The folded node keeps its id, shape and name.
    """

    name: ClassVar[str] = "constant_folding"

    def run(self, table: NodeTable) -> int:
        folded = 0
        for node in table:
            if node.kind in SOURCE_OPS or not node.operands:
                continue
            operands = [table.nodes[o] for o in node.operands]
            if not all(o.kind is OpKind.CONSTANT for o in operands):
                continue

            value = evaluate_node(node, [constant_value(o) for o in operands])
            if value.shape != node.shape:
                raise UnresolvedShapeError(
                    f"Folding {node.label()} produced shape {value.shape}, expected {node.shape}"
                )
            table.replace(Node(
                id=node.id,
                kind=OpKind.CONSTANT,
                operands=(),
                shape=node.shape,
                dtype=node.dtype,
                params=(("value", tuple(value.ravel().tolist())),),
                name=node.name,
            ))
            folded += 1

        if folded:
            logger.debug(f"{table.name}: folded {folded} node(s) into constants")
        return folded
