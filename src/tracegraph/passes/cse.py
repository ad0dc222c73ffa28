from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import ClassVar

from tracegraph.ir.op import OpKind
from tracegraph.passes.base import NodeTable

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CommonSubexpressionPass:
    """Unifies structurally identical nodes onto the earliest one.

    Two nodes are identical when they share kind, operand ids (in order) and
    params. Inputs are never merged: two inputs of the same shape are still
    two different values. Operands are rewritten as we go, so duplicates
    deeper in the graph are found in the same run.
    """

    name: ClassVar[str] = "cse"

    def run(self, table: NodeTable) -> int:
        seen: dict[tuple, int] = {}
        mapping: dict[int, int] = {}

        for node in table:
            operands = tuple(mapping.get(o, o) for o in node.operands)
            if operands != node.operands:
                node = dataclasses.replace(node, operands=operands)
                table.replace(node)

            if node.kind is OpKind.INPUT:
                continue
            key = node.structural_key()
            canonical = seen.get(key)
            if canonical is None:
                seen[key] = node.id
                continue
            mapping[node.id] = canonical
            table.remove(node.id)

        # Operands were rewritten in place above; this fixes the output bindings.
        table.redirect(mapping)
        if mapping:
            logger.debug(f"{table.name}: merged {len(mapping)} duplicate node(s)")
        return len(mapping)
