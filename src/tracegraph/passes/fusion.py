from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import ClassVar

from tracegraph.ir.op import BINARY_OPS, UNARY_OPS, FusedStep, Node, OpKind
from tracegraph.passes.base import NodeTable

logger = logging.getLogger(__name__)

FUSIBLE_OPS = UNARY_OPS | BINARY_OPS


@dataclass(slots=True)
class FusionPass:
    """Fuses chains of elementwise ops into single FUSED nodes.

    A node is absorbed into its consumer when:
    - both are unary/binary elementwise ops,
    - the consumer is the node's *only* consumer (it may read it twice),
    - the node is not a graph output.

    Absorption follows consumers, so every group ends in one tail node. The
    fused node takes over the tail's id, which keeps output bindings and
    downstream operand ids valid without any redirection.
    """

    name: ClassVar[str] = "fusion"

    def run(self, table: NodeTable) -> int:
        # 1. Identify candidates: (producer -> sole consumer) edges
        users = table.users()
        outputs = table.live_outputs()
        absorbed_into: dict[int, int] = {}

        for node in table:
            if node.kind not in FUSIBLE_OPS or node.id in outputs:
                continue
            consumers = users[node.id]
            if len(consumers) != 1:
                continue
            if table.nodes[consumers[0]].kind in FUSIBLE_OPS:
                absorbed_into[node.id] = consumers[0]

        if not absorbed_into:
            return 0

        def tail_of(nid: int) -> int:
            while nid in absorbed_into:
                nid = absorbed_into[nid]
            return nid

        groups: dict[int, list[int]] = {}
        for nid in absorbed_into:
            groups.setdefault(tail_of(nid), []).append(nid)

        # 2. Apply fusion, one group at a time
        for tail, members in sorted(groups.items()):
            fused = self._build_fused_node(table, sorted(members) + [tail])
            for nid in members:
                table.remove(nid)
            table.replace(fused)
            logger.debug(f"{table.name}: fused {len(members) + 1} ops into {fused.label()}")

        return len(groups)

    def _build_fused_node(self, table: NodeTable, members: list[int]) -> Node:
        """Members are in id order; the last one is the tail."""
        member_set = set(members)
        external: list[int] = []
        step_of: dict[int, int] = {}
        steps: list[FusedStep] = []

        for nid in members:
            node = table.nodes[nid]
            args: list[tuple[str, int]] = []
            for operand in node.operands:
                if operand in member_set:
                    args.append(("step", step_of[operand]))
                    continue
                if operand not in external:
                    external.append(operand)
                args.append(("in", external.index(operand)))
            step_of[nid] = len(steps)
            steps.append(FusedStep(kind=node.kind, args=tuple(args), params=node.params))

        tail = table.nodes[members[-1]]
        name = "fused_" + "_".join(table.nodes[nid].label() for nid in members)
        return Node(
            id=tail.id,
            kind=OpKind.FUSED,
            operands=tuple(external),
            shape=tail.shape,
            dtype=tail.dtype,
            params=(("program", tuple(steps)),),
            name=name,
        )
