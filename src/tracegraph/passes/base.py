"""NodeTable: the private copy of a graph that optimizer passes rewrite.

Passes never touch the Graph a user is building. `NodeTable.from_graph`
takes a snapshot (nodes are immutable, so a shallow copy is enough) and
passes rewrite the table by id: replacing a node keeps its id, and removing
one redirects its users to another id that is strictly smaller than theirs.
That keeps the "operands come first" invariant and the DAG property intact.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator, Protocol

from tracegraph.ir.errors import TraceGenerationError, UnresolvedShapeError
from tracegraph.ir.op import Node, OpKind
from tracegraph.ir.shape import Shape, is_resolved

if TYPE_CHECKING:
    from tracegraph.ir.graph import Graph


@dataclass
class NodeTable:
    """Id-indexed node storage plus the output bindings of the source graph.

    Attributes:
        name: Name of the source graph (for diagnostics).
        graph_id: Identity token of the source graph.
        nodes: node id -> Node, kept in ascending id order.
        outputs: original output node id -> node id currently computing it.
        inputs: ids of every input node of the source graph.
        output_shapes: original output node id -> shape it must keep.
    """

    name: str
    graph_id: int
    nodes: dict[int, Node]
    outputs: dict[int, int]
    inputs: tuple[int, ...] = ()
    output_shapes: dict[int, Shape] = field(default_factory=dict)

    @classmethod
    def from_graph(cls, graph: Graph) -> NodeTable:
        nodes = {n.id: n for n in graph.nodes}
        outputs = {i: i for i in graph.outputs}
        return cls(
            name=graph.name,
            graph_id=graph.id,
            nodes=nodes,
            outputs=outputs,
            inputs=graph.inputs,
            output_shapes={i: nodes[i].shape for i in outputs},
        )

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(list(self.nodes.values()))

    def __contains__(self, node_id: int) -> bool:
        return node_id in self.nodes

    def live_outputs(self) -> set[int]:
        return set(self.outputs.values())

    def users(self) -> dict[int, list[int]]:
        """node id -> distinct consumer ids, ascending."""
        users: dict[int, list[int]] = {nid: [] for nid in self.nodes}
        for node in self.nodes.values():
            for operand in dict.fromkeys(node.operands):
                users[operand].append(node.id)
        return users

    def replace(self, node: Node) -> None:
        """Swap in a new node under an existing id."""
        if node.id not in self.nodes:
            raise TraceGenerationError(f"Cannot replace unknown node {node.id}")
        self.nodes[node.id] = node

    def remove(self, node_id: int) -> None:
        del self.nodes[node_id]

    def redirect(self, mapping: dict[int, int]) -> None:
        """Rewrite every use (and output binding) of `old` to `new`."""
        if not mapping:
            return

        def resolve(nid: int) -> int:
            while nid in mapping:
                nid = mapping[nid]
            return nid

        for nid, node in list(self.nodes.items()):
            operands = tuple(resolve(o) for o in node.operands)
            if operands != node.operands:
                self.nodes[nid] = dataclasses.replace(node, operands=operands)
        self.outputs = {orig: resolve(cur) for orig, cur in self.outputs.items()}

    def validate(self) -> None:
        """Check the invariants every pass must preserve."""
        for node in self.nodes.values():
            if not is_resolved(node.shape):
                raise UnresolvedShapeError(
                    f"Node {node.label()} ({node.kind.value}) has unresolved shape {node.shape!r}"
                )
            for operand in node.operands:
                if operand not in self.nodes:
                    raise TraceGenerationError(
                        f"Node {node.label()} references missing node {operand}"
                    )
                if operand >= node.id:
                    raise TraceGenerationError(
                        f"Node {node.label()} references node {operand}, which is not earlier"
                    )
            if node.kind is OpKind.INPUT and node.operands:
                raise TraceGenerationError(f"Input node {node.label()} has operands")

        for orig, cur in self.outputs.items():
            if cur not in self.nodes:
                raise TraceGenerationError(f"Output {orig} is bound to missing node {cur}")
            expected = self.output_shapes.get(orig)
            if expected is not None and self.nodes[cur].shape != expected:
                raise UnresolvedShapeError(
                    f"Output {orig} changed shape from {expected} to {self.nodes[cur].shape}"
                )


class Pass(Protocol):
    """An optimizer pass. `run` rewrites the table and returns the rewrite count."""

    name: str

    def run(self, table: NodeTable) -> int:
        ...
