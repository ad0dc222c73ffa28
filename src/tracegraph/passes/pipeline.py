from __future__ import annotations

import logging
from dataclasses import dataclass, field

from tracegraph.config import OptimizerConfig
from tracegraph.passes.base import NodeTable, Pass
from tracegraph.passes.cse import CommonSubexpressionPass
from tracegraph.passes.dce import DeadCodePass
from tracegraph.passes.folding import ConstantFoldingPass
from tracegraph.passes.fusion import FusionPass

logger = logging.getLogger(__name__)


@dataclass
class Optimizer:
    """Runs the enabled passes in a fixed order, validating after each one.

    Order: constant folding, CSE, dead-code elimination, fusion. Folding goes
    first so that CSE sees canonical constants; fusion goes last so that it
    only ever groups nodes that survived the other passes.
    """

    config: OptimizerConfig = field(default_factory=OptimizerConfig)

    def passes(self) -> list[Pass]:
        selected: list[Pass] = []
        if self.config.fold_constants:
            selected.append(ConstantFoldingPass())
        if self.config.eliminate_common_subexpressions:
            selected.append(CommonSubexpressionPass())
        if self.config.eliminate_dead_code:
            selected.append(DeadCodePass())
        if self.config.fuse_elementwise:
            selected.append(FusionPass())
        return selected

    def run(self, table: NodeTable) -> dict[str, int]:
        """Optimize `table` in place. Returns rewrite counts per pass."""
        table.validate()
        counts: dict[str, int] = {}
        for p in self.passes():
            before = len(table)
            counts[p.name] = p.run(table)
            table.validate()
            logger.debug(
                f"{table.name}: pass {p.name} rewrote {counts[p.name]}, "
                f"nodes {before} -> {len(table)}"
            )
        return counts
