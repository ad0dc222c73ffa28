from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import ClassVar

from tracegraph.passes.base import NodeTable

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DeadCodePass:
    """Drops every node that no output depends on (unused inputs included)."""

    name: ClassVar[str] = "dce"

    def run(self, table: NodeTable) -> int:
        live: set[int] = set()
        stack = sorted(table.live_outputs())
        while stack:
            nid = stack.pop()
            if nid in live:
                continue
            live.add(nid)
            stack.extend(table.nodes[nid].operands)

        dead = [nid for nid in table.nodes if nid not in live]
        for nid in dead:
            table.remove(nid)

        if dead:
            logger.debug(f"{table.name}: removed {len(dead)} dead node(s)")
        return len(dead)
