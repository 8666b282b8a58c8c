"""Node discovery.

Breadth-first walk of the host topology starting at the home node. A
visited set guards against cycles, so meshes and rings terminate and every
node is reported exactly once.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import List

from swarm.interfaces import CapacityOracle

logger = logging.getLogger(__name__)


def discover_nodes(oracle: CapacityOracle, root: str = "home", include_root: bool = True) -> List[str]:
    """Return every node reachable from ``root`` in BFS order."""
    visited = {root}
    order: List[str] = [root] if include_root else []
    queue = deque([root])

    while queue:
        current = queue.popleft()
        for child in oracle.neighbors(current):
            if child in visited:
                continue
            visited.add(child)
            order.append(child)
            queue.append(child)

    logger.debug(f"Discovered {len(visited)} nodes from {root}")
    return order
