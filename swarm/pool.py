"""Supply pool aggregation."""

from __future__ import annotations

from typing import Iterable

from swarm.models import ComputeNode, SupplyPool


def aggregate(nodes: Iterable[ComputeNode]) -> SupplyPool:
    """Sum free slots and running threads across ``nodes``.

    Missing or ``None`` counters count as 0.
    """
    pool = SupplyPool()
    for node in nodes:
        running = getattr(node, "running", None)
        free = getattr(node, "slots", 0) or 0
        extract = (getattr(running, "extract", 0) or 0) if running is not None else 0
        replenish = (getattr(running, "replenish", 0) or 0) if running is not None else 0
        stabilize = (getattr(running, "stabilize", 0) or 0) if running is not None else 0

        pool.free += free
        pool.extract += extract
        pool.replenish += replenish
        pool.stabilize += stabilize
        pool.running += extract + replenish + stabilize
    return pool
