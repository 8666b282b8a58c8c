"""Reconcile scheduler bookkeeping against what is actually running.

The allocator bumps running counters optimistically after each dispatch,
but launches can fail silently and operations finish on their own. Every
tick the counters are thrown away and rebuilt from the host's process
table, so any drift lasts at most one tick.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence, Tuple

from swarm.config import SchedulerConfig
from swarm.interfaces import CapacityOracle, EconomicOracle, ProcessObserver
from swarm.models import ComputeNode, NodeInfo, Target

logger = logging.getLogger(__name__)


def reset_running(nodes: Sequence[ComputeNode], targets: Sequence[Target]) -> None:
    for node in nodes:
        node.reset_running()
    for target in targets:
        target.running.reset()


def refresh_static(
    nodes: Sequence[ComputeNode],
    targets: Sequence[Target],
    capacity: CapacityOracle,
    economics: EconomicOracle,
    config: SchedulerConfig,
) -> None:
    """Re-read capacity and economics for every node and target."""
    infos: Dict[str, NodeInfo] = {}
    for node in nodes:
        info = capacity.get_node(node.name)
        infos[node.name] = info
        node.refresh(info, config.unit_cost, config.reserve_for(node.name))

    for target in targets:
        info = infos.get(target.name)
        if info is None:
            info = capacity.get_node(target.name)
        target.refresh(economics.get_economics(target.name), accessible=info.rooted)


def observe_running(
    nodes: Sequence[ComputeNode],
    targets: Sequence[Target],
    observer: ProcessObserver,
    config: SchedulerConfig,
) -> None:
    """Count every observed operation thread on its node and target."""
    by_name = {t.name: t for t in targets}
    for node in nodes:
        for proc in observer.list_processes(node.name):
            op = config.operation_for_program(proc.program)
            if op is None:
                node.untracked_threads += proc.threads
                continue
            node.running.add(op, proc.threads)
            target = by_name.get(proc.target_name) if proc.target_name else None
            if target is not None:
                target.running.add(op, proc.threads)


def reconcile(
    nodes: Sequence[ComputeNode],
    targets: Sequence[Target],
    capacity: CapacityOracle,
    economics: EconomicOracle,
    observer: ProcessObserver,
    config: SchedulerConfig,
) -> Tuple[List[ComputeNode], List[Target]]:
    """Rebuild node and target running counters from observation.

    Processes aimed at targets that are not tracked count toward their
    node only. Processes running unknown programs count as untracked
    threads on their node.
    """
    reset_running(nodes, targets)
    refresh_static(nodes, targets, capacity, economics, config)
    observe_running(nodes, targets, observer, config)

    logger.debug(
        f"Reconciled {len(nodes)} nodes, {len(targets)} targets: "
        f"{sum(n.running.total for n in nodes)} threads running"
    )
    return list(nodes), list(targets)
