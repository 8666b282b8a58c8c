"""Slot allocation and dispatch.

Matches free node slots against outstanding target demand:

1. Large nodes are withheld from the pool once the operator is capable
   enough to give them their own workload.
2. Outstanding demand (desired minus running) is summed per operation.
3. The free-slot budget goes to extraction first; replenish and stabilize
   share the remainder in proportion to their demand when it is short.
4. Nodes are walked in pool order and targets in descending score order,
   launching as much of each operation as the node, the budget and the
   target's outstanding demand allow.

A failed launch changes nothing and is never rolled back into earlier
launches; the next reconciliation picks up whatever really happened.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from swarm.config import SchedulerConfig
from swarm.errors import DispatchError
from swarm.interfaces import Dispatcher
from swarm.models import DISPATCH_ORDER, ComputeNode, Operation, OperatorInfo, Target, ThreadCounts

logger = logging.getLogger(__name__)


@dataclass
class Assignment:
    """One launch attempt: node, target, operation and thread count."""
    node: str
    target: str
    operation: Operation
    threads: int


@dataclass
class AllocationResult:
    """What one allocation pass decided and did."""
    free_slots: int = 0
    demand: ThreadCounts = field(default_factory=ThreadCounts)
    budget: ThreadCounts = field(default_factory=ThreadCounts)
    dispatched: ThreadCounts = field(default_factory=ThreadCounts)
    failed: List[Assignment] = field(default_factory=list)
    excluded_nodes: List[str] = field(default_factory=list)
    assignments: List[Assignment] = field(default_factory=list)

    @property
    def failures(self) -> int:
        return len(self.failed)


def exclude_large_nodes(nodes: Sequence[ComputeNode], operator: OperatorInfo,
                        config: SchedulerConfig) -> List[str]:
    """Zero the slots of large nodes once the operator is past the level gate."""
    if operator.level < config.large_node_level:
        return []
    excluded = []
    for node in nodes:
        if node.is_large(config.large_node_capacity):
            node.slots = 0
            excluded.append(node.name)
    return excluded


def total_demand(targets: Sequence[Target]) -> ThreadCounts:
    demand = ThreadCounts()
    for target in targets:
        for op in Operation:
            demand.add(op, target.delta(op))
    return demand


def split_budget(free_slots: int, demand: ThreadCounts) -> ThreadCounts:
    """Divide ``free_slots`` between the three operations.

    Extraction is served first. If replenish and stabilize together want
    more than is left, each gets ``floor(remaining * share)`` clamped to
    its own demand.
    """
    free_slots = max(0, free_slots)
    budget = ThreadCounts()
    budget.extract = min(max(demand.extract, 0), free_slots)
    remaining = free_slots - budget.extract

    other = demand.replenish + demand.stabilize
    if other > remaining:
        replenish = math.floor(remaining * demand.replenish / other)
        stabilize = math.floor(remaining * demand.stabilize / other)
        budget.replenish = max(min(replenish, demand.replenish), 0)
        budget.stabilize = max(min(stabilize, demand.stabilize), 0)
    else:
        budget.replenish = max(demand.replenish, 0)
        budget.stabilize = max(demand.stabilize, 0)
    return budget


def _try_launch(dispatcher: Dispatcher, op: Operation, node: ComputeNode, threads: int,
                target: Target) -> bool:
    try:
        return bool(dispatcher.launch(op, node.name, threads, target.name))
    except DispatchError as e:
        logger.warning(f"Dispatch failed: {e}")
        return False


def allocate(
    nodes: Sequence[ComputeNode],
    targets: Sequence[Target],
    operator: OperatorInfo,
    dispatcher: Dispatcher,
    config: SchedulerConfig,
) -> Tuple[List[ComputeNode], AllocationResult]:
    """Launch operations on free slots; update node and target counters.

    Targets are mutated in place. Returns the nodes and a summary of the
    pass.
    """
    result = AllocationResult()
    result.excluded_nodes = exclude_large_nodes(nodes, operator, config)
    result.free_slots = sum(max(0, n.slots) for n in nodes)
    result.demand = total_demand(targets)

    budget = split_budget(result.free_slots, result.demand)
    result.budget = ThreadCounts(**budget.as_dict())

    logger.info(
        f"Want {result.demand.extract} extract, {result.demand.stabilize} stabilize and "
        f"{result.demand.replenish} replenish threads in {result.free_slots} free slots; "
        f"budget {budget.extract}/{budget.stabilize}/{budget.replenish}"
    )

    ranked = sorted(targets, key=lambda t: t.score, reverse=True)

    for node in nodes:
        if node.slots < 1:
            continue
        if budget.total < 1:
            break

        for target in ranked:
            if node.slots < 1 or budget.total < 1:
                break
            for op in DISPATCH_ORDER:
                threads = min(target.delta(op), budget[op], node.slots)
                if threads <= 0:
                    continue
                if not _try_launch(dispatcher, op, node, threads, target):
                    result.failed.append(Assignment(node.name, target.name, op, threads))
                    logger.debug(f"Launch of {threads} {op.value} on {node.name} -> {target.name} refused")
                    continue

                budget.add(op, -threads)
                node.slots -= threads
                node.running.add(op, threads)
                target.running.add(op, threads)
                result.dispatched.add(op, threads)
                result.assignments.append(Assignment(node.name, target.name, op, threads))

    if result.failures:
        logger.warning(f"{result.failures} launches failed this tick")
    return list(nodes), result
