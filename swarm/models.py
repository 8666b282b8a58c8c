"""
Scheduler data model.

Nodes and targets are plain mutable dataclasses: the reconciler rebuilds
their running counters every tick and the allocator bumps them after a
successful dispatch. Nothing here is persisted.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class Operation(str, Enum):
    """Operation kinds a node can run against a target."""
    EXTRACT = "extract"
    REPLENISH = "replenish"
    STABILIZE = "stabilize"


# Fixed priority order used when handing out slots on a node.
DISPATCH_ORDER = (Operation.EXTRACT, Operation.STABILIZE, Operation.REPLENISH)


@dataclass
class ThreadCounts:
    """Per-operation thread counts."""
    extract: int = 0
    replenish: int = 0
    stabilize: int = 0

    def __getitem__(self, op: Operation) -> int:
        return getattr(self, Operation(op).value)

    def __setitem__(self, op: Operation, value: int) -> None:
        setattr(self, Operation(op).value, int(value))

    def add(self, op: Operation, threads: int) -> None:
        self[op] = self[op] + threads

    def reset(self) -> None:
        self.extract = 0
        self.replenish = 0
        self.stabilize = 0

    @property
    def total(self) -> int:
        return self.extract + self.replenish + self.stabilize

    def as_dict(self) -> dict:
        return {
            "extract": self.extract,
            "replenish": self.replenish,
            "stabilize": self.stabilize,
        }


@dataclass
class OperationDurations:
    """Duration of one cycle of each operation, in milliseconds."""
    extract: float = 0.0
    replenish: float = 0.0
    stabilize: float = 0.0

    def __getitem__(self, op: Operation) -> float:
        return getattr(self, Operation(op).value)


# =============================================================================
# Records returned by the external oracles
# =============================================================================


@dataclass
class NodeInfo:
    """Capacity snapshot of a compute node."""
    name: str
    total_capacity: float
    used_capacity: float = 0.0
    rooted: bool = False
    cores: int = 1

    @property
    def free_capacity(self) -> float:
        return max(0.0, self.total_capacity - self.used_capacity)


@dataclass
class TargetEconomics:
    """Economic, security and timing attributes of a target."""
    max_value: float
    current_value: float
    extraction_rate: float
    baseline_security: float
    current_security: float
    required_level: int = 1
    durations: OperationDurations = field(default_factory=OperationDurations)


@dataclass
class ProcessInfo:
    """One process observed on a node."""
    program: str
    args: List[str] = field(default_factory=list)
    threads: int = 1

    @property
    def target_name(self) -> Optional[str]:
        return str(self.args[0]) if self.args else None


@dataclass
class OperatorInfo:
    """Capability of the operator running the scheduler."""
    level: int = 1
    exploits: int = 0


# =============================================================================
# Scheduler records
# =============================================================================


@dataclass
class ComputeNode:
    """A node that contributes execution slots."""
    name: str
    total_capacity: float = 0.0
    free_capacity: float = 0.0
    cores: int = 1
    rooted: bool = False
    slots: int = 0
    running: ThreadCounts = field(default_factory=ThreadCounts)
    untracked_threads: int = 0

    def refresh(self, info: NodeInfo, unit_cost: float, reserve_fraction: float = 0.0) -> None:
        """Copy a capacity snapshot and recompute the slot count."""
        self.total_capacity = info.total_capacity
        self.cores = info.cores
        self.rooted = info.rooted
        if reserve_fraction > 0:
            usable = math.floor(info.total_capacity * (1.0 - reserve_fraction))
            self.free_capacity = max(0.0, usable - info.used_capacity)
        else:
            self.free_capacity = info.free_capacity
        self.slots = compute_slots(self.free_capacity, unit_cost) if self.rooted else 0

    def reset_running(self) -> None:
        self.running.reset()
        self.untracked_threads = 0

    def is_large(self, capacity_threshold: float) -> bool:
        return self.total_capacity >= capacity_threshold


@dataclass
class Target:
    """A node being worked by the swarm, with its demand bookkeeping."""
    name: str
    max_value: float = 0.0
    current_value: float = 0.0
    extraction_rate: float = 0.0
    baseline_security: float = 1.0
    current_security: float = 1.0
    required_level: int = 1
    accessible: bool = False
    durations: OperationDurations = field(default_factory=OperationDurations)
    score: float = 0.0
    desired: ThreadCounts = field(default_factory=ThreadCounts)
    running: ThreadCounts = field(default_factory=ThreadCounts)

    def refresh(self, economics: TargetEconomics, accessible: bool) -> None:
        """Copy the latest economics snapshot onto the target."""
        self.max_value = economics.max_value
        self.current_value = economics.current_value
        self.extraction_rate = economics.extraction_rate
        self.baseline_security = economics.baseline_security
        self.current_security = economics.current_security
        self.required_level = economics.required_level
        self.durations = economics.durations
        self.accessible = accessible

    def delta(self, op: Operation) -> int:
        """Threads still wanted for ``op`` beyond what is already running."""
        return max(0, self.desired[op] - self.running[op])

    @property
    def security_excess(self) -> float:
        return self.current_security - self.baseline_security

    def summary(self) -> dict:
        return {
            "name": self.name,
            "score": self.score,
            "desired": self.desired.as_dict(),
            "running": self.running.as_dict(),
        }


@dataclass
class SupplyPool:
    """Aggregate of free slots and running threads across all nodes."""
    free: int = 0
    extract: int = 0
    replenish: int = 0
    stabilize: int = 0
    running: int = 0

    def as_dict(self) -> dict:
        return {
            "free": self.free,
            "extract": self.extract,
            "replenish": self.replenish,
            "stabilize": self.stabilize,
            "running": self.running,
        }


def compute_slots(free_capacity: float, unit_cost: float) -> int:
    """Whole slots that fit in ``free_capacity``."""
    if unit_cost <= 0 or free_capacity <= 0:
        return 0
    return int(math.floor(free_capacity / unit_cost))
