"""In-process simulated host.

Implements every host protocol against a small deterministic model so the
scheduler can be exercised without a real cluster: ``--simulate`` runs and
the test-suite both drive it.

Model:
- a node's used capacity is the sum of its running processes' threads
  times ``unit_cost``
- a process ends ``duration`` milliseconds after launch and applies its
  effect to the target when it does
- extract removes ``extraction_rate * threads`` of the current value and
  raises security; replenish multiplies value by ``(1 + growth_rate) **
  threads`` (capped at max) and raises security; stabilize lowers
  security by ``STABILIZE_PER_THREAD`` per thread, never below baseline
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from swarm.errors import TopologyError
from swarm.models import (
    NodeInfo,
    Operation,
    OperationDurations,
    OperatorInfo,
    ProcessInfo,
    TargetEconomics,
)

logger = logging.getLogger(__name__)

EXTRACT_SECURITY_PER_THREAD = 0.002
REPLENISH_SECURITY_PER_THREAD = 0.004
STABILIZE_PER_THREAD = 0.05

DEFAULT_PROGRAMS = {
    Operation.EXTRACT: "extract_once",
    Operation.REPLENISH: "replenish_once",
    Operation.STABILIZE: "stabilize_once",
}


@dataclass
class SimNode:
    """A simulated node; every node can also be a target."""
    name: str
    capacity: float = 0.0
    cores: int = 1
    rooted: bool = False
    ports_required: int = 0
    required_level: int = 1
    max_value: float = 0.0
    current_value: float = 0.0
    growth_rate: float = 0.03
    extraction_rate: float = 0.0
    baseline_security: float = 1.0
    current_security: float = 1.0
    durations: OperationDurations = field(default_factory=lambda: OperationDurations(1000.0, 3200.0, 4000.0))
    neighbors: List[str] = field(default_factory=list)


@dataclass
class SimProcess:
    node: str
    op: Operation
    program: str
    target: str
    threads: int
    ends_at: float


class SimulatedHost:
    """Deterministic host model implementing all host protocols."""

    def __init__(
        self,
        nodes: Iterable[SimNode],
        operator: Optional[OperatorInfo] = None,
        unit_cost: float = 2.0,
        programs: Optional[Dict[Operation, str]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.nodes: Dict[str, SimNode] = {n.name: n for n in nodes}
        self.operator = operator or OperatorInfo()
        self.unit_cost = unit_cost
        self.programs = dict(programs or DEFAULT_PROGRAMS)
        self.installed = set(self.programs.values())
        self.processes: List[SimProcess] = []
        self.launches = 0
        self._clock = clock

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any], **kwargs) -> "SimulatedHost":
        """Build from a mapping shaped like ``{"operator": {...}, "nodes": [...]}``."""
        nodes = []
        for raw in data.get("nodes", []):
            raw = dict(raw)
            durations = raw.pop("durations", None)
            node = SimNode(**raw)
            if durations:
                node.durations = OperationDurations(**durations)
            nodes.append(node)
        operator = OperatorInfo(**data.get("operator", {}))
        host = cls(nodes, operator=operator, **kwargs)
        host._link_neighbors()
        return host

    def _link_neighbors(self) -> None:
        """Make every edge bidirectional."""
        for node in list(self.nodes.values()):
            for other in node.neighbors:
                peer = self.nodes.get(other)
                if peer is not None and node.name not in peer.neighbors:
                    peer.neighbors.append(node.name)

    # ------------------------------------------------------------------
    # Time
    # ------------------------------------------------------------------

    def settle(self) -> None:
        """Finish every process whose end time has passed."""
        now = self._clock()
        still_running = []
        for proc in self.processes:
            if proc.ends_at <= now:
                self._apply(proc)
            else:
                still_running.append(proc)
        self.processes = still_running

    def _apply(self, proc: SimProcess) -> None:
        target = self.nodes.get(proc.target)
        if target is None:
            return
        if proc.op == Operation.EXTRACT:
            taken = min(1.0, target.extraction_rate * proc.threads) * target.current_value
            target.current_value = max(0.0, target.current_value - taken)
            target.current_security += EXTRACT_SECURITY_PER_THREAD * proc.threads
        elif proc.op == Operation.REPLENISH:
            grown = max(target.current_value, 1.0) * (1.0 + target.growth_rate) ** proc.threads
            target.current_value = min(target.max_value, grown)
            target.current_security += REPLENISH_SECURITY_PER_THREAD * proc.threads
        else:
            lowered = target.current_security - STABILIZE_PER_THREAD * proc.threads
            target.current_security = max(target.baseline_security, lowered)

    def _node(self, name: str) -> SimNode:
        node = self.nodes.get(name)
        if node is None:
            raise TopologyError(f"Unknown node: {name}", context={"node": name})
        return node

    def _used(self, name: str) -> float:
        return sum(p.threads for p in self.processes if p.node == name) * self.unit_cost

    # ------------------------------------------------------------------
    # CapacityOracle
    # ------------------------------------------------------------------

    def get_node(self, name: str) -> NodeInfo:
        self.settle()
        node = self._node(name)
        return NodeInfo(
            name=name,
            total_capacity=node.capacity,
            used_capacity=self._used(name),
            rooted=node.rooted,
            cores=node.cores,
        )

    def neighbors(self, name: str) -> List[str]:
        return list(self._node(name).neighbors)

    # ------------------------------------------------------------------
    # EconomicOracle
    # ------------------------------------------------------------------

    def get_economics(self, name: str) -> TargetEconomics:
        self.settle()
        node = self._node(name)
        return TargetEconomics(
            max_value=node.max_value,
            current_value=node.current_value,
            extraction_rate=node.extraction_rate,
            baseline_security=node.baseline_security,
            current_security=node.current_security,
            required_level=node.required_level,
            durations=node.durations,
        )

    def growth_analysis(self, name: str, multiplier: float) -> float:
        node = self._node(name)
        if multiplier <= 1 or node.growth_rate <= 0:
            return 0.0
        return math.log(multiplier) / math.log(1.0 + node.growth_rate)

    def security_impact(self, op: Operation, threads: int) -> float:
        if op == Operation.EXTRACT:
            return EXTRACT_SECURITY_PER_THREAD * threads
        if op == Operation.REPLENISH:
            return REPLENISH_SECURITY_PER_THREAD * threads
        return -STABILIZE_PER_THREAD * threads

    # ------------------------------------------------------------------
    # Dispatcher
    # ------------------------------------------------------------------

    def has_program(self, op: Operation) -> bool:
        return self.programs.get(Operation(op)) in self.installed

    def launch(self, op: Operation, node: str, threads: int, target: str) -> bool:
        self.settle()
        host_node = self.nodes.get(node)
        if host_node is None or not host_node.rooted or threads < 1:
            return False
        if not self.has_program(op) or target not in self.nodes:
            return False
        if self._used(node) + threads * self.unit_cost > host_node.capacity:
            return False

        op = Operation(op)
        duration = self.nodes[target].durations[op]
        self.processes.append(SimProcess(
            node=node,
            op=op,
            program=self.programs[op],
            target=target,
            threads=threads,
            ends_at=self._clock() + duration / 1000.0,
        ))
        self.launches += 1
        return True

    # ------------------------------------------------------------------
    # ProcessObserver
    # ------------------------------------------------------------------

    def list_processes(self, node: str) -> List[ProcessInfo]:
        self.settle()
        return [
            ProcessInfo(program=p.program, args=[p.target], threads=p.threads)
            for p in self.processes
            if p.node == node
        ]

    # ------------------------------------------------------------------
    # OperatorOracle / AccessManager
    # ------------------------------------------------------------------

    def get_operator(self) -> OperatorInfo:
        return OperatorInfo(level=self.operator.level, exploits=self.operator.exploits)

    def try_unlock(self, name: str) -> bool:
        node = self._node(name)
        if node.rooted:
            return True
        if self.operator.exploits >= node.ports_required:
            node.rooted = True
            logger.info(f"Unlocked {name}")
            return True
        return False


def demo_network() -> Dict[str, Any]:
    """A small mixed network for ``--simulate`` runs."""
    return {
        "operator": {"level": 50, "exploits": 1},
        "nodes": [
            {"name": "home", "capacity": 64, "cores": 4, "rooted": True,
             "neighbors": ["alpha", "beta", "gamma"]},
            {"name": "alpha", "capacity": 16, "max_value": 1_750_000, "current_value": 1_500_000,
             "extraction_rate": 0.004, "baseline_security": 1, "current_security": 1,
             "required_level": 1, "neighbors": ["delta"]},
            {"name": "beta", "capacity": 32, "max_value": 2_500_000, "current_value": 600_000,
             "extraction_rate": 0.003, "baseline_security": 3, "current_security": 9,
             "required_level": 10, "ports_required": 1, "neighbors": ["delta"]},
            {"name": "gamma", "capacity": 8, "max_value": 0, "current_value": 0,
             "rooted": True, "neighbors": []},
            {"name": "delta", "capacity": 64, "max_value": 50_000_000, "current_value": 48_000_000,
             "extraction_rate": 0.001, "baseline_security": 10, "current_security": 10,
             "required_level": 40, "ports_required": 2, "neighbors": ["alpha"]},
        ],
    }
