"""
Shared pytest fixtures for swarm scheduler tests.

Factories build nodes and targets with sensible defaults; ``FakeHost`` is a
scriptable in-memory host that records every launch.
"""

from pathlib import Path
import sys
from typing import Callable, Dict, List, Optional

import pytest


# =============================================================================
# PROMETHEUS REGISTRY FIX
# =============================================================================
# swarm/metrics.py registers collectors at import time. Importing it through
# different paths during collection would otherwise raise "Duplicated
# timeseries in CollectorRegistry".


def _patch_prometheus_registry():
    """Make re-registration of identical metrics a no-op."""
    from prometheus_client.registry import CollectorRegistry

    _original_register = CollectorRegistry.register

    def _safe_register(self, collector):
        try:
            return _original_register(self, collector)
        except ValueError as e:
            if "Duplicated timeseries" not in str(e):
                raise

    if not getattr(CollectorRegistry, "_patched_for_tests", False):
        CollectorRegistry.register = _safe_register
        CollectorRegistry._patched_for_tests = True


_patch_prometheus_registry()

# Make `import swarm` work without installing the package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from swarm.config import SchedulerConfig
from swarm.models import (
    ComputeNode,
    NodeInfo,
    Operation,
    OperationDurations,
    OperatorInfo,
    ProcessInfo,
    Target,
    TargetEconomics,
    ThreadCounts,
)


# =============================================================================
# FAKE HOST
# =============================================================================


class FakeHost:
    """In-memory host implementing every protocol.

    - ``nodes``: name -> NodeInfo
    - ``links``: name -> neighbor names
    - ``economics``: name -> TargetEconomics
    - ``processes``: node name -> [ProcessInfo]
    - ``refuse``: set of (node, op) pairs whose launches fail
    """

    def __init__(self):
        self.nodes: Dict[str, NodeInfo] = {}
        self.links: Dict[str, List[str]] = {}
        self.economics: Dict[str, TargetEconomics] = {}
        self.processes: Dict[str, List[ProcessInfo]] = {}
        self.operator = OperatorInfo(level=10, exploits=0)
        self.refuse = set()
        self.missing_programs = set()
        self.unlockable = set()
        self.launches: List[tuple] = []
        self.growth_threads = 3.0
        self.impact = {
            Operation.EXTRACT: 0.002,
            Operation.REPLENISH: 0.004,
            Operation.STABILIZE: -0.05,
        }

    def add_node(self, name, capacity=64.0, used=0.0, rooted=True, neighbors=(), economics=None):
        self.nodes[name] = NodeInfo(name=name, total_capacity=capacity, used_capacity=used,
                                    rooted=rooted)
        self.links.setdefault(name, [])
        for other in neighbors:
            self.links[name].append(other)
            self.links.setdefault(other, []).append(name)
        if economics is not None:
            self.economics[name] = economics
        return self

    # CapacityOracle
    def get_node(self, name):
        return self.nodes[name]

    def neighbors(self, name):
        return list(self.links.get(name, []))

    # EconomicOracle
    def get_economics(self, name):
        return self.economics.get(name) or TargetEconomics(0, 0, 0, 1, 1)

    def growth_analysis(self, name, multiplier):
        return self.growth_threads

    def security_impact(self, op, threads):
        return self.impact[Operation(op)] * threads

    # Dispatcher
    def has_program(self, op):
        return Operation(op) not in self.missing_programs

    def launch(self, op, node, threads, target):
        if (node, Operation(op)) in self.refuse:
            return False
        self.launches.append((Operation(op), node, threads, target))
        return True

    # ProcessObserver
    def list_processes(self, node):
        return list(self.processes.get(node, []))

    # OperatorOracle
    def get_operator(self):
        return self.operator

    # AccessManager
    def try_unlock(self, name):
        if name in self.unlockable:
            info = self.nodes[name]
            self.nodes[name] = NodeInfo(name=name, total_capacity=info.total_capacity,
                                        used_capacity=info.used_capacity, rooted=True)
            return True
        return False


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def config() -> SchedulerConfig:
    return SchedulerConfig()


@pytest.fixture
def operator() -> OperatorInfo:
    return OperatorInfo(level=5, exploits=0)


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def economics_factory() -> Callable[..., TargetEconomics]:
    """Factory for TargetEconomics with customizable defaults."""

    def _create(
        max_value: float = 1000.0,
        current_value: float = 1000.0,
        extraction_rate: float = 0.05,
        baseline_security: float = 10.0,
        current_security: float = 10.0,
        required_level: int = 1,
        durations: Optional[OperationDurations] = None,
    ) -> TargetEconomics:
        return TargetEconomics(
            max_value=max_value,
            current_value=current_value,
            extraction_rate=extraction_rate,
            baseline_security=baseline_security,
            current_security=current_security,
            required_level=required_level,
            durations=durations or OperationDurations(1000.0, 3200.0, 4000.0),
        )

    return _create


@pytest.fixture
def target_factory(economics_factory) -> Callable[..., Target]:
    """Factory for accessible targets; keyword args go to economics_factory."""

    def _create(
        name: str = "alpha",
        accessible: bool = True,
        desired: Optional[Dict[str, int]] = None,
        running: Optional[Dict[str, int]] = None,
        score: float = 0.0,
        **economics,
    ) -> Target:
        target = Target(name=name)
        target.refresh(economics_factory(**economics), accessible=accessible)
        target.score = score
        if desired:
            target.desired = ThreadCounts(**desired)
        if running:
            target.running = ThreadCounts(**running)
        return target

    return _create


@pytest.fixture
def node_factory() -> Callable[..., ComputeNode]:
    """Factory for rooted compute nodes with a given slot count."""

    def _create(name: str = "n1", slots: int = 10, total_capacity: float = 64.0,
                rooted: bool = True) -> ComputeNode:
        return ComputeNode(
            name=name,
            total_capacity=total_capacity,
            free_capacity=slots * 2.0,
            rooted=rooted,
            slots=slots,
        )

    return _create
