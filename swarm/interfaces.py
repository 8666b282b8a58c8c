"""Protocols for the host facilities the scheduler core talks to.

The core never launches or inspects processes itself. Everything it knows
about the outside world comes through these calls, so any object with the
right methods (the simulated host, the HTTP adapter, a test double) can
drive it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol, runtime_checkable

from swarm.models import NodeInfo, Operation, OperatorInfo, ProcessInfo, TargetEconomics


@runtime_checkable
class CapacityOracle(Protocol):
    """Reports node capacity and topology."""

    def get_node(self, name: str) -> NodeInfo: ...

    def neighbors(self, name: str) -> List[str]: ...


@runtime_checkable
class EconomicOracle(Protocol):
    """Reports target economics and the external analysis functions."""

    def get_economics(self, name: str) -> TargetEconomics: ...

    def growth_analysis(self, name: str, multiplier: float) -> float: ...

    def security_impact(self, op: Operation, threads: int) -> float: ...


@runtime_checkable
class Dispatcher(Protocol):
    """Launches operations on nodes."""

    def launch(self, op: Operation, node: str, threads: int, target: str) -> bool: ...

    def has_program(self, op: Operation) -> bool: ...


@runtime_checkable
class ProcessObserver(Protocol):
    """Lists the processes currently executing on a node."""

    def list_processes(self, node: str) -> List[ProcessInfo]: ...


@runtime_checkable
class OperatorOracle(Protocol):
    """Reports the operator's current capability."""

    def get_operator(self) -> OperatorInfo: ...


@runtime_checkable
class AccessManager(Protocol):
    """Unlocks nodes for use. Optional."""

    def try_unlock(self, name: str) -> bool: ...


@dataclass
class HostBundle:
    """The set of host facilities one controller talks to.

    ``access`` is optional; without it nodes are never unlocked by the
    scheduler.
    """
    capacity: CapacityOracle
    economics: EconomicOracle
    dispatcher: Dispatcher
    observer: ProcessObserver
    operator: OperatorOracle
    access: Optional[AccessManager] = None

    @classmethod
    def from_host(cls, host) -> "HostBundle":
        """Wrap a single object that implements every protocol."""
        access = host if isinstance(host, AccessManager) else None
        return cls(
            capacity=host,
            economics=host,
            dispatcher=host,
            observer=host,
            operator=host,
            access=access,
        )
