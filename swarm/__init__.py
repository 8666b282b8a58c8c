"""Swarm scheduler.

Spreads short-lived extract/replenish/stabilize operations over a pool of
compute nodes so that a set of targets is worked as profitably as possible
while their value and security stay in balance.

    from swarm import SwarmController, SchedulerConfig
    from swarm.simulation import SimulatedHost, demo_network

    controller = SwarmController(SimulatedHost.from_dict(demo_network()),
                                 SchedulerConfig(max_targets=3))
    controller.run(max_ticks=5)

Module structure:
- models.py: node, target and pool records
- interfaces.py: host protocols and HostBundle
- scoring.py: target score and desired thread counts
- reconcile.py: rebuild running counters from the process table
- allocator.py: budget split and greedy dispatch
- pool.py: supply pool aggregation
- controller.py: the control loop
- commands.py: runtime command channel
- simulation.py / http_host.py: host implementations
"""

from swarm.allocator import AllocationResult, Assignment, allocate, split_budget
from swarm.config import SchedulerConfig, load_config
from swarm.controller import SchedulerState, SwarmController
from swarm.errors import SwarmError
from swarm.interfaces import HostBundle
from swarm.models import ComputeNode, Operation, SupplyPool, Target
from swarm.pool import aggregate
from swarm.reconcile import reconcile
from swarm.scoring import evaluate_target, find_targets

__all__ = [
    "AllocationResult",
    "Assignment",
    "ComputeNode",
    "HostBundle",
    "Operation",
    "SchedulerConfig",
    "SchedulerState",
    "SupplyPool",
    "SwarmController",
    "SwarmError",
    "Target",
    "aggregate",
    "allocate",
    "evaluate_target",
    "find_targets",
    "load_config",
    "reconcile",
    "split_budget",
]

__version__ = "0.1.0"
