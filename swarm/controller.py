"""Swarm control loop.

One ``SwarmController`` owns the scheduler state and runs the cycle:

    drain commands -> refresh operator/access -> reconcile
        -> score targets -> allocate -> aggregate pool -> add targets

Everything happens on the thread that calls ``run`` (or ``tick``). Other
threads interact only through ``submit`` and ``stop``, both of which are
observed at tick boundaries.

Usage:
    from swarm.controller import SwarmController
    from swarm.simulation import SimulatedHost, demo_network

    controller = SwarmController(SimulatedHost.from_dict(demo_network()))
    controller.run(max_ticks=10)
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from swarm.allocator import allocate
from swarm.commands import Command, CommandResponse, apply_command, parse_command
from swarm.config import SchedulerConfig
from swarm.errors import CommandError, MissingProgramError, SwarmError
from swarm.interfaces import HostBundle
from swarm.metrics import SWARM_TICK_DURATION, SWARM_TICK_ERRORS, report_allocation, report_pool
from swarm.models import ComputeNode, Operation, OperatorInfo, SupplyPool, Target
from swarm.pool import aggregate
from swarm.reconcile import reconcile
from swarm.scoring import evaluate_target, find_targets
from swarm.topology import discover_nodes

logger = logging.getLogger(__name__)

Reply = Callable[[CommandResponse], None]


@dataclass
class SchedulerState:
    """Everything the controller knows between ticks."""
    nodes: Dict[str, ComputeNode] = field(default_factory=dict)
    targets: List[Target] = field(default_factory=list)
    operator: OperatorInfo = field(default_factory=OperatorInfo)
    tick: int = 0
    last_pool: SupplyPool = field(default_factory=SupplyPool)
    exploits_seen: Optional[int] = None
    programs_ok: bool = False
    missing_reported: bool = False

    def tracked(self) -> set:
        return {t.name for t in self.targets}


class SwarmController:
    """Runs the scheduling loop against one host."""

    def __init__(self, host: Any, config: Optional[SchedulerConfig] = None):
        self.host = host if isinstance(host, HostBundle) else HostBundle.from_host(host)
        self.config = config or SchedulerConfig()
        self.state = SchedulerState()
        self.started = False
        self._stop_event = threading.Event()
        self._inbox: "queue.Queue[tuple]" = queue.Queue()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Discover the network and pick the initial targets."""
        self.check_programs()
        self.state.operator = self.host.operator.get_operator()
        self.state.exploits_seen = self.state.operator.exploits

        names = discover_nodes(self.host.capacity, root=self.config.home_node)
        self.state.nodes = {name: ComputeNode(name=name) for name in names}
        self._refresh_nodes()
        self.refresh_access()

        for name in self.config.seed_targets:
            if name in self.config.banned_targets or name in self.state.tracked():
                continue
            if name not in self.state.nodes:
                logger.warning(f"Seed target {name} is not reachable from {self.config.home_node}")
                continue
            self.state.targets.append(Target(name=name))
        self.add_targets(self.config.initial_targets)

        self.started = True
        logger.info(
            f"Scheduler started: {len(self.state.nodes)} nodes, "
            f"{len(self.state.targets)} targets"
        )

    def stop(self) -> None:
        """Request the loop to stop after the current tick."""
        self._stop_event.set()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def run(self, max_ticks: Optional[int] = None) -> int:
        """Tick until stopped (or ``max_ticks`` is reached).

        A SwarmError aborts only the tick it happened in. Returns the
        number of ticks attempted.
        """
        ticks = 0
        while not self._stop_event.is_set():
            began = time.monotonic()
            try:
                self.tick()
            except SwarmError as e:
                SWARM_TICK_ERRORS.labels(e.code).inc()
                logger.error(f"Tick {self.state.tick} failed: {e}")

            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break

            elapsed = time.monotonic() - began
            self._stop_event.wait(max(0.0, self.config.tick_seconds - elapsed))

        logger.info(f"Scheduler stopped after {ticks} ticks")
        return ticks

    # ------------------------------------------------------------------
    # One iteration
    # ------------------------------------------------------------------

    def tick(self) -> SupplyPool:
        """Run one full scheduling iteration and return the supply pool."""
        with SWARM_TICK_DURATION.time():
            if not self.started:
                self.start()

            self.drain_commands()
            self.state.tick += 1
            state = self.state
            host = self.host

            state.operator = host.operator.get_operator()
            if (state.operator.exploits != state.exploits_seen
                    or state.tick % self.config.access_refresh_ticks == 0):
                self.refresh_access()
                state.exploits_seen = state.operator.exploits

            nodes, targets = reconcile(
                list(state.nodes.values()), state.targets,
                host.capacity, host.economics, host.observer, self.config,
            )
            for target in targets:
                evaluate_target(target, state.operator, host.economics, self.config)

            if not state.programs_ok:
                self.check_programs()
            if state.programs_ok:
                _, result = allocate(nodes, targets, state.operator, host.dispatcher, self.config)
                report_allocation(result)
            else:
                logger.debug("Allocation skipped: operation programs missing")

            pool = aggregate(nodes)
            state.last_pool = pool

            # first tick, then every target_refresh_ticks
            if (state.tick - 1) % self.config.target_refresh_ticks == 0:
                self.maybe_add_targets(pool)

            report_pool(pool, len(state.targets))
            logger.info(
                f"Tick {state.tick}: {pool.free} free, {pool.extract} extract, "
                f"{pool.stabilize} stabilize, {pool.replenish} replenish, "
                f"{len(state.targets)} targets"
            )
            return pool

    # ------------------------------------------------------------------
    # Programs and access
    # ------------------------------------------------------------------

    def validate_programs(self) -> None:
        """Raise MissingProgramError if any operation program is absent."""
        for op in Operation:
            if not self.host.dispatcher.has_program(op):
                program = self.config.program_for(op)
                raise MissingProgramError(
                    f"Operation program {program} is not installed",
                    program=program,
                    operation=op.value,
                )

    def check_programs(self) -> bool:
        """Validate programs, reporting a missing one only once."""
        try:
            self.validate_programs()
        except MissingProgramError as e:
            if not self.state.missing_reported:
                logger.error(f"{e}; allocation disabled until it is installed")
                self.state.missing_reported = True
            self.state.programs_ok = False
            return False

        if self.state.missing_reported:
            logger.info("All operation programs present; allocation resumed")
        self.state.programs_ok = True
        self.state.missing_reported = False
        return True

    def _refresh_nodes(self) -> None:
        for node in self.state.nodes.values():
            info = self.host.capacity.get_node(node.name)
            node.refresh(info, self.config.unit_cost, self.config.reserve_for(node.name))

    def refresh_access(self) -> int:
        """Try to unlock every node that is not yet usable.

        Returns the number of newly unlocked nodes.
        """
        access = self.host.access
        if access is None:
            return 0
        unlocked = 0
        for node in self.state.nodes.values():
            if node.rooted:
                continue
            if access.try_unlock(node.name):
                info = self.host.capacity.get_node(node.name)
                node.refresh(info, self.config.unit_cost, self.config.reserve_for(node.name))
                unlocked += 1
        if unlocked:
            logger.info(f"Unlocked {unlocked} nodes")
        return unlocked

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    def add_targets(self, count: int) -> List[Target]:
        """Track up to ``count`` more of the best untracked nodes."""
        room = self.config.max_targets - len(self.state.targets)
        count = min(count, room)
        if count <= 0:
            return []

        tracked = self.state.tracked()
        banned = set(self.config.banned_targets)
        candidates = []
        for node in self.state.nodes.values():
            if node.name in tracked or node.name in banned:
                continue
            candidate = Target(name=node.name)
            candidate.refresh(self.host.economics.get_economics(node.name), accessible=node.rooted)
            candidates.append(candidate)

        ranked = find_targets(candidates, self.state.operator, self.host.economics, self.config)
        added = ranked[:count]
        self.state.targets.extend(added)
        if added:
            logger.info(f"Added targets: {', '.join(t.name for t in added)}")
        return added

    def maybe_add_targets(self, pool: SupplyPool) -> List[Target]:
        """Grow the target list when free slots outstrip per-target usage."""
        targets = self.state.targets
        if len(targets) >= self.config.max_targets:
            return []
        if targets and pool.free <= pool.running / len(targets):
            return []
        additional = pool.free // self.config.free_slots_per_target + 1
        return self.add_targets(additional)

    # ------------------------------------------------------------------
    # Commands and setters
    # ------------------------------------------------------------------

    def submit(self, command: Union[Command, Dict[str, Any]], reply: Optional[Reply] = None) -> None:
        """Queue a command for the next tick. Safe from any thread."""
        if not isinstance(command, Command):
            command = parse_command(command)
        self._inbox.put((command, reply))

    def drain_commands(self) -> List[CommandResponse]:
        responses = []
        while True:
            try:
                command, reply = self._inbox.get_nowait()
            except queue.Empty:
                break
            try:
                response = apply_command(self, command)
            except CommandError as e:
                logger.warning(f"Dropped command: {e}")
                response = CommandResponse(action=command.action, key=command.key,
                                           ok=False, error=str(e))
            responses.append(response)
            if reply is not None:
                reply(response)
        return responses

    def set_extract_threshold(self, value: float) -> float:
        return self.config.set_value("extract_threshold", value)

    def set_extract_fraction(self, value: float) -> float:
        return self.config.set_value("extract_fraction", value)

    def set_max_targets(self, value: int) -> int:
        return self.config.set_value("max_targets", value)
