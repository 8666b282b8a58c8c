"""Tests for swarm.controller.SwarmController."""

import logging
from types import SimpleNamespace

import pytest

from swarm import controller as controller_module
from swarm.commands import Command
from swarm.config import SchedulerConfig
from swarm.controller import SwarmController
from swarm.errors import HostUnavailableError
from swarm.interfaces import HostBundle
from swarm.models import Operation, OperatorInfo, SupplyPool


@pytest.fixture
def host(fake_host, economics_factory):
    """home -> alpha (worth working), home -> beta (worth less), beta -> locked."""
    fake_host.add_node("home", capacity=64, rooted=True)
    fake_host.add_node("alpha", capacity=32, rooted=True, neighbors=["home"],
                       economics=economics_factory(max_value=1000))
    fake_host.add_node("beta", capacity=16, rooted=True, neighbors=["home"],
                       economics=economics_factory(max_value=500))
    fake_host.add_node("locked", capacity=16, rooted=False, neighbors=["beta"],
                       economics=economics_factory(max_value=100))
    return fake_host


class TestStart:
    """Tests for SwarmController.start."""

    def test_discovers_nodes_and_adds_best_target(self, host):
        controller = SwarmController(host, SchedulerConfig(initial_targets=1))
        controller.start()

        assert list(controller.state.nodes) == ["home", "alpha", "beta", "locked"]
        assert [t.name for t in controller.state.targets] == ["alpha"]
        assert controller.started

    def test_seed_targets_respect_ban_list(self, host):
        config = SchedulerConfig(seed_targets=["beta", "b-and-a"], initial_targets=0)
        controller = SwarmController(host, config)
        controller.start()

        assert [t.name for t in controller.state.targets] == ["beta"]

    def test_wraps_single_host_in_bundle(self, host):
        controller = SwarmController(host)
        assert isinstance(controller.host, HostBundle)
        assert controller.host.access is host


class TestTick:
    """Tests for SwarmController.tick."""

    def test_first_tick_dispatches_demand(self, host):
        controller = SwarmController(host, SchedulerConfig())

        pool = controller.tick()

        # alpha wants 4 extract, 3 replenish, 1 stabilize; all fit on home
        assert [(op, node, threads) for op, node, threads, _ in host.launches] == [
            (Operation.EXTRACT, "home", 4),
            (Operation.STABILIZE, "home", 1),
            (Operation.REPLENISH, "home", 3),
        ]
        # home: floor(64 * 0.9) / 2 = 28 slots, alpha 16, beta 8, locked 0
        assert pool.free == 28 + 16 + 8 - 8
        assert pool.running == 8
        assert controller.state.last_pool == pool
        assert controller.state.tick == 1

    def test_missing_program_skips_allocation_and_reports_once(self, host, caplog):
        host.missing_programs.add(Operation.STABILIZE)
        controller = SwarmController(host, SchedulerConfig())

        with caplog.at_level(logging.ERROR, logger="swarm.controller"):
            controller.tick()
            controller.tick()

        assert host.launches == []
        assert len([r for r in caplog.records if "stabilize_once" in r.getMessage()]) == 1

        host.missing_programs.clear()
        controller.tick()
        assert host.launches

    def test_exploit_change_triggers_unlock(self, host):
        controller = SwarmController(host, SchedulerConfig())
        controller.start()
        assert controller.state.nodes["locked"].rooted is False

        host.unlockable.add("locked")
        host.operator = OperatorInfo(level=10, exploits=1)
        controller.tick()

        assert controller.state.nodes["locked"].rooted is True

    def test_periodic_target_addition(self, host):
        config = SchedulerConfig(initial_targets=1, target_refresh_ticks=1)
        controller = SwarmController(host, config)

        controller.tick()

        assert [t.name for t in controller.state.targets] == ["alpha", "beta"]

    def test_target_check_runs_on_first_tick_then_every_period(self, host):
        config = SchedulerConfig(initial_targets=1, target_refresh_ticks=3)
        controller = SwarmController(host, config)
        checked = []
        controller.maybe_add_targets = lambda pool: checked.append(controller.state.tick) or []

        for _ in range(7):
            controller.tick()

        assert checked == [1, 4, 7]


class TestAddTargets:
    """Tests for add_targets / maybe_add_targets."""

    def test_additional_targets_scale_with_free_slots(self, host):
        controller = SwarmController(host, SchedulerConfig(initial_targets=0))
        controller.start()

        added = controller.maybe_add_targets(SupplyPool(free=2500, running=0))

        # floor(2500 / 1000) + 1 = 3 wanted, only alpha and beta are eligible
        assert [t.name for t in added] == ["alpha", "beta"]

    def test_capped_by_max_targets(self, host):
        controller = SwarmController(host, SchedulerConfig(initial_targets=0, max_targets=1))
        controller.start()

        controller.maybe_add_targets(SupplyPool(free=5000))

        assert len(controller.state.targets) == 1

    def test_busy_pool_adds_nothing(self, host):
        controller = SwarmController(host, SchedulerConfig(initial_targets=1))
        controller.start()

        added = controller.maybe_add_targets(SupplyPool(free=10, running=50))

        assert added == []

    def test_never_tracks_banned_or_duplicate(self, host):
        config = SchedulerConfig(initial_targets=1, banned_targets=["beta"])
        controller = SwarmController(host, config)
        controller.start()

        controller.add_targets(10)

        assert [t.name for t in controller.state.targets] == ["alpha"]


class TestRun:
    """Tests for run / stop and the command inbox."""

    def test_max_ticks(self, host):
        controller = SwarmController(host, SchedulerConfig(tick_seconds=0))
        assert controller.run(max_ticks=3) == 3
        assert controller.state.tick == 3

    def test_stop_command_ends_loop_at_tick_boundary(self, host):
        controller = SwarmController(host, SchedulerConfig(tick_seconds=0))
        controller.submit({"action": "run", "key": "stop"})

        assert controller.run() == 1
        assert controller.stopping

    def test_stop_before_run(self, host):
        controller = SwarmController(host, SchedulerConfig(tick_seconds=0))
        controller.stop()
        assert controller.run() == 0

    def test_host_error_aborts_only_that_tick(self, host, monkeypatch):
        controller = SwarmController(host, SchedulerConfig(tick_seconds=0))
        controller.start()
        calls = {"n": 0}
        original = host.get_operator

        def flaky():
            calls["n"] += 1
            if calls["n"] == 1:
                raise HostUnavailableError("agent down", url="http://agent/operator")
            return original()

        monkeypatch.setattr(host, "get_operator", flaky)

        assert controller.run(max_ticks=2) == 2
        assert controller.state.tick == 2
        assert host.launches

    def test_sleep_is_period_minus_tick_time(self, host, monkeypatch):
        """A short tick waits out the rest of the period; an overrun waits 0."""
        controller = SwarmController(host, SchedulerConfig(tick_seconds=2.0))
        # began / finished pairs for ticks 1 and 2; tick 3 only reads began
        readings = iter([10.0, 10.5, 20.0, 23.0, 30.0])
        monkeypatch.setattr(controller_module, "time", SimpleNamespace(monotonic=lambda: next(readings)))
        waits = []
        monkeypatch.setattr(controller._stop_event, "wait", waits.append)

        assert controller.run(max_ticks=3) == 3

        assert waits == [1.5, 0.0]

    def test_submitted_setter_applied_before_tick(self, host):
        controller = SwarmController(host, SchedulerConfig())
        replies = []
        controller.submit(Command(action="set", key="maxTargets", value=5), reply=replies.append)

        controller.tick()

        assert controller.config.max_targets == 5
        assert replies[0].ok and replies[0].value == 5

    def test_bad_command_is_dropped(self, host):
        controller = SwarmController(host, SchedulerConfig())
        replies = []
        controller.submit({"action": "set", "key": "warp", "value": 9}, reply=replies.append)

        controller.tick()

        assert replies[0].ok is False
        assert "warp" in replies[0].error


class TestSetters:
    """Tests for the tunable setters."""

    def test_setters(self, host):
        controller = SwarmController(host)

        controller.set_extract_threshold(0.8)
        controller.set_extract_fraction(0.05)
        controller.set_max_targets(3)

        assert controller.config.extract_threshold == 0.8
        assert controller.config.extract_fraction == 0.05
        assert controller.config.max_targets == 3
