"""Tests for swarm.config."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from swarm.config import DEFAULTS, SchedulerConfig, load_config, load_yaml
from swarm.errors import ConfigurationError
from swarm.models import Operation


class TestSchedulerConfig:
    """Tests for SchedulerConfig defaults and helpers."""

    def test_defaults(self):
        config = SchedulerConfig()

        assert config.extract_threshold == DEFAULTS.EXTRACT_THRESHOLD
        assert config.extract_fraction == 0.2
        assert config.max_targets == 100
        assert config.banned_targets == ["b-and-a"]
        assert config.program_for(Operation.STABILIZE) == "stabilize_once"

    def test_operation_for_program_matches_path(self):
        config = SchedulerConfig()

        assert config.operation_for_program("/scripts/extract_once.js") is Operation.EXTRACT
        assert config.operation_for_program("replenish_once") is Operation.REPLENISH
        assert config.operation_for_program("net-monitor.js") is None

    def test_reserve_only_on_home(self):
        config = SchedulerConfig(home_reserve_fraction=0.25)

        assert config.reserve_for("home") == 0.25
        assert config.reserve_for("alpha") == 0.0

    def test_unknown_field_rejected(self):
        with pytest.raises(PydanticValidationError):
            SchedulerConfig(not_a_field=1)


class TestSetValue:
    """Tests for SchedulerConfig.set_value (command channel setter)."""

    def test_sets_field(self):
        config = SchedulerConfig()
        assert config.set_value("extract_fraction", 0.1) == 0.1
        assert config.extract_fraction == 0.1

    @pytest.mark.parametrize("key,value,field_name,expected", [
        ("hackThreshold", "0.75", "extract_threshold", 0.75),
        ("hackFactor", 0.3, "extract_fraction", 0.3),
        ("maxTargets", "12", "max_targets", 12),
        ("max_targets", 5, "max_targets", 5),
        ("sleep_time", 2500, "tick_seconds", 2.5),
    ])
    def test_legacy_keys(self, key, value, field_name, expected):
        config = SchedulerConfig()
        config.set_value(key, value)
        assert getattr(config, field_name) == expected

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError) as exc_info:
            SchedulerConfig().set_value("turbo", True)
        assert exc_info.value.context["key"] == "turbo"

    def test_invalid_value_keeps_previous(self):
        config = SchedulerConfig()
        with pytest.raises(ConfigurationError):
            config.set_value("extract_fraction", 0)
        assert config.extract_fraction == 0.2

    def test_unconvertible_legacy_value(self):
        with pytest.raises(ConfigurationError):
            SchedulerConfig().set_value("sleep_time", "soon")


class TestLoadConfig:
    """Tests for load_yaml and load_config layering."""

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml", environ={})
        assert config == SchedulerConfig()

    def test_yaml_scheduler_section(self, tmp_path):
        path = tmp_path / "swarm.yaml"
        path.write_text("scheduler:\n  max_targets: 7\n  banned_targets: [x]\n")

        config = load_config(path, environ={})

        assert config.max_targets == 7
        assert config.banned_targets == ["x"]

    def test_yaml_flat_mapping(self, tmp_path):
        path = tmp_path / "swarm.yaml"
        path.write_text("tick_seconds: 0.5\n")
        assert load_yaml(path) == {"tick_seconds": 0.5}

    def test_yaml_must_be_mapping(self, tmp_path):
        path = tmp_path / "swarm.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError):
            load_yaml(path)

    def test_environment_overrides_file(self, tmp_path):
        path = tmp_path / "swarm.yaml"
        path.write_text("max_targets: 7\n")

        config = load_config(path, environ={
            "SWARM_MAX_TARGETS": "9",
            "SWARM_SEED_TARGETS": "alpha, beta",
        })

        assert config.max_targets == 9
        assert config.seed_targets == ["alpha", "beta"]

    def test_overrides_win_and_none_is_ignored(self, tmp_path):
        config = load_config(
            tmp_path / "absent.yaml",
            overrides={"max_targets": 3, "extract_fraction": None},
            environ={"SWARM_MAX_TARGETS": "9"},
        )

        assert config.max_targets == 3
        assert config.extract_fraction == 0.2

    def test_invalid_values_raise_configuration_error(self, tmp_path):
        path = tmp_path / "swarm.yaml"
        path.write_text("extract_threshold: 4\n")
        with pytest.raises(ConfigurationError):
            load_config(path, environ={})
