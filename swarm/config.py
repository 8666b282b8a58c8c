"""Scheduler configuration.

Values are layered, later layers winning:

1. ``DEFAULTS`` (frozen, module level)
2. YAML file (``config/swarm.yaml`` or ``--config``)
3. ``SWARM_*`` environment variables
4. explicit overrides (CLI flags)

The resulting ``SchedulerConfig`` stays mutable at runtime: the command
channel tunes it through ``set_value``, which re-validates every
assignment.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from swarm.errors import ConfigurationError
from swarm.models import Operation

logger = logging.getLogger(__name__)

ENV_PREFIX = "SWARM_"
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "swarm.yaml"


@dataclass(frozen=True)
class SchedulerDefaults:
    """Baseline tunables. Immutable; copy into a SchedulerConfig to change."""
    EXTRACT_THRESHOLD: float = 0.5
    EXTRACT_FRACTION: float = 0.2
    MAX_TARGETS: int = 100
    TICK_SECONDS: float = 1.0
    UNIT_COST: float = 2.0
    HOME_NODE: str = "home"
    HOME_RESERVE_FRACTION: float = 0.1
    LARGE_NODE_CAPACITY: float = 2048.0
    LARGE_NODE_LEVEL: int = 5000
    SECURITY_EXCESS_LIMIT: float = 5.0
    STABILIZE_PER_THREAD: float = 0.05
    BANNED_TARGETS: Tuple[str, ...] = ("b-and-a",)
    INITIAL_TARGETS: int = 1
    TARGET_REFRESH_TICKS: int = 30
    ACCESS_REFRESH_TICKS: int = 60
    FREE_SLOTS_PER_TARGET: int = 1000
    PROGRAMS: Dict[str, str] = field(default_factory=lambda: {
        "extract": "extract_once",
        "replenish": "replenish_once",
        "stabilize": "stabilize_once",
    })


DEFAULTS = SchedulerDefaults()

# Keys accepted by the command channel that predate the current field names.
# Each maps to (field, converter).
LEGACY_KEYS: Dict[str, Tuple[str, Any]] = {
    "hackThreshold": ("extract_threshold", float),
    "hackFactor": ("extract_fraction", float),
    "max_targets": ("max_targets", int),
    "maxTargets": ("max_targets", int),
    "sleep_time": ("tick_seconds", lambda ms: float(ms) / 1000.0),
}

_LIST_FIELDS = ("banned_targets", "seed_targets")


class SchedulerConfig(BaseModel):
    """Runtime configuration of the swarm scheduler."""
    extract_threshold: float = Field(DEFAULTS.EXTRACT_THRESHOLD, ge=0.0, le=1.0)
    extract_fraction: float = Field(DEFAULTS.EXTRACT_FRACTION, gt=0.0, le=1.0)
    max_targets: int = Field(DEFAULTS.MAX_TARGETS, ge=0)
    tick_seconds: float = Field(DEFAULTS.TICK_SECONDS, ge=0.0)
    unit_cost: float = Field(DEFAULTS.UNIT_COST, gt=0.0)
    home_node: str = DEFAULTS.HOME_NODE
    home_reserve_fraction: float = Field(DEFAULTS.HOME_RESERVE_FRACTION, ge=0.0, lt=1.0)
    large_node_capacity: float = Field(DEFAULTS.LARGE_NODE_CAPACITY, gt=0.0)
    large_node_level: int = Field(DEFAULTS.LARGE_NODE_LEVEL, ge=0)
    security_excess_limit: float = DEFAULTS.SECURITY_EXCESS_LIMIT
    stabilize_per_thread: float = Field(DEFAULTS.STABILIZE_PER_THREAD, gt=0.0)
    banned_targets: List[str] = Field(default_factory=lambda: list(DEFAULTS.BANNED_TARGETS))
    seed_targets: List[str] = Field(default_factory=list)
    initial_targets: int = Field(DEFAULTS.INITIAL_TARGETS, ge=0)
    target_refresh_ticks: int = Field(DEFAULTS.TARGET_REFRESH_TICKS, ge=1)
    access_refresh_ticks: int = Field(DEFAULTS.ACCESS_REFRESH_TICKS, ge=1)
    free_slots_per_target: int = Field(DEFAULTS.FREE_SLOTS_PER_TARGET, ge=1)
    programs: Dict[Operation, str] = Field(default_factory=lambda: dict(DEFAULTS.PROGRAMS),
                                           validate_default=True)

    class Config:
        validate_assignment = True
        extra = "forbid"

    def program_for(self, op: Operation) -> str:
        return self.programs[Operation(op)]

    def operation_for_program(self, program: str) -> Optional[Operation]:
        """Identify which operation a running program belongs to."""
        for op, name in self.programs.items():
            if name and name in program:
                return Operation(op)
        return None

    def reserve_for(self, node_name: str) -> float:
        return self.home_reserve_fraction if node_name == self.home_node else 0.0

    def set_value(self, key: str, value: Any) -> Any:
        """Live setter used by the command channel.

        Returns the stored (validated) value.
        """
        field_name, convert = LEGACY_KEYS.get(key, (key, None))
        if field_name not in type(self).model_fields:
            raise ConfigurationError(f"Unknown setting: {key}", key=key)
        try:
            if convert is not None:
                value = convert(value)
            setattr(self, field_name, value)
        except (TypeError, ValueError, PydanticValidationError) as e:
            raise ConfigurationError(f"Invalid value for {key}: {value!r}", key=key,
                                     context={"error": str(e)}) from e
        logger.info(f"Config {field_name} set to {getattr(self, field_name)!r}")
        return getattr(self, field_name)


def _env_overrides(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Collect ``SWARM_<FIELD>`` variables."""
    environ = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    for name in SchedulerConfig.model_fields:
        if name == "programs":
            continue
        raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if raw is None:
            continue
        if name in _LIST_FIELDS:
            overrides[name] = [part.strip() for part in raw.split(",") if part.strip()]
        else:
            overrides[name] = raw
    return overrides


def load_yaml(path: Path) -> Dict[str, Any]:
    """Read a YAML config file; a missing file yields an empty mapping."""
    if not path.exists():
        logger.debug(f"Config file not found: {path}")
        return {}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file must contain a mapping: {path}")
    # Allow the tunables to live under a `scheduler:` section.
    return dict(data.get("scheduler", data))


def load_config(
    path: Optional[Path | str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> SchedulerConfig:
    """Build a SchedulerConfig from file, environment and overrides."""
    values: Dict[str, Any] = {}
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    values.update(load_yaml(config_path))
    values.update(_env_overrides(environ))
    values.update({k: v for k, v in (overrides or {}).items() if v is not None})
    try:
        config = SchedulerConfig(**values)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid scheduler configuration: {e}",
                                 context={"source": str(config_path)}) from e
    logger.debug(f"Loaded scheduler config: {config.model_dump()}")
    return config
