"""Demand scoring.

``evaluate_target`` decides whether a target is worth working and, if so,
how many threads of each operation it wants this tick:

- extract only when the target holds more than ``extract_threshold`` of
  its maximum value, sized to remove ``extract_fraction`` per cycle
- replenish enough to grow back to maximum after the expected extraction
  loss (minimum 1 for maintenance)
- stabilize enough to cancel the current security excess plus what the
  chosen extract/replenish threads will add during one stabilize cycle
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, List

from swarm.config import SchedulerConfig
from swarm.interfaces import EconomicOracle
from swarm.models import Operation, OperatorInfo, Target

logger = logging.getLogger(__name__)


def _ratio(numerator: float, denominator: float) -> float:
    """Duration ratio; zero when the denominator is unknown."""
    if denominator <= 0:
        return 0.0
    return numerator / denominator


def score_target(target: Target, operator: OperatorInfo) -> float:
    """Profitability score; 0 means ineligible or not worth targeting."""
    if target.required_level > operator.level or not target.accessible:
        return 0.0
    # A zero baseline would make every target infinitely attractive.
    baseline = target.baseline_security if target.baseline_security > 0 else 1.0
    return max(0.0, target.max_value * target.extraction_rate / baseline)


def desired_extract(target: Target, config: SchedulerConfig) -> int:
    if target.max_value <= 0 or target.extraction_rate <= 0:
        return 0
    if target.current_value / target.max_value > config.extract_threshold:
        return max(math.ceil(config.extract_fraction / target.extraction_rate), 0)
    return 0


def desired_replenish(target: Target, extract_threads: int, oracle: EconomicOracle,
                      config: SchedulerConfig) -> int:
    durations = target.durations
    extracts_per_replenish = _ratio(durations.replenish, durations.extract)
    loss = extracts_per_replenish * extract_threads * target.extraction_rate * target.current_value

    remaining = target.current_value - loss
    if remaining > 0:
        multiplier = target.max_value / remaining
    else:
        multiplier = math.inf

    if 1 <= multiplier < math.inf:
        threads = math.ceil(oracle.growth_analysis(target.name, multiplier))
        threads = max(threads, 0)
    else:
        threads = 1

    # Let security come down before growing any further.
    if target.security_excess > config.security_excess_limit:
        threads = 1
    return threads


def desired_stabilize(target: Target, extract_threads: int, replenish_threads: int,
                      oracle: EconomicOracle, config: SchedulerConfig) -> int:
    durations = target.durations
    extracts_per_stabilize = _ratio(durations.stabilize, durations.extract)
    replenishes_per_stabilize = _ratio(durations.stabilize, durations.replenish)

    from_extract = extracts_per_stabilize * oracle.security_impact(Operation.EXTRACT, extract_threads)
    from_replenish = replenishes_per_stabilize * oracle.security_impact(Operation.REPLENISH, replenish_threads)
    total = target.security_excess + from_extract + from_replenish

    return max(math.ceil(total / config.stabilize_per_thread), 0)


def evaluate_target(target: Target, operator: OperatorInfo, oracle: EconomicOracle,
                    config: SchedulerConfig) -> Target:
    """Recompute score and desired thread counts in place.

    Returns the same target for chaining.
    """
    target.score = score_target(target, operator)
    if target.score == 0:
        # Stale demand from an earlier tick must not keep attracting slots.
        target.desired.reset()
        return target

    extract = desired_extract(target, config)
    replenish = desired_replenish(target, extract, oracle, config)
    stabilize = desired_stabilize(target, extract, replenish, oracle, config)

    target.desired[Operation.EXTRACT] = extract
    target.desired[Operation.REPLENISH] = replenish
    target.desired[Operation.STABILIZE] = stabilize

    logger.debug(
        f"EvaluateTarget - {target.name} score={target.score:.3f} "
        f"E: {extract} R: {replenish} S: {stabilize}"
    )
    return target


def find_targets(candidates: Iterable[Target], operator: OperatorInfo, oracle: EconomicOracle,
                 config: SchedulerConfig) -> List[Target]:
    """Score every candidate; return the worthwhile ones, best first.

    Ties keep the candidates' discovery order.
    """
    scored = [evaluate_target(t, operator, oracle, config) for t in candidates]
    eligible = [t for t in scored if t.score != 0]
    eligible.sort(key=lambda t: t.score, reverse=True)
    return eligible
