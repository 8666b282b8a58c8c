"""Prometheus metrics for the swarm scheduler.

This module centralises gauges and counters so the controller can record
lightweight telemetry once per tick without each component managing its
own metric instances. Labels are kept to the operation kind and the
dispatch outcome.
"""

from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Gauge, Histogram

from swarm.allocator import AllocationResult
from swarm.models import Operation, SupplyPool

SWARM_FREE_SLOTS: Final[Gauge] = Gauge(
    "swarm_free_slots",
    "Free execution slots across the pool after the last tick.",
)

SWARM_RUNNING_THREADS: Final[Gauge] = Gauge(
    "swarm_running_threads",
    "Threads running across the pool, labeled by operation.",
    labelnames=("operation",),
)

SWARM_TRACKED_TARGETS: Final[Gauge] = Gauge(
    "swarm_tracked_targets",
    "Number of targets currently tracked by the scheduler.",
)

SWARM_DISPATCHES: Final[Counter] = Counter(
    "swarm_dispatches_total",
    "Launch attempts, labeled by operation and outcome.",
    labelnames=("operation", "outcome"),
)

SWARM_DISPATCHED_THREADS: Final[Counter] = Counter(
    "swarm_dispatched_threads_total",
    "Threads launched, labeled by operation.",
    labelnames=("operation",),
)

SWARM_TICK_ERRORS: Final[Counter] = Counter(
    "swarm_tick_errors_total",
    "Ticks abandoned because of an error, labeled by error code.",
    labelnames=("code",),
)

SWARM_TICK_DURATION: Final[Histogram] = Histogram(
    "swarm_tick_duration_seconds",
    "Processing time of one scheduler tick in seconds.",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)


def report_pool(pool: SupplyPool, tracked_targets: int) -> None:
    """Export the supply pool summary."""
    SWARM_FREE_SLOTS.set(pool.free)
    SWARM_RUNNING_THREADS.labels(Operation.EXTRACT.value).set(pool.extract)
    SWARM_RUNNING_THREADS.labels(Operation.REPLENISH.value).set(pool.replenish)
    SWARM_RUNNING_THREADS.labels(Operation.STABILIZE.value).set(pool.stabilize)
    SWARM_TRACKED_TARGETS.set(tracked_targets)


def report_allocation(result: AllocationResult) -> None:
    """Export the outcome of one allocation pass."""
    for assignment in result.assignments:
        SWARM_DISPATCHES.labels(assignment.operation.value, "success").inc()
        SWARM_DISPATCHED_THREADS.labels(assignment.operation.value).inc(assignment.threads)
    for failure in result.failed:
        SWARM_DISPATCHES.labels(failure.operation.value, "failure").inc()
