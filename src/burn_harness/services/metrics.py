"""Prometheus metrics for worker orchestration."""

from prometheus_client import REGISTRY, Counter, Gauge

from burn_harness.constants import METRICS_PREFIX
from burn_harness.workers.base import UnitKind


class OrchestratorMetrics:
    """Gauges and counters describing unit lifecycle.

    Collectors are registered on construction, so build one instance per
    registry (the app factory does this once).
    """

    def __init__(self, registry=REGISTRY):
        self.active_units = Gauge(
            f"{METRICS_PREFIX}_active_units",
            "Units with a live load task",
            ["kind"],
            registry=registry,
        )
        self.spawn_failures = Counter(
            f"{METRICS_PREFIX}_spawn_failures_total",
            "Load tasks that could not be started",
            ["kind"],
            registry=registry,
        )
        self.stop_timeouts = Counter(
            f"{METRICS_PREFIX}_stop_timeouts_total",
            "Stops escalated to hard termination after the grace period",
            ["kind"],
            registry=registry,
        )
        self.task_failures = Counter(
            f"{METRICS_PREFIX}_task_failures_total",
            "Load tasks that exited with an error",
            ["kind"],
            registry=registry,
        )
        for kind in UnitKind:
            self.active_units.labels(kind=kind.value).set(0)

    def set_active(self, kind: UnitKind, count: int) -> None:
        self.active_units.labels(kind=kind.value).set(count)

    def spawn_failed(self, kind: UnitKind) -> None:
        self.spawn_failures.labels(kind=kind.value).inc()

    def stop_timed_out(self, kind: UnitKind) -> None:
        self.stop_timeouts.labels(kind=kind.value).inc()

    def task_failed(self, kind: UnitKind) -> None:
        self.task_failures.labels(kind=kind.value).inc()
