"""Services module for burn-harness.

This module provides service abstractions for:
- Worker orchestration (Orchestrator)
- Live handle tracking (WorkerRegistry)
- Prometheus lifecycle metrics (OrchestratorMetrics)
"""

from burn_harness.services.metrics import OrchestratorMetrics
from burn_harness.services.orchestrator import (
    Orchestrator,
    SpawnError,
    StateChange,
    ToggleResult,
    UnknownUnitError,
)
from burn_harness.services.registry import DuplicateWorkerError, WorkerRegistry

__all__ = [
    "Orchestrator",
    "SpawnError",
    "StateChange",
    "ToggleResult",
    "UnknownUnitError",
    "OrchestratorMetrics",
    "WorkerRegistry",
    "DuplicateWorkerError",
]
