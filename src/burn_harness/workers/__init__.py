"""Worker module for load generation.

This module provides the CPU and GPU load tasks and the handles that control
them. Every task runs in its own process so the control panel stays
responsive while cores and devices are saturated.
"""

from burn_harness.workers.base import (
    LoadTask,
    StopStrategy,
    TaskConfig,
    UnitKey,
    UnitKind,
    UnitState,
    WorkerStatus,
    run_load_task,
)
from burn_harness.workers.cpu_worker import CPULoadTask, CPUTaskConfig
from burn_harness.workers.gpu_worker import (
    GPULoadTask,
    GPUTaskConfig,
    RenderSurface,
    TorchSurface,
)
from burn_harness.workers.handle import ProcessSpawner, WorkerHandle

__all__ = [
    "LoadTask",
    "StopStrategy",
    "TaskConfig",
    "UnitKey",
    "UnitKind",
    "UnitState",
    "WorkerStatus",
    "run_load_task",
    "CPULoadTask",
    "CPUTaskConfig",
    "GPULoadTask",
    "GPUTaskConfig",
    "RenderSurface",
    "TorchSurface",
    "ProcessSpawner",
    "WorkerHandle",
]
