"""CPU load task implementation.

Saturates one logical core by performing mathematical operations.
"""

import math
import time
from dataclasses import dataclass
from typing import Any, Dict

from burn_harness.constants import (
    CPU_DEFAULT_INTENSITY,
    CPU_MAX_INTENSITY,
    CPU_MIN_INTENSITY,
    CPU_OPS_PER_INTENSITY,
)
from burn_harness.workers.base import (
    LoadTask,
    StopStrategy,
    TaskConfig,
    UnitKey,
    UnitKind,
    validate_duration,
    validate_int_range,
)


@dataclass
class CPUTaskConfig(TaskConfig):
    """Configuration for a CPU load task."""

    intensity: int = CPU_DEFAULT_INTENSITY

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for JSON serialization."""
        base = super().to_dict()
        base.update({
            "intensity": self.intensity,
        })
        return base


class CPULoadTask(LoadTask):
    """CPU load task.

    Runs sqrt/sin/modulo in a tight loop. There is no natural yield point,
    so the stop event is polled after every batch of intensity * 1000
    operations. The task is stopped by terminating its process; the poll
    keeps a cooperative stop working too.
    """

    @property
    def kind(self) -> UnitKind:
        return UnitKind.CPU

    @property
    def stop_strategy(self) -> StopStrategy:
        return StopStrategy.HARD

    @classmethod
    def validate_config(cls, data: Dict[str, Any]) -> CPUTaskConfig:
        """Validate CPU task options.

        Args:
            data: Options with optional intensity and duration_seconds

        Returns:
            Validated CPUTaskConfig

        Raises:
            ValueError: If any parameter is invalid
        """
        intensity = validate_int_range(
            data, "intensity", CPU_DEFAULT_INTENSITY, CPU_MIN_INTENSITY, CPU_MAX_INTENSITY
        )
        return CPUTaskConfig(
            duration_seconds=validate_duration(data),
            intensity=intensity,
        )

    def execute(self, unit: UnitKey, stop_event) -> Dict[str, Any]:
        """Burn CPU until stopped or the optional duration expires."""
        start_time = time.monotonic()
        end_time = None
        if self.config.duration_seconds is not None:
            end_time = start_time + self.config.duration_seconds
        batch = self.config.intensity * CPU_OPS_PER_INTENSITY
        iterations = 0
        result = 0.0

        while not stop_event.is_set():
            if end_time is not None and time.monotonic() >= end_time:
                break
            for _ in range(batch):
                result += math.sqrt(iterations + 1) * math.sin(iterations)
                result = result % 1_000_000  # Prevent overflow
                iterations += 1

        return {
            "unit": str(unit),
            "iterations": iterations,
            "duration_seconds": round(time.monotonic() - start_time, 2),
            "intensity": self.config.intensity,
        }
