"""GPU load task implementation.

Saturates one GPU device by submitting draw work to a GPU-backed surface
once per frame, yielding between frames.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from burn_harness.constants import (
    GPU_BATCH_SIZE,
    GPU_DEFAULT_COMPLEXITY,
    GPU_FRAME_YIELD_SECONDS,
    GPU_MAX_COMPLEXITY,
    GPU_MAX_TEXTURES,
    GPU_MIN_COMPLEXITY,
    GPU_TEXTURE_BASE_SIZE,
    GPU_TEXTURE_SIZE_STEPS,
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
class GPUTaskConfig(TaskConfig):
    """Configuration for a GPU load task."""

    complexity: int = GPU_DEFAULT_COMPLEXITY

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for JSON serialization."""
        base = super().to_dict()
        base.update({
            "complexity": self.complexity,
        })
        return base


def texture_count(complexity: int) -> int:
    """Number of textures allocated for a complexity percentage."""
    return max(1, GPU_MAX_TEXTURES * complexity // GPU_MAX_COMPLEXITY)


class RenderSurface(ABC):
    """GPU-side render target owned by one GPU load task."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        """Whether the device or surface went away."""
        pass

    @abstractmethod
    def render_frame(self) -> None:
        """Submit one frame of draw work and wait for it to present."""
        pass

    @abstractmethod
    def release(self) -> None:
        """Free every GPU-side allocation. Safe to call twice."""
        pass


class TorchSurface(RenderSurface):
    """Render surface backed by CUDA tensors.

    Textures are square float tensors of 256 to 1024 texels. A frame paints
    every texture with GPU_BATCH_SIZE random fills and composites it with a
    matrix product, then synchronizes the device.
    """

    def __init__(self, device_index: int, complexity: int):
        import torch

        if not torch.cuda.is_available() or device_index >= torch.cuda.device_count():
            raise RuntimeError(f"CUDA device {device_index} is not available")

        self._torch = torch
        self._device = torch.device("cuda", device_index)
        self._released = False
        self._textures: List[Any] = []
        self._targets: Dict[int, Any] = {}

        for i in range(texture_count(complexity)):
            size = GPU_TEXTURE_BASE_SIZE * (i % GPU_TEXTURE_SIZE_STEPS + 1)
            self._textures.append(torch.rand(size, size, device=self._device))
            if size not in self._targets:
                self._targets[size] = torch.empty(size, size, device=self._device)

    @property
    def closed(self) -> bool:
        return self._released or not self._torch.cuda.is_available()

    def render_frame(self) -> None:
        for texture in self._textures:
            for _ in range(GPU_BATCH_SIZE):
                texture.uniform_(0.5, 1.0)  # Bright fills stress pixel work
            self._torch.mm(texture, texture, out=self._targets[texture.shape[0]])
        self._torch.cuda.synchronize(self._device)

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._textures.clear()
        self._targets.clear()
        self._torch.cuda.empty_cache()


class GPULoadTask(LoadTask):
    """GPU load task.

    The frame loop checks the stop event and the surface's closed flag
    before every frame and yields after it. The surface is released on
    every exit path, so the task must be stopped cooperatively.
    """

    def __init__(
        self,
        config: GPUTaskConfig,
        surface_factory: Optional[Callable[[int, int], RenderSurface]] = None,
    ):
        super().__init__(config)
        self._surface_factory = surface_factory or TorchSurface

    @property
    def kind(self) -> UnitKind:
        return UnitKind.GPU

    @property
    def stop_strategy(self) -> StopStrategy:
        return StopStrategy.COOPERATIVE

    @classmethod
    def validate_config(cls, data: Dict[str, Any]) -> GPUTaskConfig:
        """Validate GPU task options.

        Args:
            data: Options with optional complexity (percent) and duration_seconds

        Returns:
            Validated GPUTaskConfig

        Raises:
            ValueError: If any parameter is invalid
        """
        complexity = validate_int_range(
            data, "complexity", GPU_DEFAULT_COMPLEXITY, GPU_MIN_COMPLEXITY, GPU_MAX_COMPLEXITY
        )
        return GPUTaskConfig(
            duration_seconds=validate_duration(data),
            complexity=complexity,
        )

    def execute(self, unit: UnitKey, stop_event) -> Dict[str, Any]:
        """Render frames until stopped, closed, or the duration expires."""
        start_time = time.monotonic()
        end_time = None
        if self.config.duration_seconds is not None:
            end_time = start_time + self.config.duration_seconds

        surface = self._surface_factory(unit.unit_id - 1, self.config.complexity)
        frames = 0
        reason = "stopped"
        try:
            while True:
                if stop_event.is_set():
                    break
                if surface.closed:
                    reason = "closed"
                    break
                if end_time is not None and time.monotonic() >= end_time:
                    reason = "expired"
                    break
                surface.render_frame()
                frames += 1
                time.sleep(GPU_FRAME_YIELD_SECONDS)
        finally:
            surface.release()

        return {
            "unit": str(unit),
            "frames": frames,
            "reason": reason,
            "duration_seconds": round(time.monotonic() - start_time, 2),
            "complexity": self.config.complexity,
        }
