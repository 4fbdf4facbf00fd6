"""Base abstractions for load tasks.

Provides the unit model (kind + id), the two stop strategies, and the
abstract LoadTask following the Template Method pattern shared by the CPU
and GPU variants.
"""

import enum
import logging
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from burn_harness.constants import (
    MIN_UNIT_ID,
    TASK_EXIT_FAILED,
    TASK_MAX_DURATION_SECONDS,
    TASK_MIN_DURATION_SECONDS,
)


class UnitKind(str, enum.Enum):
    """Resource a unit drives load on."""

    CPU = "cpu"
    GPU = "gpu"

    @classmethod
    def parse(cls, value: Any) -> "UnitKind":
        """Parse a kind from its name, case-insensitively.

        Raises:
            ValueError: If the value names no known kind
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"unknown unit kind: {value!r}") from None


class StopStrategy(enum.Enum):
    """How a live task is asked to stop."""

    HARD = "hard"  # terminate the process, no acknowledgment
    COOPERATIVE = "cooperative"  # set the stop event, wait for done


class UnitState(str, enum.Enum):
    """Lifecycle state of one unit."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass(frozen=True, order=True)
class UnitKey:
    """Identity of one controllable load source."""

    kind: UnitKind
    unit_id: int

    def __post_init__(self):
        if isinstance(self.unit_id, bool) or not isinstance(self.unit_id, int):
            raise ValueError("unit_id must be an integer")
        if self.unit_id < MIN_UNIT_ID:
            raise ValueError(f"unit_id must be at least {MIN_UNIT_ID}")

    def __str__(self) -> str:
        return f"{self.kind.value}{self.unit_id}"


@dataclass
class TaskConfig:
    """Base configuration for a load task.

    A duration of None means the task runs until it is stopped.
    """

    duration_seconds: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for JSON serialization."""
        return {"duration_seconds": self.duration_seconds}


@dataclass
class WorkerStatus:
    """Outcome information for one worker handle."""

    unit: str
    status: str  # "running", "completed", "stopped", "terminated", "failed"
    started_at: str
    config: Dict[str, Any]
    finished_at: Optional[str] = None
    exitcode: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def running(cls, unit: UnitKey, config: Dict[str, Any]) -> "WorkerStatus":
        """Create a running worker status."""
        return cls(
            unit=str(unit),
            status="running",
            started_at=datetime.now(timezone.utc).isoformat(),
            config=config,
        )

    def mark_finished(self, exitcode: Optional[int], stop_requested: bool) -> None:
        """Record how the task's process ended.

        Args:
            exitcode: Process exit code (negative when killed by a signal)
            stop_requested: Whether the owner asked the task to stop
        """
        self.exitcode = exitcode
        self.finished_at = datetime.now(timezone.utc).isoformat()
        if exitcode is None or exitcode < 0:
            self.status = "terminated"
        elif exitcode > 0:
            self.status = "failed"
            self.error = f"load task exited with code {exitcode}"
        elif stop_requested:
            self.status = "stopped"
        else:
            self.status = "completed"

    def to_dict(self) -> Dict[str, Any]:
        """Convert status to dictionary for JSON serialization."""
        result = {
            "unit": self.unit,
            "status": self.status,
            "started_at": self.started_at,
            "config": self.config,
        }
        if self.finished_at:
            result["finished_at"] = self.finished_at
        if self.exitcode is not None:
            result["exitcode"] = self.exitcode
        if self.error:
            result["error"] = self.error
        return result


def validate_duration(data: Dict[str, Any]) -> Optional[float]:
    """Validate the optional duration shared by every task kind."""
    duration_seconds = data.get("duration_seconds")
    if duration_seconds is None:
        return None
    if isinstance(duration_seconds, bool) or not isinstance(duration_seconds, (int, float)):
        raise ValueError("duration_seconds must be a number")
    if duration_seconds < TASK_MIN_DURATION_SECONDS:
        raise ValueError(
            f"duration_seconds must be at least {TASK_MIN_DURATION_SECONDS}"
        )
    if duration_seconds > TASK_MAX_DURATION_SECONDS:
        raise ValueError(
            f"duration_seconds must be at most {TASK_MAX_DURATION_SECONDS}"
        )
    return duration_seconds


def validate_int_range(data: Dict[str, Any], name: str, default: int, low: int, high: int) -> int:
    """Validate an optional integer option within [low, high]."""
    value = data.get(name, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer")
    if value < low or value > high:
        raise ValueError(f"{name} must be between {low} and {high}")
    return value


class LoadTask(ABC):
    """Abstract base class for load tasks.

    Implements the Template Method pattern for the task lifecycle:
    1. validate_config() - Parse and validate options (in the caller)
    2. execute() - Run the workload (in the worker process)

    Subclasses declare which stop strategy their kind needs.
    """

    def __init__(self, config: TaskConfig):
        self.config = config

    @property
    @abstractmethod
    def kind(self) -> UnitKind:
        """Return the unit kind this task drives."""
        pass

    @property
    @abstractmethod
    def stop_strategy(self) -> StopStrategy:
        """Return how a running instance must be stopped."""
        pass

    @classmethod
    @abstractmethod
    def validate_config(cls, data: Dict[str, Any]) -> TaskConfig:
        """Validate input options and return a typed config object.

        Args:
            data: Raw options from the control panel

        Returns:
            Validated TaskConfig subclass instance

        Raises:
            ValueError: If validation fails
        """
        pass

    @abstractmethod
    def execute(self, unit: UnitKey, stop_event) -> Dict[str, Any]:
        """Execute the load workload.

        Runs in a separate process. Must check stop_event often enough
        that a cooperative stop is observed in well under a second.

        Args:
            unit: The unit this task is bound to
            stop_event: multiprocessing.Event signalling a stop request

        Returns:
            Dictionary with execution results
        """
        pass


def run_load_task(task: LoadTask, unit: UnitKey, stop_event) -> None:
    """Process target wrapping LoadTask.execute().

    Module-level so it can be pickled as a multiprocessing target. A crash
    inside the task ends the process with a non-zero exit code, which the
    owning handle reports as a failed completion.
    """
    logger = logging.getLogger(task.__class__.__name__)
    try:
        result = task.execute(unit, stop_event)
    except Exception:
        logger.exception("Load task crashed: unit=%s", unit)
        sys.exit(TASK_EXIT_FAILED)
    logger.info("Load task finished: unit=%s result=%s", unit, result)
