"""Orchestrator service for starting, stopping and tracking load tasks.

Owns the worker registry and serializes every mutation of it behind one
condition lock: control calls (start, stop, toggle, shutdown_all) and done
notifications from worker watcher threads all go through the same path.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from burn_harness.constants import (
    DEFAULT_GPU_COUNT,
    PROCESS_TERMINATE_TIMEOUT,
    STOP_GRACE_PERIOD_SECONDS,
)
from burn_harness.services.metrics import OrchestratorMetrics
from burn_harness.services.registry import WorkerRegistry
from burn_harness.workers.base import (
    LoadTask,
    StopStrategy,
    UnitKey,
    UnitKind,
    UnitState,
    WorkerStatus,
)
from burn_harness.workers.cpu_worker import CPULoadTask
from burn_harness.workers.gpu_worker import GPULoadTask
from burn_harness.workers.handle import ProcessSpawner, WorkerHandle


DEFAULT_TASK_TYPES: Dict[UnitKind, Type[LoadTask]] = {
    UnitKind.CPU: CPULoadTask,
    UnitKind.GPU: GPULoadTask,
}


class SpawnError(RuntimeError):
    """A load task could not be started. The unit stays idle."""


class UnknownUnitError(ValueError):
    """The requested kind or id does not name a configured unit."""


@dataclass(frozen=True)
class StateChange:
    """State pushed to control panel listeners after every change."""

    unit: UnitKey
    state: UnitState
    active: bool
    active_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.unit.kind.value,
            "id": self.unit.unit_id,
            "state": self.state.value,
            "active": self.active,
            "active_count": self.active_count,
        }


@dataclass(frozen=True)
class ToggleResult:
    """Outcome of a toggle. error is set only when a start was attempted and failed."""

    active: bool
    error: Optional[str] = None


StateListener = Callable[[StateChange], None]


class Orchestrator:
    """Control surface for CPU and GPU load units.

    Units are numbered from 1 per kind. At most one load task runs per unit.
    A unit counts as active from the moment its task is spawned until the
    task's done notification has been processed; that notification is the
    only thing that clears it.

    Listeners are called with the lock held, in change order, and must not
    block.
    """

    def __init__(
        self,
        cpu_count: int,
        gpu_count: int = DEFAULT_GPU_COUNT,
        spawner: Optional[Any] = None,
        task_types: Optional[Dict[UnitKind, Type[LoadTask]]] = None,
        task_defaults: Optional[Dict[UnitKind, Dict[str, Any]]] = None,
        grace_period: float = STOP_GRACE_PERIOD_SECONDS,
        metrics: Optional[OrchestratorMetrics] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize orchestrator.

        Args:
            cpu_count: Number of CPU units (usually logical cores)
            gpu_count: Number of GPU units
            spawner: Creates worker processes and stop events.
                Defaults to a multiprocessing-backed ProcessSpawner.
            task_types: Override the LoadTask class used per kind
            task_defaults: Default task options per kind, merged under
                the options passed to start()/toggle()
            grace_period: Seconds to wait for a cooperative stop before
                escalating to hard termination
            metrics: Optional Prometheus metrics sink
            logger: Optional logger instance. If not provided, creates one.
        """
        for name, count in (("cpu_count", cpu_count), ("gpu_count", gpu_count)):
            if isinstance(count, bool) or not isinstance(count, int) or count < 0:
                raise ValueError(f"{name} must be a non-negative integer")
        if grace_period < 0:
            raise ValueError("grace_period must not be negative")

        self._unit_counts = {UnitKind.CPU: cpu_count, UnitKind.GPU: gpu_count}
        self._spawner = spawner or ProcessSpawner()
        self._task_types = dict(DEFAULT_TASK_TYPES)
        self._task_types.update(task_types or {})
        self._task_defaults = {kind: dict((task_defaults or {}).get(kind, {})) for kind in UnitKind}
        self._grace_period = grace_period
        self._metrics = metrics
        self._logger = logger or logging.getLogger(self.__class__.__name__)

        self._registry = WorkerRegistry()
        self._cond = threading.Condition(threading.RLock())
        self._last_status: Dict[UnitKey, WorkerStatus] = {}
        self._listeners: List[StateListener] = []
        self._shutting_down = False

    # ---- Units ----

    @property
    def grace_period(self) -> float:
        return self._grace_period

    def unit_count(self, kind) -> int:
        return self._unit_counts[UnitKind.parse(kind)]

    def units(self, kind=None) -> List[UnitKey]:
        """All configured units, optionally of one kind."""
        kinds = [UnitKind.parse(kind)] if kind is not None else list(UnitKind)
        return [
            UnitKey(k, unit_id)
            for k in kinds
            for unit_id in range(1, self._unit_counts[k] + 1)
        ]

    def unit(self, kind, unit_id) -> UnitKey:
        """Resolve a (kind, id) pair to a configured unit.

        Raises:
            UnknownUnitError: If the kind is unknown or the id is out of range
        """
        try:
            key = UnitKey(UnitKind.parse(kind), unit_id)
        except ValueError as exc:
            raise UnknownUnitError(str(exc)) from None
        if key.unit_id > self._unit_counts[key.kind]:
            raise UnknownUnitError(
                f"{key.kind.value} unit {key.unit_id} does not exist "
                f"(have {self._unit_counts[key.kind]})"
            )
        return key

    # ---- Control ----

    def start(self, kind, unit_id, options: Optional[Dict[str, Any]] = None) -> bool:
        """Start the load task for a unit. A no-op if one is already live.

        If a stop is still pending, waits for its done notification
        before spawning the replacement.

        Returns:
            True (the unit's active flag)

        Raises:
            UnknownUnitError: If the unit is not configured
            ValueError: If the task options are invalid
            SpawnError: If the task could not be started
        """
        unit = self.unit(kind, unit_id)
        with self._cond:
            handle = self._registry.get(unit)
            if handle is not None and handle.stop_requested:
                self._logger.info("Waiting for %s worker to stop before restart", unit)
                self._await_stopped(handle)
                handle = self._registry.get(unit)

            if handle is not None:
                self._logger.info("%s worker already running", unit)
                return True

            if self._shutting_down:
                raise SpawnError(f"cannot start {unit}: shutdown in progress")

            task = self._build_task(unit, options or {})
            self._spawn(unit, task)
            return True

    def stop(self, kind, unit_id) -> bool:
        """Stop the load task for a unit. A no-op if none is live.

        Blocks until the task's done notification is processed. Cooperative
        stops that outlast the grace period are escalated.

        Returns:
            The unit's active flag afterwards (False unless the process
            could not be torn down at all)
        """
        unit = self.unit(kind, unit_id)
        with self._cond:
            handle = self._registry.get(unit)
            if handle is None:
                self._logger.info("No active worker for %s", unit)
                return False
            self._begin_stop(handle)
            self._await_stopped(handle)
            return unit in self._registry

    def toggle(self, kind, unit_id, options: Optional[Dict[str, Any]] = None) -> bool:
        """Start an idle unit or stop a live one.

        Spawn failures are logged and reported as an inactive result.

        Returns:
            The unit's new active flag
        """
        return self.toggle_result(kind, unit_id, options).active

    def toggle_result(
        self, kind, unit_id, options: Optional[Dict[str, Any]] = None
    ) -> ToggleResult:
        """Like toggle(), but also reports why a start attempt failed.

        The branch taken and its outcome are decided under one lock hold.
        """
        unit = self.unit(kind, unit_id)
        with self._cond:
            if unit in self._registry:
                return ToggleResult(active=self.stop(unit.kind, unit.unit_id))
            try:
                return ToggleResult(active=self.start(unit.kind, unit.unit_id, options))
            except SpawnError as exc:
                return ToggleResult(active=False, error=str(exc))

    def shutdown_all(self, grace_period: Optional[float] = None) -> List[UnitKey]:
        """Stop every live unit and wait until all are idle.

        CPU tasks are terminated, GPU tasks asked to stop cooperatively.
        Whatever is still live after the grace period is terminated, then
        killed. Starts are refused while this runs.

        Args:
            grace_period: Override the configured grace period

        Returns:
            Units that were live when shutdown began
        """
        grace = self._grace_period if grace_period is None else grace_period
        with self._cond:
            self._shutting_down = True
            try:
                handles = self._registry.handles()
                if not handles:
                    return []

                self._logger.info("Shutting down %d worker(s)", len(handles))
                for handle in handles:
                    self._begin_stop(handle)

                if not self._wait_removed(handles, grace):
                    stuck = [h for h in handles if self._registry.holds(h)]
                    for handle in stuck:
                        self._stop_timed_out(handle, grace)
                    self._escalate(stuck)

                return sorted(h.unit for h in handles)
            finally:
                self._shutting_down = False

    # ---- State projections ----

    def active_count(self, kind) -> int:
        """Number of units of this kind with a live task."""
        kind = UnitKind.parse(kind)
        with self._cond:
            return self._registry.active_count(kind)

    def unit_active(self, kind, unit_id) -> bool:
        unit = self.unit(kind, unit_id)
        with self._cond:
            return unit in self._registry

    def unit_state(self, kind, unit_id) -> UnitState:
        unit = self.unit(kind, unit_id)
        with self._cond:
            return self._state_of(unit)

    def last_status(self, kind, unit_id) -> Optional[WorkerStatus]:
        """Status of the unit's current or most recent task."""
        unit = self.unit(kind, unit_id)
        with self._cond:
            return self._last_status.get(unit)

    def snapshot(self) -> Dict[str, Any]:
        """JSON-ready view of every unit and the aggregate counts."""
        with self._cond:
            units: Dict[str, List[Dict[str, Any]]] = {kind.value: [] for kind in UnitKind}
            for unit in self.units():
                units[unit.kind.value].append(self._describe(unit))
            return {
                "units": units,
                "active_counts": {
                    kind.value: self._registry.active_count(kind) for kind in UnitKind
                },
            }

    def describe(self, kind, unit_id) -> Dict[str, Any]:
        unit = self.unit(kind, unit_id)
        with self._cond:
            return self._describe(unit)

    # ---- Listeners ----

    def subscribe(self, listener: StateListener) -> None:
        with self._cond:
            self._listeners.append(listener)

    def unsubscribe(self, listener: StateListener) -> None:
        with self._cond:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # ---- Internals (call with lock held) ----

    def _build_task(self, unit: UnitKey, options: Dict[str, Any]) -> LoadTask:
        task_type = self._task_types[unit.kind]
        merged = dict(self._task_defaults[unit.kind])
        merged.update(options)
        return task_type(task_type.validate_config(merged))

    def _spawn(self, unit: UnitKey, task: LoadTask) -> WorkerHandle:
        try:
            handle = WorkerHandle(unit, task, self._spawner, logger=self._logger)
        except OSError as exc:
            raise self._spawn_failed(unit, exc) from exc

        self._registry.add(handle)
        try:
            handle.start(self._on_done)
        except (OSError, RuntimeError) as exc:
            self._registry.remove(handle)
            raise self._spawn_failed(unit, exc) from exc

        handle.state = UnitState.RUNNING
        self._last_status[unit] = handle.status
        self._logger.info(
            "Started %s worker: config=%s", unit, task.config.to_dict()
        )
        self._changed(unit)
        return handle

    def _spawn_failed(self, unit: UnitKey, exc: BaseException) -> SpawnError:
        self._logger.error("Failed to start %s worker: %s", unit, exc)
        if self._metrics:
            self._metrics.spawn_failed(unit.kind)
        return SpawnError(f"failed to start {unit} worker: {exc}")

    def _begin_stop(self, handle: WorkerHandle) -> None:
        """Send the kind's stop.

        Only cooperative units enter STOPPING. A hard-stopped unit stays
        RUNNING until its done notification moves it to IDLE.
        """
        if handle.stop_requested:
            return
        handle.request_stop()
        self._logger.info(
            "Stopping %s worker (%s stop)", handle.unit, handle.strategy.value
        )
        if handle.strategy is StopStrategy.COOPERATIVE:
            handle.state = UnitState.STOPPING
            self._changed(handle.unit)

    def _await_stopped(self, handle: WorkerHandle) -> None:
        if handle.strategy is StopStrategy.COOPERATIVE:
            timeout = self._grace_period
        else:
            timeout = PROCESS_TERMINATE_TIMEOUT

        if self._wait_removed([handle], timeout):
            return
        self._stop_timed_out(handle, timeout)
        self._escalate([handle])

    def _stop_timed_out(self, handle: WorkerHandle, waited: float) -> None:
        self._logger.warning(
            "Stop timed out: unit=%s waited=%ss, escalating to terminate",
            handle.unit, waited,
        )
        if self._metrics:
            self._metrics.stop_timed_out(handle.unit.kind)

    def _escalate(self, handles: List[WorkerHandle]) -> List[WorkerHandle]:
        """Terminate, then kill, handles that are still registered.

        Returns:
            Handles whose process never exited
        """
        for handle in handles:
            handle.terminate()
        if self._wait_removed(handles, PROCESS_TERMINATE_TIMEOUT):
            return []

        for handle in handles:
            if self._registry.holds(handle):
                self._logger.warning("%s worker ignored terminate, killing", handle.unit)
                handle.kill()
        if self._wait_removed(handles, PROCESS_TERMINATE_TIMEOUT):
            return []

        remaining = [h for h in handles if self._registry.holds(h)]
        for handle in remaining:
            self._logger.error("%s worker could not be stopped", handle.unit)
        return remaining

    def _wait_removed(self, handles: List[WorkerHandle], timeout: float) -> bool:
        return self._cond.wait_for(
            lambda: not any(self._registry.holds(h) for h in handles),
            timeout=timeout,
        )

    def _on_done(self, handle: WorkerHandle) -> None:
        """Done notification from a handle's watcher thread."""
        with self._cond:
            removed = self._registry.remove(handle)
            handle.state = UnitState.IDLE
            self._last_status[handle.unit] = handle.status
            self._cond.notify_all()
            if not removed:
                return

            if handle.status.status == "failed":
                self._logger.warning(
                    "%s worker failed: %s", handle.unit, handle.status.error
                )
                if self._metrics:
                    self._metrics.task_failed(handle.unit.kind)
            self._logger.info(
                "Stopped %s worker: status=%s", handle.unit, handle.status.status
            )
            self._changed(handle.unit)

    def _state_of(self, unit: UnitKey) -> UnitState:
        handle = self._registry.get(unit)
        return handle.state if handle is not None else UnitState.IDLE

    def _describe(self, unit: UnitKey) -> Dict[str, Any]:
        status = self._last_status.get(unit)
        return {
            "kind": unit.kind.value,
            "id": unit.unit_id,
            "state": self._state_of(unit).value,
            "active": unit in self._registry,
            "last_status": status.to_dict() if status else None,
        }

    def _changed(self, unit: UnitKey) -> None:
        count = self._registry.active_count(unit.kind)
        if self._metrics:
            self._metrics.set_active(unit.kind, count)

        change = StateChange(
            unit=unit,
            state=self._state_of(unit),
            active=unit in self._registry,
            active_count=count,
        )
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                self._logger.exception("State listener failed for %s", unit)
