"""Worker handles: cancellation and completion for one live load task.

Each handle owns the task's process and a watcher thread that joins it.
The watcher is the single source of the handle's done notification, so
done fires exactly once whether the task finished on its own, observed a
cooperative stop, was terminated, or crashed.
"""

import logging
import multiprocessing
import threading
from typing import Callable, Optional

from burn_harness.constants import PROCESS_TERMINATE_TIMEOUT
from burn_harness.workers.base import (
    LoadTask,
    StopStrategy,
    UnitKey,
    UnitState,
    WorkerStatus,
    run_load_task,
)


class ProcessSpawner:
    """Creates worker processes and the stop events shared with them."""

    def __init__(self, context=None):
        """Initialize spawner.

        Args:
            context: Optional multiprocessing context. Defaults to the
                platform's default start method.
        """
        self._ctx = context or multiprocessing.get_context()

    def event(self):
        return self._ctx.Event()

    def process(self, target, args, name):
        return self._ctx.Process(target=target, args=args, name=name, daemon=True)


class WorkerHandle:
    """Control object for one live load task.

    The owner drives cancellation through request_stop() (the task's own
    strategy), terminate() and kill() (escalation). Completion is delivered
    through the on_done callback passed to start().
    """

    def __init__(
        self,
        unit: UnitKey,
        task: LoadTask,
        spawner,
        logger: Optional[logging.Logger] = None,
    ):
        self.unit = unit
        self.task = task
        self.strategy: StopStrategy = task.stop_strategy
        self.state = UnitState.STARTING
        self.status = WorkerStatus.running(unit, task.config.to_dict())
        self._logger = logger or logging.getLogger(self.__class__.__name__)
        self._stop_event = spawner.event()
        self._process = spawner.process(
            target=run_load_task,
            args=(task, unit, self._stop_event),
            name=f"burn-{unit}",
        )
        self._stop_requested = False
        self._done = threading.Event()
        self._done_lock = threading.Lock()
        self._on_done: Optional[Callable[["WorkerHandle"], None]] = None

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def start(self, on_done: Callable[["WorkerHandle"], None]) -> None:
        """Launch the task's process and its watcher.

        Raises:
            OSError: The process could not be created
            RuntimeError: The watcher thread could not be started; the
                process is killed before this propagates
        """
        self._on_done = on_done
        self._process.start()
        watcher = threading.Thread(
            target=self._watch, name=f"watch-{self.unit}", daemon=True
        )
        try:
            watcher.start()
        except RuntimeError:
            self._process.kill()
            self._process.join(timeout=PROCESS_TERMINATE_TIMEOUT)
            raise

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until done fires. Returns False on timeout."""
        return self._done.wait(timeout)

    def request_stop(self) -> bool:
        """Ask the task to stop using its kind's strategy.

        Only the first call has an effect.

        Returns:
            True if this call sent the stop, False if it was a no-op
        """
        if self._stop_requested or self.done:
            return False
        self._stop_requested = True
        self._stop_event.set()
        if self.strategy is StopStrategy.HARD:
            self.terminate()
        return True

    def terminate(self) -> None:
        """Tear the process down without waiting for acknowledgment."""
        self._stop_requested = True
        if self._process.is_alive():
            self._process.terminate()

    def kill(self) -> None:
        """Last-resort teardown for a process that ignored terminate()."""
        self._stop_requested = True
        if self._process.is_alive():
            self._process.kill()

    def _watch(self) -> None:
        self._process.join()
        self._fire_done()

    def _fire_done(self) -> None:
        with self._done_lock:
            if self._done.is_set():
                return
            self.status.mark_finished(self._process.exitcode, self._stop_requested)
            self._done.set()

        self._logger.debug(
            "Worker done: unit=%s status=%s exitcode=%s",
            self.unit, self.status.status, self.status.exitcode,
        )
        if self._on_done:
            self._on_done(self)

    def __repr__(self) -> str:
        return f"<WorkerHandle {self.unit} state={self.state.value}>"
