"""Worker registry: live handles keyed by unit."""

from typing import Dict, Iterator, List, Optional

from burn_harness.workers.base import UnitKey, UnitKind
from burn_harness.workers.handle import WorkerHandle


class DuplicateWorkerError(RuntimeError):
    """A second handle was registered for a unit that already has one."""


class WorkerRegistry:
    """Mapping from UnitKey to its live WorkerHandle.

    Not thread-safe on its own: the Orchestrator owns the only instance and
    mutates it under its lock.
    """

    def __init__(self):
        self._handles: Dict[UnitKey, WorkerHandle] = {}

    def get(self, unit: UnitKey) -> Optional[WorkerHandle]:
        return self._handles.get(unit)

    def add(self, handle: WorkerHandle) -> None:
        """Register a handle.

        Raises:
            DuplicateWorkerError: If the unit already has a live handle
        """
        if handle.unit in self._handles:
            raise DuplicateWorkerError(f"{handle.unit} already has a live worker")
        self._handles[handle.unit] = handle

    def remove(self, handle: WorkerHandle) -> bool:
        """Remove this exact handle.

        A handle that was already replaced is left alone.

        Returns:
            True if the handle was registered and is now removed
        """
        if self._handles.get(handle.unit) is not handle:
            return False
        del self._handles[handle.unit]
        return True

    def holds(self, handle: WorkerHandle) -> bool:
        return self._handles.get(handle.unit) is handle

    def handles(self, kind: Optional[UnitKind] = None) -> List[WorkerHandle]:
        return [h for h in self._handles.values() if kind is None or h.unit.kind is kind]

    def active_count(self, kind: UnitKind) -> int:
        return sum(1 for unit in self._handles if unit.kind is kind)

    def __contains__(self, unit: UnitKey) -> bool:
        return unit in self._handles

    def __iter__(self) -> Iterator[UnitKey]:
        return iter(list(self._handles))

    def __len__(self) -> int:
        return len(self._handles)
