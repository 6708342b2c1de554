# store.py
from __future__ import annotations

import threading
from enum import Enum
from typing import Dict, FrozenSet, Optional

from .errors import UnknownStepError
from .model import ProcessFlow, Step


class Status(str, Enum):
    """Lifecycle of a step within one coordination run."""
    WAITING = "waiting"
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (Status.SUCCEEDED, Status.FAILED)


class ScenarioStore:
    """
    Per-step status table for a process flow.

    The table and the failure counter are guarded by one lock, so
    has_failures() never disagrees with the statuses it summarizes.
    """

    def __init__(self, flow: ProcessFlow, scenario_name: str | None = None):
        self.scenario_name = scenario_name
        self._steps: FrozenSet[Step] = flow.get_vertexes()
        self._statuses: Dict[Step, Status] = {s: Status.WAITING for s in self._steps}
        self._failures = 0
        self._lock = threading.Lock()

    def get_steps(self) -> FrozenSet[Step]:
        return self._steps

    def get_status(self, step: Step) -> Status:
        with self._lock:
            return self._statuses.get(step, Status.WAITING)

    def update_status(self, step: Step, status: Status) -> Status:
        """Overwrite the status of `step`; returns the previous status."""
        with self._lock:
            return self._set(step, status)

    def begin(self, step: Step) -> bool:
        """Move `step` from WAITING to IN_PROGRESS; False if it was not WAITING."""
        with self._lock:
            if step not in self._statuses:
                raise UnknownStepError(step.name)
            if self._statuses[step] is not Status.WAITING:
                return False
            self._set(step, Status.IN_PROGRESS)
            return True

    def complete(self, step: Step, status: Status) -> bool:
        """
        Record a terminal status unless the step is already terminal.

        Returns:
            True if this call performed the terminal transition.
        """
        if not status.is_terminal:
            raise ValueError(f"{status} is not a terminal status")
        with self._lock:
            current = self._statuses.get(step)
            if current is not None and current.is_terminal:
                return False
            self._set(step, status)
            return True

    def has_failures(self) -> bool:
        with self._lock:
            return self._failures > 0

    def snapshot(self) -> Dict[str, Status]:
        """Name -> status view of the whole table."""
        with self._lock:
            return {s.name: st for s, st in self._statuses.items()}

    def pending(self, step_filter: Optional[FrozenSet[Step]] = None) -> list[str]:
        with self._lock:
            return sorted(
                s.name for s, st in self._statuses.items()
                if not st.is_terminal and (step_filter is None or s in step_filter)
            )

    def _set(self, step: Step, status: Status) -> Status:
        if step not in self._statuses:
            raise UnknownStepError(step.name)
        previous = self._statuses[step]
        if previous is Status.FAILED:
            self._failures -= 1
        if status is Status.FAILED:
            self._failures += 1
        self._statuses[step] = status
        return previous
