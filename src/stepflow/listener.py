# listener.py
from __future__ import annotations

import threading
from typing import Iterable, List, Optional

from .model import Step
from .ui.console import Console, get_console


class StepProcessListener:
    """
    Observer of step lifecycle events.

    All methods are no-ops; subclasses override what they need. Events may be
    delivered from worker threads and must return quickly.
    """

    def on_start(self, step: Step) -> None:
        pass

    def on_output(self, step: Step, line: str) -> None:
        pass

    def on_completion(self, step: Step, exit_code: int) -> None:
        pass


class ListenerSet:
    """Thread-safe listener collection; delivery iterates a snapshot."""

    def __init__(self, listeners: Iterable[StepProcessListener] = ()):
        self._lock = threading.Lock()
        self._listeners: List[StepProcessListener] = []
        for listener in listeners:
            self.add(listener)

    def add(self, listener: StepProcessListener) -> None:
        if listener is None:
            raise ValueError("Listener cannot be None")
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove(self, listener: StepProcessListener) -> None:
        if listener is None:
            raise ValueError("Listener cannot be None")
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def snapshot(self) -> List[StepProcessListener]:
        with self._lock:
            return list(self._listeners)

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)


class ConsoleListener(StepProcessListener):
    """Prints step events through the stepflow console."""

    def __init__(self, console: Optional[Console] = None, show_output: bool = True):
        self._console = console
        self.show_output = show_output

    @property
    def console(self) -> Console:
        return self._console or get_console()

    def on_start(self, step: Step) -> None:
        self.console.print_step_start(step.name, is_group=step.is_group)

    def on_output(self, step: Step, line: str) -> None:
        if self.show_output:
            self.console.print_step_output(step.name, line)

    def on_completion(self, step: Step, exit_code: int) -> None:
        if exit_code == 0:
            self.console.print_success(step.name)
        else:
            self.console.print_failure(step.name, exit_code=exit_code, is_group=step.is_group)
