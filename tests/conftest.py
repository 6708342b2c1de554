# tests/conftest.py
from __future__ import annotations

import io
import threading
from typing import Dict, List, Optional

import pytest

from stepflow import Coordinator, CoordinatorConfig, Scenario, StepExecutor, StepProcessListener
from stepflow.ui.console import Console


class FakeExecutor(StepExecutor):
    """
    In-memory executor.

    codes:   step name -> exit code (default 0)
    gates:   step name -> Event the action blocks on until set
    outputs: step name -> lines reported through on_output
    errors:  step name -> exception raised from execute()
    barrier: Barrier every step in `barrier_names` waits on before returning
    """

    def __init__(
        self,
        codes: Optional[Dict[str, int]] = None,
        gates: Optional[Dict[str, threading.Event]] = None,
        outputs: Optional[Dict[str, List[str]]] = None,
        errors: Optional[Dict[str, Exception]] = None,
        barrier: Optional[threading.Barrier] = None,
        barrier_names: frozenset = frozenset(),
    ):
        self.codes = codes or {}
        self.gates = gates or {}
        self.outputs = outputs or {}
        self.errors = errors or {}
        self.barrier = barrier
        self.barrier_names = barrier_names
        self.executed: List[str] = []
        self.cancelled = False
        self._cond = threading.Condition()

    def execute(self, step, listener) -> int:
        with self._cond:
            self.executed.append(step.name)
            self._cond.notify_all()
        gate = self.gates.get(step.name)
        if gate is not None:
            gate.wait(timeout=10)
        if self.barrier is not None and step.name in self.barrier_names:
            self.barrier.wait(timeout=10)
        if step.name in self.errors:
            raise self.errors[step.name]
        for line in self.outputs.get(step.name, []):
            listener.on_output(step, line)
        return self.codes.get(step.name, 0)

    def cancel(self) -> None:
        self.cancelled = True
        for gate in self.gates.values():
            gate.set()

    def wait_entered(self, name: str, timeout: float = 5) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: name in self.executed, timeout=timeout)


class RecordingListener(StepProcessListener):
    def __init__(self):
        self.events: list = []
        self._lock = threading.Lock()

    def on_start(self, step) -> None:
        with self._lock:
            self.events.append(("start", step.name))

    def on_output(self, step, line) -> None:
        with self._lock:
            self.events.append(("output", step.name, line))

    def on_completion(self, step, exit_code) -> None:
        with self._lock:
            self.events.append(("completion", step.name, exit_code))

    def completions(self, name: str) -> List[int]:
        return [e[2] for e in self.events if e[0] == "completion" and e[1] == name]

    def starts(self, name: str) -> int:
        return sum(1 for e in self.events if e[0] == "start" and e[1] == name)

    def index(self, kind: str, name: str) -> int:
        for i, e in enumerate(self.events):
            if e[0] == kind and e[1] == name:
                return i
        raise AssertionError(f"no {kind} event for {name}: {self.events}")


@pytest.fixture
def quiet_console():
    return Console(stream=io.StringIO(), err_stream=io.StringIO())


@pytest.fixture
def recorder():
    return RecordingListener()


@pytest.fixture
def coordinate(quiet_console, recorder):
    """Factory: coordinate(flow, executor=None, max_workers=16) -> Coordinator."""
    created: List[Coordinator] = []

    def _make(flow, executor=None, max_workers=16, store=None):
        c = Coordinator(
            Scenario("test-scenario"),
            flow,
            executor=executor or FakeExecutor(),
            listeners=[recorder],
            config=CoordinatorConfig(max_workers=max_workers),
            store=store,
            console=quiet_console,
        )
        created.append(c)
        return c

    yield _make

    for c in created:
        c.stop()
