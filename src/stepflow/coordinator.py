# coordinator.py
from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, Optional, cast

from .errors import WaitTimeoutError
from .executor import ShellExecutor, StepExecutor
from .listener import ListenerSet, StepProcessListener
from .model import Group, ProcessFlow, Scenario, Step, StepKind
from .settings import CoordinatorConfig
from .store import ScenarioStore, Status
from .ui.console import Console, get_console


class Directive(str, Enum):
    """Decision taken for a step on evaluation; never stored."""
    NOOP = "noop"
    RUN = "run"
    SKIP = "skip"


class CountDownLatch:
    def __init__(self, count: int):
        self._count = count
        self._cond = threading.Condition()

    @property
    def count(self) -> int:
        with self._cond:
            return self._count

    def count_down(self) -> None:
        with self._cond:
            if self._count > 0:
                self._count -= 1
                if self._count == 0:
                    self._cond.notify_all()

    def wait(self, timeout: Optional[float] = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._count == 0, timeout=timeout)


class Coordinator:
    """
    Coordinates execution of a scenario process flow.

    Scheduling is reactive: start() executes the roots, and every completion
    re-evaluates the dependents of the completed step and its parent group on
    the reporting thread. Leaf actions run on a bounded worker pool.

    Each step has its own lock; evaluation and the IN_PROGRESS commit happen
    under it, so a step is committed at most once however many of its
    dependencies complete at the same time.
    """

    def __init__(
        self,
        scenario: Scenario,
        flow: ProcessFlow,
        executor: Optional[StepExecutor] = None,
        listeners: Iterable[StepProcessListener] = (),
        config: Optional[CoordinatorConfig] = None,
        store: Optional[ScenarioStore] = None,
        console: Optional[Console] = None,
    ):
        self.scenario = scenario
        self.flow = flow
        self.config = config or CoordinatorConfig()
        self.log_dir: Optional[Path] = self.config.log_dir or (
            Path(scenario.log_dir) if scenario.log_dir else None
        )
        self.console = console or (Console(debug=True) if self.config.debug else get_console())

        self._store = store or ScenarioStore(flow, scenario.name)
        self._executor = executor or ShellExecutor()
        self._listeners = ListenerSet(listeners)
        self._delegate = _Delegate(self)

        # Re-entrant: stop() takes step locks and may run on a thread that holds one.
        self._locks: Dict[Step, threading.RLock] = {s: threading.RLock() for s in flow.get_vertexes()}
        self._latch = CountDownLatch(len(flow))
        self._pool = ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix=f"stepflow-{scenario.name}",
        )
        self._stopped = threading.Event()
        self._started = False
        self._start_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Starts execution of the process flow graph."""
        with self._start_lock:
            if self._started:
                raise RuntimeError(f"Scenario {self.scenario.name!r} already started")
            self._started = True
        self.console.print_debug(f"starting {self.scenario.name} ({len(self.flow)} steps)")
        self._execute_roots(None)

    def wait_for(self, timeout: Optional[float] = None) -> int:
        """
        Waits for completion of the entire process flow.

        Returns:
            0 if every step succeeded, 1 otherwise.

        Raises:
            WaitTimeoutError: if `timeout` elapses first.
        """
        if not self._latch.wait(timeout):
            raise WaitTimeoutError(timeout, self._store.pending())
        self._pool.shutdown(wait=False)
        return 1 if self._store.has_failures() else 0

    def run(self, timeout: Optional[float] = None) -> int:
        """start() followed by wait_for()."""
        self.start()
        return self.wait_for(timeout)

    def stop(self) -> None:
        """
        Cancels queued and running work and fails every unfinished step,
        so wait_for() returns promptly.
        """
        if self._stopped.is_set():
            return
        self._stopped.set()
        self.console.print_debug(f"stopping {self.scenario.name}")
        self._pool.shutdown(wait=False, cancel_futures=True)

        # Fail first: actions released by cancel() must not record success.
        for step in [*self.flow.leaves(), *self.flow.groups()]:
            with self._locks[step]:
                failed = self._store.complete(step, Status.FAILED)
            if failed:
                self._delegate.completed(step, 1)

        try:
            self._executor.cancel()
        except Exception as e:
            self.console.print_error("Executor cancel failed", str(e))
            self.console.print_exception(e)

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def get_steps(self) -> FrozenSet[Step]:
        return self._store.get_steps()

    def get_status(self, step: Step) -> Status:
        return self._store.get_status(step)

    def get_statuses(self) -> Dict[str, Status]:
        return self._store.snapshot()

    def evaluate(self, step: Step) -> Directive:
        """Directive the coordinator would take for `step` right now."""
        with self._locks[step]:
            return self._next_action(step)

    def add_listener(self, listener: StepProcessListener) -> None:
        self._listeners.add(listener)

    def remove_listener(self, listener: StepProcessListener) -> None:
        self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _execute_roots(self, group: Optional[Group]) -> None:
        for step in self.flow.roots(group):
            self._execute(step)

    def _execute(self, step: Step) -> None:
        try:
            with self._locks[step]:
                directive = self._next_action(step)
                if directive is Directive.NOOP or not self._store.begin(step):
                    return

            if step.kind is StepKind.GROUP:
                group = cast(Group, step)
                self._delegate.on_start(group)
                if directive is Directive.RUN:
                    self._execute_roots(group)
                    if not group.children:
                        self._complete_group_if_done(group)
                else:
                    self._skip_group(group)
            else:
                self._pool.submit(self._process, step, directive is Directive.SKIP)
        except Exception as e:
            self._fault(step, e)

    def _next_action(self, step: Step) -> Directive:
        if self._store.get_status(step) is not Status.WAITING:
            return Directive.NOOP
        if self._stopped.is_set():
            return Directive.NOOP
        if step.group is not None and self._store.get_status(step.group) is not Status.IN_PROGRESS:
            return Directive.NOOP

        # Any unresolved dependency wins over a failed one; SKIP is only
        # decided once every dependency is terminal.
        dependencies = [(d, self._store.get_status(d.dst)) for d in self.flow.get_edges_from(step)]
        if any(not status.is_terminal for _, status in dependencies):
            return Directive.NOOP
        if any(status is Status.FAILED and not d.soft for d, status in dependencies):
            return Directive.SKIP
        return Directive.RUN

    def _skip_group(self, group: Group) -> None:
        """Fail every descendant of a skipped group without running anything."""
        committed = []
        for child in group.descendants():
            with self._locks[child]:
                if not self._store.begin(child):
                    continue
            committed.append(child)

        groups = [cast(Group, c) for c in committed if c.kind is StepKind.GROUP]
        for g in groups:
            self._delegate.on_start(g)
        for child in committed:
            if child.kind is StepKind.LEAF:
                self._delegate.on_completion(child, 1)
        for g in [group, *groups]:
            if not g.children:
                self._delegate.on_completion(g, 1)

    def _process(self, step: Step, skip: bool) -> None:
        """Worker-pool body for a leaf step."""
        code = 1
        if not skip:
            try:
                self._delegate.on_start(step)
                code = self._executor.execute(step, self._delegate)
            except Exception as e:
                self.console.print_error("Step execution failed", f"{step.name}: {e}")
                self.console.print_exception(e)
                code = 1
        self._delegate.on_completion(step, code)

    def _on_step_completed(self, step: Step) -> None:
        for dependency in self.flow.get_edges_to(step):
            self._execute(dependency.src)
        if step.group is not None:
            self._complete_group_if_done(step.group)

    def _complete_group_if_done(self, group: Group) -> None:
        with self._locks[group]:
            if self._store.get_status(group) is not Status.IN_PROGRESS:
                return
            statuses = [self._store.get_status(child) for child in group.children]
            if not all(s.is_terminal for s in statuses):
                return
            failed = any(s is Status.FAILED for s in statuses)
        self._delegate.on_completion(group, 1 if failed else 0)

    def _fault(self, step: Step, exc: Exception) -> None:
        self.console.print_error("Scheduling failed", f"{step.name}: {exc}")
        self.console.print_exception(exc)
        if step.kind is StepKind.GROUP:
            group = cast(Group, step)
            with self._locks[group]:
                self._store.begin(group)
            self._skip_group(group)
            self._complete_group_if_done(group)
        else:
            self._delegate.on_completion(step, 1)


class _Delegate(StepProcessListener):
    """
    Internal listener between the worker pool and the coordinator.

    Fans events out to registered listeners; on completion it records the
    terminal status and drives the coordinator forward.
    """

    def __init__(self, coordinator: Coordinator):
        self._coordinator = coordinator

    def on_start(self, step: Step) -> None:
        self._fan_out("on_start", step)

    def on_output(self, step: Step, line: str) -> None:
        self._fan_out("on_output", step, line)

    def on_completion(self, step: Step, exit_code: int) -> None:
        status = Status.SUCCEEDED if exit_code == 0 else Status.FAILED
        if self._coordinator._store.complete(step, status):
            self.completed(step, exit_code)

    def completed(self, step: Step, exit_code: int) -> None:
        """Drive the coordinator after `step` has been recorded as terminal."""
        c = self._coordinator
        try:
            self._fan_out("on_completion", step, exit_code)
            c._on_step_completed(step)
        finally:
            c._latch.count_down()

    def _fan_out(self, event: str, step: Step, *args) -> None:
        c = self._coordinator
        for listener in c._listeners.snapshot():
            try:
                getattr(listener, event)(step, *args)
            except Exception as e:
                c.console.print_error("Listener failed", f"{event}({step.name}): {e}")
                c.console.print_exception(e)
