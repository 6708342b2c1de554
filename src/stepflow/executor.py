# executor.py
from __future__ import annotations

import os
import subprocess
import threading
from pathlib import Path
from typing import Dict, Optional

from .listener import StepProcessListener
from .model import Step


class StepExecutor:
    """
    Runs the action of a leaf step.

    execute() is called on a worker thread, may stream output through
    `listener.on_output` and returns the exit code (0 = success).
    """

    def execute(self, step: Step, listener: StepProcessListener) -> int:
        raise NotImplementedError

    def cancel(self) -> None:
        """Abort actions still running; called when the coordinator stops."""


class ShellExecutor(StepExecutor):
    """Runs `step.command` through the shell, one line of output at a time."""

    def __init__(self, base_dir: str | Path = ".", env: Optional[Dict[str, str]] = None):
        self.base_dir = Path(base_dir).resolve()
        self.env = dict(env or {})
        self._procs: Dict[str, subprocess.Popen] = {}
        self._lock = threading.Lock()
        self._cancelled = False

    def execute(self, step: Step, listener: StepProcessListener) -> int:
        if not step.command:
            return 0

        cwd = (self.base_dir / (step.cwd or ".")).resolve()
        if not cwd.exists():
            listener.on_output(step, f"working directory not found: {cwd}")
            return 1

        env = os.environ.copy()
        env.update(self.env)
        env.update(step.env or {})

        with self._lock:
            if self._cancelled:
                return 1
            proc = subprocess.Popen(
                step.command,
                shell=True,
                cwd=str(cwd),
                env=env,
                text=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                bufsize=1,
            )
            self._procs[step.name] = proc

        try:
            for line in proc.stdout:
                listener.on_output(step, line.rstrip("\n"))
            return proc.wait()
        finally:
            with self._lock:
                self._procs.pop(step.name, None)

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            procs = list(self._procs.values())
        for proc in procs:
            if proc.poll() is None:
                proc.terminate()
