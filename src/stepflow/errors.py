from __future__ import annotations

from typing import Iterable


class StepflowError(Exception):
    """Base class for all stepflow errors."""


class FlowDefinitionError(StepflowError, ValueError):
    """The process flow is malformed (duplicate names, missing deps, cycles)."""


class UnknownStepError(StepflowError, KeyError):
    """A step that is not part of the process flow was referenced."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown step: {self.name!r}"


class WaitTimeoutError(StepflowError, TimeoutError):
    """Raised by Coordinator.wait_for() when the timeout elapses first."""

    def __init__(self, timeout: float, pending: Iterable[str] = ()):
        self.timeout = timeout
        self.pending = sorted(pending)
        super().__init__(str(self))

    def __str__(self) -> str:
        msg = f"Process flow did not complete within {self.timeout}s"
        if self.pending:
            msg += f" (pending: {', '.join(self.pending)})"
        return msg
