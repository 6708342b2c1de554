from .coordinator import Coordinator, Directive
from .dsl import flow, group, step, FlowBuilder
from .errors import FlowDefinitionError, StepflowError, UnknownStepError, WaitTimeoutError
from .executor import ShellExecutor, StepExecutor
from .listener import ConsoleListener, StepProcessListener
from .model import Dependency, Group, ProcessFlow, Scenario, Step, StepKind
from .settings import CoordinatorConfig
from .store import ScenarioStore, Status

__all__ = [
    "Coordinator", "Directive",
    "flow", "group", "step", "FlowBuilder",
    "FlowDefinitionError", "StepflowError", "UnknownStepError", "WaitTimeoutError",
    "ShellExecutor", "StepExecutor",
    "ConsoleListener", "StepProcessListener",
    "Dependency", "Group", "ProcessFlow", "Scenario", "Step", "StepKind",
    "CoordinatorConfig",
    "ScenarioStore", "Status",
]
