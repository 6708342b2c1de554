# src/stepflow/dsl.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from .dag import check_acyclic, check_schedulable
from .errors import FlowDefinitionError
from .model import Dependency, Group, ProcessFlow, Step

SOFT_MARKER = "~"


# ---------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class StepSpec:
    """Declaration of a leaf step, resolved into a Step by flow()."""
    name: str
    command: str | None = None
    needs: Tuple[str, ...] = ()
    cwd: str | None = None
    env: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class GroupSpec:
    """Declaration of a group of steps."""
    name: str
    children: Tuple["Spec", ...] = ()
    needs: Tuple[str, ...] = ()


Spec = Union[StepSpec, GroupSpec]


def parse_need(need: str) -> Tuple[str, bool]:
    """Split a dependency reference into (name, soft)."""
    need = need.strip()
    soft = need.startswith(SOFT_MARKER)
    name = need[len(SOFT_MARKER):].strip() if soft else need
    if not name:
        raise FlowDefinitionError(f"Empty dependency reference: {need!r}")
    return name, soft


# ---------------------------------------------------------------------
# Functional helpers
# ---------------------------------------------------------------------

def step(
    name: str,
    command: str | None = None,
    *,
    needs: Optional[List[str]] = None,
    cwd: str | None = None,
    env: Optional[Dict[str, str]] = None,
) -> StepSpec:
    """Declare a leaf step. Prefix a name in `needs` with '~' for a soft dependency."""
    return StepSpec(
        name=name,
        command=command,
        needs=tuple(needs or ()),
        cwd=cwd,
        env={k: str(v) for k, v in (env or {}).items()},
    )


def group(name: str, *children: Spec, needs: Optional[List[str]] = None) -> GroupSpec:
    """Declare a group; children are released when the group runs."""
    if not children:
        raise FlowDefinitionError(f"group({name!r}) must have at least one child")
    return GroupSpec(name=name, children=tuple(children), needs=tuple(needs or ()))


def flow(*specs: Spec) -> ProcessFlow:
    """
    Resolve declarations into a validated ProcessFlow.

    Users can write:
        from stepflow import flow, group, step

        pf = flow(
            step("build", "make"),
            group("checks", step("unit", "make test"), step("lint", "make lint"),
                  needs=["build"]),
            step("report", "make report", needs=["~checks"]),
        )
    """
    builder = FlowBuilder()
    for spec in specs:
        builder.add(spec)
    return builder.build()


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class FlowBuilder:
    def __init__(self):
        self._specs: List[Spec] = []

    def add(self, spec: Spec):
        self._specs.append(spec)
        return self

    def define_step(self, name: str, command: str | None = None, **kwargs):
        return self.add(step(name, command, **kwargs))

    def define_group(self, name: str, *children: Spec, needs: Optional[List[str]] = None):
        return self.add(group(name, *children, needs=needs))

    def build(self) -> ProcessFlow:
        steps: Dict[str, Step] = {}
        needs: List[Tuple[Step, Tuple[str, ...]]] = []

        def materialize(spec: Spec, parent: Optional[Group]) -> None:
            if spec.name in steps:
                raise FlowDefinitionError(f"Duplicate step name: {spec.name}")
            if isinstance(spec, GroupSpec):
                node: Step = Group(name=spec.name)
            else:
                node = Step(name=spec.name, command=spec.command, cwd=spec.cwd, env=dict(spec.env))
            if parent is not None:
                parent.add_child(node)
            steps[spec.name] = node
            needs.append((node, spec.needs))
            if isinstance(spec, GroupSpec):
                for child in spec.children:
                    materialize(child, node)  # type: ignore[arg-type]

        for spec in self._specs:
            materialize(spec, None)

        dependencies: List[Dependency] = []
        for src, refs in needs:
            for ref in refs:
                name, soft = parse_need(ref)
                if name not in steps:
                    raise FlowDefinitionError(
                        f"Step '{src.name}' depends on missing step '{name}'. "
                        f"Known steps: {sorted(steps)}"
                    )
                dst = steps[name]
                if dst is src:
                    raise FlowDefinitionError(f"Step '{src.name}' depends on itself")
                if _is_ancestor(dst, src) or _is_ancestor(src, dst):
                    raise FlowDefinitionError(
                        f"Step '{src.name}' cannot depend on '{dst.name}': "
                        f"one contains the other"
                    )
                dependencies.append(Dependency(src=src, dst=dst, soft=soft))

        check_acyclic(steps.values(), dependencies)
        check_schedulable(steps.values(), dependencies)
        return ProcessFlow(steps.values(), dependencies)


def _is_ancestor(candidate: Step, step: Step) -> bool:
    parent = step.group
    while parent is not None:
        if parent is candidate:
            return True
        parent = parent.group
    return False
