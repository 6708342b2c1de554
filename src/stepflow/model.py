# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Dict, FrozenSet, Iterable, List, Optional

from .errors import UnknownStepError


class StepKind(str, Enum):
    """Tag telling leaf steps and groups apart."""
    LEAF = "leaf"
    GROUP = "group"


@dataclass(eq=False)
class Step:
    """
    A single schedulable unit of work.

    Identity is the step name. `command`, `cwd` and `env` describe the action
    for the executor; the coordinator never looks at them.
    """
    name: str
    command: str | None = None
    cwd: str | None = None
    env: Dict[str, str] = field(default_factory=dict)
    group: Optional["Group"] = field(default=None, repr=False)

    kind: ClassVar[StepKind] = StepKind.LEAF

    @property
    def is_group(self) -> bool:
        return self.kind is StepKind.GROUP

    def __hash__(self) -> int:
        return hash(self.name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Step):
            return NotImplemented
        return self.name == other.name


@dataclass(eq=False)
class Group(Step):
    """A step composed of child steps. Its status is derived from them."""
    children: List[Step] = field(default_factory=list, repr=False)

    kind: ClassVar[StepKind] = StepKind.GROUP

    def add_child(self, child: Step) -> None:
        child.group = self
        self.children.append(child)

    def descendants(self) -> List[Step]:
        """All steps nested under this group, depth first."""
        out: List[Step] = []
        for child in self.children:
            out.append(child)
            if child.is_group:
                out.extend(child.descendants())  # type: ignore[attr-defined]
        return out


@dataclass(frozen=True)
class Dependency:
    """
    Directed edge: `src` depends on `dst`.

    A soft dependency only orders `src` after `dst`; a failure of `dst` does
    not prevent `src` from running.
    """
    src: Step
    dst: Step
    soft: bool = False

    def __str__(self) -> str:
        marker = "~" if self.soft else ""
        return f"{self.src.name} -> {marker}{self.dst.name}"


@dataclass(frozen=True)
class Scenario:
    """Identity of a scenario run; `log_dir` is where collaborators may write."""
    name: str
    log_dir: str | None = None


class ProcessFlow:
    """Vertices (steps and groups) and edges (dependencies) of one scenario."""

    def __init__(self, steps: Iterable[Step], dependencies: Iterable[Dependency] = ()):
        self._steps: FrozenSet[Step] = frozenset(steps)
        self._by_name: Dict[str, Step] = {s.name: s for s in self._steps}
        self._edges_from: Dict[Step, FrozenSet[Dependency]] = {}
        self._edges_to: Dict[Step, FrozenSet[Dependency]] = {}

        out: Dict[Step, set] = {s: set() for s in self._steps}
        inc: Dict[Step, set] = {s: set() for s in self._steps}
        for dep in dependencies:
            out.setdefault(dep.src, set()).add(dep)
            inc.setdefault(dep.dst, set()).add(dep)
        self._edges_from = {s: frozenset(d) for s, d in out.items()}
        self._edges_to = {s: frozenset(d) for s, d in inc.items()}

    def get_vertexes(self) -> FrozenSet[Step]:
        return self._steps

    def get_edges(self) -> FrozenSet[Dependency]:
        return frozenset(d for deps in self._edges_from.values() for d in deps)

    def get_edges_from(self, step: Step) -> FrozenSet[Dependency]:
        """Dependencies `step` waits on."""
        return self._edges_from.get(step, frozenset())

    def get_edges_to(self, step: Step) -> FrozenSet[Dependency]:
        """Dependencies of other steps on `step`."""
        return self._edges_to.get(step, frozenset())

    def get_step(self, name: str) -> Step:
        try:
            return self._by_name[name]
        except KeyError:
            raise UnknownStepError(name) from None

    def roots(self, group: Optional[Group] = None) -> List[Step]:
        """
        Steps that can be considered as soon as their scope is released.

        Globally (group=None): top-level steps with no dependencies at all.
        Within a group: children with no dependency on a sibling. Their
        dependencies outside the group are still checked at evaluation time.
        """
        if group is None:
            candidates = [s for s in self._steps if s.group is None]
            return sorted(
                (s for s in candidates if not self.get_edges_from(s)),
                key=lambda s: s.name,
            )

        siblings = set(group.children)
        return [
            child for child in group.children
            if not any(d.dst in siblings for d in self.get_edges_from(child))
        ]

    def leaves(self) -> List[Step]:
        return sorted((s for s in self._steps if not s.is_group), key=lambda s: s.name)

    def groups(self) -> List[Group]:
        return sorted((s for s in self._steps if s.is_group), key=lambda s: s.name)  # type: ignore[misc]

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, step: object) -> bool:
        return step in self._steps
