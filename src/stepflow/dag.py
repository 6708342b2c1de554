# dag.py
from __future__ import annotations

from collections import deque
from typing import Dict, Iterable, List, Set, Tuple

from .errors import FlowDefinitionError
from .model import Dependency, Step


def build_dag(
    steps: Iterable[Step],
    dependencies: Iterable[Dependency],
) -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    """
    Build adjacency and in-degree maps from steps and their dependencies.

    Edge direction follows execution order: dst -> src (dst must resolve
    before src may run).
    """
    names = [s.name for s in steps]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise FlowDefinitionError(f"Duplicate step names found: {dupes}")

    name_set = set(names)
    adj: Dict[str, Set[str]] = {n: set() for n in name_set}
    indeg: Dict[str, int] = {n: 0 for n in name_set}

    for dep in dependencies:
        if dep.dst.name not in name_set:
            raise FlowDefinitionError(
                f"Step '{dep.src.name}' depends on missing step '{dep.dst.name}'. "
                f"Known steps: {sorted(name_set)}"
            )
        if dep.src.name not in adj[dep.dst.name]:
            adj[dep.dst.name].add(dep.src.name)
            indeg[dep.src.name] += 1

    return adj, indeg


def topo_levels(adj: Dict[str, Set[str]], indeg: Dict[str, int]) -> List[List[str]]:
    """
    Convert DAG into topological "levels".
    Steps within a level have no dependency on each other.
    """
    indeg = dict(indeg)  # copy (we mutate it)
    q = deque(sorted(n for n, d in indeg.items() if d == 0))

    levels: List[List[str]] = []
    processed = 0

    while q:
        level: List[str] = []
        for _ in range(len(q)):
            node = q.popleft()
            level.append(node)
            processed += 1

            for child in sorted(adj.get(node, set())):
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)

        levels.append(level)

    if processed != len(indeg):
        remaining = sorted(n for n, d in indeg.items() if d > 0)
        raise FlowDefinitionError(f"Dependency graph has a cycle. Stuck steps: {remaining}")

    return levels


def check_acyclic(steps: Iterable[Step], dependencies: Iterable[Dependency]) -> List[List[str]]:
    """Validate the dependency graph; returns its topological levels."""
    steps = list(steps)
    dependencies = list(dependencies)
    adj, indeg = build_dag(steps, dependencies)
    return topo_levels(adj, indeg)


def check_schedulable(steps: Iterable[Step], dependencies: Iterable[Dependency]) -> None:
    """
    Reject flows that deadlock through group membership.

    A group starts before its children and finishes after them, while a
    step starts only after each of its dependencies has finished. Groups
    get separate start and finish nodes; a leaf is a single node.
    """
    steps = list(steps)

    def start(s: Step) -> Tuple[str, int]:
        return (s.name, 0) if s.is_group else (s.name, 1)

    def finish(s: Step) -> Tuple[str, int]:
        return (s.name, 1)

    adj: Dict[Tuple[str, int], Set[Tuple[str, int]]] = {}
    indeg: Dict[Tuple[str, int], int] = {}
    for s in steps:
        for node in (start(s), finish(s)):
            adj.setdefault(node, set())
            indeg.setdefault(node, 0)

    def edge(before: Tuple[str, int], after: Tuple[str, int]) -> None:
        if before != after and after not in adj[before]:
            adj[before].add(after)
            indeg[after] += 1

    for s in steps:
        for child in getattr(s, "children", ()):
            edge(start(s), start(child))
            edge(finish(child), finish(s))
        edge(start(s), finish(s))
    for dep in dependencies:
        edge(finish(dep.dst), start(dep.src))

    q = deque(n for n, d in indeg.items() if d == 0)
    processed = 0
    while q:
        node = q.popleft()
        processed += 1
        for nxt in adj[node]:
            indeg[nxt] -= 1
            if indeg[nxt] == 0:
                q.append(nxt)

    if processed != len(indeg):
        stuck = sorted({name for (name, _), d in indeg.items() if d > 0})
        raise FlowDefinitionError(
            f"Dependency graph has a cycle through group membership. Stuck steps: {stuck}"
        )
