"""Dependency graph construction and analysis.

Edges point from a dependent task to its prerequisites, exactly as written in
``depends:`` metadata. References to identifiers that have no task line
(dangling edges) are kept in ``edges`` but never followed during traversal.

Traversals are iterative so long dependency chains cannot hit the
interpreter recursion limit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Set

from .errors import CircularDependencyError, DuplicateTaskIdError
from .models import Task, TaskId
from .tasks_logging import get_logger

logger = get_logger("graph")


class DuplicatePolicy(str, Enum):
    """How ``build_dependency_graph`` treats a repeated task identifier."""

    LAST_WINS = "last_wins"
    REJECT = "reject"


@dataclass(slots=True)
class DependencyGraph:
    nodes: Dict[TaskId, Task] = field(default_factory=dict)
    edges: Dict[TaskId, List[TaskId]] = field(default_factory=dict)
    duplicates: List[TaskId] = field(default_factory=list)

    def dependencies(self, task_id: TaskId) -> List[TaskId]:
        return self.edges.get(task_id, [])

    def dangling(self) -> Dict[TaskId, List[TaskId]]:
        """Dependencies that name no task in the document, per dependent."""
        missing: Dict[TaskId, List[TaskId]] = {}
        for task_id, deps in self.edges.items():
            absent = [dep for dep in deps if dep not in self.nodes]
            if absent:
                missing[task_id] = absent
        return missing

    def completed_ids(self) -> Set[TaskId]:
        return {task_id for task_id, task in self.nodes.items() if task.completed}


def build_dependency_graph(
    tasks: Iterable[Task],
    duplicates: DuplicatePolicy = DuplicatePolicy.LAST_WINS,
) -> DependencyGraph:
    """Build node and edge maps keyed by TaskId in one pass.

    With ``LAST_WINS`` a repeated identifier replaces the earlier task and its
    edges, keeping the first occurrence's position in iteration order. With
    ``REJECT`` any repeat raises DuplicateTaskIdError.
    """
    graph = DependencyGraph()

    for task in tasks:
        if task.task_id in graph.nodes and task.task_id not in graph.duplicates:
            graph.duplicates.append(task.task_id)
        graph.nodes[task.task_id] = task
        graph.edges[task.task_id] = list(task.metadata.depends)

    if graph.duplicates:
        if duplicates is DuplicatePolicy.REJECT:
            raise DuplicateTaskIdError(graph.duplicates)
        logger.warning(
            "Duplicate task identifiers, later lines win: %s",
            ", ".join(str(task_id) for task_id in graph.duplicates),
        )

    return graph


def dependents_of(graph: DependencyGraph) -> Dict[TaskId, List[TaskId]]:
    """Reverse adjacency: prerequisite -> tasks that depend on it, in node order."""
    reverse: Dict[TaskId, List[TaskId]] = {task_id: [] for task_id in graph.nodes}
    for task_id, deps in graph.edges.items():
        for dep in dict.fromkeys(deps):
            if dep in reverse:
                reverse[dep].append(task_id)
    return reverse


def detect_circular_dependencies(graph: DependencyGraph) -> List[TaskId]:
    """Return every task that lies on a dependency cycle, in node order.

    Uses Tarjan's strongly connected components: a task is on a cycle when
    its component has more than one member or it depends on itself. The
    result is empty iff the graph is acyclic.
    """
    index_of: Dict[TaskId, int] = {}
    lowlink: Dict[TaskId, int] = {}
    on_stack: Set[TaskId] = set()
    stack: List[TaskId] = []
    cyclic: Set[TaskId] = set()
    counter = 0

    for start in graph.nodes:
        if start in index_of:
            continue

        index_of[start] = lowlink[start] = counter
        counter += 1
        stack.append(start)
        on_stack.add(start)
        work = [(start, iter(graph.dependencies(start)))]

        while work:
            node, deps = work[-1]
            advanced = False
            for dep in deps:
                if dep not in graph.nodes:
                    continue
                if dep not in index_of:
                    index_of[dep] = lowlink[dep] = counter
                    counter += 1
                    stack.append(dep)
                    on_stack.add(dep)
                    work.append((dep, iter(graph.dependencies(dep))))
                    advanced = True
                    break
                if dep in on_stack:
                    lowlink[node] = min(lowlink[node], index_of[dep])
            if advanced:
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])

            if lowlink[node] == index_of[node]:
                component: List[TaskId] = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                if len(component) > 1 or node in graph.dependencies(node):
                    cyclic.update(component)

    return [task_id for task_id in graph.nodes if task_id in cyclic]


def ensure_acyclic(graph: DependencyGraph) -> None:
    """Raise CircularDependencyError naming every task on a cycle."""
    circular = detect_circular_dependencies(graph)
    if circular:
        logger.warning(
            "Circular dependencies detected: %s", ", ".join(str(task_id) for task_id in circular)
        )
        raise CircularDependencyError(circular)


def topological_sort(tasks: List[Task], graph: DependencyGraph | None = None) -> List[Task]:
    """Order tasks so every dependency comes before its dependents.

    Post-order depth-first traversal seeded from each task in input order,
    so the result is deterministic. Dangling dependencies are skipped.
    Raises CircularDependencyError when the graph has a cycle.
    """
    graph = graph or build_dependency_graph(tasks)
    ensure_acyclic(graph)

    ordered: List[Task] = []
    visited: Set[TaskId] = set()

    for task in tasks:
        if task.task_id in visited:
            continue
        visited.add(task.task_id)
        work = [(task.task_id, iter(graph.dependencies(task.task_id)))]

        while work:
            node, deps = work[-1]
            for dep in deps:
                if dep in graph.nodes and dep not in visited:
                    visited.add(dep)
                    work.append((dep, iter(graph.dependencies(dep))))
                    break
            else:
                work.pop()
                ordered.append(graph.nodes[node])

    return ordered
