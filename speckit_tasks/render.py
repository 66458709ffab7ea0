"""Dependency graph renderers: Mermaid flowchart, Graphviz DOT and ASCII tree.

All renderers refuse to run on a cyclic document; the check covers the whole
document, including completed tasks hidden from the output.
"""

from __future__ import annotations

import re
from typing import Dict, List, Set

from .errors import UnsupportedFormatError
from .graph import DependencyGraph, build_dependency_graph, dependents_of, ensure_acyclic
from .models import Task, TaskId, TaskStatus

FORMATS = ("mermaid", "graphviz", "ascii")

DIAGRAM_LABEL_LIMIT = 40
TREE_LABEL_LIMIT = 50
DEFAULT_PHASE = "default"

STATUS_COLORS: Dict[TaskStatus, str] = {
    TaskStatus.PENDING: "#e0e0e0",
    TaskStatus.IN_PROGRESS: "#fff59d",
    TaskStatus.COMPLETED: "#c8e6c9",
}
STATUS_ICONS: Dict[TaskStatus, str] = {
    TaskStatus.PENDING: "○",
    TaskStatus.IN_PROGRESS: "~",
    TaskStatus.COMPLETED: "✓",
}
_MERMAID_CLASSES: Dict[TaskStatus, str] = {
    TaskStatus.PENDING: "pending",
    TaskStatus.IN_PROGRESS: "inProgress",
    TaskStatus.COMPLETED: "completed",
}


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def render_graph(
    tasks: List[Task],
    fmt: str = "mermaid",
    *,
    include_completed: bool = False,
    group_by_phase: bool = False,
) -> str:
    """Render ``tasks`` in the requested format."""
    if fmt not in FORMATS:
        raise UnsupportedFormatError(f"Unsupported format: {fmt}")

    graph = build_dependency_graph(tasks)
    ensure_acyclic(graph)

    visible = [
        task for task in graph.nodes.values()
        if include_completed or not task.completed
    ]

    if fmt == "mermaid":
        return render_mermaid(visible, graph, group_by_phase=group_by_phase)
    if fmt == "graphviz":
        return render_graphviz(visible, graph, group_by_phase=group_by_phase)
    return render_ascii_tree(visible, graph)


def _visible_edges(visible: List[Task], graph: DependencyGraph) -> List[tuple]:
    shown = {task.task_id for task in visible}
    edges = []
    for task in visible:
        for dep in dict.fromkeys(graph.dependencies(task.task_id)):
            if dep in shown:
                edges.append((dep, task.task_id))
    return edges


def _group_by_phase(tasks: List[Task]) -> Dict[str, List[Task]]:
    phases: Dict[str, List[Task]] = {}
    for task in tasks:
        phases.setdefault(task.metadata.phase or DEFAULT_PHASE, []).append(task)
    return phases


def _safe_identifier(text: str) -> str:
    return re.sub(r"\W+", "_", text).strip("_") or DEFAULT_PHASE


# ----------------------------------------------------------------------
# Mermaid
# ----------------------------------------------------------------------

def _mermaid_escape(text: str) -> str:
    return text.replace('"', "#quot;").replace("[", "#91;").replace("]", "#93;")


def _mermaid_node(task: Task, indent: str) -> str:
    label = f"{task.task_id}: {_mermaid_escape(truncate(task.description, DIAGRAM_LABEL_LIMIT))}"
    return f'{indent}{task.task_id}["{label}"]:::{_MERMAID_CLASSES[task.status]}'


def render_mermaid(tasks: List[Task], graph: DependencyGraph, *, group_by_phase: bool = False) -> str:
    lines = [
        "```mermaid",
        "flowchart LR",
        f"  classDef pending fill:{STATUS_COLORS[TaskStatus.PENDING]},stroke:#666,stroke-width:2px",
        f"  classDef inProgress fill:{STATUS_COLORS[TaskStatus.IN_PROGRESS]},stroke:#f57f17,stroke-width:3px",
        f"  classDef completed fill:{STATUS_COLORS[TaskStatus.COMPLETED]},stroke:#388e3c,stroke-width:2px",
        "",
    ]

    if group_by_phase:
        for phase, phase_tasks in _group_by_phase(tasks).items():
            lines.append(f'  subgraph {_safe_identifier(phase)}["{_mermaid_escape(phase)}"]')
            lines.extend(_mermaid_node(task, "    ") for task in phase_tasks)
            lines.append("  end")
            lines.append("")
    else:
        lines.extend(_mermaid_node(task, "  ") for task in tasks)
        lines.append("")

    lines.extend(f"  {dep} --> {task_id}" for dep, task_id in _visible_edges(tasks, graph))
    lines.append("```")
    return "\n".join(lines)


# ----------------------------------------------------------------------
# Graphviz DOT
# ----------------------------------------------------------------------

def _dot_escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def _dot_node(task: Task, indent: str) -> str:
    label = f"{task.task_id}: {_dot_escape(truncate(task.description, DIAGRAM_LABEL_LIMIT))}"
    return f'{indent}{task.task_id} [label="{label}", fillcolor="{STATUS_COLORS[task.status]}", style=filled];'


def render_graphviz(tasks: List[Task], graph: DependencyGraph, *, group_by_phase: bool = False) -> str:
    lines = [
        "digraph TaskDependencies {",
        "  rankdir=LR;",
        "  node [shape=box, style=rounded];",
        "",
    ]

    if group_by_phase:
        for phase, phase_tasks in _group_by_phase(tasks).items():
            lines.append(f"  subgraph cluster_{_safe_identifier(phase)} {{")
            lines.append(f'    label="{_dot_escape(phase)}";')
            lines.extend(_dot_node(task, "    ") for task in phase_tasks)
            lines.append("  }")
    else:
        lines.extend(_dot_node(task, "  ") for task in tasks)

    lines.append("")
    lines.extend(f"  {dep} -> {task_id};" for dep, task_id in _visible_edges(tasks, graph))
    lines.append("}")
    return "\n".join(lines) + "\n"


# ----------------------------------------------------------------------
# ASCII tree
# ----------------------------------------------------------------------

def _tree_label(task: Task) -> str:
    return f"{STATUS_ICONS[task.status]} {task.task_id}: {truncate(task.description, TREE_LABEL_LIMIT)}"


def render_ascii_tree(tasks: List[Task], graph: DependencyGraph) -> str:
    """Indented tree from dependency-free tasks down to their dependents.

    Dependencies on tasks that exist but are hidden (completed) count as
    satisfied when choosing roots; dangling ones do not, so tasks with broken
    links end up in the unreachable listing.
    """
    shown: Dict[TaskId, Task] = {task.task_id: task for task in tasks}
    hidden: Set[TaskId] = set(graph.nodes) - set(shown)
    reverse = dependents_of(graph)

    def is_root(task: Task) -> bool:
        return all(dep in hidden for dep in graph.dependencies(task.task_id))

    roots = [task for task in tasks if is_root(task)]
    visited: Set[TaskId] = set()
    lines = ["Task Dependency Tree:", ""]

    def children(task_id: TaskId) -> List[Task]:
        return [shown[child] for child in reverse.get(task_id, []) if child in shown and child not in visited]

    # Explicit stack of (task, prefix, is_last) keeps deep chains off the call stack
    stack = [(root, "", index == len(roots) - 1) for index, root in enumerate(roots)]
    stack.reverse()
    while stack:
        task, prefix, is_last = stack.pop()
        if task.task_id in visited:
            continue
        visited.add(task.task_id)

        connector = "└── " if is_last else "├── "
        lines.append(f"{prefix}{connector}{_tree_label(task)}")

        kids = children(task.task_id)
        child_prefix = prefix + ("    " if is_last else "│   ")
        for index in range(len(kids) - 1, -1, -1):
            stack.append((kids[index], child_prefix, index == len(kids) - 1))

    unreachable = [task for task in tasks if task.task_id not in visited]
    if unreachable:
        lines.append("")
        lines.append("Unreachable tasks (broken dependencies):")
        for task in unreachable:
            missing = [str(dep) for dep in graph.dependencies(task.task_id) if dep not in graph.nodes]
            suffix = f" [missing: {', '.join(missing)}]" if missing else ""
            lines.append(f"  {STATUS_ICONS[task.status]} {task.task_id}: {task.description}{suffix}")

    return "\n".join(lines) + "\n"
