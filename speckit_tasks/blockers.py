"""Blocked/unblocked classification.

A task is unblocked when it is not completed and every dependency it
declares is completed. A dependency on an identifier with no task line is
unmet: a broken link keeps the task blocked instead of being ignored.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Set

from .graph import DependencyGraph, build_dependency_graph
from .models import BlockerStatus, Task, TaskId


def classify_task(task: Task, completed_ids: Set[TaskId]) -> BlockerStatus:
    if task.completed:
        return BlockerStatus(task.task_id, blocked=False, completed=True)
    # dict.fromkeys keeps order while dropping repeated references
    unmet = [dep for dep in dict.fromkeys(task.metadata.depends) if dep not in completed_ids]
    return BlockerStatus(task.task_id, blocked=bool(unmet), unmet=unmet)


def classify_blockers(
    tasks: List[Task],
    graph: Optional[DependencyGraph] = None,
) -> Dict[TaskId, BlockerStatus]:
    """Blocker status for every task, keyed by identifier in document order.

    With duplicate identifiers the graph's surviving task decides.
    """
    graph = graph or build_dependency_graph(tasks)
    completed_ids = graph.completed_ids()
    return {task_id: classify_task(task, completed_ids) for task_id, task in graph.nodes.items()}


def get_unblocked_tasks(tasks: List[Task], graph: Optional[DependencyGraph] = None) -> List[Task]:
    """Tasks that can be started now, in graph node order."""
    graph = graph or build_dependency_graph(tasks)
    statuses = classify_blockers(tasks, graph)
    return [graph.nodes[task_id] for task_id, status in statuses.items() if status.unblocked]


def get_blocked_tasks(tasks: List[Task], graph: Optional[DependencyGraph] = None) -> List[BlockerStatus]:
    statuses = classify_blockers(tasks, graph)
    return [status for status in statuses.values() if status.blocked]
