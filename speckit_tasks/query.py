"""Task filtering and sorting.

Criteria left as ``None`` are unset: a preset may fill them, and anything
still unset falls back to the defaults (match everything, sort by id).
Explicit criteria always win over the preset.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional

from .blockers import classify_blockers
from .errors import InvalidQueryError
from .graph import build_dependency_graph, topological_sort
from .models import PRIORITIES, Task, TaskStatus
from .parser import marker_for_status, metadata_parts

STATUS_CHOICES = ("pending", "in_progress", "completed", "all")
PRIORITY_CHOICES = PRIORITIES + ("all",)
BLOCKER_CHOICES = ("blocked", "unblocked", "all")
SORT_CHOICES = ("id", "priority", "dependencies", "phase")

PHASE_ORDER = ("setup", "core", "polish")
_PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}


@dataclass(slots=True)
class FilterCriteria:
    status: Optional[str] = None
    phase: Optional[str] = None
    task_type: Optional[str] = None
    priority: Optional[str] = None
    tags: Optional[List[str]] = None
    blocker: Optional[str] = None
    sort_by: Optional[str] = None
    limit: Optional[int] = None
    preset: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {item.name: getattr(self, item.name) for item in fields(self)}


PRESETS: Dict[str, FilterCriteria] = {
    "next": FilterCriteria(status="pending", blocker="unblocked", sort_by="priority"),
    "frontend": FilterCriteria(task_type="frontend", status="pending", blocker="unblocked"),
    "backend": FilterCriteria(task_type="backend", status="pending", blocker="unblocked"),
    "ready": FilterCriteria(status="pending", blocker="unblocked", priority="high"),
    "cleanup": FilterCriteria(phase="polish", priority="low"),
}

_DEFAULTS = FilterCriteria(status="all", priority="all", blocker="all", sort_by="id")


def resolve_criteria(criteria: FilterCriteria) -> FilterCriteria:
    """Layer explicit criteria over the preset, then over the defaults."""
    preset_name = criteria.preset if criteria.preset not in (None, "", "none") else None
    if preset_name is not None and preset_name not in PRESETS:
        raise InvalidQueryError(
            f"Unknown preset '{preset_name}'. Available presets: {', '.join(PRESETS)}"
        )

    resolved = {}
    for item in fields(FilterCriteria):
        name = item.name
        value = getattr(criteria, name)
        if value is None and preset_name is not None:
            value = getattr(PRESETS[preset_name], name)
        if value is None:
            value = getattr(_DEFAULTS, name)
        resolved[name] = value
    resolved["preset"] = preset_name or "none"

    result = FilterCriteria(**resolved)
    _validate(result)
    return result


def _validate(criteria: FilterCriteria) -> None:
    checks = (
        ("status", criteria.status, STATUS_CHOICES),
        ("priority", criteria.priority, PRIORITY_CHOICES),
        ("blocker", criteria.blocker, BLOCKER_CHOICES),
        ("sort_by", criteria.sort_by, SORT_CHOICES),
    )
    for name, value, choices in checks:
        if value not in choices:
            raise InvalidQueryError(f"Invalid {name} '{value}'. Expected one of: {', '.join(choices)}")
    if criteria.limit is not None and criteria.limit < 0:
        raise InvalidQueryError("limit must be zero or positive")


def _matches(value: Optional[str], wanted: Optional[str]) -> bool:
    return value is not None and value.casefold() == wanted.casefold()


def filter_tasks(tasks: List[Task], criteria: FilterCriteria) -> List[Task]:
    """Apply ``criteria`` to ``tasks`` and return the sorted, limited result."""
    criteria = resolve_criteria(criteria)
    graph = build_dependency_graph(tasks)
    filtered = list(graph.nodes.values())

    if criteria.status != "all":
        wanted = TaskStatus(criteria.status)
        filtered = [task for task in filtered if task.status is wanted]

    if criteria.phase:
        filtered = [task for task in filtered if _matches(task.metadata.phase, criteria.phase)]

    if criteria.task_type:
        filtered = [task for task in filtered if _matches(task.metadata.type, criteria.task_type)]

    if criteria.priority != "all":
        filtered = [task for task in filtered if task.metadata.priority == criteria.priority]

    if criteria.tags:
        wanted_tags = {tag.casefold() for tag in criteria.tags}
        filtered = [
            task for task in filtered
            if wanted_tags <= {tag.casefold() for tag in task.metadata.tags}
        ]

    if criteria.blocker != "all":
        statuses = classify_blockers(tasks, graph)
        if criteria.blocker == "blocked":
            filtered = [task for task in filtered if statuses[task.task_id].blocked]
        else:
            filtered = [task for task in filtered if statuses[task.task_id].unblocked]

    filtered = sort_tasks(filtered, criteria.sort_by, tasks)

    if criteria.limit:
        filtered = filtered[: criteria.limit]
    return filtered


def _phase_rank(task: Task) -> int:
    phase = (task.metadata.phase or "").casefold()
    return PHASE_ORDER.index(phase) if phase in PHASE_ORDER else len(PHASE_ORDER)


def sort_tasks(tasks: List[Task], sort_by: str, all_tasks: Optional[List[Task]] = None) -> List[Task]:
    """Sort ``tasks``; priority and phase sorts are stable within a bucket.

    ``dependencies`` orders by a topological sort of ``all_tasks`` (the whole
    document) so prerequisites filtered out still constrain the order.
    """
    if sort_by == "priority":
        return sorted(tasks, key=lambda task: _PRIORITY_RANK[task.effective_priority])

    if sort_by == "dependencies":
        order = topological_sort(all_tasks if all_tasks is not None else tasks)
        wanted = {task.task_id for task in tasks}
        return [task for task in order if task.task_id in wanted]

    if sort_by == "phase":
        return sorted(tasks, key=_phase_rank)

    return sorted(tasks, key=lambda task: task.task_id.sort_key)


def format_filter_report(tasks: List[Task], total: int, criteria: FilterCriteria) -> str:
    """Markdown listing of ``tasks`` under the resolved ``criteria``."""
    shown = [
        ("Preset", criteria.preset if criteria.preset != "none" else None),
        ("Status", criteria.status if criteria.status != "all" else None),
        ("Phase", criteria.phase),
        ("Type", criteria.task_type),
        ("Priority", criteria.priority if criteria.priority != "all" else None),
        ("Blocker", criteria.blocker if criteria.blocker != "all" else None),
        ("Tags", ", ".join(criteria.tags) if criteria.tags else None),
        ("Sort", criteria.sort_by),
        ("Limit", criteria.limit),
    ]
    lines = ["# Task Filter Results", "", "**Filter Criteria:**"]
    lines.extend(f"- {label}: {value}" for label, value in shown if value)
    lines.append("")
    lines.append(
        f"**Results:** {len(tasks)} task{'' if len(tasks) == 1 else 's'} found (out of {total} total)"
    )
    lines.append("")

    if not tasks:
        lines.append("*No tasks match the filter criteria.*")
        return "\n".join(lines) + "\n"

    lines.extend(["---", ""])
    for task in tasks:
        lines.append(f"[{marker_for_status(task.status)}] **{task.task_id}**: {task.description}")
        if not task.metadata.is_empty():
            lines.append(f"  *{' | '.join(metadata_parts(task.metadata))}*")
        lines.append("")
    return "\n".join(lines)
