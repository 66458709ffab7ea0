"""Aggregate progress statistics for a task list.

Counts are taken over the dependency graph's nodes, so a duplicated
identifier is counted once. Nothing here touches the document.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .blockers import classify_blockers
from .errors import InvalidQueryError
from .graph import build_dependency_graph
from .models import PRIORITIES, BlockerStatus, StatusCounts, Task, percentage

GROUP_CHOICES = ("status", "phase", "type", "priority", "all")
UNSPECIFIED = "unspecified"
CHART_WIDTH = 50


@dataclass(slots=True)
class BlockerSummary:
    unblocked: int = 0
    blocked: List[BlockerStatus] = field(default_factory=list)
    descriptions: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unblocked_count": self.unblocked,
            "blocked_count": len(self.blocked),
            "blocked": [
                {**status.to_dict(), "description": self.descriptions[str(status.task_id)]}
                for status in self.blocked
            ],
        }


@dataclass(slots=True)
class TaskStatistics:
    overall: StatusCounts
    by_phase: Dict[str, StatusCounts]
    by_type: Dict[str, StatusCounts]
    priorities: Dict[str, int]
    blockers: BlockerSummary

    def priority_percentages(self) -> Dict[str, int]:
        total = sum(self.priorities.values())
        return {name: percentage(count, total) for name, count in self.priorities.items()}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall": self.overall.to_dict(),
            "by_phase": {name: counts.to_dict() for name, counts in self.by_phase.items()},
            "by_type": {name: counts.to_dict() for name, counts in self.by_type.items()},
            "priorities": dict(self.priorities),
            "priority_percentages": self.priority_percentages(),
            "blockers": self.blockers.to_dict(),
        }


def compute_stats(tasks: List[Task]) -> TaskStatistics:
    graph = build_dependency_graph(tasks)
    nodes = list(graph.nodes.values())

    overall = StatusCounts()
    by_phase: Dict[str, StatusCounts] = {}
    by_type: Dict[str, StatusCounts] = {}
    priorities = {name: 0 for name in PRIORITIES + (UNSPECIFIED,)}

    for task in nodes:
        overall.add(task.status)
        by_phase.setdefault(task.metadata.phase or UNSPECIFIED, StatusCounts()).add(task.status)
        by_type.setdefault(task.metadata.type or UNSPECIFIED, StatusCounts()).add(task.status)
        priorities[task.metadata.priority or UNSPECIFIED] += 1

    blockers = BlockerSummary()
    for status in classify_blockers(tasks, graph).values():
        if status.blocked:
            blockers.blocked.append(status)
            blockers.descriptions[str(status.task_id)] = graph.nodes[status.task_id].description
        elif status.unblocked:
            blockers.unblocked += 1

    return TaskStatistics(
        overall=overall,
        by_phase=dict(sorted(by_phase.items())),
        by_type=dict(sorted(by_type.items())),
        priorities=priorities,
        blockers=blockers,
    )


def progress_bar(counts: StatusCounts, width: int = CHART_WIDTH) -> str:
    """Fixed width bar: completed, then in progress, then pending cells."""
    if counts.total == 0:
        done = active = 0
    else:
        done = int(counts.completed * width / counts.total + 0.5)
        active = min(width - done, int(counts.in_progress * width / counts.total + 0.5))
    rest = width - done - active
    return f"│{'█' * done}{'▓' * active}{'░' * rest}│ {counts.completion_percentage}%"


def _counts_section(groups: Dict[str, StatusCounts]) -> List[str]:
    lines: List[str] = []
    for name, counts in groups.items():
        lines.extend([
            f"### {name}",
            "",
            f"- **Total:** {counts.total}",
            f"- **Completed:** {counts.completed} ({counts.completion_percentage}%)",
            f"- **In Progress:** {counts.in_progress}",
            f"- **Pending:** {counts.pending}",
            "",
        ])
    return lines


def format_stats_report(
    stats: TaskStatistics,
    group_by: str = "all",
    include_charts: bool = True,
    show_blockers: bool = True,
) -> str:
    if stats.overall.total == 0:
        return "# Task Statistics\n\nNo tasks found in tasks.md\n"

    overall = stats.overall
    lines = [
        "# Task Statistics",
        "",
        "## Overall Progress",
        "",
        f"**Total Tasks:** {overall.total}",
        f"**Completed:** {overall.completed} ({overall.completion_percentage}%)",
        f"**In Progress:** {overall.in_progress}",
        f"**Pending:** {overall.pending}",
        "",
    ]

    if include_charts:
        lines.extend([
            "### Progress Chart",
            "",
            "```",
            progress_bar(overall),
            "```",
            "",
            "**Legend:** █ Completed | ▓ In Progress | ░ Pending",
            "",
        ])

    if group_by in ("all", "phase"):
        lines.extend(["## Statistics by Phase", ""])
        lines.extend(_counts_section(stats.by_phase))

    if group_by in ("all", "type"):
        lines.extend(["## Statistics by Type", ""])
        lines.extend(_counts_section(stats.by_type))

    if group_by in ("all", "priority"):
        shares = stats.priority_percentages()
        lines.extend(["## Priority Distribution", ""])
        for name in PRIORITIES:
            lines.append(f"- **{name.title()} Priority:** {stats.priorities[name]} ({shares[name]}%)")
        lines.append(f"- **Unspecified:** {stats.priorities[UNSPECIFIED]} ({shares[UNSPECIFIED]}%)")
        lines.append("")

    if show_blockers:
        lines.extend(_blocker_section(stats.blockers))

    return "\n".join(lines) + "\n"


def _blocker_section(summary: BlockerSummary) -> List[str]:
    lines = [
        "## Blocker Analysis",
        "",
        f"**Unblocked Tasks:** {summary.unblocked} (ready to start)",
        f"**Blocked Tasks:** {len(summary.blocked)}",
        "",
    ]
    if not summary.blocked:
        lines.append("*No blocked tasks! All pending tasks are ready to start.*")
        return lines

    lines.extend(["### Blocked Tasks", ""])
    for status in summary.blocked:
        lines.append(f"- **{status.task_id}**: {summary.descriptions[str(status.task_id)]}")
        lines.append(f"  - Blocked by: {', '.join(str(dep) for dep in status.unmet)}")
    return lines


def validate_group_by(group_by: Optional[str]) -> str:
    value = group_by or "all"
    if value not in GROUP_CHOICES:
        raise InvalidQueryError(
            f"Invalid group_by '{value}'. Expected one of: {', '.join(GROUP_CHOICES)}"
        )
    return value
