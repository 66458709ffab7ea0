"""Batch completion of tasks in a tasks.md document.

Targets are identifiers (``T001``) or closed ranges (``T001-T005``). They are
expanded and validated before the document is touched. The write rewrites
only the status character of each target line, so line endings, spacing and
metadata survive byte for byte.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .errors import InvalidTaskIdError, StrictModeError
from .graph import build_dependency_graph
from .models import StatusCounts, TaskId, TaskStatus
from .parser import marker_for_status, marker_span, parse_tasks_content
from .tasks_logging import get_logger, log_operation
from .workspace import read_document, write_document

logger = get_logger("batch")

MAX_RANGE_SIZE = 1000

REASON_NOT_FOUND = "Task not found in tasks.md"
REASON_ALREADY_COMPLETED = "Already completed"
REASON_ALREADY_COMPLETED_STRICT = "Already completed (strict mode)"

_RANGE_PATTERN = re.compile(
    r"^(?P<start_prefix>[A-Za-z]+)(?P<start>[0-9]+)\s*-\s*(?P<end_prefix>[A-Za-z]+)(?P<end>[0-9]+)$"
)
_TOKEN_SPLIT = re.compile(r"[\s,]+")


@dataclass(slots=True)
class TargetSelection:
    """Expanded targets plus the tokens that could not be understood."""

    task_ids: List[TaskId] = field(default_factory=list)
    invalid: List[Dict[str, str]] = field(default_factory=list)


def expand_token(token: str) -> List[TaskId]:
    """Expand one identifier or closed range, raising InvalidTaskIdError."""
    token = token.strip()
    match = _RANGE_PATTERN.match(token)
    if not match:
        return [TaskId.parse(token)]

    prefix = match.group("start_prefix").upper()
    if match.group("end_prefix").upper() != prefix:
        raise InvalidTaskIdError(token, "Invalid range (prefixes differ)")

    start, end = int(match.group("start")), int(match.group("end"))
    if start > end:
        raise InvalidTaskIdError(token, "Invalid range (start > end)")
    if end - start + 1 > MAX_RANGE_SIZE:
        raise InvalidTaskIdError(token, f"Invalid range (more than {MAX_RANGE_SIZE} tasks)")

    width = len(match.group("start"))
    return [TaskId(prefix, number, width) for number in range(start, end + 1)]


def _split_tokens(tokens: Union[str, Iterable[str]]) -> List[str]:
    raw = [tokens] if isinstance(tokens, str) else list(tokens)
    split: List[str] = []
    for item in raw:
        # "T001 - T003" collapses to one range token before splitting
        normalised = re.sub(r"\s*-\s*", "-", str(item).strip())
        split.extend(part for part in _TOKEN_SPLIT.split(normalised) if part)
    return split


def parse_task_ids(tokens: Union[str, Iterable[str]]) -> TargetSelection:
    """Expand ``tokens`` into unique identifiers, first occurrence first."""
    selection = TargetSelection()
    seen = set()
    for token in _split_tokens(tokens):
        try:
            expanded = expand_token(token)
        except InvalidTaskIdError as exc:
            selection.invalid.append({"id": token, "reason": exc.reason})
            continue
        for task_id in expanded:
            if task_id not in seen:
                seen.add(task_id)
                selection.task_ids.append(task_id)
    return selection


@dataclass(slots=True)
class CompletionReport:
    tasks_path: str
    strict: bool = False
    completed: List[str] = field(default_factory=list)
    failed: List[Dict[str, str]] = field(default_factory=list)
    skipped: List[Dict[str, str]] = field(default_factory=list)
    total: int = 0
    completed_count: int = 0
    completion_percentage: int = 0
    notes: Optional[str] = None

    @property
    def processed(self) -> int:
        return len(self.completed) + len(self.failed) + len(self.skipped)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tasks_path": self.tasks_path,
            "strict": self.strict,
            "completed": list(self.completed),
            "failed": [dict(item) for item in self.failed],
            "skipped": [dict(item) for item in self.skipped],
            "processed": self.processed,
            "total": self.total,
            "completed_count": self.completed_count,
            "completion_percentage": self.completion_percentage,
            "notes": self.notes,
        }


def complete_tasks(
    path: Path | str,
    tokens: Union[str, Iterable[str]],
    strict: bool = False,
    notes: Optional[str] = None,
) -> CompletionReport:
    """Mark the targeted tasks completed and write the document back.

    In strict mode any invalid token, unknown identifier or already completed
    task raises StrictModeError before anything is written. In lenient mode
    those are reported as failed or skipped and the rest are completed.
    """
    path = Path(path)
    selection = parse_task_ids(tokens)
    content = read_document(path)
    graph = build_dependency_graph(parse_tasks_content(content))

    report = CompletionReport(tasks_path=str(path), strict=strict, notes=notes)
    report.failed.extend(selection.invalid)
    targets = []

    for task_id in selection.task_ids:
        task = graph.nodes.get(task_id)
        if task is None:
            report.failed.append({"id": str(task_id), "reason": REASON_NOT_FOUND})
        elif task.completed:
            if strict:
                report.failed.append({"id": str(task.task_id), "reason": REASON_ALREADY_COMPLETED_STRICT})
            else:
                report.skipped.append({"id": str(task.task_id), "reason": REASON_ALREADY_COMPLETED})
        else:
            targets.append(task)

    if strict and report.failed:
        logger.warning("Strict batch completion rejected for %s: %d invalid targets", path, len(report.failed))
        raise StrictModeError(report.failed)

    lines = content.split("\n")
    for task in targets:
        line = lines[task.line_number - 1]
        start, end = marker_span(line)
        lines[task.line_number - 1] = line[:start] + marker_for_status(TaskStatus.COMPLETED) + line[end:]
        report.completed.append(str(task.task_id))

    if report.completed:
        updated = "\n".join(lines)
        with log_operation("tasks_batch_write", tasks_path=str(path), completed=len(report.completed)):
            write_document(path, updated)
    else:
        updated = content

    counts = StatusCounts()
    for task in build_dependency_graph(parse_tasks_content(updated)).nodes.values():
        counts.add(task.status)
    report.total = counts.total
    report.completed_count = counts.completed
    report.completion_percentage = counts.completion_percentage
    return report


def format_completion_report(report: CompletionReport) -> str:
    lines = [
        "# Batch Task Completion Report",
        "",
        "**Summary:**",
        f"- Total tasks processed: {report.processed}",
        f"- ✅ Completed: {len(report.completed)}",
        f"- ⏭️ Skipped: {len(report.skipped)}",
        f"- ❌ Failed: {len(report.failed)}",
        f"- Mode: {'strict (all-or-nothing)' if report.strict else 'lenient (skip invalid)'}",
        "",
    ]
    if report.notes:
        lines.extend([f"**Notes:** {report.notes}", ""])
    lines.extend([f"**Updated file:** {report.tasks_path}", "", "---", ""])

    if report.completed:
        lines.extend([f"## ✅ Completed ({len(report.completed)})", ""])
        lines.extend(f"- {task_id}" for task_id in report.completed)
        lines.append("")
    if report.skipped:
        lines.extend([f"## ⏭️ Skipped ({len(report.skipped)})", ""])
        lines.extend(f"- {item['id']}: *{item['reason']}*" for item in report.skipped)
        lines.append("")
    if report.failed:
        lines.extend([f"## ❌ Failed ({len(report.failed)})", ""])
        lines.extend(f"- {item['id']}: *{item['reason']}*" for item in report.failed)
        lines.append("")

    lines.append(
        f"**Overall Progress:** {report.completed_count}/{report.total} tasks complete "
        f"({report.completion_percentage}%)"
    )
    return "\n".join(lines) + "\n"
