"""Operation facade for the Speck-It task engine.

Every operation resolves the tasks document, reloads it from disk, runs the
requested analysis and returns a dictionary with structured data plus a
markdown ``report``. Engine errors become error responses; anything else
propagates.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .batch import complete_tasks, format_completion_report
from .blockers import classify_blockers
from .config import EngineConfig
from .errors import TaskEngineError, WorkspaceResolutionError
from .graph import build_dependency_graph
from .models import Ignored, Recognized, StatusCounts, Task, TaskId
from .parser import TASK_LINE_PATTERN, is_decodable, looks_like_task, marker_for_status, parse_lines, printable
from .query import FilterCriteria, filter_tasks, format_filter_report, resolve_criteria
from .render import render_graph
from .search import SearchOptions, format_search_report, search_tasks
from .stats import compute_stats, format_stats_report, validate_group_by
from .tasks_logging import get_logger, log_error_with_context, log_performance
from .workspace import TasksWorkspace, read_document, resolve_root, resolve_tasks_path

logger = get_logger("engine")

_FENCES = {"graphviz": "dot", "ascii": ""}


class TaskEngine:
    """Runs task operations against a tasks.md document."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig.from_env()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def locate(
        self,
        tasks_path: Optional[str] = None,
        root: Optional[str] = None,
        feature_id: Optional[str] = None,
    ) -> Path:
        return resolve_tasks_path(tasks_path, root, feature_id, self.config)

    def _load(self, path: Path) -> List[Task]:
        entries = parse_lines(read_document(path))
        return [entry.task for entry in entries if isinstance(entry, Recognized)]

    def _failure(self, operation: str, error: TaskEngineError, **context: Any) -> Dict[str, Any]:
        log_error_with_context(error, {"operation": operation, **context})
        return {
            "error": str(error),
            "error_type": type(error).__name__,
            "suggestion": error.suggestion,
            **error.details(),
        }

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    @log_performance("tasks_list")
    def list_tasks(
        self,
        tasks_path: Optional[str] = None,
        root: Optional[str] = None,
        feature_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Parse the document and list its tasks with the ones ready to start."""
        try:
            path = self.locate(tasks_path, root, feature_id)
            content = read_document(path)
            entries = parse_lines(content)
            tasks = [entry.task for entry in entries if isinstance(entry, Recognized)]
            graph = build_dependency_graph(tasks)
            statuses = classify_blockers(tasks, graph)

            counts = StatusCounts()
            for task in graph.nodes.values():
                counts.add(task.status)
            ready = [graph.nodes[task_id] for task_id, status in statuses.items() if status.unblocked]

            warnings: List[Dict[str, Any]] = []
            for entry in entries:
                if isinstance(entry, Ignored):
                    message = _ignored_message(entry.raw)
                    if message:
                        warnings.append({"line": entry.line_number, "text": printable(entry.raw.rstrip("\r")),
                                         "message": message})
            warnings.extend(_duplicate_warnings(tasks, graph.duplicates, content.split("\n")))
            warnings.extend(
                {"task_id": str(task_id), "message": f"Depends on missing tasks: {', '.join(map(str, missing))}"}
                for task_id, missing in graph.dangling().items()
            )

            return {
                "tasks_path": str(path),
                "tasks": [
                    {**task.to_dict(), **statuses[task.task_id].to_dict()}
                    for task in graph.nodes.values()
                ],
                "next_tasks": [task.to_dict() for task in ready],
                "counts": counts.to_dict(),
                "warnings": warnings,
                "report": _format_list_report(path, list(graph.nodes.values()), ready, counts, warnings),
            }
        except TaskEngineError as e:
            return self._failure("tasks_list", e, tasks_path=tasks_path, root=root, feature_id=feature_id)

    def overview(self, root: Optional[str] = None, feature_id: Optional[str] = None) -> str:
        """Short plain-text progress summary of the default document.

        Every task document found in the workspace is listed as well, so a
        missing shared document still points at the per-feature ones.
        """
        result = self.list_tasks(root=root, feature_id=feature_id)
        if "error" in result:
            lines = [result["error"], result["suggestion"]]
        else:
            counts = result["counts"]
            lines = [
                "Speck-It Tasks",
                "",
                f"Document: {result['tasks_path']}",
                f"Progress: {counts['completed']}/{counts['total']} tasks complete "
                f"({counts['completion_percentage']}%)",
            ]
            if result["next_tasks"]:
                lines.append("")
                lines.append("Ready to start:")
                lines.extend(f"- {task['task_id']}: {task['description']}" for task in result["next_tasks"])

        documents = self.documents(root)
        if documents:
            lines.append("")
            lines.append("Task documents:")
            lines.extend(f"- {document}" for document in documents)
        return "\n".join(lines)

    def documents(self, root: Optional[str] = None) -> List[Path]:
        """Task documents present in the workspace; empty when no root resolves."""
        try:
            workspace = TasksWorkspace(resolve_root(root, self.config), self.config)
        except WorkspaceResolutionError:
            return []
        return workspace.list_task_documents()

    # ------------------------------------------------------------------
    # Visualisation
    # ------------------------------------------------------------------

    @log_performance("tasks_visualize")
    def visualize(
        self,
        fmt: str = "mermaid",
        include_completed: bool = False,
        group_by_phase: bool = False,
        tasks_path: Optional[str] = None,
        root: Optional[str] = None,
        feature_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Render the dependency graph as Mermaid, Graphviz DOT or an ASCII tree."""
        try:
            path = self.locate(tasks_path, root, feature_id)
            tasks = self._load(path)
            diagram = render_graph(
                tasks, fmt, include_completed=include_completed, group_by_phase=group_by_phase
            )
            if fmt == "mermaid":
                body = diagram
            else:
                body = f"```{_FENCES[fmt]}\n{diagram.rstrip()}\n```"
            report = f"# Task Dependency Graph\n\n**Format:** {fmt}\n**Tasks:** {len(tasks)}\n\n{body}\n"
            return {
                "tasks_path": str(path),
                "format": fmt,
                "diagram": diagram,
                "task_count": len(tasks),
                "report": report,
            }
        except TaskEngineError as e:
            return self._failure("tasks_visualize", e, format=fmt, tasks_path=tasks_path, root=root)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @log_performance("tasks_filter")
    def filter_tasks(
        self,
        criteria: Optional[FilterCriteria] = None,
        tasks_path: Optional[str] = None,
        root: Optional[str] = None,
        feature_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Filter and sort tasks by status, metadata, blockers or a preset."""
        criteria = criteria or FilterCriteria()
        try:
            resolved = resolve_criteria(criteria)
            path = self.locate(tasks_path, root, feature_id)
            tasks = self._load(path)
            matched = filter_tasks(tasks, resolved)
            total = len(build_dependency_graph(tasks).nodes)
            return {
                "tasks_path": str(path),
                "criteria": resolved.to_dict(),
                "tasks": [task.to_dict() for task in matched],
                "count": len(matched),
                "total": total,
                "report": format_filter_report(matched, total, resolved),
            }
        except TaskEngineError as e:
            return self._failure("tasks_filter", e, criteria=criteria.to_dict(), tasks_path=tasks_path)

    @log_performance("tasks_search")
    def search(
        self,
        options: SearchOptions,
        tasks_path: Optional[str] = None,
        root: Optional[str] = None,
        feature_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Rank tasks against a literal, pattern or approximate query."""
        try:
            options.validate()
            path = self.locate(tasks_path, root, feature_id)
            result = search_tasks(self._load(path), options)
            return {
                "tasks_path": str(path),
                "query": options.query,
                "mode": options.mode,
                **result.to_dict(),
                "report": format_search_report(result, options),
            }
        except TaskEngineError as e:
            return self._failure("tasks_search", e, query=options.query, mode=options.mode)

    @log_performance("tasks_stats")
    def stats(
        self,
        group_by: str = "all",
        include_charts: bool = True,
        show_blockers: bool = True,
        tasks_path: Optional[str] = None,
        root: Optional[str] = None,
        feature_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Progress statistics with phase, type, priority and blocker breakdowns."""
        try:
            group_by = validate_group_by(group_by)
            path = self.locate(tasks_path, root, feature_id)
            statistics = compute_stats(self._load(path))
            return {
                "tasks_path": str(path),
                "group_by": group_by,
                **statistics.to_dict(),
                "report": format_stats_report(statistics, group_by, include_charts, show_blockers),
            }
        except TaskEngineError as e:
            return self._failure("tasks_stats", e, group_by=group_by, tasks_path=tasks_path)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    @log_performance("tasks_tick_range")
    def tick_range(
        self,
        task_ids: Union[str, Sequence[str]],
        strict: bool = False,
        notes: Optional[str] = None,
        tasks_path: Optional[str] = None,
        root: Optional[str] = None,
        feature_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Mark several tasks completed, by identifier or closed range."""
        try:
            path = self.locate(tasks_path, root, feature_id)
            report = complete_tasks(path, task_ids, strict=strict, notes=notes)
            logger.info(
                "Batch completion on %s: %d completed, %d skipped, %d failed",
                path, len(report.completed), len(report.skipped), len(report.failed),
            )
            return {**report.to_dict(), "report": format_completion_report(report)}
        except TaskEngineError as e:
            return self._failure(
                "tasks_tick_range", e, task_ids=task_ids, strict=strict, tasks_path=tasks_path
            )


def _format_list_report(
    path: Path,
    tasks: List[Task],
    ready: List[Task],
    counts: StatusCounts,
    warnings: List[Dict[str, Any]],
) -> str:
    lines = [
        "# Tasks",
        "",
        f"**File:** {path}",
        f"**Progress:** {counts.completed}/{counts.total} tasks complete ({counts.completion_percentage}%)",
        "",
    ]
    if not tasks:
        lines.append("*No tasks found.*")
        return "\n".join(lines) + "\n"

    lines.extend(["## Task List", ""])
    lines.extend(f"- [{marker_for_status(task.status)}] {task.task_id}: {task.description}" for task in tasks)
    lines.append("")

    lines.extend(["## Next Tasks", ""])
    if ready:
        lines.extend(f"- {task.task_id}: {task.description}" for task in ready)
    else:
        lines.append("*Nothing is ready to start.*")
    lines.append("")

    if warnings:
        lines.extend(["## Warnings", ""])
        for warning in warnings:
            where = f"line {warning['line']}" if "line" in warning else warning["task_id"]
            lines.append(f"- {where}: {warning['message']}")
        lines.append("")

    return "\n".join(lines)


def _ignored_message(raw: str) -> Optional[str]:
    if not is_decodable(raw):
        return "Line is not valid UTF-8"
    if looks_like_task(raw):
        return "Checkbox line is not a recognised task"
    return None


def _duplicate_warnings(
    tasks: List[Task],
    duplicates: List[TaskId],
    lines: List[str],
) -> List[Dict[str, Any]]:
    """One warning per repeated identifier, naming each line and how it was written."""
    warnings = []
    for task_id in duplicates:
        line_numbers = [task.line_number for task in tasks if task.task_id == task_id]
        spellings = dict.fromkeys(
            TASK_LINE_PATTERN.match(lines[number - 1].rstrip("\r")).group("id") for number in line_numbers
        )
        warnings.append({
            "task_id": str(task_id),
            "lines": line_numbers,
            "spellings": list(spellings),
            "message": (
                f"Duplicate task identifier written as {', '.join(spellings)} on lines "
                f"{', '.join(map(str, line_numbers))}; line {line_numbers[-1]} wins"
            ),
        })
    return warnings
