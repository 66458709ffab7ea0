"""MCP server exposing Speck-It task analysis tools."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from mcp.server.fastmcp import FastMCP

from speckit_tasks import EngineConfig, FilterCriteria, SearchOptions, TaskEngine
from speckit_tasks.tasks_logging import setup_logging

mcp = FastMCP("speck-it-tasks")

CONFIG = EngineConfig.from_env()
engine = TaskEngine(CONFIG)


@mcp.tool()
def tasks_list(
    tasks_path: Optional[str] = None,
    root: Optional[str] = None,
    feature_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Parse tasks.md and list every task with its blocker state and the tasks ready to start.
    Checkbox lines that do not parse, duplicate identifiers and dependencies on missing tasks
    are reported as warnings."""

    return engine.list_tasks(tasks_path=tasks_path, root=root, feature_id=feature_id)


@mcp.tool()
def tasks_visualize(
    format: str = "mermaid",
    include_completed: bool = False,
    group_by_phase: bool = False,
    tasks_path: Optional[str] = None,
    root: Optional[str] = None,
    feature_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Render the task dependency graph as a Mermaid flowchart, Graphviz DOT digraph or ASCII tree.
    Fails with the full list of cyclic tasks when the dependencies contain a cycle."""

    return engine.visualize(
        format,
        include_completed=include_completed,
        group_by_phase=group_by_phase,
        tasks_path=tasks_path,
        root=root,
        feature_id=feature_id,
    )


@mcp.tool()
def tasks_filter(
    status: Optional[str] = None,
    phase: Optional[str] = None,
    type: Optional[str] = None,
    priority: Optional[str] = None,
    tags: Optional[List[str]] = None,
    blocker: Optional[str] = None,
    preset: Optional[str] = None,
    sort_by: Optional[str] = None,
    limit: Optional[int] = None,
    tasks_path: Optional[str] = None,
    root: Optional[str] = None,
    feature_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Filter tasks by status, phase, type, priority, tags and blocker state.
    Presets: next, frontend, backend, ready, cleanup. Explicit parameters override the preset.
    sort_by: id, priority, dependencies or phase."""

    criteria = FilterCriteria(
        status=status,
        phase=phase,
        task_type=type,
        priority=priority,
        tags=tags,
        blocker=blocker,
        sort_by=sort_by,
        limit=limit,
        preset=preset,
    )
    return engine.filter_tasks(criteria, tasks_path=tasks_path, root=root, feature_id=feature_id)


@mcp.tool()
def tasks_search(
    query: str,
    fields: Union[List[str], str] = "description",
    mode: str = "exact",
    case_sensitive: bool = False,
    threshold: int = 70,
    limit: Optional[int] = None,
    tasks_path: Optional[str] = None,
    root: Optional[str] = None,
    feature_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Search task descriptions, phases, types and tags.
    mode: exact (substring), regex (pattern, falls back to literal on syntax errors) or fuzzy
    (typo tolerant, similarity threshold 0-100). Returns at most 100 results (default 10)."""

    options = SearchOptions(
        query=query,
        fields=[fields] if isinstance(fields, str) else list(fields),
        mode=mode,
        case_sensitive=case_sensitive,
        threshold=threshold,
        limit=limit,
    )
    return engine.search(options, tasks_path=tasks_path, root=root, feature_id=feature_id)


@mcp.tool()
def tasks_stats(
    group_by: str = "all",
    include_charts: bool = True,
    show_blockers: bool = True,
    tasks_path: Optional[str] = None,
    root: Optional[str] = None,
    feature_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Progress statistics: overall counts, per phase and type breakdowns, priority distribution
    and blocker analysis. group_by: status, phase, type, priority or all."""

    return engine.stats(
        group_by=group_by,
        include_charts=include_charts,
        show_blockers=show_blockers,
        tasks_path=tasks_path,
        root=root,
        feature_id=feature_id,
    )


@mcp.tool()
def tasks_tick_range(
    task_ids: Union[List[str], str],
    strict: bool = False,
    notes: Optional[str] = None,
    tasks_path: Optional[str] = None,
    root: Optional[str] = None,
    feature_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Mark several tasks complete at once. Accepts ["T001", "T003"], a range "T001-T005" or a mix.
    strict=True refuses the whole batch if any target is invalid, unknown or already completed."""

    return engine.tick_range(
        task_ids,
        strict=strict,
        notes=notes,
        tasks_path=tasks_path,
        root=root,
        feature_id=feature_id,
    )


@mcp.resource("speck-it://tasks")
def resource_tasks() -> str:
    """Resource view summarising progress of the default tasks document."""

    return engine.overview()


if __name__ == "__main__":
    setup_logging(CONFIG.log_level, CONFIG.log_file)
    mcp.run(transport="stdio")
