"""Speck-It task engine exports."""

from .batch import CompletionReport, complete_tasks, parse_task_ids
from .blockers import classify_blockers, get_blocked_tasks, get_unblocked_tasks
from .config import EngineConfig
from .engine import TaskEngine
from .errors import (
    CircularDependencyError,
    DuplicateTaskIdError,
    InvalidQueryError,
    InvalidTaskIdError,
    StrictModeError,
    TaskEngineError,
    TasksFileNotFoundError,
    UnsupportedFormatError,
    WorkspaceResolutionError,
)
from .graph import (
    DependencyGraph,
    DuplicatePolicy,
    build_dependency_graph,
    detect_circular_dependencies,
    topological_sort,
)
from .models import BlockerStatus, Ignored, Recognized, Task, TaskId, TaskMetadata, TaskStatus
from .parser import parse_lines, parse_tasks_content, parse_tasks_file
from .query import FilterCriteria, filter_tasks
from .render import render_graph
from .search import SearchOptions, search_tasks
from .stats import TaskStatistics, compute_stats

__all__ = [
    "BlockerStatus",
    "CircularDependencyError",
    "CompletionReport",
    "DependencyGraph",
    "DuplicatePolicy",
    "DuplicateTaskIdError",
    "EngineConfig",
    "FilterCriteria",
    "Ignored",
    "InvalidQueryError",
    "InvalidTaskIdError",
    "Recognized",
    "SearchOptions",
    "StrictModeError",
    "Task",
    "TaskEngine",
    "TaskEngineError",
    "TaskId",
    "TaskMetadata",
    "TaskStatistics",
    "TaskStatus",
    "TasksFileNotFoundError",
    "UnsupportedFormatError",
    "WorkspaceResolutionError",
    "build_dependency_graph",
    "classify_blockers",
    "complete_tasks",
    "compute_stats",
    "detect_circular_dependencies",
    "filter_tasks",
    "get_blocked_tasks",
    "get_unblocked_tasks",
    "parse_lines",
    "parse_task_ids",
    "parse_tasks_content",
    "parse_tasks_file",
    "render_graph",
    "search_tasks",
    "topological_sort",
]
