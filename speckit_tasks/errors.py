"""Error types raised by the Speck-It task engine.

Core modules raise these; ``TaskEngine`` turns them into error responses.
Each error subclasses the builtin the workspace code already raised for the
same condition (``FileNotFoundError``, ``ValueError``) so callers catching
the broad builtin keep working.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List


class TaskEngineError(Exception):
    """Base class for task engine failures."""

    suggestion = "Check the request parameters and the tasks document."

    def details(self) -> Dict[str, Any]:
        """Structured fields describing the failure."""
        return {}


class TasksFileNotFoundError(TaskEngineError, FileNotFoundError):
    """The task list document does not exist."""

    suggestion = "Generate tasks first or pass an explicit tasks_path."

    def __init__(self, path: Any):
        self.path = str(path)
        super().__init__(f"Tasks file not found: {self.path}")

    def details(self) -> Dict[str, Any]:
        return {"tasks_path": self.path}


class WorkspaceResolutionError(TaskEngineError, ValueError):
    """The document location could not be determined."""

    suggestion = "Provide the 'root' argument or set SPECKIT_PROJECT_ROOT."


class CircularDependencyError(TaskEngineError, ValueError):
    """The dependency graph contains at least one cycle."""

    suggestion = "Remove one of the listed dependencies to break the cycle."

    def __init__(self, task_ids: Iterable[Any]):
        self.task_ids: List[str] = [str(task_id) for task_id in task_ids]
        super().__init__(
            f"Circular dependencies detected in tasks: {', '.join(self.task_ids)}"
        )

    def details(self) -> Dict[str, Any]:
        return {"task_ids": list(self.task_ids)}


class DuplicateTaskIdError(TaskEngineError, ValueError):
    """The same identifier appears on more than one task line."""

    suggestion = "Renumber the duplicated tasks so every identifier is unique."

    def __init__(self, task_ids: Iterable[Any]):
        self.task_ids: List[str] = [str(task_id) for task_id in task_ids]
        super().__init__(f"Duplicate task identifiers: {', '.join(self.task_ids)}")

    def details(self) -> Dict[str, Any]:
        return {"task_ids": list(self.task_ids)}


class InvalidTaskIdError(TaskEngineError, ValueError):
    """A task identifier or range token is malformed."""

    suggestion = "Use identifiers like T001 or closed ranges like T001-T005."

    def __init__(self, token: str, reason: str = "Invalid task ID format"):
        self.token = token
        self.reason = reason
        super().__init__(f"{reason}: {token}")

    def details(self) -> Dict[str, Any]:
        return {"token": self.token, "reason": self.reason}


class StrictModeError(TaskEngineError, ValueError):
    """Strict batch completion refused because some targets were invalid."""

    suggestion = "Fix the listed targets or retry with strict=False."

    def __init__(self, failures: List[Dict[str, str]]):
        self.failures = list(failures)
        lines = "\n".join(f"- {item['id']}: {item['reason']}" for item in self.failures)
        super().__init__(
            "Strict mode: Cannot complete tasks due to validation errors:\n" + lines
        )

    def details(self) -> Dict[str, Any]:
        return {
            "failures": [dict(item) for item in self.failures],
            "task_ids": [item["id"] for item in self.failures],
        }


class UnsupportedFormatError(TaskEngineError, ValueError):
    """A visualisation format was requested that no renderer handles."""

    suggestion = "Use one of: mermaid, graphviz, ascii."


class InvalidQueryError(TaskEngineError, ValueError):
    """Filter or search parameters are outside their allowed values."""
