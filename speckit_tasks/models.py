"""Data models for the Speck-It task engine.

This module contains the core data structures shared by the parser, the
dependency graph analysis, the query and search engines, the statistics
engine and the batch mutator. Everything here is created per call and
discarded on return; only the tasks document persists.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .errors import InvalidTaskIdError


PRIORITIES = ("high", "medium", "low")
DEFAULT_PRIORITY = "medium"

_TASK_ID_PATTERN = re.compile(r"^(?P<prefix>[A-Za-z]+)(?P<number>[0-9]+)$")


class TaskStatus(str, Enum):
    """Closed set of task states encoded by the checkbox marker."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class TaskId:
    """Opaque task identifier: a letter prefix followed by an integer.

    Identity is ``(prefix, number)``; the zero padding written in the
    document is kept only for display, so ``T1`` and ``T001`` are the same
    task.
    """

    prefix: str
    number: int
    width: int = field(default=3, compare=False)

    @classmethod
    def parse(cls, raw: Union[str, "TaskId"]) -> "TaskId":
        """Parse ``raw`` into a TaskId, raising InvalidTaskIdError."""
        if isinstance(raw, TaskId):
            return raw
        text = str(raw).strip()
        match = _TASK_ID_PATTERN.match(text)
        if not match:
            raise InvalidTaskIdError(text)
        digits = match.group("number")
        return cls(match.group("prefix").upper(), int(digits), len(digits))

    @classmethod
    def is_valid(cls, raw: str) -> bool:
        return bool(_TASK_ID_PATTERN.match(str(raw).strip()))

    @property
    def sort_key(self) -> tuple:
        return (self.prefix, self.number)

    def __str__(self) -> str:
        return f"{self.prefix}{self.number:0{self.width}d}"

    def __lt__(self, other: "TaskId") -> bool:
        if not isinstance(other, TaskId):
            return NotImplemented
        return self.sort_key < other.sort_key


@dataclass(slots=True)
class TaskMetadata:
    """Optional annotations parsed from the trailing ``(key: value)`` block."""

    phase: Optional[str] = None
    type: Optional[str] = None
    depends: List[TaskId] = field(default_factory=list)
    priority: Optional[str] = None
    effort: Optional[int] = None
    tags: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.phase or self.type or self.depends or self.priority
            or self.effort is not None or self.tags
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation, omitting unset keys."""
        data: Dict[str, Any] = {}
        if self.phase:
            data["phase"] = self.phase
        if self.type:
            data["type"] = self.type
        if self.depends:
            data["depends"] = [str(dep) for dep in self.depends]
        if self.priority:
            data["priority"] = self.priority
        if self.effort is not None:
            data["effort"] = self.effort
        if self.tags:
            data["tags"] = list(self.tags)
        return data


@dataclass(slots=True)
class Task:
    """Representation of a single tasks.md checklist entry."""

    task_id: TaskId
    description: str
    status: TaskStatus = TaskStatus.PENDING
    metadata: TaskMetadata = field(default_factory=TaskMetadata)
    line_number: int = 0

    @property
    def completed(self) -> bool:
        return self.status is TaskStatus.COMPLETED

    @property
    def dependencies(self) -> List[TaskId]:
        return self.metadata.depends

    @property
    def effective_priority(self) -> str:
        return self.metadata.priority or DEFAULT_PRIORITY

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "task_id": str(self.task_id),
            "description": self.description,
            "status": self.status.value,
            "completed": self.completed,
            "metadata": self.metadata.to_dict(),
            "line": self.line_number,
        }


@dataclass(frozen=True, slots=True)
class Recognized:
    """A line that parsed into a task."""

    task: Task

    @property
    def line_number(self) -> int:
        return self.task.line_number


@dataclass(frozen=True, slots=True)
class Ignored:
    """A line the parser skipped, kept for lint-style reporting."""

    line_number: int
    raw: str


ParsedLine = Union[Recognized, Ignored]


@dataclass(slots=True)
class BlockerStatus:
    """Blocked/unblocked classification of one task."""

    task_id: TaskId
    blocked: bool
    unmet: List[TaskId] = field(default_factory=list)
    completed: bool = False

    @property
    def unblocked(self) -> bool:
        return not self.completed and not self.blocked

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": str(self.task_id),
            "blocked": self.blocked,
            "unblocked": self.unblocked,
            "blocked_by": [str(dep) for dep in self.unmet],
        }


@dataclass(slots=True)
class StatusCounts:
    """Task counts per status with the completion percentage."""

    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0

    def add(self, status: TaskStatus) -> None:
        self.total += 1
        if status is TaskStatus.COMPLETED:
            self.completed += 1
        elif status is TaskStatus.IN_PROGRESS:
            self.in_progress += 1
        else:
            self.pending += 1

    @property
    def completion_percentage(self) -> int:
        return percentage(self.completed, self.total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "pending": self.pending,
            "in_progress": self.in_progress,
            "completed": self.completed,
            "completion_percentage": self.completion_percentage,
        }


def percentage(part: int, whole: int) -> int:
    """Rounded percentage that treats an empty whole as zero."""
    if whole <= 0:
        return 0
    # Half-up, so 1 of 8 reports 13% rather than banker's 12%.
    return int(part * 100 / whole + 0.5)
