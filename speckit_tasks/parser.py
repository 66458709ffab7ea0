"""Task record parser for tasks.md documents.

Each checklist line has the shape::

    - [ ] T001: Description (phase: setup, type: backend, depends: T000)

The status character is ``' '`` (pending), ``x``/``X`` (completed) or ``~``
(in progress). The trailing parenthesised block is optional metadata made of
comma separated ``key: value`` pairs. Parsing is lenient per line: a line
that does not match is reported as ``Ignored`` and never raises.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .models import (
    PRIORITIES,
    Ignored,
    ParsedLine,
    Recognized,
    Task,
    TaskId,
    TaskMetadata,
    TaskStatus,
)
from .tasks_logging import get_logger
from .workspace import read_document

logger = get_logger("parser")

TASK_LINE_PATTERN = re.compile(
    r"^(?P<prefix>[\s\-*+]*)\[(?P<mark>[ xX~])\]\s+(?P<id>[A-Za-z]+[0-9]+):\s+(?P<rest>.+)$"
)
CHECKBOX_PATTERN = re.compile(r"^\s*(?:[-*+]\s*)?\[.?\]")
_METADATA_PATTERN = re.compile(r"^(?P<description>.+?)\s*\((?P<metadata>[^()]+)\)\s*$")
_LIST_SPLIT = re.compile(r"[\s,]+")

LIST_KEYS = ("depends", "tags")

_MARKER_STATUS: Dict[str, TaskStatus] = {
    " ": TaskStatus.PENDING,
    "x": TaskStatus.COMPLETED,
    "X": TaskStatus.COMPLETED,
    "~": TaskStatus.IN_PROGRESS,
}
_STATUS_MARKER: Dict[TaskStatus, str] = {
    TaskStatus.PENDING: " ",
    TaskStatus.COMPLETED: "x",
    TaskStatus.IN_PROGRESS: "~",
}


def status_from_marker(mark: str) -> TaskStatus:
    return _MARKER_STATUS[mark]


def marker_for_status(status: TaskStatus) -> str:
    return _STATUS_MARKER[status]


def parse_tasks_file(file_path: Path | str) -> List[Task]:
    """Parse a tasks.md file into Task objects, in document order."""
    content = read_document(file_path)
    tasks = parse_tasks_content(content)
    logger.debug("Parsed %d tasks from %s", len(tasks), file_path)
    return tasks


def parse_tasks_content(content: str) -> List[Task]:
    return [entry.task for entry in parse_lines(content) if isinstance(entry, Recognized)]


def parse_lines(content: str) -> List[ParsedLine]:
    """Classify every line of ``content``; line numbers are 1-based."""
    return [parse_task_line(line, index) for index, line in enumerate(content.split("\n"), start=1)]


def parse_task_line(line: str, line_number: int) -> ParsedLine:
    """Parse one line, returning Recognized(task) or Ignored(line).

    Lines holding bytes that are not valid UTF-8 are always ignored.
    """
    if not is_decodable(line):
        return Ignored(line_number, line)
    match = TASK_LINE_PATTERN.match(line.rstrip("\r"))
    if not match:
        return Ignored(line_number, line)

    description, metadata = extract_metadata(match.group("rest"))
    task = Task(
        task_id=TaskId.parse(match.group("id")),
        description=description,
        status=status_from_marker(match.group("mark")),
        metadata=metadata,
        line_number=line_number,
    )
    return Recognized(task)


def marker_span(line: str) -> Optional[Tuple[int, int]]:
    """Character span of the status marker in ``line``, if it is a task line."""
    if not is_decodable(line):
        return None
    match = TASK_LINE_PATTERN.match(line.rstrip("\r"))
    if not match:
        return None
    return match.span("mark")


def is_decodable(line: str) -> bool:
    """False when ``line`` carries escaped bytes from an invalid UTF-8 sequence."""
    try:
        line.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def printable(line: str) -> str:
    """``line`` with escaped undecodable bytes shown as replacement characters."""
    return line.encode("utf-8", "surrogateescape").decode("utf-8", "replace")


def looks_like_task(line: str) -> bool:
    """True for checkbox lines, whether or not they parse as tasks."""
    return bool(CHECKBOX_PATTERN.match(line))


def extract_metadata(text: str) -> Tuple[str, TaskMetadata]:
    """Split ``text`` into its description and the trailing metadata block.

    A parenthesised suffix only counts as metadata when its first segment is
    a ``key: value`` pair, so ``Fix login (urgent)`` keeps its parentheses.
    """
    match = _METADATA_PATTERN.match(text)
    if not match or ":" not in match.group("metadata").split(",", 1)[0]:
        return text.strip(), TaskMetadata()

    metadata = TaskMetadata()
    current_list: Optional[str] = None

    for segment in match.group("metadata").split(","):
        segment = segment.strip()
        if not segment:
            continue

        if ":" not in segment:
            # "depends: T001, T002" continues the previous list key
            if current_list:
                _extend_list(metadata, current_list, segment)
            continue

        key, value = (part.strip() for part in segment.split(":", 1))
        key = key.lower()
        current_list = key if key in LIST_KEYS else None

        if key == "phase":
            metadata.phase = value or None
        elif key == "type":
            metadata.type = value or None
        elif key == "priority":
            if value.lower() in PRIORITIES:
                metadata.priority = value.lower()
        elif key == "effort":
            try:
                metadata.effort = int(value)
            except ValueError:
                logger.debug("Dropping non-numeric effort %r", value)
        elif key in LIST_KEYS:
            _extend_list(metadata, key, value)

    return match.group("description").strip(), metadata


def _extend_list(metadata: TaskMetadata, key: str, value: str) -> None:
    items = [item for item in _LIST_SPLIT.split(value) if item]
    if key == "tags":
        metadata.tags.extend(items)
        return
    for item in items:
        if TaskId.is_valid(item):
            metadata.depends.append(TaskId.parse(item))
        else:
            logger.debug("Dropping invalid dependency reference %r", item)


def metadata_parts(metadata: TaskMetadata) -> List[str]:
    """``key: value`` strings for every set metadata field, in canonical order."""
    parts: List[str] = []
    if metadata.phase:
        parts.append(f"phase: {metadata.phase}")
    if metadata.type:
        parts.append(f"type: {metadata.type}")
    if metadata.depends:
        parts.append("depends: " + ", ".join(str(dep) for dep in metadata.depends))
    if metadata.priority:
        parts.append(f"priority: {metadata.priority}")
    if metadata.effort is not None:
        parts.append(f"effort: {metadata.effort}")
    if metadata.tags:
        parts.append("tags: " + ", ".join(metadata.tags))
    return parts


def format_metadata(metadata: TaskMetadata) -> str:
    return ", ".join(metadata_parts(metadata))


def format_task_line(task: Task, prefix: str = "- ") -> str:
    """Serialise ``task`` back into canonical checklist form."""
    line = f"{prefix}[{marker_for_status(task.status)}] {task.task_id}: {task.description}"
    if not task.metadata.is_empty():
        line += f" ({format_metadata(task.metadata)})"
    return line
