"""Workspace location and document I/O for the task engine.

This module decides which tasks.md a request refers to and owns the only
read and write paths to it. Nothing is cached: every call reads the file
again so edits made outside the engine are always observed.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

from .config import EngineConfig
from .errors import TasksFileNotFoundError, WorkspaceResolutionError
from .tasks_logging import get_logger

logger = get_logger("workspace")

SERVER_ROOT = Path(__file__).resolve().parent.parent


def _candidate_bases(start: Optional[Path] = None) -> List[Path]:
    cwd = (start or Path.cwd()).resolve()
    bases: List[Path] = [cwd]
    bases.extend(cwd.parents)
    for candidate in (SERVER_ROOT, *SERVER_ROOT.parents):
        if candidate not in bases:
            bases.append(candidate)
    return bases


def locate_workspace_root(storage_dir: str, start: Optional[Path] = None) -> Optional[Path]:
    """Walk up from ``start`` (or the cwd) to the first directory holding ``storage_dir``."""
    for base in _candidate_bases(start):
        if (base / storage_dir).is_dir():
            return base
    return None


def resolve_root(root: Optional[str] = None, config: Optional[EngineConfig] = None) -> Path:
    """Resolve the workspace root from an argument, the environment, or detection."""
    config = config or EngineConfig.from_env()

    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.exists():
            raise WorkspaceResolutionError(f"Provided root '{root}' does not exist.")
        return resolved

    if config.project_root is not None:
        env_path = config.project_root.resolve()
        if not env_path.exists():
            raise WorkspaceResolutionError(
                f"Environment variable SPECKIT_PROJECT_ROOT points to '{config.project_root}', which does not exist."
            )
        return env_path

    detected = locate_workspace_root(config.storage_dir)
    if detected:
        return detected

    raise WorkspaceResolutionError(
        "Unable to determine project root automatically. Provide the 'root' argument when calling the tool "
        "or set the SPECKIT_PROJECT_ROOT environment variable."
    )


class TasksWorkspace:
    """Conventional locations of task documents below a project root."""

    def __init__(self, root: Path | str, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig.from_env()
        self.root = Path(root).resolve()
        self.base_dir = self.root / self.config.storage_dir
        self.specs_dir = self.base_dir / "specs"

    def tasks_path(self, feature_id: Optional[str] = None) -> Path:
        """Default tasks document, per feature when ``feature_id`` is given."""
        if feature_id:
            return self.specs_dir / feature_id / self.config.tasks_file
        return self.base_dir / self.config.tasks_file

    def list_task_documents(self) -> List[Path]:
        """All task documents present in the workspace, shared one first."""
        found: List[Path] = []
        shared = self.tasks_path()
        if shared.exists():
            found.append(shared)
        if self.specs_dir.is_dir():
            for feature_dir in sorted(self.specs_dir.iterdir()):
                candidate = feature_dir / self.config.tasks_file
                if feature_dir.is_dir() and candidate.exists():
                    found.append(candidate)
        return found


def resolve_tasks_path(
    tasks_path: Optional[str] = None,
    root: Optional[str] = None,
    feature_id: Optional[str] = None,
    config: Optional[EngineConfig] = None,
) -> Path:
    """Pick the document a request refers to; an explicit path always wins."""
    if tasks_path:
        path = Path(tasks_path).expanduser()
        if not path.is_absolute() and root:
            path = Path(root).expanduser() / path
        return path.resolve()

    config = config or EngineConfig.from_env()
    workspace = TasksWorkspace(resolve_root(root, config), config)
    return workspace.tasks_path(feature_id)


def read_document(path: Path | str) -> str:
    """Return the raw document text with line endings untouched."""
    path = Path(path)
    if not path.is_file():
        raise TasksFileNotFoundError(path)
    # newline="" keeps "\r\n" intact; surrogateescape carries undecodable bytes through unchanged
    with path.open("r", encoding="utf-8", errors="surrogateescape", newline="") as handle:
        return handle.read()


def write_document(path: Path | str, content: str) -> None:
    """Replace the document atomically: temp file in the same directory, then rename."""
    path = Path(path)
    fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape", newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        if path.exists():
            shutil.copymode(path, temp_path)
        os.replace(temp_path, path)
    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise
    logger.debug("Wrote tasks document %s (%d bytes)", path, len(content))
