"""Environment-driven configuration for the task engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

PROJECT_ROOT_ENV = "SPECKIT_PROJECT_ROOT"
STORAGE_DIR_ENV = "SPECKIT_STORAGE_DIR"
TASKS_FILE_ENV = "SPECKIT_TASKS_FILE"
LOG_LEVEL_ENV = "SPECKIT_LOG_LEVEL"
LOG_FILE_ENV = "SPECKIT_LOG_FILE"

DEFAULT_STORAGE_DIR = ".speck-it"
DEFAULT_TASKS_FILE = "tasks.md"
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Settings resolved from ``SPECKIT_*`` environment variables."""

    project_root: Optional[Path] = None
    storage_dir: str = DEFAULT_STORAGE_DIR
    tasks_file: str = DEFAULT_TASKS_FILE
    log_level: str = DEFAULT_LOG_LEVEL
    log_file: Optional[Path] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        env = os.environ if environ is None else environ

        root = env.get(PROJECT_ROOT_ENV)
        log_file = env.get(LOG_FILE_ENV)
        return cls(
            project_root=Path(root).expanduser() if root else None,
            storage_dir=env.get(STORAGE_DIR_ENV) or DEFAULT_STORAGE_DIR,
            tasks_file=env.get(TASKS_FILE_ENV) or DEFAULT_TASKS_FILE,
            log_level=(env.get(LOG_LEVEL_ENV) or DEFAULT_LOG_LEVEL).upper(),
            log_file=Path(log_file).expanduser() if log_file else None,
        )
