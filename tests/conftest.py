"""Shared fixtures for the task engine test suite."""

import pytest

from speckit_tasks.parser import parse_tasks_content


SAMPLE_TASKS = """# Tasks

## Setup
- [x] T001: Initialize project structure (phase: setup, type: backend, priority: high, effort: 2, tags: infra)
- [ ] T002: Configure database schema (phase: setup, type: backend, depends: T001, priority: high)
- [~] T003: Build login form (phase: core, type: frontend, depends: T002, tags: auth, ui)
- [ ] T004: Implement authentication flow (phase: core, type: backend, depends: T002, T003, priority: high, tags: auth)
- [ ] T005: Write API documentation (phase: polish, type: docs, priority: low)
- [ ] T006: Clean up logging (phase: polish, type: backend, depends: T099, priority: low)
- [] T007 broken line
"""


@pytest.fixture
def sample_content():
    """Raw text of the sample tasks document."""
    return SAMPLE_TASKS


@pytest.fixture
def sample_tasks():
    """Parsed tasks of the sample document."""
    return parse_tasks_content(SAMPLE_TASKS)


@pytest.fixture
def tasks_file(tmp_path):
    """Sample document written to the conventional location below tmp_path."""
    path = tmp_path / ".speck-it" / "tasks.md"
    path.parent.mkdir(parents=True)
    path.write_text(SAMPLE_TASKS, encoding="utf-8")
    return path

