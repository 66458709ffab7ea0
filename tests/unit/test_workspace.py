"""Unit tests for document location, configuration and document I/O.

This module tests root resolution, the conventional tasks.md locations,
environment-driven settings and the atomic write path.
"""

import os
import stat

import pytest

from speckit_tasks.config import EngineConfig
from speckit_tasks.errors import TasksFileNotFoundError, WorkspaceResolutionError
from speckit_tasks.workspace import (
    TasksWorkspace,
    locate_workspace_root,
    read_document,
    resolve_root,
    resolve_tasks_path,
    write_document,
)


class TestEngineConfig:
    """Test cases for environment configuration."""

    def test_defaults(self):
        config = EngineConfig.from_env({})
        assert config.project_root is None
        assert config.storage_dir == ".speck-it"
        assert config.tasks_file == "tasks.md"
        assert config.log_level == "INFO"
        assert config.log_file is None

    def test_values_from_environment(self, tmp_path):
        config = EngineConfig.from_env({
            "SPECKIT_PROJECT_ROOT": str(tmp_path),
            "SPECKIT_STORAGE_DIR": ".custom",
            "SPECKIT_TASKS_FILE": "todo.md",
            "SPECKIT_LOG_LEVEL": "debug",
            "SPECKIT_LOG_FILE": str(tmp_path / "engine.log"),
        })
        assert config.project_root == tmp_path
        assert config.storage_dir == ".custom"
        assert config.tasks_file == "todo.md"
        assert config.log_level == "DEBUG"
        assert config.log_file == tmp_path / "engine.log"

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("SPECKIT_STORAGE_DIR", ".from-env")
        assert EngineConfig.from_env().storage_dir == ".from-env"


class TestTasksWorkspace:
    """Test cases for conventional document locations."""

    def test_shared_tasks_path(self, tmp_path):
        workspace = TasksWorkspace(tmp_path, EngineConfig())
        assert workspace.base_dir == tmp_path.resolve() / ".speck-it"
        assert workspace.tasks_path() == tmp_path.resolve() / ".speck-it" / "tasks.md"

    def test_feature_tasks_path(self, tmp_path):
        workspace = TasksWorkspace(tmp_path, EngineConfig())
        assert workspace.tasks_path("001-auth") == tmp_path.resolve() / ".speck-it" / "specs" / "001-auth" / "tasks.md"

    def test_custom_storage_dir(self, tmp_path):
        workspace = TasksWorkspace(tmp_path, EngineConfig(storage_dir=".custom", tasks_file="todo.md"))
        assert workspace.tasks_path() == tmp_path.resolve() / ".custom" / "todo.md"

    def test_list_task_documents(self, tmp_path):
        workspace = TasksWorkspace(tmp_path, EngineConfig())
        for path in (workspace.tasks_path(), workspace.tasks_path("002-b"), workspace.tasks_path("001-a")):
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("- [ ] T001: Task\n", encoding="utf-8")
        (workspace.specs_dir / "003-empty").mkdir()

        assert workspace.list_task_documents() == [
            workspace.tasks_path(),
            workspace.tasks_path("001-a"),
            workspace.tasks_path("002-b"),
        ]


class TestRootResolution:
    """Test cases for root resolution order."""

    def test_explicit_root(self, tmp_path):
        assert resolve_root(str(tmp_path), EngineConfig()) == tmp_path.resolve()

    def test_missing_explicit_root(self, tmp_path):
        with pytest.raises(WorkspaceResolutionError, match="does not exist"):
            resolve_root(str(tmp_path / "missing"), EngineConfig())

    def test_environment_root(self, tmp_path):
        assert resolve_root(None, EngineConfig(project_root=tmp_path)) == tmp_path.resolve()

    def test_missing_environment_root(self, tmp_path):
        with pytest.raises(WorkspaceResolutionError, match="SPECKIT_PROJECT_ROOT"):
            resolve_root(None, EngineConfig(project_root=tmp_path / "missing"))

    def test_detection_walks_up(self, tmp_path):
        (tmp_path / ".speck-it").mkdir()
        nested = tmp_path / "src" / "pkg"
        nested.mkdir(parents=True)
        assert locate_workspace_root(".speck-it", nested) == tmp_path.resolve()

    def test_detection_from_cwd(self, tmp_path, monkeypatch):
        (tmp_path / ".speck-it").mkdir()
        monkeypatch.chdir(tmp_path)
        assert resolve_root(None, EngineConfig()) == tmp_path.resolve()


class TestResolveTasksPath:
    def test_explicit_path_wins(self, tmp_path):
        target = tmp_path / "elsewhere.md"
        assert resolve_tasks_path(str(target), None, "001-auth", EngineConfig()) == target.resolve()

    def test_relative_path_joins_root(self, tmp_path):
        assert resolve_tasks_path("docs/tasks.md", str(tmp_path), None, EngineConfig()) == (
            tmp_path / "docs" / "tasks.md"
        ).resolve()

    def test_default_location(self, tmp_path):
        assert resolve_tasks_path(None, str(tmp_path), "001-auth", EngineConfig()) == (
            tmp_path.resolve() / ".speck-it" / "specs" / "001-auth" / "tasks.md"
        )


class TestDocumentIO:
    """Test cases for reading and atomically replacing documents."""

    def test_read_preserves_line_endings(self, tmp_path):
        path = tmp_path / "tasks.md"
        path.write_bytes(b"- [ ] T001: A\r\n- [ ] T002: B\n")
        assert read_document(path) == "- [ ] T001: A\r\n- [ ] T002: B\n"

    def test_read_missing(self, tmp_path):
        with pytest.raises(TasksFileNotFoundError) as excinfo:
            read_document(tmp_path / "missing.md")
        assert isinstance(excinfo.value, FileNotFoundError)
        assert excinfo.value.details() == {"tasks_path": str(tmp_path / "missing.md")}

    def test_write_replaces_content(self, tmp_path):
        path = tmp_path / "tasks.md"
        path.write_text("old", encoding="utf-8")

        write_document(path, "new\r\ncontent")

        assert path.read_bytes() == b"new\r\ncontent"
        assert [item.name for item in tmp_path.iterdir()] == ["tasks.md"]

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_write_keeps_permissions(self, tmp_path):
        path = tmp_path / "tasks.md"
        path.write_text("old", encoding="utf-8")
        path.chmod(0o640)

        write_document(path, "new")

        assert stat.S_IMODE(path.stat().st_mode) == 0o640

    def test_failed_write_cleans_up(self, tmp_path, monkeypatch):
        path = tmp_path / "tasks.md"
        path.write_text("old", encoding="utf-8")

        def fail_replace(src, dst):
            raise OSError("rename failed")

        monkeypatch.setattr("speckit_tasks.workspace.os.replace", fail_replace)
        with pytest.raises(OSError, match="rename failed"):
            write_document(path, "new")

        assert path.read_text(encoding="utf-8") == "old"
        assert [item.name for item in tmp_path.iterdir()] == ["tasks.md"]

    def test_undecodable_bytes_round_trip(self, tmp_path):
        path = tmp_path / "tasks.md"
        raw = b"- [ ] T001: caf\xe9\r\n- [ ] T002: ok\n"
        path.write_bytes(raw)

        content = read_document(path)
        write_document(path, content)

        assert path.read_bytes() == raw
