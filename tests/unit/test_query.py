"""Unit tests for task filtering, presets and sorting."""

import pytest

from speckit_tasks.errors import CircularDependencyError, InvalidQueryError
from speckit_tasks.parser import parse_tasks_content
from speckit_tasks.query import (
    FilterCriteria,
    filter_tasks,
    format_filter_report,
    resolve_criteria,
    sort_tasks,
)


def _ids(tasks):
    return [str(task.task_id) for task in tasks]


class TestResolveCriteria:
    def test_defaults(self):
        resolved = resolve_criteria(FilterCriteria())
        assert resolved.status == "all"
        assert resolved.priority == "all"
        assert resolved.blocker == "all"
        assert resolved.sort_by == "id"
        assert resolved.preset == "none"

    def test_explicit_fields_override_preset(self):
        resolved = resolve_criteria(FilterCriteria(preset="next", sort_by="id", status="in_progress"))
        assert resolved.sort_by == "id"
        assert resolved.status == "in_progress"
        assert resolved.blocker == "unblocked"

    def test_unknown_preset(self):
        with pytest.raises(InvalidQueryError, match="Unknown preset"):
            resolve_criteria(FilterCriteria(preset="someday"))

    @pytest.mark.parametrize(
        "criteria",
        [FilterCriteria(status="done"), FilterCriteria(sort_by="random"),
         FilterCriteria(blocker="maybe"), FilterCriteria(limit=-1)],
    )
    def test_invalid_values(self, criteria):
        with pytest.raises(InvalidQueryError):
            resolve_criteria(criteria)


class TestPredicates:
    def test_status(self, sample_tasks):
        assert _ids(filter_tasks(sample_tasks, FilterCriteria(status="in_progress"))) == ["T003"]

    def test_phase_and_type_are_case_insensitive(self, sample_tasks):
        assert _ids(filter_tasks(sample_tasks, FilterCriteria(phase="POLISH"))) == ["T005", "T006"]
        assert _ids(filter_tasks(sample_tasks, FilterCriteria(task_type="Frontend"))) == ["T003"]

    def test_priority(self, sample_tasks):
        assert _ids(filter_tasks(sample_tasks, FilterCriteria(priority="high"))) == ["T001", "T002", "T004"]

    def test_tags_require_all(self, sample_tasks):
        assert _ids(filter_tasks(sample_tasks, FilterCriteria(tags=["auth"]))) == ["T003", "T004"]
        assert _ids(filter_tasks(sample_tasks, FilterCriteria(tags=["auth", "ui"]))) == ["T003"]

    def test_blocker_state(self, sample_tasks):
        assert _ids(filter_tasks(sample_tasks, FilterCriteria(blocker="blocked"))) == ["T003", "T004", "T006"]
        assert _ids(filter_tasks(sample_tasks, FilterCriteria(blocker="unblocked"))) == ["T002", "T005"]

    def test_limit_after_sort(self, sample_tasks):
        result = filter_tasks(sample_tasks, FilterCriteria(sort_by="priority", limit=2))
        assert _ids(result) == ["T001", "T002"]


class TestPresets:
    @pytest.mark.parametrize(
        "preset, expected",
        [
            ("next", ["T002", "T005"]),
            ("ready", ["T002"]),
            ("backend", ["T002"]),
            ("frontend", []),
            ("cleanup", ["T005", "T006"]),
        ],
    )
    def test_presets(self, sample_tasks, preset, expected):
        assert _ids(filter_tasks(sample_tasks, FilterCriteria(preset=preset))) == expected


class TestSorting:
    TASKS = (
        "- [ ] T004: Polish (phase: polish, priority: low)\n"
        "- [ ] T003: Core work (phase: core, depends: T002)\n"
        "- [ ] T002: Setup work (phase: setup, priority: high, depends: T001)\n"
        "- [ ] T001: Unphased (priority: high)\n"
        "- [ ] T005: Other phase (phase: launch)\n"
    )

    def test_sort_by_id(self):
        tasks = parse_tasks_content(self.TASKS)
        assert _ids(sort_tasks(tasks, "id")) == ["T001", "T002", "T003", "T004", "T005"]

    def test_sort_by_priority_is_stable(self):
        tasks = parse_tasks_content(self.TASKS)
        assert _ids(sort_tasks(tasks, "priority")) == ["T002", "T001", "T003", "T005", "T004"]

    def test_sort_by_phase_puts_unknown_last(self):
        tasks = parse_tasks_content(self.TASKS)
        assert _ids(sort_tasks(tasks, "phase")) == ["T002", "T003", "T004", "T001", "T005"]

    def test_sort_by_dependencies(self):
        tasks = parse_tasks_content(self.TASKS)
        ordered = _ids(sort_tasks(tasks, "dependencies"))
        assert ordered.index("T001") < ordered.index("T002") < ordered.index("T003")

    def test_dependency_sort_respects_filtered_out_tasks(self):
        tasks = parse_tasks_content(
            "- [ ] T003: C (depends: T002)\n- [x] T002: B (depends: T001)\n- [ ] T001: A\n"
        )
        result = filter_tasks(tasks, FilterCriteria(status="pending", sort_by="dependencies"))
        assert _ids(result) == ["T001", "T003"]

    def test_dependency_sort_fails_on_cycle(self):
        tasks = parse_tasks_content("- [ ] T001: A (depends: T002)\n- [ ] T002: B (depends: T001)\n")
        with pytest.raises(CircularDependencyError):
            filter_tasks(tasks, FilterCriteria(sort_by="dependencies"))


class TestMonotonicity:
    def test_completing_a_dependency_never_removes_ready_tasks(self):
        before = parse_tasks_content(
            "- [ ] T001: A\n- [ ] T002: B (depends: T001)\n- [ ] T003: C\n"
        )
        after = parse_tasks_content(
            "- [x] T001: A\n- [ ] T002: B (depends: T001)\n- [ ] T003: C\n"
        )
        criteria = FilterCriteria(status="pending", blocker="unblocked")

        ready_before = set(_ids(filter_tasks(before, criteria))) - {"T001"}
        ready_after = set(_ids(filter_tasks(after, criteria)))

        assert ready_before <= ready_after
        assert "T002" in ready_after


class TestFilterReport:
    def test_report(self, sample_tasks):
        criteria = resolve_criteria(FilterCriteria(preset="next"))
        report = format_filter_report(filter_tasks(sample_tasks, criteria), 6, criteria)

        assert report.startswith("# Task Filter Results")
        assert "- Preset: next" in report
        assert "**Results:** 2 tasks found (out of 6 total)" in report
        assert "[ ] **T002**: Configure database schema" in report
        assert "*phase: setup | type: backend | depends: T001 | priority: high*" in report

    def test_empty_report(self):
        criteria = resolve_criteria(FilterCriteria(status="completed"))
        report = format_filter_report([], 0, criteria)
        assert "*No tasks match the filter criteria.*" in report
