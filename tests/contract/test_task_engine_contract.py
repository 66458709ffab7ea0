"""
Contract tests for the task engine's documented guarantees:
round-trip stability, dependency ordering, cycle detection, blocker
classification, batch completion semantics, fuzzy search and rendering.
"""

import itertools

import pytest

from speckit_tasks.batch import complete_tasks
from speckit_tasks.blockers import classify_blockers, get_unblocked_tasks
from speckit_tasks.errors import CircularDependencyError, StrictModeError
from speckit_tasks.graph import build_dependency_graph, detect_circular_dependencies, topological_sort
from speckit_tasks.models import TaskId
from speckit_tasks.parser import format_task_line, parse_tasks_content
from speckit_tasks.query import FilterCriteria, filter_tasks
from speckit_tasks.render import FORMATS, render_graph
from speckit_tasks.search import SearchOptions, search_tasks


CHAIN = (
    "- [x] T001: Setup\n"
    "- [ ] T002: Build (depends: T001)\n"
    "- [ ] T003: Ship (depends: T002)\n"
)


def _canonical(tasks):
    return "\n".join(format_task_line(task) for task in tasks)


class TestRoundTripContract:
    """Serialising and re-parsing a document changes nothing."""

    def test_canonical_form_is_a_fixed_point(self, sample_content):
        """
        Contract Test: format(parse(text)) is stable under a second pass.

        Given: A document with metadata in mixed order and spacing
        When: It is parsed, serialised, and the result parsed again
        Then: The second serialisation equals the first
        """
        first = _canonical(parse_tasks_content(sample_content))
        second = _canonical(parse_tasks_content(first))
        assert first == second

    def test_reparsed_tasks_match(self, sample_tasks):
        reparsed = parse_tasks_content(_canonical(sample_tasks))

        assert [task.to_dict() | {"line": None} for task in reparsed] == [
            task.to_dict() | {"line": None} for task in sample_tasks
        ]


class TestOrderingContract:
    """Topological order covers every task and respects every edge."""

    @pytest.mark.parametrize("order", list(itertools.permutations(range(4))))
    def test_every_input_order(self, order):
        lines = [
            "- [ ] T001: A",
            "- [ ] T002: B (depends: T001)",
            "- [ ] T003: C (depends: T001)",
            "- [ ] T004: D (depends: T002, T003)",
        ]
        tasks = parse_tasks_content("\n".join(lines[index] for index in order))

        ordered = [str(task.task_id) for task in topological_sort(tasks)]

        assert sorted(ordered) == ["T001", "T002", "T003", "T004"]
        for task in tasks:
            for dep in task.metadata.depends:
                assert ordered.index(str(dep)) < ordered.index(str(task.task_id))

    def test_sort_fails_on_cycle(self):
        tasks = parse_tasks_content("- [ ] T001: A (depends: T001)\n")
        with pytest.raises(CircularDependencyError):
            topological_sort(tasks)


class TestCycleContract:
    """A cycle is reported if and only if one exists."""

    @pytest.mark.parametrize(
        "content, expected",
        [
            (CHAIN, []),
            ("- [ ] T001: A (depends: T002)\n- [ ] T002: B (depends: T001)\n", ["T001", "T002"]),
            ("- [ ] T001: A (depends: T001)\n- [ ] T002: B (depends: T001)\n", ["T001"]),
            ("- [ ] T001: A (depends: T099)\n", []),
            ("- [x] T001: A (depends: T002)\n- [x] T002: B (depends: T001)\n", ["T001", "T002"]),
        ],
    )
    def test_detection(self, content, expected):
        graph = build_dependency_graph(parse_tasks_content(content))
        assert [str(task_id) for task_id in detect_circular_dependencies(graph)] == expected


class TestBlockerContract:
    def test_chain_example(self):
        """
        Contract Test: Only tasks whose dependencies are all complete are unblocked.

        Given: T001 complete, T002 depends on T001, T003 depends on T002
        When: Blockers are classified
        Then: T002 is unblocked and T003 is blocked by T002
        """
        statuses = classify_blockers(parse_tasks_content(CHAIN))

        assert statuses[TaskId.parse("T001")].completed
        assert statuses[TaskId.parse("T002")].unblocked
        assert statuses[TaskId.parse("T003")].blocked
        assert statuses[TaskId.parse("T003")].unmet == [TaskId.parse("T002")]

    def test_unblocked_tasks_are_never_complete(self, sample_tasks):
        assert all(not task.completed for task in get_unblocked_tasks(sample_tasks))


class TestBatchContract:
    @pytest.fixture
    def chain_file(self, tmp_path):
        path = tmp_path / "tasks.md"
        path.write_text(CHAIN, encoding="utf-8")
        return path

    def test_lenient_range(self, chain_file):
        """
        Contract Test: Lenient batch completion skips finished tasks.

        Given: The chain document with T001 already complete
        When: T001-T003 is completed in lenient mode
        Then: T002 and T003 are completed and T001 is skipped
        """
        report = complete_tasks(chain_file, "T001-T003")

        assert report.completed == ["T002", "T003"]
        assert report.skipped == [{"id": "T001", "reason": "Already completed"}]
        assert chain_file.read_text(encoding="utf-8") == CHAIN.replace("[ ]", "[x]")

    def test_strict_range_is_all_or_nothing(self, chain_file):
        """
        Contract Test: Strict batch completion writes nothing on any failure.

        Given: The chain document with T001 already complete
        When: T001-T003 is completed in strict mode
        Then: The call fails naming T001 and the document is unchanged
        """
        with pytest.raises(StrictModeError) as excinfo:
            complete_tasks(chain_file, "T001-T003", strict=True)

        assert excinfo.value.details()["task_ids"] == ["T001"]
        assert chain_file.read_text(encoding="utf-8") == CHAIN


class TestSearchContract:
    def test_fuzzy_tolerates_transposition(self, sample_tasks):
        """
        Contract Test: A transposed query still finds the intended task.

        Given: A task described as "Implement authentication flow"
        When: Searching "atuh" in fuzzy mode at the default threshold
        Then: That task is returned, while exact mode returns nothing
        """
        fuzzy = search_tasks(sample_tasks, SearchOptions(query="atuh", mode="fuzzy"))
        exact = search_tasks(sample_tasks, SearchOptions(query="atuh"))

        assert [str(hit.task.task_id) for hit in fuzzy.hits] == ["T004"]
        assert exact.hits == []


class TestFilterContract:
    @pytest.mark.parametrize(
        "broad, narrow",
        [
            (FilterCriteria(), FilterCriteria(status="pending")),
            (FilterCriteria(status="pending"), FilterCriteria(status="pending", priority="high")),
            (FilterCriteria(tags=["auth"]), FilterCriteria(tags=["auth", "ui"])),
            (FilterCriteria(blocker="unblocked"), FilterCriteria(blocker="unblocked", phase="setup")),
        ],
    )
    def test_adding_predicates_never_adds_results(self, sample_tasks, broad, narrow):
        broad_ids = {task.task_id for task in filter_tasks(sample_tasks, broad)}
        narrow_ids = {task.task_id for task in filter_tasks(sample_tasks, narrow)}
        assert narrow_ids <= broad_ids


class TestRenderContract:
    @pytest.mark.parametrize("fmt", FORMATS)
    @pytest.mark.parametrize("include_completed", [True, False])
    def test_cyclic_graphs_never_render(self, fmt, include_completed):
        tasks = parse_tasks_content(
            "- [x] T001: A (depends: T002)\n- [x] T002: B (depends: T001)\n- [ ] T003: C\n"
        )
        with pytest.raises(CircularDependencyError) as excinfo:
            render_graph(tasks, fmt, include_completed=include_completed)
        assert excinfo.value.task_ids == ["T001", "T002"]

    @pytest.mark.parametrize("fmt", FORMATS)
    def test_every_visible_task_is_drawn(self, sample_tasks, fmt):
        output = render_graph(sample_tasks, fmt, include_completed=True)
        for task in sample_tasks:
            assert str(task.task_id) in output
