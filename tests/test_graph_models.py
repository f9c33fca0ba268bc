"""Tests for the task graph models."""

from specflow.graph.models import (
    DependencyEdge,
    DependencyType,
    EpicProgress,
    Task,
    TaskKind,
    TaskStatus,
    sort_ready,
    valid_status_change,
)


class TestTaskStatus:
    def test_status_values(self):
        assert TaskStatus.open == "open"
        assert TaskStatus.in_progress == "in_progress"
        assert TaskStatus.closed == "closed"

    def test_dependency_type_values(self):
        assert DependencyType.blocks == "blocks"
        assert DependencyType.discovered_from == "discovered-from"


class TestStatusChanges:
    def test_legal_changes(self):
        assert valid_status_change(TaskStatus.open, TaskStatus.in_progress)
        assert valid_status_change(TaskStatus.in_progress, TaskStatus.open)
        assert valid_status_change(TaskStatus.in_progress, TaskStatus.closed)
        assert valid_status_change(TaskStatus.open, TaskStatus.closed)

    def test_closed_is_terminal(self):
        for status in TaskStatus:
            assert not valid_status_change(TaskStatus.closed, status)


class TestTask:
    def test_minimal_creation(self):
        task = Task(task_id="t1", title="Fix bug")
        assert task.status == TaskStatus.open
        assert task.kind == TaskKind.task
        assert task.priority == 1
        assert task.labels == set()
        assert task.epic_id is None
        assert task.created_at

    def test_has_label(self):
        task = Task(task_id="t1", title="x", labels={"feature:auth"})
        assert task.has_label("feature:auth")
        assert task.has_label(None)
        assert not task.has_label("feature:billing")

    def test_to_dict_sorts_labels(self):
        task = Task(
            task_id="t1",
            title="Entity",
            labels={"b", "a"},
            created_at="2026-01-01T00:00:00+00:00",
            updated_at="2026-01-01T00:00:00+00:00",
        )
        data = task.to_dict()
        assert data["labels"] == ["a", "b"]
        assert data["status"] == "open"
        assert data["kind"] == "task"

    def test_from_dict_minimal(self):
        task = Task.from_dict({"task_id": "t1", "title": "Do thing"})
        assert task.status == TaskStatus.open
        assert task.kind == TaskKind.task
        assert task.labels == set()

    def test_epic_from_dict(self):
        task = Task.from_dict(
            {"task_id": "e1", "title": "Epic", "kind": "epic", "status": "closed"}
        )
        assert task.is_epic
        assert task.status == TaskStatus.closed


class TestDependencyEdge:
    def test_from_dict_defaults_to_blocks(self):
        edge = DependencyEdge.from_dict({"from_id": "a", "to_id": "b"})
        assert edge.dep_type == DependencyType.blocks

    def test_to_dict(self):
        edge = DependencyEdge("a", "b", DependencyType.discovered_from)
        assert edge.to_dict() == {
            "from_id": "a",
            "to_id": "b",
            "dep_type": "discovered-from",
        }


class TestEpicProgress:
    def test_percent_closed(self):
        progress = EpicProgress(open_count=1, in_progress_count=1, closed_count=2)
        assert progress.total == 4
        assert progress.percent_closed == 50.0
        assert not progress.is_complete

    def test_empty_epic(self):
        progress = EpicProgress()
        assert progress.percent_closed == 0.0
        assert progress.is_complete


class TestSortReady:
    def test_priority_descending_then_creation(self):
        low = Task(task_id="a", title="a", priority=0, created_at="2026-01-01T00:00:01")
        high_late = Task(task_id="b", title="b", priority=3, created_at="2026-01-01T00:00:03")
        high_early = Task(task_id="c", title="c", priority=3, created_at="2026-01-01T00:00:02")
        ordered = sort_ready([low, high_late, high_early])
        assert [t.task_id for t in ordered] == ["c", "b", "a"]

    def test_insertion_order_breaks_ties(self):
        stamp = "2026-01-01T00:00:00"
        first = Task(task_id="x-2", title="first", created_at=stamp)
        second = Task(task_id="x-1", title="second", created_at=stamp)
        ordered = sort_ready([second, first], order={"x-2": 0, "x-1": 1})
        assert [t.title for t in ordered] == ["first", "second"]
