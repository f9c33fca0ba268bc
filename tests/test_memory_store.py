"""Tests for the in-process task graph store."""

import random
import threading

import pytest

from specflow.errors import (
    CycleError,
    NotFoundError,
    TasksIncompleteError,
    TerminalStateError,
)
from specflow.graph.memory import MemoryTaskGraphStore
from specflow.graph.models import DependencyType, TaskKind, TaskStatus
from specflow.graph.traversal import blocks_successors, find_blocks_path


@pytest.fixture
def store() -> MemoryTaskGraphStore:
    return MemoryTaskGraphStore()


class TestCreateTask:
    def test_returns_unique_ids(self, store):
        a = store.create_task("A")
        b = store.create_task("B")
        assert a != b

    def test_new_task_is_open(self, store):
        task_id = store.create_task("A", labels=["feature:auth"], priority=2)
        task = store.get_task(task_id)
        assert task.status == TaskStatus.open
        assert task.labels == {"feature:auth"}
        assert task.priority == 2
        assert task.kind == TaskKind.task

    def test_returned_tasks_are_copies(self, store):
        task_id = store.create_task("A")
        task = store.get_task(task_id)
        task.status = TaskStatus.closed
        assert store.get_task(task_id).status == TaskStatus.open

    def test_list_tasks_by_label(self, store):
        a = store.create_task("A", labels=["x"])
        store.create_task("B", labels=["y"])
        c = store.create_task("C", labels=["x", "y"])
        assert [t.task_id for t in store.list_tasks(label="x")] == [a, c]
        assert len(store.list_tasks()) == 3
        assert store.list_tasks(label="missing") == []


class TestAddDependency:
    def test_unknown_ids(self, store):
        a = store.create_task("A")
        with pytest.raises(NotFoundError):
            store.add_dependency(a, "nope")
        with pytest.raises(NotFoundError):
            store.add_dependency("nope", a)

    def test_direct_cycle_rejected(self, store):
        a = store.create_task("A")
        b = store.create_task("B")
        store.add_dependency(a, b)
        with pytest.raises(CycleError):
            store.add_dependency(b, a)
        assert len(store.edges()) == 1

    def test_transitive_cycle_rejected(self, store):
        a, b, c = (store.create_task(t) for t in "ABC")
        store.add_dependency(a, b)
        store.add_dependency(b, c)
        with pytest.raises(CycleError) as exc_info:
            store.add_dependency(c, a)
        assert exc_info.value.path == [a, b, c]

    def test_self_edge_is_a_cycle(self, store):
        a = store.create_task("A")
        with pytest.raises(CycleError):
            store.add_dependency(a, a)

    def test_discovered_from_may_point_backwards(self, store):
        a = store.create_task("A")
        b = store.create_task("B")
        store.add_dependency(a, b)
        store.add_dependency(b, a, DependencyType.discovered_from)
        assert len(store.edges()) == 2

    def test_duplicate_edge_is_noop(self, store):
        a = store.create_task("A")
        b = store.create_task("B")
        store.add_dependency(a, b)
        store.add_dependency(a, b)
        assert len(store.edges()) == 1

    def test_dependencies_lists_both_directions(self, store):
        a, b, c = (store.create_task(t) for t in "ABC")
        store.add_dependency(a, b)
        store.add_dependency(b, c)
        assert len(store.dependencies(b)) == 2
        with pytest.raises(NotFoundError):
            store.dependencies("nope")

    def test_random_insertions_stay_acyclic(self, store):
        rng = random.Random(7)
        ids = [store.create_task(f"T{i}") for i in range(12)]
        for _ in range(150):
            src, dst = rng.choice(ids), rng.choice(ids)
            before = list(store.edges())
            try:
                store.add_dependency(src, dst)
            except CycleError:
                assert store.edges() == before
        succ = blocks_successors(store.edges())
        for edge in store.edges():
            assert find_blocks_path(succ, edge.to_id, edge.from_id) is None


class TestUpdateStatus:
    def test_legal_transitions(self, store):
        a = store.create_task("A")
        store.update_status(a, TaskStatus.in_progress)
        store.update_status(a, TaskStatus.open)
        store.update_status(a, TaskStatus.in_progress)
        store.update_status(a, TaskStatus.closed)
        assert store.get_task(a).status == TaskStatus.closed

    def test_direct_close(self, store):
        a = store.create_task("A")
        store.update_status(a, TaskStatus.closed)
        assert store.get_task(a).status == TaskStatus.closed

    @pytest.mark.parametrize("target", list(TaskStatus))
    def test_closed_is_terminal(self, store, target):
        a = store.create_task("A")
        store.update_status(a, TaskStatus.closed)
        with pytest.raises(TerminalStateError):
            store.update_status(a, target)
        assert store.get_task(a).status == TaskStatus.closed

    def test_unknown_task(self, store):
        with pytest.raises(NotFoundError):
            store.update_status("nope", TaskStatus.closed)

    def test_same_status_is_noop(self, store):
        a = store.create_task("A")
        store.update_status(a, TaskStatus.open)
        assert store.get_task(a).status == TaskStatus.open

    def test_epic_cannot_close_with_open_children(self, store):
        epic = store.create_task("Epic", labels=["change:x"], kind=TaskKind.epic)
        child = store.create_task("Child", labels=["change:x"])
        with pytest.raises(TasksIncompleteError) as exc_info:
            store.update_status(epic, TaskStatus.closed)
        assert exc_info.value.open_ids == [child]
        store.update_status(child, TaskStatus.closed)
        store.update_status(epic, TaskStatus.closed)
        assert store.get_task(epic).status == TaskStatus.closed


class TestReady:
    def test_blocked_until_blocker_closed(self, store):
        a = store.create_task("A")
        b = store.create_task("B")
        store.add_dependency(a, b)
        assert [t.task_id for t in store.ready()] == [a]
        store.update_status(a, TaskStatus.in_progress)
        assert store.ready() == []
        store.update_status(a, TaskStatus.closed)
        assert [t.task_id for t in store.ready()] == [b]

    def test_discovered_from_does_not_block(self, store):
        a = store.create_task("A")
        b = store.create_task("B")
        store.add_dependency(a, b, DependencyType.discovered_from)
        assert {t.task_id for t in store.ready()} == {a, b}

    def test_ordering(self, store):
        low = store.create_task("low", priority=0)
        high1 = store.create_task("high1", priority=3)
        mid = store.create_task("mid", priority=1)
        high2 = store.create_task("high2", priority=3)
        assert [t.task_id for t in store.ready()] == [high1, high2, mid, low]

    def test_label_filter(self, store):
        a = store.create_task("A", labels=["feature:auth"])
        store.create_task("B", labels=["feature:billing"])
        assert [t.task_id for t in store.ready(label="feature:auth")] == [a]

    def test_open_epic_is_ready(self, store):
        epic = store.create_task("Epic", labels=["x"], kind=TaskKind.epic)
        task = store.create_task("Leaf", labels=["x"])
        assert [t.task_id for t in store.ready(label="x")] == [epic, task]

    def test_blocked_epic_is_listed(self, store):
        blocker = store.create_task("Blocker")
        epic = store.create_task("Epic", labels=["x"], kind=TaskKind.epic)
        store.add_dependency(blocker, epic)
        assert [b.task.task_id for b in store.blocked()] == [epic]
        assert [t.task_id for t in store.ready()] == [blocker]

    def test_readiness_matches_definition(self, store):
        rng = random.Random(11)
        ids = [store.create_task(f"T{i}", priority=rng.randint(0, 3)) for i in range(15)]
        for _ in range(40):
            try:
                store.add_dependency(rng.choice(ids), rng.choice(ids))
            except CycleError:
                pass
        for task_id in rng.sample(ids, 6):
            store.update_status(task_id, rng.choice([TaskStatus.in_progress, TaskStatus.closed]))

        ready_ids = {t.task_id for t in store.ready()}
        blocked_ids = {b.task.task_id for b in store.blocked()}
        for task_id in ids:
            task = store.get_task(task_id)
            blockers = [
                e.from_id
                for e in store.dependencies(task_id)
                if e.to_id == task_id and e.dep_type == DependencyType.blocks
            ]
            expected = task.status == TaskStatus.open and all(
                store.get_task(b).status == TaskStatus.closed for b in blockers
            )
            assert (task_id in ready_ids) == expected
            if task.status == TaskStatus.open:
                assert (task_id in blocked_ids) != expected


class TestBlocked:
    def test_lists_open_blockers(self, store):
        a = store.create_task("A")
        b = store.create_task("B")
        c = store.create_task("C")
        store.add_dependency(a, c)
        store.add_dependency(b, c)
        store.update_status(a, TaskStatus.closed)
        entries = store.blocked()
        assert len(entries) == 1
        assert entries[0].task.task_id == c
        assert entries[0].blocked_by == [b]

    def test_in_progress_tasks_are_neither_ready_nor_blocked(self, store):
        a = store.create_task("A")
        b = store.create_task("B")
        store.add_dependency(a, b)
        store.update_status(b, TaskStatus.in_progress)
        assert [t.task_id for t in store.ready()] == [a]
        assert store.blocked() == []


class TestEpicStatus:
    def test_counts_children_by_label(self, store):
        labels = ["feature:auth", "change:auth/add-mfa"]
        epic = store.create_task("Epic", labels=labels, kind=TaskKind.epic)
        a = store.create_task("A", labels=labels)
        b = store.create_task("B", labels=labels)
        store.create_task("C", labels=labels)
        store.create_task("Other", labels=["feature:auth"])
        store.update_status(a, TaskStatus.closed)
        store.update_status(b, TaskStatus.in_progress)
        progress = store.epic_status(epic)
        assert progress.open_count == 1
        assert progress.in_progress_count == 1
        assert progress.closed_count == 1
        assert progress.percent_closed == pytest.approx(33.3)

    def test_unknown_epic(self, store):
        with pytest.raises(NotFoundError):
            store.epic_status("nope")


class TestConcurrency:
    def test_parallel_creates_get_distinct_ids(self, store):
        ids: list[str] = []
        lock = threading.Lock()

        def worker():
            for i in range(50):
                task_id = store.create_task(f"t{i}")
                with lock:
                    ids.append(task_id)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(ids) == len(set(ids)) == 200
