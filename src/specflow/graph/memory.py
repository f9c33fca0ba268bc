"""MemoryTaskGraphStore: in-process task graph guarded by a single lock."""

import logging
import threading
from collections import defaultdict
from collections.abc import Iterable
from copy import deepcopy
from datetime import UTC, datetime

from specflow.errors import (
    CycleError,
    NotFoundError,
    TasksIncompleteError,
    TerminalStateError,
)

from .models import (
    BlockedTask,
    DependencyEdge,
    DependencyType,
    EpicProgress,
    Task,
    TaskKind,
    TaskStatus,
    valid_status_change,
)
from .protocol import TaskGraphStore
from .traversal import (
    blocks_successors,
    compute_blocked,
    compute_ready,
    epic_children,
    epic_progress,
    find_blocks_path,
)

logger = logging.getLogger(__name__)


class MemoryTaskGraphStore(TaskGraphStore):
    """Authoritative in-process storage of tasks and dependency edges.

    Tasks live in an insertion-ordered dict, edges in a list, and a label
    index maps each label to the set of task ids carrying it. One
    re-entrant lock serializes every mutation and every query, so a
    readiness check never observes half of a concurrent close.

    Returned tasks are copies; mutating them does not touch the store.
    """

    store_name = "memory"

    def __init__(self, id_prefix: str = "sf") -> None:
        self._lock = threading.RLock()
        self._id_prefix = id_prefix
        self._tasks: dict[str, Task] = {}
        self._edges: list[DependencyEdge] = []
        self._order: dict[str, int] = {}
        self._label_index: dict[str, set[str]] = defaultdict(set)
        self._next_seq = 1

    # -- mutations ---------------------------------------------------------

    def create_task(
        self,
        title: str,
        labels: Iterable[str] = (),
        priority: int = 1,
        kind: TaskKind = TaskKind.task,
        epic_id: str | None = None,
        description: str = "",
    ) -> str:
        with self._lock:
            task_id = self._new_id()
            task = Task(
                task_id=task_id,
                title=title,
                description=description,
                priority=priority,
                kind=TaskKind(kind),
                labels=set(labels),
                epic_id=epic_id,
            )
            self._insert(task)
            logger.info(f"[GRAPH] created {task.kind} {task_id}: {title}")
            self._committed()
            return task_id

    def add_dependency(
        self,
        from_id: str,
        to_id: str,
        dep_type: DependencyType = DependencyType.blocks,
    ) -> None:
        dep_type = DependencyType(dep_type)
        with self._lock:
            for task_id in (from_id, to_id):
                if task_id not in self._tasks:
                    raise NotFoundError(f"Unknown task: {task_id}")

            edge = DependencyEdge(from_id=from_id, to_id=to_id, dep_type=dep_type)
            if edge in self._edges:
                logger.debug(f"[GRAPH] edge {from_id} -{dep_type}-> {to_id} exists")
                return

            if dep_type == DependencyType.blocks:
                # from -> to closes a cycle iff from is already reachable from to
                path = find_blocks_path(blocks_successors(self._edges), to_id, from_id)
                if path is not None:
                    logger.warning(f"[GRAPH] rejected {from_id} blocks {to_id}: cycle")
                    raise CycleError(from_id, to_id, path)

            self._edges.append(edge)
            logger.info(f"[GRAPH] {from_id} {dep_type} {to_id}")
            self._committed()

    def update_status(self, task_id: str, status: TaskStatus) -> None:
        status = TaskStatus(status)
        with self._lock:
            task = self._require(task_id)
            current = task.status
            if current == TaskStatus.closed:
                raise TerminalStateError(f"Task {task_id} is closed")
            if current == status:
                return
            if not valid_status_change(current, status):
                raise TerminalStateError(
                    f"Task {task_id} cannot move from {current} to {status}"
                )
            if task.is_epic and status == TaskStatus.closed:
                unfinished = [
                    c.task_id
                    for c in epic_children(task, self._tasks.values())
                    if c.status != TaskStatus.closed
                ]
                if unfinished:
                    raise TasksIncompleteError(
                        f"Epic {task_id} has unfinished children: {', '.join(unfinished)}",
                        open_ids=unfinished,
                    )

            task.status = status
            task.updated_at = datetime.now(UTC).isoformat()
            logger.info(f"[GRAPH] {task_id}: {current} -> {status}")
            self._committed()

    # -- queries -----------------------------------------------------------

    def get_task(self, task_id: str) -> Task:
        with self._lock:
            return deepcopy(self._require(task_id))

    def list_tasks(self, label: str | None = None) -> list[Task]:
        with self._lock:
            if label is None:
                ids = list(self._tasks)
            else:
                ids = sorted(self._label_index.get(label, ()), key=self._order.__getitem__)
            return [deepcopy(self._tasks[i]) for i in ids]

    def dependencies(self, task_id: str) -> list[DependencyEdge]:
        with self._lock:
            self._require(task_id)
            return [e for e in self._edges if task_id in (e.from_id, e.to_id)]

    def edges(self) -> list[DependencyEdge]:
        with self._lock:
            return list(self._edges)

    def ready(self, label: str | None = None) -> list[Task]:
        with self._lock:
            tasks = compute_ready(self._tasks, self._edges, label, self._order)
            return [deepcopy(t) for t in tasks]

    def blocked(self, label: str | None = None) -> list[BlockedTask]:
        with self._lock:
            entries = compute_blocked(self._tasks, self._edges, label, self._order)
            return [BlockedTask(task=deepcopy(b.task), blocked_by=b.blocked_by) for b in entries]

    def epic_status(self, epic_id: str) -> EpicProgress:
        with self._lock:
            epic = self._require(epic_id)
            return epic_progress(epic_children(epic, self._tasks.values()))

    # -- internals ---------------------------------------------------------

    def _require(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"Unknown task: {task_id}")
        return task

    def _new_id(self) -> str:
        while f"{self._id_prefix}-{self._next_seq}" in self._tasks:
            self._next_seq += 1
        task_id = f"{self._id_prefix}-{self._next_seq}"
        self._next_seq += 1
        return task_id

    def _insert(self, task: Task) -> None:
        self._tasks[task.task_id] = task
        self._order[task.task_id] = len(self._order)
        for label in task.labels:
            self._label_index[label].add(task.task_id)

    def _committed(self) -> None:
        """Hook called after each successful mutation, inside the lock."""
