"""FileTaskGraphStore: the in-process graph persisted as a JSON file."""

import json
import logging
from collections import defaultdict
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from copy import deepcopy
from pathlib import Path

from specflow.errors import StoreError
from specflow.locking import DEFAULT_TIMEOUT, file_lock

from .memory import MemoryTaskGraphStore
from .models import (
    BlockedTask,
    DependencyEdge,
    DependencyType,
    EpicProgress,
    Task,
    TaskKind,
    TaskStatus,
)

logger = logging.getLogger(__name__)

GRAPH_FILENAME = "graph.json"


class FileTaskGraphStore(MemoryTaskGraphStore):
    """Task graph stored at ``path`` as ``{"tasks": [...], "edges": [...]}``.

    Several processes may share one file. Every call takes an exclusive
    flock on ``<path>.lock`` and reloads the file before reading or
    mutating, and every mutation is written back before the lock is
    released. If the write fails the in-memory state is rolled back, so a
    mutation is either on disk or not applied at all.
    """

    store_name = "file"

    @classmethod
    def create(cls, root: Path) -> "FileTaskGraphStore":
        return cls(root / GRAPH_FILENAME)

    def __init__(
        self,
        path: Path,
        id_prefix: str = "sf",
        lock_timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        super().__init__(id_prefix=id_prefix)
        self._path = path
        self._lock_path = path.with_name(path.name + ".lock")
        self._lock_timeout = lock_timeout

    @property
    def path(self) -> Path:
        return self._path

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
        with self._synced(), self._rollback_on_failure():
            return super().create_task(
                title,
                labels=labels,
                priority=priority,
                kind=kind,
                epic_id=epic_id,
                description=description,
            )

    def add_dependency(
        self,
        from_id: str,
        to_id: str,
        dep_type: DependencyType = DependencyType.blocks,
    ) -> None:
        with self._synced(), self._rollback_on_failure():
            super().add_dependency(from_id, to_id, dep_type)

    def update_status(self, task_id: str, status: TaskStatus) -> None:
        with self._synced(), self._rollback_on_failure():
            super().update_status(task_id, status)

    # -- queries -----------------------------------------------------------

    def get_task(self, task_id: str) -> Task:
        with self._synced():
            return super().get_task(task_id)

    def list_tasks(self, label: str | None = None) -> list[Task]:
        with self._synced():
            return super().list_tasks(label)

    def dependencies(self, task_id: str) -> list[DependencyEdge]:
        with self._synced():
            return super().dependencies(task_id)

    def edges(self) -> list[DependencyEdge]:
        with self._synced():
            return super().edges()

    def ready(self, label: str | None = None) -> list[Task]:
        with self._synced():
            return super().ready(label)

    def blocked(self, label: str | None = None) -> list[BlockedTask]:
        with self._synced():
            return super().blocked(label)

    def epic_status(self, epic_id: str) -> EpicProgress:
        with self._synced():
            return super().epic_status(epic_id)

    # -- persistence -------------------------------------------------------

    @contextmanager
    def _synced(self) -> Iterator[None]:
        """Hold the thread and file locks with state freshly read from disk."""
        with self._lock, file_lock(self._lock_path, self._lock_timeout):
            self._reload()
            yield

    def _reload(self) -> None:
        self._tasks = {}
        self._edges = []
        self._order = {}
        self._label_index = defaultdict(set)
        self._next_seq = 1
        if not self._path.exists():
            return
        data = json.loads(self._path.read_text())
        for record in data.get("tasks", []):
            self._insert(Task.from_dict(record))
        self._edges = [DependencyEdge.from_dict(e) for e in data.get("edges", [])]
        logger.debug(
            f"[GRAPH] loaded {len(self._tasks)} tasks, {len(self._edges)} edges from {self._path}"
        )

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "tasks": [t.to_dict() for t in self._tasks.values()],
            "edges": [e.to_dict() for e in self._edges],
        }
        tmp = self._path.with_name(self._path.name + ".tmp")
        tmp.write_text(json.dumps(data, indent=2))
        tmp.replace(self._path)

    def _committed(self) -> None:
        self._save()

    @contextmanager
    def _rollback_on_failure(self) -> Iterator[None]:
        snapshot = (
            deepcopy(self._tasks),
            list(self._edges),
            dict(self._order),
            {k: set(v) for k, v in self._label_index.items()},
            self._next_seq,
        )
        try:
            yield
        except OSError as exc:
            tasks, edges, order, index, next_seq = snapshot
            self._tasks = tasks
            self._edges = edges
            self._order = order
            self._label_index = defaultdict(set, index)
            self._next_seq = next_seq
            raise StoreError(f"Could not write {self._path}: {exc}") from exc
