"""WorkflowCoordinator: drives a change from proposal to archive.

Sits above the task graph and the merge engine. The task graph gates
progress (a change cannot complete while any of its tasks is open) and
the merge engine finalizes the feature document exactly once per change.

Ordering law: a change reaches ``completed`` only through a successful
merge, and the merge only runs once every owned task is closed. A failed
``complete`` restores the previous document, registry record, and change
state, so it is always safe to retry after fixing the cause.
"""

import logging
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from specflow.document.merge import merge
from specflow.document.models import Delta, MergeResult
from specflow.document.store import DocumentStore
from specflow.errors import (
    AlreadyExistsError,
    CycleError,
    InvalidTransitionError,
    NotFoundError,
    SpecflowError,
    TasksIncompleteError,
)
from specflow.graph.models import DependencyType, Task, TaskKind, TaskStatus
from specflow.graph.protocol import TaskGraphStore
from specflow.graph.traversal import find_blocks_path
from specflow.locking import DEFAULT_TIMEOUT, keyed_lock

from .fsm import ChangeFSM
from .models import (
    Change,
    ChangeState,
    ChangeStatus,
    TaskSpec,
    change_id_for,
    change_label,
    feature_label,
)
from .registry import ChangeRegistry

logger = logging.getLogger(__name__)

_CHANGE_SCOPE = "changes"
_FEATURE_SCOPE = "features"


class WorkflowCoordinator:
    """Sequences change transitions over a task graph and a document store.

    Owned tasks are found through the change label, so work discovered
    mid-change and labeled with ``change:<feature>/<name>`` is gated on
    exactly like planned work.

    One lock per change covers each whole lifecycle operation, and
    ``complete`` also holds one lock per feature while it reads, merges,
    and writes the feature document. With ``lock_dir`` set both are also
    flocks under that directory, so separate processes sharing the same
    state files serialize too.
    """

    def __init__(
        self,
        store: TaskGraphStore,
        documents: DocumentStore,
        registry: ChangeRegistry | None = None,
        lock_dir: Path | None = None,
        lock_timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._store = store
        self._documents = documents
        self._registry = registry or ChangeRegistry()
        self._lock_dir = lock_dir
        self._lock_timeout = lock_timeout
        self._locks: dict[tuple[str, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def store(self) -> TaskGraphStore:
        return self._store

    @property
    def documents(self) -> DocumentStore:
        return self._documents

    # -- lifecycle ---------------------------------------------------------

    def propose(self, feature: str, name: str, scope: str = "") -> str:
        """Open a change against ``feature`` and create its epic.

        Raises:
            AlreadyExistsError: The ``(feature, name)`` pair is already live.
            ValueError: Empty names, or names containing ``/``.
        """
        for value in (feature, name):
            if not value or "/" in value:
                raise ValueError(f"Invalid feature or change name: {value!r}")
        change_id = change_id_for(feature, name)

        with self._locked(_CHANGE_SCOPE, change_id):
            if self._registry.get(change_id) is not None:
                raise AlreadyExistsError(f"Change {change_id} already exists")
            epic_id = self._store.create_task(
                f"{change_id}: {scope or name}",
                labels=[feature_label(feature), change_label(change_id)],
                kind=TaskKind.epic,
                description=scope,
            )
            change = Change(feature=feature, name=name, epic_id=epic_id, scope=scope)
            self._registry.put(change)

        logger.info(f"[CHANGE] proposed {change_id} (epic {epic_id})")
        return change_id

    def plan(self, change_id: str, specs: Iterable[TaskSpec]) -> list[str]:
        """Create the change's tasks and wire their ``blocks`` edges.

        Each ``blocked_by`` key becomes an edge from that spec's task into
        this one. Specs are validated before anything is created.

        Returns:
            The new task ids, in spec order.

        Raises:
            InvalidTransitionError: The change is not ``proposed``.
            ValueError: Duplicate keys or unknown ``blocked_by`` keys.
            CycleError: The declared ordering is cyclic.
        """
        specs = list(specs)
        with self._locked(_CHANGE_SCOPE, change_id):
            change = self._require(change_id)
            fsm = ChangeFSM(change)
            if not fsm.can("start"):
                raise InvalidTransitionError(change_id, str(change.state), "plan")
            _validate_specs(specs)

            ids: dict[str, str] = {}
            for spec in specs:
                ids[spec.key] = self._store.create_task(
                    spec.title,
                    labels=[*change.labels, *spec.labels],
                    priority=spec.priority,
                    kind=TaskKind.task,
                    epic_id=change.epic_id,
                    description=spec.description,
                )
            for spec in specs:
                for dep in spec.blocked_by:
                    self._store.add_dependency(ids[dep], ids[spec.key], DependencyType.blocks)

            change.task_ids = [ids[spec.key] for spec in specs]
            fsm.fire("start")
            self._registry.put(change)

        logger.info(f"[CHANGE] planned {change_id}: {len(specs)} tasks")
        return change.task_ids

    def advance(self, change_id: str) -> Task | None:
        """Return the next ready task of the change, or None.

        A pure query: the caller starts and closes the task through the
        store once the work is done.
        """
        ready = self.ready(change_id)
        return ready[0] if ready else None

    def ready(self, change_id: str) -> list[Task]:
        """Ready owned tasks; the change's epic is never work to pick up."""
        change = self._require(change_id)
        return [t for t in self._store.ready(label=change_label(change.change_id)) if not t.is_epic]

    def status(self, change_id: str) -> ChangeStatus:
        change = self._require(change_id)
        return ChangeStatus(change=change, progress=self._store.epic_status(change.epic_id))

    def complete(
        self,
        change_id: str,
        delta: Delta,
        now: datetime | None = None,
    ) -> MergeResult:
        """Merge the change's delta into the feature document and close it out.

        Steps run in undoable order: save the merged document, record the
        change as completed, and close the epic last, since a closed task
        cannot be reopened. Any failure rolls the earlier steps back.

        Raises:
            InvalidTransitionError: The change is not ``in_progress``.
            TasksIncompleteError: An owned task is not closed yet.
            SectionNotFoundError, DuplicateSectionError: The merge failed.
        """
        with self._locked(_CHANGE_SCOPE, change_id):
            change = self._require(change_id)
            fsm = ChangeFSM(change)
            if not fsm.can("begin_complete"):
                raise InvalidTransitionError(change_id, str(change.state), "complete")

            unfinished = [t.task_id for t in self._owned_tasks(change) if t.status != TaskStatus.closed]
            if unfinished:
                raise TasksIncompleteError(
                    f"Change {change_id} has unfinished tasks: {', '.join(unfinished)}",
                    open_ids=unfinished,
                )

            with self._locked(_FEATURE_SCOPE, change.feature):
                previous = self._documents.load_document(change.feature)
                fsm.fire("begin_complete")
                saved = False
                recorded = False
                try:
                    result = merge(previous, delta, change_id, now=now)
                    self._documents.save_document(change.feature, result.document)
                    saved = True
                    self._registry.put(replace(change, state=ChangeState.completed))
                    recorded = True
                    if self._store.get_task(change.epic_id).status != TaskStatus.closed:
                        self._store.update_status(change.epic_id, TaskStatus.closed)
                except (SpecflowError, OSError) as exc:
                    logger.warning(f"[CHANGE] complete {change_id} failed: {exc}")
                    fsm.fire("merge_failed")
                    if saved:
                        self._documents.save_document(change.feature, previous)
                    if recorded:
                        self._registry.put(change)
                    raise

            fsm.fire("merged")

        for warning in result.warnings:
            logger.warning(f"[CHANGE] {change_id}: {warning}")
        return result

    def archive(self, change_id: str) -> None:
        """Drop a completed change's bookkeeping; document and tasks stay."""
        with self._locked(_CHANGE_SCOPE, change_id):
            change = self._require(change_id)
            ChangeFSM(change).fire("archive")
            self._registry.remove(change_id)

    # -- lookups -----------------------------------------------------------

    def get_change(self, change_id: str) -> Change:
        return self._require(change_id)

    def list_changes(self, feature: str | None = None) -> list[Change]:
        return self._registry.list_all(feature)

    def owned_tasks(self, change_id: str) -> list[Task]:
        return self._owned_tasks(self._require(change_id))

    # -- internals ---------------------------------------------------------

    def _owned_tasks(self, change: Change) -> list[Task]:
        return [
            t
            for t in self._store.list_tasks(label=change_label(change.change_id))
            if not t.is_epic
        ]

    def _require(self, change_id: str) -> Change:
        change = self._registry.get(change_id)
        if change is None:
            raise NotFoundError(f"Unknown change: {change_id}")
        return change

    @contextmanager
    def _locked(self, scope: str, key: str) -> Iterator[None]:
        """Hold the thread lock for ``(scope, key)`` and, with a lock dir, its flock.

        Feature locks are only ever taken while holding a change lock.
        """
        with self._locks_guard:
            lock = self._locks.get((scope, key))
            if lock is None:
                lock = self._locks[(scope, key)] = threading.Lock()
        lock_dir = self._lock_dir / scope if self._lock_dir is not None else None
        with lock, keyed_lock(lock_dir, key, self._lock_timeout):
            yield


def _validate_specs(specs: list[TaskSpec]) -> None:
    """Reject duplicate keys, dangling references, and cyclic orderings."""
    keys: set[str] = set()
    for spec in specs:
        if spec.key in keys:
            raise ValueError(f"Duplicate task key: {spec.key}")
        keys.add(spec.key)

    successors: dict[str, set[str]] = {}
    for spec in specs:
        for dep in spec.blocked_by:
            if dep not in keys:
                raise ValueError(f"Task '{spec.key}' is blocked by unknown key '{dep}'")
            if find_blocks_path(successors, spec.key, dep) is not None:
                raise CycleError(dep, spec.key)
            successors.setdefault(dep, set()).add(spec.key)
