"""BeadsTaskGraphStore: out-of-process task graph backed by the beads CLI."""

import json
import logging
import subprocess
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from specflow.errors import (
    CycleError,
    NotFoundError,
    StoreError,
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

# beads ranks 0 as most urgent; specflow sorts higher priorities first.
_BD_MAX_PRIORITY = 4

_DEP_TYPES: dict[str, DependencyType] = {
    "blocks": DependencyType.blocks,
    "discovered-from": DependencyType.discovered_from,
}


def _to_bd_priority(priority: int) -> int:
    return max(0, min(_BD_MAX_PRIORITY, _BD_MAX_PRIORITY - priority))


class BeadsTaskGraphStore(TaskGraphStore):
    """Task graph backed by the beads (bd) CLI.

    Every operation shells out to ``bd`` in ``repo_root``; the binary must
    be on PATH. Readiness, blocking, and cycle checks are computed here
    from a ``bd list --json`` snapshot so they follow the same rules as
    the in-process store. Terminal-state and epic checks also run before
    anything is sent to bd, which keeps failed calls side-effect free.
    """

    store_name = "beads"

    @classmethod
    def create(cls, root: Path) -> "BeadsTaskGraphStore":
        return cls(repo_root=root)

    def __init__(self, repo_root: Path, bd_path: str = "bd") -> None:
        self._repo_root = repo_root
        self._bd = bd_path
        self._lock = threading.Lock()

    def create_task(
        self,
        title: str,
        labels: Iterable[str] = (),
        priority: int = 1,
        kind: TaskKind = TaskKind.task,
        epic_id: str | None = None,
        description: str = "",
    ) -> str:
        args = [
            "create",
            title,
            "--type",
            str(TaskKind(kind)),
            "--priority",
            str(_to_bd_priority(priority)),
            "--json",
        ]
        label_list = sorted(labels)
        if label_list:
            args += ["--labels", ",".join(label_list)]
        if description:
            args += ["--description", description]
        if epic_id:
            # parent link is created together with the bead
            args += ["--deps", f"parent-child:{epic_id}"]
        with self._lock:
            result = self._run_bd_json(args)
            if isinstance(result, list):
                result = result[0] if result else {}
            task_id = result.get("id") if isinstance(result, dict) else None
            if not task_id:
                raise StoreError(f"bd create returned no id for {title!r}")
        logger.info(f"[BEADS] created {kind} {task_id}: {title}")
        return task_id

    def add_dependency(
        self,
        from_id: str,
        to_id: str,
        dep_type: DependencyType = DependencyType.blocks,
    ) -> None:
        dep_type = DependencyType(dep_type)
        with self._lock:
            tasks, edges = self._snapshot()
            for task_id in (from_id, to_id):
                if task_id not in tasks:
                    raise NotFoundError(f"Unknown task: {task_id}")
            edge = DependencyEdge(from_id=from_id, to_id=to_id, dep_type=dep_type)
            if edge in edges:
                return
            if dep_type == DependencyType.blocks:
                path = find_blocks_path(blocks_successors(edges), to_id, from_id)
                if path is not None:
                    raise CycleError(from_id, to_id, path)
            # bd records "to depends on from"
            try:
                self._run_bd(["dep", "add", to_id, from_id, "--type", str(dep_type)])
            except StoreError as exc:
                if "cycle" in str(exc).lower():
                    raise CycleError(from_id, to_id) from exc
                raise
        logger.info(f"[BEADS] {from_id} {dep_type} {to_id}")

    def update_status(self, task_id: str, status: TaskStatus) -> None:
        status = TaskStatus(status)
        with self._lock:
            tasks, _edges = self._snapshot()
            task = tasks.get(task_id)
            if task is None:
                raise NotFoundError(f"Unknown task: {task_id}")
            if task.status == TaskStatus.closed:
                raise TerminalStateError(f"Task {task_id} is closed")
            if task.status == status:
                return
            if not valid_status_change(task.status, status):
                raise TerminalStateError(
                    f"Task {task_id} cannot move from {task.status} to {status}"
                )
            if task.is_epic and status == TaskStatus.closed:
                unfinished = [
                    c.task_id
                    for c in epic_children(task, tasks.values())
                    if c.status != TaskStatus.closed
                ]
                if unfinished:
                    raise TasksIncompleteError(
                        f"Epic {task_id} has unfinished children: {', '.join(unfinished)}",
                        open_ids=unfinished,
                    )
            if status == TaskStatus.closed:
                self._run_bd(["close", task_id, "--reason", "Closed by specflow"])
            else:
                self._run_bd(["update", task_id, "--status", str(status)])
        logger.info(f"[BEADS] {task_id}: {task.status} -> {status}")

    def get_task(self, task_id: str) -> Task:
        result = self._run_bd_json(["show", task_id, "--json"])
        if isinstance(result, list):
            if not result:
                raise NotFoundError(f"Unknown task: {task_id}")
            result = result[0]
        return self._parse_bead(result)

    def list_tasks(self, label: str | None = None) -> list[Task]:
        tasks, _edges = self._snapshot()
        return [t for t in tasks.values() if t.has_label(label)]

    def dependencies(self, task_id: str) -> list[DependencyEdge]:
        tasks, edges = self._snapshot()
        if task_id not in tasks:
            raise NotFoundError(f"Unknown task: {task_id}")
        return [e for e in edges if task_id in (e.from_id, e.to_id)]

    def ready(self, label: str | None = None) -> list[Task]:
        tasks, edges = self._snapshot()
        return compute_ready(tasks, edges, label)

    def blocked(self, label: str | None = None) -> list[BlockedTask]:
        tasks, edges = self._snapshot()
        return compute_blocked(tasks, edges, label)

    def epic_status(self, epic_id: str) -> EpicProgress:
        tasks, _edges = self._snapshot()
        epic = tasks.get(epic_id)
        if epic is None:
            raise NotFoundError(f"Unknown task: {epic_id}")
        return epic_progress(epic_children(epic, tasks.values()))

    # -- bd plumbing -------------------------------------------------------

    def _snapshot(self) -> tuple[dict[str, Task], list[DependencyEdge]]:
        """Fetch every bead and its edges via ``bd list --json``."""
        result = self._run_bd_json(["list", "--json"])
        tasks: dict[str, Task] = {}
        edges: list[DependencyEdge] = []
        for bead in result or []:
            task = self._parse_bead(bead)
            tasks[task.task_id] = task
            edges.extend(self._parse_edges(bead))
        return tasks, edges

    def _run_bd(self, args: list[str]) -> str:
        """Run a bd command, mapping failures onto the error taxonomy."""
        logger.debug(f"[BEADS] bd {' '.join(args)}")
        try:
            result = subprocess.run(
                [self._bd, *args],
                capture_output=True,
                text=True,
                cwd=self._repo_root,
            )
        except FileNotFoundError as exc:
            raise StoreError(f"bd executable not found: {self._bd}") from exc
        if result.returncode != 0:
            message = (result.stderr or result.stdout).strip()
            lowered = message.lower()
            if "not found" in lowered or "no issue" in lowered:
                raise NotFoundError(message)
            raise StoreError(f"bd {args[0]} failed: {message}")
        return result.stdout

    def _run_bd_json(self, args: list[str]) -> Any:
        stdout = self._run_bd(args)
        try:
            return json.loads(stdout)
        except (json.JSONDecodeError, ValueError) as exc:
            raise StoreError(f"bd {args[0]} returned invalid JSON") from exc

    @staticmethod
    def _parse_edges(bead: dict[str, Any]) -> list[DependencyEdge]:
        edges: list[DependencyEdge] = []
        for dep in bead.get("dependencies", []):
            dep_type = _DEP_TYPES.get(dep.get("type", "blocks"))
            depends_on = dep.get("depends_on_id", "")
            if dep_type is None or not depends_on:
                continue
            edges.append(
                DependencyEdge(
                    from_id=depends_on,
                    to_id=dep.get("issue_id", bead["id"]),
                    dep_type=dep_type,
                )
            )
        return edges

    @staticmethod
    def _parse_bead(bead: dict[str, Any]) -> Task:
        """Convert a bead JSON object to a Task."""
        status = bead.get("status", "open")
        if status not in TaskStatus.__members__:
            # blocked/deferred beads are still open work
            status = "open"
        kind = TaskKind.epic if bead.get("issue_type") == "epic" else TaskKind.task

        epic_id = None
        for dep in bead.get("dependencies", []):
            if dep.get("type") == "parent-child":
                epic_id = dep.get("depends_on_id") or None

        task = Task(
            task_id=bead["id"],
            title=bead["title"],
            description=bead.get("description", ""),
            status=TaskStatus(status),
            priority=_BD_MAX_PRIORITY - int(bead.get("priority", _BD_MAX_PRIORITY - 1)),
            kind=kind,
            labels=set(bead.get("labels") or []),
            epic_id=epic_id,
        )
        if bead.get("created_at"):
            task.created_at = bead["created_at"]
        if bead.get("updated_at"):
            task.updated_at = bead["updated_at"]
        return task
