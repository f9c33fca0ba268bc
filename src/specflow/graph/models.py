"""Task, dependency edge, and progress models for the task graph."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class TaskStatus(StrEnum):
    open = "open"
    in_progress = "in_progress"
    closed = "closed"


class TaskKind(StrEnum):
    task = "task"
    epic = "epic"


class DependencyType(StrEnum):
    blocks = "blocks"
    discovered_from = "discovered-from"


# Legal status changes; closed is terminal and has no outgoing moves.
_STATUS_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.open: {TaskStatus.in_progress, TaskStatus.closed},
    TaskStatus.in_progress: {TaskStatus.open, TaskStatus.closed},
    TaskStatus.closed: set(),
}


def valid_status_change(current: TaskStatus, target: TaskStatus) -> bool:
    """Check if moving a task from current to target status is allowed."""
    return target in _STATUS_TRANSITIONS.get(current, set())


@dataclass
class Task:
    """A unit of work tracked in the task graph."""

    task_id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.open
    priority: int = 1
    kind: TaskKind = TaskKind.task
    labels: set[str] = field(default_factory=set)
    epic_id: str | None = None
    created_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)

    @property
    def is_epic(self) -> bool:
        return self.kind == TaskKind.epic

    def has_label(self, label: str | None) -> bool:
        return label is None or label in self.labels

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "title": self.title,
            "description": self.description,
            "status": str(self.status),
            "priority": self.priority,
            "kind": str(self.kind),
            "labels": sorted(self.labels),
            "epic_id": self.epic_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        return cls(
            task_id=data["task_id"],
            title=data["title"],
            description=data.get("description", ""),
            status=TaskStatus(data.get("status", "open")),
            priority=data.get("priority", 1),
            kind=TaskKind(data.get("kind", "task")),
            labels=set(data.get("labels", [])),
            epic_id=data.get("epic_id"),
            created_at=data.get("created_at", _now_iso()),
            updated_at=data.get("updated_at", _now_iso()),
        )


@dataclass(frozen=True)
class DependencyEdge:
    """A directed edge between two tasks.

    For ``blocks`` edges, ``to_id`` cannot become ready until ``from_id``
    is closed. ``discovered-from`` edges record provenance only.
    """

    from_id: str
    to_id: str
    dep_type: DependencyType = DependencyType.blocks

    def to_dict(self) -> dict[str, str]:
        return {
            "from_id": self.from_id,
            "to_id": self.to_id,
            "dep_type": str(self.dep_type),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DependencyEdge":
        return cls(
            from_id=data["from_id"],
            to_id=data["to_id"],
            dep_type=DependencyType(data.get("dep_type", "blocks")),
        )


@dataclass
class BlockedTask:
    """An open task together with the ids of the tasks still blocking it."""

    task: Task
    blocked_by: list[str] = field(default_factory=list)


@dataclass
class EpicProgress:
    open_count: int = 0
    in_progress_count: int = 0
    closed_count: int = 0

    @property
    def total(self) -> int:
        return self.open_count + self.in_progress_count + self.closed_count

    @property
    def percent_closed(self) -> float:
        if self.total == 0:
            return 0.0
        return round(100.0 * self.closed_count / self.total, 1)

    @property
    def is_complete(self) -> bool:
        return self.open_count == 0 and self.in_progress_count == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "open_count": self.open_count,
            "in_progress_count": self.in_progress_count,
            "closed_count": self.closed_count,
            "percent_closed": self.percent_closed,
        }


def sort_ready(tasks: list[Task], order: dict[str, int] | None = None) -> list[Task]:
    """Order tasks by priority descending, then creation ascending.

    ``order`` maps task ids to insertion sequence numbers. Stores that
    know the insertion order pass it so ties never depend on clock
    resolution; otherwise ``created_at`` decides.
    """
    seq = order or {}
    return sorted(
        tasks,
        key=lambda t: (-t.priority, seq.get(t.task_id, 0), t.created_at, t.task_id),
    )
