"""TaskGraphStore abstract base class definition."""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path

from .models import (
    BlockedTask,
    DependencyEdge,
    DependencyType,
    EpicProgress,
    Task,
    TaskKind,
    TaskStatus,
)


class TaskGraphStore(ABC):
    """Base class for task graph backends.

    The workflow coordinator is agnostic about where the graph lives. It
    only needs tasks, edges, and the readiness queries below. Every
    mutation either commits fully or raises without changing anything.

    Subclasses define ``store_name`` and may override ``create`` to take
    part in ``create_store()``.
    """

    store_name: str = ""

    @classmethod
    def create(cls, root: Path) -> "TaskGraphStore":
        """Create an instance rooted at the given directory.

        The default ignores ``root``; file-backed stores override this.
        """
        return cls()  # type: ignore[call-arg]

    @abstractmethod
    def create_task(
        self,
        title: str,
        labels: Iterable[str] = (),
        priority: int = 1,
        kind: TaskKind = TaskKind.task,
        epic_id: str | None = None,
        description: str = "",
    ) -> str:
        """Create an open task and return its id."""
        ...

    @abstractmethod
    def add_dependency(
        self,
        from_id: str,
        to_id: str,
        dep_type: DependencyType = DependencyType.blocks,
    ) -> None:
        """Add an edge. Raises NotFoundError or CycleError."""
        ...

    @abstractmethod
    def update_status(self, task_id: str, status: TaskStatus) -> None:
        """Move a task to a new status. Raises TerminalStateError from closed."""
        ...

    @abstractmethod
    def get_task(self, task_id: str) -> Task:
        """Return a task by id. Raises NotFoundError."""
        ...

    @abstractmethod
    def list_tasks(self, label: str | None = None) -> list[Task]:
        """Return all tasks, optionally only those carrying ``label``."""
        ...

    @abstractmethod
    def dependencies(self, task_id: str) -> list[DependencyEdge]:
        """Return every edge touching the task, incoming and outgoing."""
        ...

    @abstractmethod
    def ready(self, label: str | None = None) -> list[Task]:
        """Return open tasks whose blockers are all closed."""
        ...

    @abstractmethod
    def blocked(self, label: str | None = None) -> list[BlockedTask]:
        """Return open tasks with at least one blocker that is not closed."""
        ...

    @abstractmethod
    def epic_status(self, epic_id: str) -> EpicProgress:
        """Count the epic's children by status."""
        ...
