"""Dependency-aware task graph: tasks, typed edges, readiness queries."""

from specflow.graph.beads import BeadsTaskGraphStore
from specflow.graph.factory import create_store
from specflow.graph.file import FileTaskGraphStore
from specflow.graph.memory import MemoryTaskGraphStore
from specflow.graph.models import (
    BlockedTask,
    DependencyEdge,
    DependencyType,
    EpicProgress,
    Task,
    TaskKind,
    TaskStatus,
)
from specflow.graph.protocol import TaskGraphStore

__all__ = [
    "BeadsTaskGraphStore",
    "BlockedTask",
    "DependencyEdge",
    "DependencyType",
    "EpicProgress",
    "FileTaskGraphStore",
    "MemoryTaskGraphStore",
    "Task",
    "TaskGraphStore",
    "TaskKind",
    "TaskStatus",
    "create_store",
]
