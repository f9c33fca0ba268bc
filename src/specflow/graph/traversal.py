"""Graph queries shared by every TaskGraphStore implementation.

These operate on plain snapshots (tasks keyed by id plus an edge list) so
the in-process store and the beads adapter answer readiness and cycle
questions with exactly the same rules.
"""

from collections import defaultdict
from collections.abc import Iterable, Mapping

from .models import (
    BlockedTask,
    DependencyEdge,
    DependencyType,
    EpicProgress,
    Task,
    TaskStatus,
    sort_ready,
)


def blocks_successors(edges: Iterable[DependencyEdge]) -> dict[str, set[str]]:
    """Map each task id to the ids it blocks."""
    succ: dict[str, set[str]] = defaultdict(set)
    for edge in edges:
        if edge.dep_type == DependencyType.blocks:
            succ[edge.from_id].add(edge.to_id)
    return succ


def blocks_predecessors(edges: Iterable[DependencyEdge]) -> dict[str, set[str]]:
    """Map each task id to the ids that block it."""
    pred: dict[str, set[str]] = defaultdict(set)
    for edge in edges:
        if edge.dep_type == DependencyType.blocks:
            pred[edge.to_id].add(edge.from_id)
    return pred


def find_blocks_path(
    successors: Mapping[str, set[str]], start: str, goal: str
) -> list[str] | None:
    """Depth-first search for a ``blocks`` path from start to goal.

    Returns the path as a list of ids (start and goal included), or None.
    Each node is expanded at most once, so the walk is O(V + E).
    """
    if start == goal:
        return [start]
    stack: list[tuple[str, list[str]]] = [(start, [start])]
    visited: set[str] = {start}
    while stack:
        node, path = stack.pop()
        for nxt in sorted(successors.get(node, ())):
            if nxt == goal:
                return [*path, nxt]
            if nxt not in visited:
                visited.add(nxt)
                stack.append((nxt, [*path, nxt]))
    return None


def open_blockers(
    task_id: str,
    predecessors: Mapping[str, set[str]],
    tasks: Mapping[str, Task],
) -> list[str]:
    """Return the direct blockers of a task that are not closed yet."""
    return sorted(
        dep
        for dep in predecessors.get(task_id, ())
        if dep in tasks and tasks[dep].status != TaskStatus.closed
    )


def _open_candidates(tasks: Mapping[str, Task], label: str | None) -> list[Task]:
    return [
        t
        for t in tasks.values()
        if t.status == TaskStatus.open and t.has_label(label)
    ]


def compute_ready(
    tasks: Mapping[str, Task],
    edges: Iterable[DependencyEdge],
    label: str | None = None,
    order: dict[str, int] | None = None,
) -> list[Task]:
    pred = blocks_predecessors(edges)
    ready = [
        t for t in _open_candidates(tasks, label) if not open_blockers(t.task_id, pred, tasks)
    ]
    return sort_ready(ready, order)


def compute_blocked(
    tasks: Mapping[str, Task],
    edges: Iterable[DependencyEdge],
    label: str | None = None,
    order: dict[str, int] | None = None,
) -> list[BlockedTask]:
    pred = blocks_predecessors(edges)
    blocked: dict[str, list[str]] = {}
    candidates: list[Task] = []
    for task in _open_candidates(tasks, label):
        blockers = open_blockers(task.task_id, pred, tasks)
        if blockers:
            blocked[task.task_id] = blockers
            candidates.append(task)
    return [BlockedTask(task=t, blocked_by=blocked[t.task_id]) for t in sort_ready(candidates, order)]


def epic_children(epic: Task, tasks: Iterable[Task]) -> list[Task]:
    """Return the non-epic tasks carrying every label of the epic."""
    if not epic.labels:
        return []
    return [t for t in tasks if not t.is_epic and epic.labels <= t.labels]


def epic_progress(children: Iterable[Task]) -> EpicProgress:
    progress = EpicProgress()
    for child in children:
        if child.status == TaskStatus.closed:
            progress.closed_count += 1
        elif child.status == TaskStatus.in_progress:
            progress.in_progress_count += 1
        else:
            progress.open_count += 1
    return progress
