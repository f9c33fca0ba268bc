"""Error taxonomy shared by the task graph, merge engine, and coordinator.

Every error carries a stable ``kind`` string so callers (the CLI in
particular) can report the category without inspecting the class.
"""


class SpecflowError(Exception):
    """Base class for all specflow errors."""

    kind = "SpecflowError"


class NotFoundError(SpecflowError):
    """An unknown task, change, or document id was referenced."""

    kind = "NotFoundError"


class CycleError(SpecflowError):
    """Adding a ``blocks`` edge would create a cycle."""

    kind = "CycleError"

    def __init__(self, from_id: str, to_id: str, path: list[str] | None = None):
        self.from_id = from_id
        self.to_id = to_id
        self.path = path or []
        detail = f" (via {' -> '.join(self.path)})" if self.path else ""
        super().__init__(f"{from_id} blocks {to_id} would create a cycle{detail}")


class TerminalStateError(SpecflowError):
    """A closed task cannot change status."""

    kind = "TerminalStateError"


class TasksIncompleteError(SpecflowError):
    """An epic or change still has tasks that are not closed."""

    kind = "TasksIncompleteError"

    def __init__(self, message: str, open_ids: list[str] | None = None):
        self.open_ids = open_ids or []
        super().__init__(message)


class DuplicateSectionError(SpecflowError):
    kind = "DuplicateSectionError"


class SectionNotFoundError(SpecflowError):
    kind = "SectionNotFoundError"


class AlreadyExistsError(SpecflowError):
    kind = "AlreadyExistsError"


class InvalidTransitionError(SpecflowError):
    """A change was asked to move to a state not reachable from its current one."""

    kind = "InvalidTransitionError"

    def __init__(self, change_id: str, from_state: str, action: str):
        self.change_id = change_id
        self.from_state = from_state
        self.action = action
        super().__init__(f"Cannot {action} change {change_id} in state {from_state}")


class StoreError(SpecflowError):
    """The out-of-process store failed for a reason outside the taxonomy."""

    kind = "StoreError"


class LockTimeoutError(SpecflowError):
    """Another process held a state lock for longer than the timeout."""

    kind = "LockTimeoutError"
