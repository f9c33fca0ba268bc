"""Change lifecycle: propose, plan, advance, complete, archive."""

from specflow.workflow.coordinator import WorkflowCoordinator
from specflow.workflow.fsm import ChangeFSM
from specflow.workflow.models import Change, ChangeState, ChangeStatus, TaskSpec
from specflow.workflow.registry import ChangeRegistry

__all__ = [
    "Change",
    "ChangeFSM",
    "ChangeRegistry",
    "ChangeState",
    "ChangeStatus",
    "TaskSpec",
    "WorkflowCoordinator",
]
