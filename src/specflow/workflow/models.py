"""Change and plan models for the workflow coordinator."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from specflow.graph.models import EpicProgress


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class ChangeState(StrEnum):
    proposed = "proposed"
    in_progress = "in_progress"
    ready_to_complete = "ready_to_complete"
    completed = "completed"
    archived = "archived"


def change_id_for(feature: str, name: str) -> str:
    return f"{feature}/{name}"


def feature_label(feature: str) -> str:
    return f"feature:{feature}"


def change_label(change_id: str) -> str:
    return f"change:{change_id}"


@dataclass
class TaskSpec:
    """One task to create when a change is planned.

    ``blocked_by`` lists keys of other specs in the same plan; each becomes
    a ``blocks`` edge into this task. ``key`` defaults to the title.
    """

    title: str
    key: str = ""
    priority: int = 1
    blocked_by: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    description: str = ""

    def __post_init__(self) -> None:
        if not self.key:
            self.key = self.title

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskSpec":
        return cls(
            title=data["title"],
            key=data.get("key", ""),
            priority=data.get("priority", 1),
            blocked_by=list(data.get("blocked_by", [])),
            labels=list(data.get("labels", [])),
            description=data.get("description", ""),
        )


@dataclass
class Change:
    """Live bookkeeping for one proposal against one feature."""

    feature: str
    name: str
    epic_id: str
    scope: str = ""
    state: ChangeState = ChangeState.proposed
    task_ids: list[str] = field(default_factory=list)
    created_at: str = field(default_factory=_now_iso)

    @property
    def change_id(self) -> str:
        return change_id_for(self.feature, self.name)

    @property
    def labels(self) -> set[str]:
        return {feature_label(self.feature), change_label(self.change_id)}

    def to_dict(self) -> dict[str, Any]:
        return {
            "feature": self.feature,
            "name": self.name,
            "epic_id": self.epic_id,
            "scope": self.scope,
            "state": str(self.state),
            "task_ids": list(self.task_ids),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Change":
        return cls(
            feature=data["feature"],
            name=data["name"],
            epic_id=data["epic_id"],
            scope=data.get("scope", ""),
            state=ChangeState(data.get("state", "proposed")),
            task_ids=list(data.get("task_ids", [])),
            created_at=data.get("created_at", _now_iso()),
        )


@dataclass
class ChangeStatus:
    change: Change
    progress: EpicProgress
