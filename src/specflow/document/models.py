"""Specification document, section, and delta models."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

NOTES_HEADING = "Implementation Notes"


class SectionKind(StrEnum):
    requirements = "requirements"
    design = "design"


@dataclass(frozen=True)
class Section:
    """One heading-addressed block of a specification document."""

    heading: str
    body: str = ""
    kind: SectionKind = SectionKind.requirements

    def to_dict(self) -> dict[str, str]:
        return {"heading": self.heading, "body": self.body, "kind": str(self.kind)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Section":
        return cls(
            heading=data["heading"],
            body=data.get("body", ""),
            kind=SectionKind(data.get("kind", "requirements")),
        )


@dataclass
class SpecDocument:
    """The living specification of one feature.

    ``sections`` is the ordered union of requirements and technical
    design. ``notes`` is the append-only Implementation Notes trailer,
    one changelog line per merged change.
    """

    feature_id: str
    sections: list[Section] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    def headings(self) -> list[str]:
        return [s.heading for s in self.sections]

    def find(self, heading: str, kind: SectionKind | None = None) -> int | None:
        """Return the index of the first section with ``heading``, or None."""
        for idx, section in enumerate(self.sections):
            if section.heading == heading and (kind is None or section.kind == kind):
                return idx
        return None

    def get(self, heading: str) -> Section | None:
        idx = self.find(heading)
        return self.sections[idx] if idx is not None else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "feature_id": self.feature_id,
            "sections": [s.to_dict() for s in self.sections],
            "notes": list(self.notes),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SpecDocument":
        return cls(
            feature_id=data["feature_id"],
            sections=[Section.from_dict(s) for s in data.get("sections", [])],
            notes=list(data.get("notes", [])),
        )


@dataclass(frozen=True)
class SectionRef:
    """Reference to a section being removed; ``kind`` None matches any kind."""

    heading: str
    kind: SectionKind | None = None


@dataclass(frozen=True)
class Modification:
    heading: str
    body: str


@dataclass
class Delta:
    """Sections a change adds, rewrites, and removes."""

    added: list[Section] = field(default_factory=list)
    modified: list[Modification] = field(default_factory=list)
    removed: list[SectionRef] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.removed)

    def summary(self) -> str:
        return (
            f"{len(self.added)} added, {len(self.modified)} modified, "
            f"{len(self.removed)} removed"
        )


@dataclass
class ChangelogEntry:
    change_id: str
    timestamp: str
    added: int
    modified: int
    removed: int

    @property
    def summary(self) -> str:
        return f"{self.added} added, {self.modified} modified, {self.removed} removed"

    def render(self) -> str:
        return f"{self.timestamp} {self.change_id}: {self.summary}"


@dataclass
class MergeResult:
    document: SpecDocument
    entry: ChangelogEntry
    warnings: list[str] = field(default_factory=list)
