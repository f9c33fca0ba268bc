"""Delta merge engine: fold a change's delta into a specification document.

The merge is a pure function of its inputs. Phases always run in the
same order regardless of how the delta was assembled:

1. removed  - delete by heading; a missing section is only a warning
2. modified - replace the body; a missing section fails the merge
3. added    - append in delta order; an existing heading fails the merge

Afterwards one changelog line is appended to the Implementation Notes
trailer. Earlier lines are never rewritten. Because added headings exist
after a successful merge, replaying the same delta fails with
DuplicateSectionError, which guards against double application.
"""

import logging
from dataclasses import replace
from datetime import UTC, datetime

from specflow.errors import DuplicateSectionError, SectionNotFoundError

from .models import (
    NOTES_HEADING,
    ChangelogEntry,
    Delta,
    MergeResult,
    Section,
    SectionKind,
    SpecDocument,
)

logger = logging.getLogger(__name__)


def merge(
    document: SpecDocument,
    delta: Delta,
    change_id: str,
    now: datetime | None = None,
) -> MergeResult:
    """Apply ``delta`` to a copy of ``document``.

    Args:
        document: The current live document. Never mutated.
        delta: Sections to remove, modify, and add.
        change_id: Identity recorded in the changelog entry.
        now: Timestamp for the entry; defaults to the current UTC time.

    Returns:
        MergeResult holding the new document, the changelog entry, and any
        non-fatal warnings (removals of absent sections).

    Raises:
        SectionNotFoundError: A modified heading is not in the document.
        DuplicateSectionError: An added heading already exists.
    """
    sections = list(document.sections)
    warnings: list[str] = []

    removed = 0
    for ref in delta.removed:
        idx = _find(sections, ref.heading, ref.kind)
        if idx is None:
            warning = f"section not found: {ref.heading}"
            logger.warning(f"[MERGE] {change_id}: {warning}")
            warnings.append(warning)
            continue
        del sections[idx]
        removed += 1

    for mod in delta.modified:
        idx = _find(sections, mod.heading)
        if idx is None:
            raise SectionNotFoundError(
                f"Cannot modify missing section '{mod.heading}' ({change_id})"
            )
        sections[idx] = replace(sections[idx], body=mod.body)

    for section in delta.added:
        if section.heading == NOTES_HEADING or _find(sections, section.heading) is not None:
            raise DuplicateSectionError(
                f"Section '{section.heading}' already exists ({change_id})"
            )
        sections.append(section)

    stamp = (now or datetime.now(UTC)).isoformat(timespec="seconds")
    entry = ChangelogEntry(
        change_id=change_id,
        timestamp=stamp,
        added=len(delta.added),
        modified=len(delta.modified),
        removed=removed,
    )
    merged = SpecDocument(
        feature_id=document.feature_id,
        sections=sections,
        notes=[*document.notes, entry.render()],
    )
    logger.info(f"[MERGE] {document.feature_id} <- {change_id}: {entry.summary}")
    return MergeResult(document=merged, entry=entry, warnings=warnings)


def _find(
    sections: list[Section], heading: str, kind: SectionKind | None = None
) -> int | None:
    for idx, section in enumerate(sections):
        if section.heading == heading and (kind is None or section.kind == kind):
            return idx
    return None
