"""Markdown codec for specification documents and deltas.

Document layout::

    # <feature>

    ## Requirements

    ### <heading>
    <body>

    ## Technical Design

    ### <heading>
    <body>

    ## Implementation Notes

    - <changelog line>

Sections are written in document order. A new ``##`` group starts whenever
the kind changes, so the same group title may appear more than once.

Body lines starting with ``#`` are written with one extra leading
backslash (``\\## Notes``) and read back without it, so bodies may hold
anything, headings included. Hand-written files use the same escape.

Delta layout uses ``## ADDED``, ``## MODIFIED`` and ``## REMOVED`` groups,
each optionally suffixed with ``Requirements`` or ``Technical Design`` to
set the section kind, and ``### <heading>`` entries beneath them.
"""

import re

from .models import (
    NOTES_HEADING,
    Delta,
    Modification,
    Section,
    SectionKind,
    SectionRef,
    SpecDocument,
)

_TITLE = re.compile(r"^#\s+(.+?)\s*$")
_GROUP = re.compile(r"^##\s+(.+?)\s*$")
_SECTION = re.compile(r"^###\s+(.+?)\s*$")
_NOTE = re.compile(r"^[-*]\s+(.+?)\s*$")
_ESCAPED = re.compile(r"^\\*#")

# Delta group header: "## ADDED", "## MODIFIED Requirements", ...
_DELTA_GROUP = re.compile(
    r"^(ADDED|MODIFIED|REMOVED)(?:\s+(Requirements|Technical Design|Design))?$",
    re.IGNORECASE,
)

_GROUP_TITLES: dict[SectionKind, str] = {
    SectionKind.requirements: "Requirements",
    SectionKind.design: "Technical Design",
}

_KIND_BY_TITLE: dict[str, SectionKind] = {
    "requirements": SectionKind.requirements,
    "technical design": SectionKind.design,
    "design": SectionKind.design,
}


def escape_line(line: str) -> str:
    """Prefix a backslash to lines the parser would read as structure."""
    return "\\" + line if _ESCAPED.match(line) else line


def unescape_line(line: str) -> str:
    return line[1:] if line.startswith("\\") and _ESCAPED.match(line[1:]) else line


def render_document(document: SpecDocument) -> str:
    """Render a document to markdown, keeping section order."""
    lines = [f"# {document.feature_id}", ""]
    current: SectionKind | None = None
    for section in document.sections:
        if section.kind != current:
            lines += [f"## {_GROUP_TITLES[section.kind]}", ""]
            current = section.kind
        lines.append(f"### {section.heading}")
        if section.body:
            lines += [escape_line(line) for line in section.body.split("\n")]
        lines.append("")
    if document.notes:
        lines += [f"## {NOTES_HEADING}", ""]
        lines += [f"- {note}" for note in document.notes]
        lines.append("")
    return "\n".join(lines)


def _split_blocks(content: str) -> tuple[str | None, list[tuple[str | None, str | None, list[str]]]]:
    """Split markdown into (title, [(group, heading, lines), ...]).

    A block starts at every ``##`` or ``###`` header. Group-level blocks
    (no ``###`` yet) carry ``heading=None`` and hold the group's own lines.
    Body lines are returned unescaped.
    """
    title: str | None = None
    blocks: list[tuple[str | None, str | None, list[str]]] = []
    group: str | None = None
    current: list[str] = []
    blocks.append((None, None, current))

    for line in content.replace("\r\n", "\n").split("\n"):
        match = _TITLE.match(line)
        if match and title is None and group is None:
            title = match.group(1)
            continue
        match = _GROUP.match(line)
        if match:
            group = match.group(1).strip()
            current = []
            blocks.append((group, None, current))
            continue
        match = _SECTION.match(line)
        if match:
            current = []
            blocks.append((group, match.group(1), current))
            continue
        current.append(unescape_line(line))

    return title, blocks


def parse_document(content: str, feature_id: str | None = None) -> SpecDocument:
    """Parse markdown produced by ``render_document`` (or written by hand).

    ``feature_id`` overrides the ``# title`` line when given. Sections under
    unrecognised groups are ignored. A section body is every line up to the
    next header, minus the single blank separator line the renderer adds.
    """
    title, blocks = _split_blocks(content)
    sections: list[Section] = []
    notes: list[str] = []

    for group, heading, lines in blocks:
        if group is None:
            continue
        if group.lower() == NOTES_HEADING.lower():
            for line in lines:
                match = _NOTE.match(line)
                if match:
                    notes.append(match.group(1))
            continue
        kind = _KIND_BY_TITLE.get(group.lower())
        if kind is not None and heading is not None:
            sections.append(Section(heading=heading, body=_body(lines), kind=kind))

    return SpecDocument(feature_id=feature_id or title or "", sections=sections, notes=notes)


def parse_delta(content: str) -> Delta:
    """Parse a delta written as ADDED/MODIFIED/REMOVED groups.

    Leading and trailing blank lines of each body are dropped.

    Raises:
        ValueError: On an unrecognised ``##`` group header, or a ``###``
            section outside any group.
    """
    _title, blocks = _split_blocks(content)
    delta = Delta()

    for group, heading, lines in blocks:
        if group is None:
            if heading is not None:
                raise ValueError(f"Section '{heading}' appears before any delta group")
            continue
        match = _DELTA_GROUP.match(group)
        if match is None:
            raise ValueError(f"Unknown delta group: {group!r}")
        if heading is None:
            continue
        op = match.group(1).upper()
        kind = _KIND_BY_TITLE[match.group(2).lower()] if match.group(2) else None
        body = "\n".join(lines).strip("\n")
        if op == "ADDED":
            delta.added.append(
                Section(heading=heading, body=body, kind=kind or SectionKind.requirements)
            )
        elif op == "MODIFIED":
            delta.modified.append(Modification(heading=heading, body=body))
        else:
            delta.removed.append(SectionRef(heading=heading, kind=kind))

    return delta


def _body(lines: list[str]) -> str:
    if lines and lines[-1] == "":
        lines = lines[:-1]
    return "\n".join(lines)
