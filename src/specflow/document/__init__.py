"""Specification documents and the delta merge engine."""

from specflow.document.markdown import parse_delta, parse_document, render_document
from specflow.document.merge import merge
from specflow.document.models import (
    NOTES_HEADING,
    ChangelogEntry,
    Delta,
    MergeResult,
    Modification,
    Section,
    SectionKind,
    SectionRef,
    SpecDocument,
)
from specflow.document.store import DocumentStore, FileDocumentStore, MemoryDocumentStore

__all__ = [
    "NOTES_HEADING",
    "ChangelogEntry",
    "Delta",
    "DocumentStore",
    "FileDocumentStore",
    "MemoryDocumentStore",
    "MergeResult",
    "Modification",
    "Section",
    "SectionKind",
    "SectionRef",
    "SpecDocument",
    "merge",
    "parse_delta",
    "parse_document",
    "render_document",
]
