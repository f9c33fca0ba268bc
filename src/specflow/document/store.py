"""DocumentStore protocol and implementations (File, Memory)."""

import logging
import re
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from .markdown import parse_document, render_document
from .models import SpecDocument

logger = logging.getLogger(__name__)


def _feature_slug(feature_id: str) -> str:
    """Convert a feature id to a filesystem-safe file stem."""
    slug = re.sub(r"[^a-zA-Z0-9_\-.]", "-", feature_id)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-") or "feature"


@runtime_checkable
class DocumentStore(Protocol):
    """Flat read/write of whole specification documents, keyed by feature."""

    def load_document(self, feature_id: str) -> SpecDocument:
        """Return the feature's document, or an empty one if none exists."""
        ...

    def save_document(self, feature_id: str, document: SpecDocument) -> None:
        """Replace the feature's document."""
        ...


class FileDocumentStore:
    """Stores each feature's document as ``<root>/<feature>.md``."""

    def __init__(self, root: Path) -> None:
        self._root = root

    def path_for(self, feature_id: str) -> Path:
        return self._root / f"{_feature_slug(feature_id)}.md"

    def load_document(self, feature_id: str) -> SpecDocument:
        path = self.path_for(feature_id)
        if not path.exists():
            return SpecDocument(feature_id=feature_id)
        return parse_document(path.read_text(), feature_id=feature_id)

    def save_document(self, feature_id: str, document: SpecDocument) -> None:
        path = self.path_for(feature_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(render_document(document))
        tmp.replace(path)
        logger.debug(f"[DOCS] wrote {path}")


@dataclass
class MemoryDocumentStore:
    """Keeps documents in a dict; records every save for tests."""

    documents: dict[str, SpecDocument] = field(default_factory=dict)
    saves: list[str] = field(default_factory=list)
    fail_on_save: bool = False

    def load_document(self, feature_id: str) -> SpecDocument:
        document = self.documents.get(feature_id)
        if document is None:
            return SpecDocument(feature_id=feature_id)
        return deepcopy(document)

    def save_document(self, feature_id: str, document: SpecDocument) -> None:
        if self.fail_on_save:
            raise OSError(f"save of {feature_id} failed")
        self.documents[feature_id] = deepcopy(document)
        self.saves.append(feature_id)
