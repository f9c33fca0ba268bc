"""Registry of live changes, persisted as JSON."""

import json
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from specflow.locking import file_lock

from .models import Change

CHANGES_FILENAME = "changes.json"


class ChangeRegistry:
    """Manages live change records, keyed by ``feature/name``.

    With a ``path`` the records live in a JSON file (``{"changes": [...]}``)
    and are re-read on every call; writes hold a flock on ``<path>.lock`` so
    processes updating different changes do not drop each other's records.
    Without a path they live in memory only. Archived changes are removed
    entirely.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._memory: list[dict] = []
        self._lock = threading.Lock()

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with self._lock:
            if self._path is None:
                yield
                return
            with file_lock(self._path.with_name(self._path.name + ".lock")):
                yield

    def _load(self) -> list[Change]:
        if self._path is None:
            return [Change.from_dict(c) for c in self._memory]
        if not self._path.exists():
            return []
        data = json.loads(self._path.read_text())
        return [Change.from_dict(c) for c in data.get("changes", [])]

    def _save(self, changes: list[Change]) -> None:
        records = [c.to_dict() for c in changes]
        if self._path is None:
            self._memory = records
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_name(self._path.name + ".tmp")
        tmp.write_text(json.dumps({"changes": records}, indent=2))
        tmp.replace(self._path)

    def list_all(self, feature: str | None = None) -> list[Change]:
        """Return all live changes, optionally only those for ``feature``."""
        return [c for c in self._load() if feature is None or c.feature == feature]

    def get(self, change_id: str) -> Change | None:
        """Look up a change by ``feature/name``."""
        for change in self._load():
            if change.change_id == change_id:
                return change
        return None

    def put(self, change: Change) -> None:
        """Add or replace a change (keyed by change id)."""
        with self._locked():
            changes = self._load()
            for idx, existing in enumerate(changes):
                if existing.change_id == change.change_id:
                    changes[idx] = change
                    break
            else:
                changes.append(change)
            self._save(changes)

    def remove(self, change_id: str) -> bool:
        """Remove a change. Returns True if it was found."""
        with self._locked():
            changes = self._load()
            filtered = [c for c in changes if c.change_id != change_id]
            if len(filtered) == len(changes):
                return False
            self._save(filtered)
            return True
