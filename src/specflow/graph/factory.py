"""Store factory for constructing a task graph backend by name."""

from pathlib import Path

from .beads import BeadsTaskGraphStore
from .file import FileTaskGraphStore
from .memory import MemoryTaskGraphStore
from .protocol import TaskGraphStore

# Map store_name -> class for explicit selection (config or --store flag)
_STORE_BY_NAME: dict[str, type[TaskGraphStore]] = {
    cls.store_name: cls
    for cls in [MemoryTaskGraphStore, FileTaskGraphStore, BeadsTaskGraphStore]
}

STORE_NAMES: list[str] = list(_STORE_BY_NAME)


def create_store(kind: str, root: Path) -> TaskGraphStore:
    """Create the task graph store named ``kind``.

    Args:
        kind: One of ``memory``, ``file``, or ``beads``.
        root: Directory the store works in. The file store keeps
            ``graph.json`` there; the beads store runs ``bd`` there.

    Raises:
        ValueError: If ``kind`` is not a known store name.
    """
    store_cls = _STORE_BY_NAME.get(kind)
    if store_cls is None:
        raise ValueError(f"Unknown store kind: {kind} (expected one of {', '.join(STORE_NAMES)})")
    return store_cls.create(root)
