"""Configuration loader for specflow.

Settings come from environment variables with defaults under ``~/.specflow``:

    SPECFLOW_HOME         state directory (graph.json, changes.json, specs/, locks/)
    SPECFLOW_STORE        task graph backend: file or beads
    SPECFLOW_BEADS_ROOT   repository the beads CLI runs in (default: cwd)
    SPECFLOW_LOG_LEVEL    logging level name (default: WARNING)

The ``memory`` store is not offered here: every command runs in a fresh
process, so its graph would vanish while ``changes.json`` persists.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

DEFAULT_STORE = "file"
DEFAULT_LOG_LEVEL = "WARNING"

# Stores whose state outlives a single command
PERSISTENT_STORES = ["file", "beads"]


def _default_home() -> Path:
    return Path.home() / ".specflow"


@dataclass
class SpecflowConfig:
    home: Path
    store: str = DEFAULT_STORE
    beads_root: Path | None = None
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def graph_root(self) -> Path:
        """Directory handed to the task graph store."""
        if self.store == "beads":
            return self.beads_root or Path.cwd()
        return self.home

    @property
    def changes_path(self) -> Path:
        return self.home / "changes.json"

    @property
    def specs_dir(self) -> Path:
        return self.home / "specs"

    @property
    def locks_dir(self) -> Path:
        return self.home / "locks"


def load_config(env: Mapping[str, str] | None = None) -> SpecflowConfig:
    """Build a SpecflowConfig from ``env`` (defaults to ``os.environ``).

    Raises:
        ValueError: If SPECFLOW_STORE names an unknown or non-persistent backend.
    """
    env = os.environ if env is None else env
    store = env.get("SPECFLOW_STORE", DEFAULT_STORE).strip().lower()
    if store not in PERSISTENT_STORES:
        raise ValueError(
            f"SPECFLOW_STORE must be one of {', '.join(PERSISTENT_STORES)}, got {store!r}"
        )
    home = env.get("SPECFLOW_HOME")
    beads_root = env.get("SPECFLOW_BEADS_ROOT")
    return SpecflowConfig(
        home=Path(home).expanduser() if home else _default_home(),
        store=store,
        beads_root=Path(beads_root).expanduser() if beads_root else None,
        log_level=env.get("SPECFLOW_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
    )
