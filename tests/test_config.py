"""Tests for configuration loading and store selection."""

from pathlib import Path

import pytest

from specflow.config import SpecflowConfig, load_config
from specflow.graph.beads import BeadsTaskGraphStore
from specflow.graph.factory import STORE_NAMES, create_store
from specflow.graph.file import FileTaskGraphStore
from specflow.graph.memory import MemoryTaskGraphStore


class TestLoadConfig:
    def test_defaults(self):
        config = load_config({})
        assert config.home == Path.home() / ".specflow"
        assert config.store == "file"
        assert config.beads_root is None
        assert config.log_level == "WARNING"

    def test_env_overrides(self, tmp_path):
        config = load_config(
            {
                "SPECFLOW_HOME": str(tmp_path),
                "SPECFLOW_STORE": " Beads ",
                "SPECFLOW_BEADS_ROOT": str(tmp_path / "repo"),
                "SPECFLOW_LOG_LEVEL": "debug",
            }
        )
        assert config.home == tmp_path
        assert config.store == "beads"
        assert config.beads_root == tmp_path / "repo"
        assert config.log_level == "DEBUG"

    def test_unknown_store(self):
        with pytest.raises(ValueError, match="SPECFLOW_STORE"):
            load_config({"SPECFLOW_STORE": "sqlite"})

    def test_memory_store_rejected(self):
        with pytest.raises(ValueError, match="file, beads"):
            load_config({"SPECFLOW_STORE": "memory"})

    def test_derived_paths(self, tmp_path):
        config = SpecflowConfig(home=tmp_path)
        assert config.changes_path == tmp_path / "changes.json"
        assert config.specs_dir == tmp_path / "specs"
        assert config.graph_root == tmp_path
        assert config.locks_dir == tmp_path / "locks"

    def test_beads_graph_root(self, tmp_path):
        config = SpecflowConfig(home=tmp_path, store="beads", beads_root=tmp_path / "repo")
        assert config.graph_root == tmp_path / "repo"
        assert SpecflowConfig(home=tmp_path, store="beads").graph_root == Path.cwd()


class TestCreateStore:
    def test_store_names(self):
        assert STORE_NAMES == ["memory", "file", "beads"]

    def test_memory(self, tmp_path):
        assert isinstance(create_store("memory", tmp_path), MemoryTaskGraphStore)

    def test_file(self, tmp_path):
        store = create_store("file", tmp_path)
        assert isinstance(store, FileTaskGraphStore)
        assert store.path == tmp_path / "graph.json"

    def test_beads(self, tmp_path):
        assert isinstance(create_store("beads", tmp_path), BeadsTaskGraphStore)

    def test_unknown(self, tmp_path):
        with pytest.raises(ValueError, match="Unknown store kind"):
            create_store("sqlite", tmp_path)
