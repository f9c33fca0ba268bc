"""Tests for the live change registry."""

import json

from specflow.workflow.models import Change, ChangeState
from specflow.workflow.registry import CHANGES_FILENAME, ChangeRegistry


def _change(name: str = "add-mfa", feature: str = "auth", **kwargs) -> Change:
    return Change(feature=feature, name=name, epic_id=f"sf-{name}", **kwargs)


class TestChange:
    def test_ids_and_labels(self):
        change = _change()
        assert change.change_id == "auth/add-mfa"
        assert change.labels == {"feature:auth", "change:auth/add-mfa"}

    def test_dict_round_trip(self):
        change = _change(scope="TOTP login", state=ChangeState.in_progress, task_ids=["sf-2"])
        assert Change.from_dict(change.to_dict()) == change


class TestChangeRegistry:
    def test_in_memory(self):
        registry = ChangeRegistry()
        registry.put(_change())
        assert registry.get("auth/add-mfa").epic_id == "sf-add-mfa"
        assert registry.get("auth/other") is None

    def test_put_replaces(self, tmp_path):
        registry = ChangeRegistry(tmp_path / CHANGES_FILENAME)
        registry.put(_change())
        registry.put(_change(state=ChangeState.in_progress))
        changes = registry.list_all()
        assert len(changes) == 1
        assert changes[0].state == ChangeState.in_progress

    def test_persists_as_json(self, tmp_path):
        path = tmp_path / "state" / CHANGES_FILENAME
        ChangeRegistry(path).put(_change())
        data = json.loads(path.read_text())
        assert data["changes"][0]["name"] == "add-mfa"
        assert ChangeRegistry(path).get("auth/add-mfa") is not None

    def test_list_by_feature(self):
        registry = ChangeRegistry()
        registry.put(_change("add-mfa"))
        registry.put(_change("sso"))
        registry.put(_change("invoices", feature="billing"))
        assert [c.name for c in registry.list_all("auth")] == ["add-mfa", "sso"]
        assert len(registry.list_all()) == 3

    def test_remove(self, tmp_path):
        registry = ChangeRegistry(tmp_path / CHANGES_FILENAME)
        registry.put(_change())
        assert registry.remove("auth/add-mfa") is True
        assert registry.remove("auth/add-mfa") is False
        assert registry.list_all() == []

    def test_missing_file(self, tmp_path):
        assert ChangeRegistry(tmp_path / "nope.json").list_all() == []

    def test_instances_sharing_a_file_keep_both_records(self, tmp_path):
        path = tmp_path / CHANGES_FILENAME
        first = ChangeRegistry(path)
        second = ChangeRegistry(path)
        assert first.list_all() == second.list_all() == []
        first.put(_change("add-mfa"))
        second.put(_change("sso"))
        assert [c.name for c in first.list_all()] == ["add-mfa", "sso"]
        assert not (tmp_path / (CHANGES_FILENAME + ".tmp")).exists()
