"""Tests for hierarchy traversal and derived views."""

import pytest

from dataroom.core.errors import NotFound
from dataroom.modules.workspace import hierarchy
from dataroom.modules.workspace.models import Folder


class TestLookups:
    def test_missing_folder_raises(self, ws):
        with pytest.raises(NotFound) as exc:
            hierarchy.get_folder(ws.snapshot, "nope")
        assert exc.value.kind == "Folder"
        assert exc.value.entity_id == "nope"

    def test_lookup_finds_any_kind(self, ws):
        assert hierarchy.lookup(ws.snapshot, ws.room).name == "Deals"
        assert hierarchy.lookup(ws.snapshot, ws.budget).name == "budget.pdf"


class TestDescendantClosure:
    def test_excludes_self_by_default(self, ws):
        closure = hierarchy.descendant_closure(ws.snapshot, ws.root)
        assert closure == {ws.finance, ws.y2024, ws.legal}

    def test_include_self(self, ws):
        closure = hierarchy.descendant_closure(ws.snapshot, ws.finance, include_self=True)
        assert closure == {ws.finance, ws.y2024}

    def test_unknown_folder_is_empty(self, ws):
        assert hierarchy.descendant_closure(ws.snapshot, "missing") == set()

    def test_terminates_on_stored_cycle(self, ws):
        # Corrupt the graph: 2024 lists Finance as a child.
        y2024 = ws.snapshot.folders[ws.y2024]
        folders = dict(ws.snapshot.folders)
        folders[ws.y2024] = y2024.model_copy(update={"child_folder_ids": [ws.finance]})
        snapshot = ws.snapshot.replace(folders=folders)

        closure = hierarchy.descendant_closure(snapshot, ws.finance, include_self=True)
        assert closure == {ws.finance, ws.y2024}


class TestSiblingNames:
    def test_lowercase_names_of_children(self, ws):
        assert hierarchy.sibling_names(ws.snapshot, ws.finance) == {
            "2024", "budget.pdf", "forecast.pdf",
        }

    def test_excludes_given_id(self, ws):
        names = hierarchy.sibling_names(ws.snapshot, ws.finance, exclude_id=ws.budget)
        assert "budget.pdf" not in names

    def test_none_parent_has_no_siblings(self, ws):
        assert hierarchy.sibling_names(ws.snapshot, None) == set()


class TestDerivedViews:
    def test_path_to_root(self, ws):
        path = hierarchy.path_to_root(ws.snapshot, ws.y2024)
        assert [f.id for f in path] == [ws.root, ws.finance, ws.y2024]

    def test_folder_label(self, ws):
        assert hierarchy.folder_label(ws.snapshot, ws.y2024) == "Documents / Finance / 2024"
        assert hierarchy.folder_label(ws.snapshot, ws.root) == "Documents"

    def test_children_sorted_case_insensitively(self, ws):
        files = hierarchy.sorted_files(ws.snapshot, ws.finance)
        assert [f.name for f in files] == ["budget.pdf", "Forecast.pdf"]
        folders = hierarchy.sorted_child_folders(ws.snapshot, ws.root)
        assert [f.name for f in folders] == ["Finance", "Legal"]

    def test_rooms_sorted_by_name(self, ws):
        assert [r.name for r in hierarchy.sorted_rooms(ws.snapshot)] == ["Archive", "Deals"]

    def test_descendant_stats(self, ws):
        stats = hierarchy.descendant_stats(ws.snapshot, ws.finance)
        assert stats.to_dict() == {"folderCount": 1, "fileCount": 3}

    def test_room_stats_include_root(self, ws):
        stats = hierarchy.room_stats(ws.snapshot, ws.room)
        assert stats.folder_count == 4
        assert stats.file_count == 4

    def test_move_targets_exclude_moving_subtree(self, ws):
        targets = hierarchy.move_targets(ws.snapshot, ws.room, [ws.finance])
        ids = {t.id for t in targets}
        assert ids == {ws.root, ws.legal}
        assert targets[0].label == "Documents"


class TestInvariants:
    def test_built_workspace_is_consistent(self, ws):
        assert hierarchy.find_invariant_violations(ws.snapshot) == []

    def test_detects_second_root(self, ws):
        stray = Folder(id="stray", name="Stray", parent_id=None, room_id=ws.room, created_at=0)
        snapshot = ws.snapshot.replace(folders={**ws.snapshot.folders, "stray": stray})
        problems = hierarchy.find_invariant_violations(snapshot)
        assert any("exactly one root" in p for p in problems)

    def test_root_ids(self, ws):
        assert hierarchy.root_folder_ids(ws.snapshot) == {ws.root, ws.other_root}
        assert hierarchy.is_root_folder(ws.snapshot, ws.root) is True
        assert hierarchy.is_root_folder(ws.snapshot, ws.finance) is False
