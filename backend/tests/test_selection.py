"""Tests for multi-selection and drag payloads."""

import json

from dataroom.modules.workspace.selection import (
    DragPayload,
    Selection,
    build_drag_payload,
    parse_drag_payload,
    serialize_drag_payload,
)


class TestSelection:
    def test_toggle_adds_then_removes(self):
        selection = Selection()
        selection.toggle_folder("a")
        selection.toggle_file("f")
        assert selection.folders == {"a"}
        assert selection.files == {"f"}
        selection.toggle_folder("a")
        assert selection.folders == set()

    def test_select_all_replaces_both_sets(self):
        selection = Selection(folders={"old"}, files={"old-file"})
        selection.select_all(["a", "b"], ["f"])
        assert selection.folders == {"a", "b"}
        assert selection.files == {"f"}

    def test_prune_and_clear(self):
        selection = Selection(folders={"a", "b"}, files={"f", "g"})
        selection.prune(folder_ids=["a"], file_ids=["g"])
        assert selection.to_dict() == {"folderIds": ["b"], "fileIds": ["f"]}
        selection.clear()
        assert selection.is_empty


class TestBuildDragPayload:
    def test_selected_item_drags_whole_selection(self):
        selection = Selection(folders={"a"}, files={"f", "g"})
        payload = build_drag_payload(selection, "file", "f")
        assert payload.folder_ids == ["a"]
        assert payload.file_ids == ["f", "g"]

    def test_unselected_item_drags_alone(self):
        selection = Selection(folders={"a"}, files={"f"})
        payload = build_drag_payload(selection, "folder", "z")
        assert payload.folder_ids == ["z"]
        assert payload.file_ids == []
        assert selection.folders == {"a"}


class TestDragPayloadWireFormat:
    def test_serialize_uses_camel_case(self):
        raw = serialize_drag_payload(DragPayload(folder_ids=["a"], file_ids=["f"]))
        assert json.loads(raw) == {"folderIds": ["a"], "fileIds": ["f"]}

    def test_round_trip(self):
        payload = DragPayload(folder_ids=["a", "b"], file_ids=["f"])
        assert parse_drag_payload(serialize_drag_payload(payload)) == payload

    def test_missing_file_ids_is_none(self):
        assert parse_drag_payload('{"folderIds": ["a"]}') is None

    def test_non_list_is_none(self):
        assert parse_drag_payload('{"folderIds": "a", "fileIds": []}') is None

    def test_malformed_and_empty_are_none(self):
        assert parse_drag_payload("") is None
        assert parse_drag_payload(None) is None
        assert parse_drag_payload("{not json") is None
        assert parse_drag_payload("[1, 2]") is None

    def test_falsy_entries_dropped(self):
        payload = parse_drag_payload('{"folderIds": ["a", "", null], "fileIds": [""]}')
        assert payload.folder_ids == ["a"]
        assert payload.file_ids == []
        assert payload.is_empty is False
