"""Tests for merging feed deliveries into the local snapshot."""

from dataroom.modules.workspace import mutations
from dataroom.modules.workspace.models import Collection
from dataroom.modules.workspace.reconcile import (
    apply_files,
    apply_folders,
    apply_preferences,
    apply_rooms,
    parse_documents,
)


def docs(entities):
    return [e.to_document() for e in entities]


class TestParseDocuments:
    def test_validates_camel_case_documents(self, ws):
        rooms = parse_documents(Collection.ROOMS, docs(ws.snapshot.rooms.values()))
        assert rooms == ws.snapshot.rooms

    def test_drops_malformed_documents(self):
        parsed = parse_documents(Collection.ROOMS, [{"id": "r1", "name": "No root"}])
        assert parsed == {}


class TestApplyRooms:
    def test_keeps_active_room_when_present(self, ws):
        snapshot = apply_rooms(ws.snapshot, dict(ws.snapshot.rooms))
        assert snapshot.active_room_id == ws.room
        assert snapshot.active_folder_id == ws.root

    def test_falls_back_to_first_room_by_name(self, ws):
        rooms = {ws.other_room: ws.snapshot.rooms[ws.other_room]}
        snapshot = apply_rooms(ws.snapshot, rooms)
        assert snapshot.active_room_id == ws.other_room
        assert snapshot.active_folder_id == ws.other_root
        assert ws.room not in snapshot.rooms

    def test_no_rooms_clears_active(self, ws):
        snapshot = apply_rooms(ws.snapshot, {})
        assert snapshot.active_room_id is None
        assert snapshot.active_folder_id is None


class TestApplyFolders:
    def test_active_folder_outside_room_resets_to_root(self, ws):
        snapshot = ws.snapshot.replace(active_folder_id=ws.other_root)
        snapshot = apply_folders(snapshot, dict(ws.snapshot.folders))
        assert snapshot.active_folder_id == ws.root

    def test_missing_active_folder_resets_to_root(self, ws):
        snapshot = mutations.select_folder(ws.snapshot, ws.y2024).snapshot
        folders = {k: v for k, v in snapshot.folders.items() if k != ws.y2024}
        assert apply_folders(snapshot, folders).active_folder_id == ws.root

    def test_present_active_folder_kept(self, ws):
        snapshot = mutations.select_folder(ws.snapshot, ws.legal).snapshot
        assert apply_folders(snapshot, dict(snapshot.folders)).active_folder_id == ws.legal


class TestApplyFiles:
    def test_carries_over_content_refs(self, ws):
        snapshot = mutations.hydrate_content(ws.snapshot, {ws.budget: "content://u/b"})
        incoming = parse_documents(Collection.FILES, docs(snapshot.files.values()))
        assert incoming[ws.budget].content_ref is None

        merged = apply_files(snapshot, incoming)
        assert merged.files[ws.budget].content_ref == "content://u/b"
        assert merged.files[ws.q1].content_ref is None


class TestApplyPreferences:
    def test_restores_saved_ids(self, ws):
        snapshot = apply_preferences(
            ws.snapshot, {"activeRoomId": ws.room, "activeFolderId": ws.legal}
        )
        assert snapshot.active_folder_id == ws.legal

    def test_folder_from_other_room_falls_back_to_root(self, ws):
        snapshot = apply_preferences(
            ws.snapshot, {"activeRoomId": ws.room, "activeFolderId": ws.other_root}
        )
        assert snapshot.active_folder_id == ws.root

    def test_stale_preferences_pick_first_room(self, ws):
        snapshot = apply_preferences(ws.snapshot, {"activeRoomId": "gone"})
        assert snapshot.active_room_id == ws.other_room
        assert snapshot.active_folder_id == ws.other_root

    def test_no_preferences(self, ws):
        snapshot = apply_preferences(ws.snapshot, None)
        assert snapshot.active_room_id == ws.other_room
