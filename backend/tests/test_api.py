"""Tests for the workspace HTTP routes and error mapping."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from dataroom import main
from dataroom.api import deps
from dataroom.services.metadata_store import InMemoryMetadataStore
from dataroom.services.sync_coordinator import SyncCoordinator


@pytest.fixture
def api(monkeypatch, content_cache):
    coordinator = SyncCoordinator(InMemoryMetadataStore(), content_cache)
    monkeypatch.setattr(deps, "_coordinator", coordinator)
    monkeypatch.setattr(main, "connect_db", AsyncMock())
    monkeypatch.setattr(main, "disconnect_db", AsyncMock())
    with TestClient(main.app) as client:
        yield client, coordinator


def create_room(client, name="Deals"):
    response = client.post("/api/workspace/rooms", json={"name": name})
    assert response.status_code == 201
    return response.json()["room"]


def pdf(name, body=b"%PDF-1.4"):
    return ("files", (name, body, "application/pdf"))


class TestRooms:
    def test_create_and_list(self, api):
        client, _ = api
        room = create_room(client, "  Deals  ")
        assert room["name"] == "Deals"
        assert room["stats"] == {"folderCount": 1, "fileCount": 0}

        rooms = client.get("/api/workspace/rooms").json()["rooms"]
        assert [r["name"] for r in rooms] == ["Deals"]

    def test_blank_name_is_400(self, api):
        client, _ = api
        response = client.post("/api/workspace/rooms", json={"name": "   "})
        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"

    def test_rename_and_delete(self, api):
        client, _ = api
        room = create_room(client)
        renamed = client.patch(f"/api/workspace/rooms/{room['id']}", json={"name": "Atlas"})
        assert renamed.json()["room"]["name"] == "Atlas"

        deleted = client.delete(f"/api/workspace/rooms/{room['id']}").json()
        assert deleted["activeRoomId"] is None
        assert client.get("/api/workspace/rooms").json()["rooms"] == []

    def test_unknown_room_is_404(self, api):
        client, _ = api
        response = client.post("/api/workspace/rooms/missing/select")
        assert response.status_code == 404


class TestFolders:
    def test_folder_view_lists_sorted_children(self, api):
        client, _ = api
        room = create_room(client)
        root_id = room["rootFolderId"]
        for name in ("beta", "Alpha"):
            client.post("/api/workspace/folders", json={"parentId": root_id, "name": name})

        view = client.get(f"/api/workspace/folders/{root_id}").json()
        assert view["folder"]["isRoot"] is True
        assert view["label"] == "Documents"
        assert [f["name"] for f in view["folders"]] == ["Alpha", "beta"]

    def test_root_delete_is_403(self, api):
        client, _ = api
        room = create_room(client)
        response = client.delete(f"/api/workspace/folders/{room['rootFolderId']}")
        assert response.status_code == 403

    def test_missing_folder_is_404(self, api):
        client, _ = api
        assert client.get("/api/workspace/folders/missing").status_code == 404


class TestFiles:
    def test_upload_preview_and_reject(self, api):
        client, _ = api
        root_id = create_room(client)["rootFolderId"]

        response = client.post(
            f"/api/workspace/folders/{root_id}/files",
            files=[pdf("report.pdf", b"%PDF-report"), ("files", ("notes.txt", b"x", "text/plain"))],
        )
        assert response.status_code == 201
        body = response.json()
        assert body["rejectedNames"] == ["notes.txt"]
        uploaded = body["files"][0]
        assert uploaded["name"] == "report.pdf"
        assert uploaded["previewable"] is True
        assert "contentRef" not in uploaded

        content = client.get(f"/api/workspace/files/{uploaded['id']}/content")
        assert content.status_code == 200
        assert content.content == b"%PDF-report"
        assert content.headers["content-type"] == "application/pdf"

    def test_only_rejected_files_is_400(self, api):
        client, _ = api
        root_id = create_room(client)["rootFolderId"]
        response = client.post(
            f"/api/workspace/folders/{root_id}/files",
            files=[("files", ("image.png", b"x", "image/png"))],
        )
        assert response.status_code == 400

    def test_rename_file_appends_extension(self, api):
        client, _ = api
        root_id = create_room(client)["rootFolderId"]
        file_id = client.post(
            f"/api/workspace/folders/{root_id}/files", files=[pdf("a.pdf")]
        ).json()["files"][0]["id"]

        response = client.patch(f"/api/workspace/files/{file_id}", json={"name": "Final"})
        assert response.json()["file"]["name"] == "Final.pdf"


class TestBatchOperations:
    def test_move_and_bulk_delete(self, api):
        client, _ = api
        root_id = create_room(client)["rootFolderId"]
        a = client.post("/api/workspace/folders", json={"parentId": root_id, "name": "A"}).json()["folder"]
        b = client.post("/api/workspace/folders", json={"parentId": root_id, "name": "B"}).json()["folder"]

        moved = client.post("/api/workspace/move", json={
            "targetFolderId": b["id"], "folderIds": [a["id"]],
        }).json()
        assert (moved["moved"], moved["skipped"]) == (1, 0)

        cycle = client.post("/api/workspace/move", json={
            "targetFolderId": a["id"], "folderIds": [b["id"]],
        }).json()
        assert (cycle["moved"], cycle["skipped"]) == (0, 1)

        deleted = client.post("/api/workspace/bulk-delete", json={
            "folderIds": [root_id, b["id"]],
        }).json()
        assert deleted["rejectedRootIds"] == [root_id]
        assert set(deleted["removedFolderIds"]) == {a["id"], b["id"]}

    def test_drag_and_drop(self, api):
        client, _ = api
        root_id = create_room(client)["rootFolderId"]
        target = client.post("/api/workspace/folders", json={"parentId": root_id, "name": "T"}).json()["folder"]
        file_id = client.post(
            f"/api/workspace/folders/{root_id}/files", files=[pdf("a.pdf")]
        ).json()["files"][0]["id"]

        selection = client.post("/api/workspace/selection/toggle", json={"kind": "file", "id": file_id})
        assert selection.json() == {"folderIds": [], "fileIds": [file_id]}

        payload = client.post("/api/workspace/drag", json={"kind": "file", "id": file_id}).json()["payload"]
        dropped = client.post("/api/workspace/drop", json={"targetFolderId": target["id"], "payload": payload})
        assert dropped.json()["moved"] == 1
        assert client.get("/api/workspace/selection").json() == {"folderIds": [], "fileIds": []}

        ignored = client.post("/api/workspace/drop", json={"targetFolderId": target["id"], "payload": "{}"})
        assert ignored.json()["ignored"] is True


    def test_select_all_uses_visible_ids(self, api):
        client, _ = api
        root_id = create_room(client)["rootFolderId"]
        kept = client.post("/api/workspace/folders", json={"parentId": root_id, "name": "Kept"}).json()["folder"]
        client.post("/api/workspace/folders", json={"parentId": root_id, "name": "Hidden"})

        narrowed = client.post("/api/workspace/selection/all", json={"folderIds": [kept["id"]]})
        assert narrowed.json() == {"folderIds": [kept["id"]], "fileIds": []}

        everything = client.post("/api/workspace/selection/all", json={"folderId": root_id}).json()
        assert len(everything["folderIds"]) == 2


class TestSessionAndErrors:
    def test_sign_in_and_out(self, api):
        client, _ = api
        status = client.post("/api/workspace/session", json={"userId": "u1"}).json()
        assert status["userId"] == "u1"

        status = client.delete("/api/workspace/session").json()
        assert status == {
            "userId": None,
            "status": "local",
            "collections": {"rooms": "uninitialized", "folders": "uninitialized", "files": "uninitialized"},
        }

    def test_remote_failure_is_502(self, api):
        client, coordinator = api
        client.post("/api/workspace/session", json={"userId": "u1"})
        coordinator.store.create = AsyncMock(side_effect=RuntimeError("offline"))

        response = client.post("/api/workspace/rooms", json={"name": "Deals"})
        assert response.status_code == 502
        assert response.json()["error"] == "RemoteWriteFailure"

    def test_settings_are_masked(self, api):
        client, _ = api
        body = client.get("/api/settings").json()
        assert body["metadata_store_mode"] == "mock"
        assert body["required_file_extension"] == ".pdf"

    def test_health(self, api):
        client, _ = api
        assert client.get("/health").json() == {"status": "healthy", "sync": "local"}
