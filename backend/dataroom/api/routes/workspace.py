"""Workspace API routes: rooms, folders, files, moves, selection and session."""

from fastapi import APIRouter, Depends, File, HTTPException, Request, Response, UploadFile
from pydantic import BaseModel
from typing import List, Literal, Optional

from dataroom.api.deps import get_coordinator, limiter
from dataroom.modules.workspace import hierarchy
from dataroom.modules.workspace.models import FileRecord, Folder, Room, Snapshot
from dataroom.modules.workspace.mutations import MutationResult
from dataroom.modules.workspace.selection import serialize_drag_payload
from dataroom.services.sync_coordinator import SyncCoordinator

router = APIRouter(prefix="/workspace", tags=["workspace"])


# Request Models
class SessionRequest(BaseModel):
    userId: str


class NameRequest(BaseModel):
    name: str


class CreateFolderRequest(BaseModel):
    parentId: str
    name: str


class MoveRequest(BaseModel):
    targetFolderId: str
    folderIds: List[str] = []
    fileIds: List[str] = []


class BulkDeleteRequest(BaseModel):
    folderIds: List[str] = []
    fileIds: List[str] = []


class ToggleSelectionRequest(BaseModel):
    kind: Literal["folder", "file"]
    id: str


class SelectAllRequest(BaseModel):
    folderId: Optional[str] = None
    folderIds: Optional[List[str]] = None
    fileIds: Optional[List[str]] = None


class DropRequest(BaseModel):
    targetFolderId: str
    payload: Optional[str] = None


# Serializers
def room_to_dict(snapshot: Snapshot, room: Room) -> dict:
    return {
        **room.to_document(),
        "stats": hierarchy.room_stats(snapshot, room.id).to_dict(),
    }


def folder_to_dict(snapshot: Snapshot, folder: Folder) -> dict:
    return {
        **folder.to_document(),
        "isRoot": folder.is_root,
        "stats": hierarchy.descendant_stats(snapshot, folder.id).to_dict(),
    }


def file_to_dict(file: FileRecord) -> dict:
    return {**file.to_document(), "previewable": file.is_previewable}


def result_to_dict(coordinator: SyncCoordinator, result: MutationResult) -> dict:
    return {
        **result.summary(),
        "activeRoomId": coordinator.snapshot.active_room_id,
        "activeFolderId": coordinator.snapshot.active_folder_id,
    }


# Session & state
@router.get("")
async def get_workspace(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Full workspace state for the current session."""
    snapshot = coordinator.snapshot
    return {
        "sync": coordinator.status_dict(),
        "activeRoomId": snapshot.active_room_id,
        "activeFolderId": snapshot.active_folder_id,
        "rooms": [room_to_dict(snapshot, r) for r in hierarchy.sorted_rooms(snapshot)],
        "folders": [f.to_document() for f in snapshot.folders.values()],
        "files": [file_to_dict(f) for f in snapshot.files.values()],
        "selection": coordinator.selection.to_dict(),
    }


@router.get("/status")
async def get_status(coordinator: SyncCoordinator = Depends(get_coordinator)):
    return coordinator.status_dict()


@router.post("/session")
async def sign_in(req: SessionRequest, coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Switch to signed-in mode for a user id."""
    if not req.userId.strip():
        raise HTTPException(status_code=400, detail="userId is required")
    await coordinator.sign_in(req.userId.strip())
    return coordinator.status_dict()


@router.delete("/session")
async def sign_out(coordinator: SyncCoordinator = Depends(get_coordinator)):
    await coordinator.sign_out()
    return coordinator.status_dict()


# Rooms
@router.get("/rooms")
async def list_rooms(coordinator: SyncCoordinator = Depends(get_coordinator)):
    snapshot = coordinator.snapshot
    return {"rooms": [room_to_dict(snapshot, r) for r in hierarchy.sorted_rooms(snapshot)]}


@router.post("/rooms", status_code=201)
async def create_room(req: NameRequest, coordinator: SyncCoordinator = Depends(get_coordinator)):
    result = await coordinator.create_room(req.name)
    room = coordinator.snapshot.rooms[result.created_ids[0]]
    return {**result_to_dict(coordinator, result), "room": room_to_dict(coordinator.snapshot, room)}


@router.patch("/rooms/{room_id}")
async def rename_room(
    room_id: str, req: NameRequest, coordinator: SyncCoordinator = Depends(get_coordinator)
):
    await coordinator.rename_room(room_id, req.name)
    room = coordinator.snapshot.rooms[room_id]
    return {"room": room_to_dict(coordinator.snapshot, room)}


@router.delete("/rooms/{room_id}")
async def delete_room(room_id: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    result = await coordinator.delete_room(room_id)
    return result_to_dict(coordinator, result)


@router.post("/rooms/{room_id}/select")
async def select_room(room_id: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    result = await coordinator.select_room(room_id)
    return result_to_dict(coordinator, result)


@router.get("/rooms/{room_id}/move-targets")
async def list_move_targets(
    room_id: str,
    folder_ids: Optional[str] = None,
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Folders of a room that can receive the given (comma-separated) folders."""
    snapshot = coordinator.snapshot
    hierarchy.get_room(snapshot, room_id)
    moving = [i for i in (folder_ids or "").split(",") if i]
    targets = hierarchy.move_targets(snapshot, room_id, moving)
    return {"targets": [t.to_dict() for t in targets]}


# Folders
@router.get("/folders/{folder_id}")
async def get_folder(folder_id: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Folder contents sorted by name, with breadcrumbs."""
    snapshot = coordinator.snapshot
    folder = hierarchy.get_folder(snapshot, folder_id)
    return {
        "folder": folder_to_dict(snapshot, folder),
        "path": [
            {"id": f.id, "name": hierarchy.ROOT_LABEL if f.is_root else f.name}
            for f in hierarchy.path_to_root(snapshot, folder.id)
        ],
        "label": hierarchy.folder_label(snapshot, folder.id),
        "folders": [folder_to_dict(snapshot, f) for f in hierarchy.sorted_child_folders(snapshot, folder.id)],
        "files": [file_to_dict(f) for f in hierarchy.sorted_files(snapshot, folder.id)],
    }


@router.post("/folders", status_code=201)
async def create_folder(
    req: CreateFolderRequest, coordinator: SyncCoordinator = Depends(get_coordinator)
):
    result = await coordinator.create_folder(req.parentId, req.name)
    folder = coordinator.snapshot.folders[result.created_ids[0]]
    return {**result_to_dict(coordinator, result), "folder": folder_to_dict(coordinator.snapshot, folder)}


@router.patch("/folders/{folder_id}")
async def rename_folder(
    folder_id: str, req: NameRequest, coordinator: SyncCoordinator = Depends(get_coordinator)
):
    await coordinator.rename_folder(folder_id, req.name)
    folder = coordinator.snapshot.folders[folder_id]
    return {"folder": folder_to_dict(coordinator.snapshot, folder)}


@router.delete("/folders/{folder_id}")
async def delete_folder(folder_id: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    result = await coordinator.delete_folder(folder_id)
    return result_to_dict(coordinator, result)


@router.post("/folders/{folder_id}/select")
async def select_folder(folder_id: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    result = await coordinator.select_folder(folder_id)
    return result_to_dict(coordinator, result)


@router.post("/folders/{folder_id}/files", status_code=201)
@limiter.limit("30/minute")
async def upload_files(
    request: Request,
    folder_id: str,
    files: List[UploadFile] = File(...),
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Upload files into a folder. Files without the required extension are rejected."""
    contents = []
    for upload in files:
        contents.append((upload.filename or "", await upload.read()))
    result = await coordinator.upload_files(folder_id, contents)
    snapshot = coordinator.snapshot
    return {
        **result_to_dict(coordinator, result),
        "files": [file_to_dict(snapshot.files[i]) for i in result.created_ids],
    }


# Files
@router.patch("/files/{file_id}")
async def rename_file(
    file_id: str, req: NameRequest, coordinator: SyncCoordinator = Depends(get_coordinator)
):
    await coordinator.rename_file(file_id, req.name)
    return {"file": file_to_dict(coordinator.snapshot.files[file_id])}


@router.delete("/files/{file_id}")
async def delete_file(file_id: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    result = await coordinator.delete_file(file_id)
    return result_to_dict(coordinator, result)


@router.get("/files/{file_id}/content")
async def get_file_content(file_id: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Raw bytes for preview; 404 when the file has no cached content."""
    data = await coordinator.read_content(file_id)
    if data is None:
        raise HTTPException(status_code=404, detail="Preview unavailable for this file")
    file = coordinator.snapshot.files[file_id]
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{file.name}"'},
    )


# Batch operations
@router.post("/move")
async def move_items(req: MoveRequest, coordinator: SyncCoordinator = Depends(get_coordinator)):
    result = await coordinator.move_items(req.targetFolderId, req.folderIds, req.fileIds)
    return result_to_dict(coordinator, result)


@router.post("/bulk-delete")
async def bulk_delete(req: BulkDeleteRequest, coordinator: SyncCoordinator = Depends(get_coordinator)):
    result = await coordinator.bulk_delete(req.folderIds, req.fileIds)
    return result_to_dict(coordinator, result)


# Selection & drag and drop
@router.get("/selection")
async def get_selection(coordinator: SyncCoordinator = Depends(get_coordinator)):
    return coordinator.selection.to_dict()


@router.post("/selection/toggle")
async def toggle_selection(
    req: ToggleSelectionRequest, coordinator: SyncCoordinator = Depends(get_coordinator)
):
    return coordinator.toggle_selection(req.kind, req.id).to_dict()


@router.post("/selection/all")
async def select_all(req: SelectAllRequest, coordinator: SyncCoordinator = Depends(get_coordinator)):
    return coordinator.select_all(req.folderId, req.folderIds, req.fileIds).to_dict()


@router.delete("/selection")
async def clear_selection(coordinator: SyncCoordinator = Depends(get_coordinator)):
    return coordinator.clear_selection().to_dict()


@router.post("/drag")
async def start_drag(
    req: ToggleSelectionRequest, coordinator: SyncCoordinator = Depends(get_coordinator)
):
    """Serialized payload for dragging an item (the whole selection if it is selected)."""
    payload = coordinator.drag_payload(req.kind, req.id)
    return {"payload": serialize_drag_payload(payload)}


@router.post("/drop")
async def drop(req: DropRequest, coordinator: SyncCoordinator = Depends(get_coordinator)):
    result = await coordinator.drop(req.targetFolderId, req.payload)
    if result is None:
        return {"operation": "move_items", "moved": 0, "skipped": 0, "ignored": True}
    return result_to_dict(coordinator, result)
