"""
Validated, copy-on-write state transitions for the workspace hierarchy.

Every operation:
1. Validates against the snapshot it is given and raises before building
   anything (ValidationError, NotFound, Forbidden)
2. Returns a MutationResult with a brand new Snapshot; the input is never
   touched, so concurrent readers always see a consistent state
3. Describes the change as DocumentWrites (create / merge-patch / delete)
   so the sync coordinator can replay it against the remote store

The engine has no I/O and no clock other than the optional ``now`` argument.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Set

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from dataroom.core.errors import Forbidden, ValidationError
from dataroom.modules.workspace.hierarchy import (
    contained_file_ids,
    descendant_closure,
    get_file,
    get_folder,
    get_room,
    root_folder_ids,
    sibling_names,
    sorted_rooms,
)
from dataroom.modules.workspace.models import (
    ROOT_FOLDER_NAME,
    Collection,
    FileRecord,
    Folder,
    Room,
    Snapshot,
    create_id,
    now_ms,
)
from dataroom.modules.workspace.naming import (
    DEFAULT_FILE_EXTENSION,
    ensure_extension,
    has_extension,
    normalize_name,
    unique_file_name,
    unique_folder_name,
)

NAME_REQUIRED = "Name is required."
NAME_TAKEN = "An item with this name already exists."
ROOM_NAME_TAKEN = "A data room with this name already exists."
ROOT_NOT_DELETABLE = "Root folder cannot be deleted."


class WriteOp(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class DocumentWrite(BaseModel):
    """One remote document change; UPDATE data is a merge patch."""

    collection: Collection
    doc_id: str
    op: WriteOp
    data: Optional[dict] = None


@dataclass
class UploadSpec:
    name: str
    size: int = 0
    file_id: str = field(default_factory=create_id)


@dataclass
class MutationResult:
    operation: str
    snapshot: Snapshot
    writes: List[DocumentWrite] = field(default_factory=list)
    # Merge patch for the preference document, None when active ids are unchanged
    preferences: Optional[dict] = None
    created_ids: List[str] = field(default_factory=list)
    removed_folder_ids: List[str] = field(default_factory=list)
    removed_file_ids: List[str] = field(default_factory=list)
    rejected_root_ids: List[str] = field(default_factory=list)
    rejected_names: List[str] = field(default_factory=list)
    moved: int = 0
    skipped: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.writes) or self.preferences is not None

    def summary(self) -> dict:
        return {
            "operation": self.operation,
            "createdIds": self.created_ids,
            "removedFolderIds": self.removed_folder_ids,
            "removedFileIds": self.removed_file_ids,
            "rejectedRootIds": self.rejected_root_ids,
            "rejectedNames": self.rejected_names,
            "moved": self.moved,
            "skipped": self.skipped,
        }


class _Draft:
    """Working copy of a snapshot that records the writes it accumulates."""

    def __init__(self, snapshot: Snapshot):
        self.base = snapshot
        self.stores = {
            Collection.ROOMS: dict(snapshot.rooms),
            Collection.FOLDERS: dict(snapshot.folders),
            Collection.FILES: dict(snapshot.files),
        }
        self.active_room_id = snapshot.active_room_id
        self.active_folder_id = snapshot.active_folder_id
        self._created: Dict[Collection, List[str]] = {c: [] for c in Collection}
        self._patched: Dict[Collection, Dict[str, Set[str]]] = {c: {} for c in Collection}
        self._deleted: Dict[Collection, List[str]] = {c: [] for c in Collection}

    @property
    def rooms(self) -> Dict[str, Room]:
        return self.stores[Collection.ROOMS]

    @property
    def folders(self) -> Dict[str, Folder]:
        return self.stores[Collection.FOLDERS]

    @property
    def files(self) -> Dict[str, FileRecord]:
        return self.stores[Collection.FILES]

    def view(self) -> Snapshot:
        """Unvalidated snapshot over the current working maps."""
        return Snapshot.model_construct(
            rooms=self.rooms,
            folders=self.folders,
            files=self.files,
            active_room_id=self.active_room_id,
            active_folder_id=self.active_folder_id,
        )

    def create(self, collection: Collection, entity) -> None:
        self.stores[collection][entity.id] = entity
        self._created[collection].append(entity.id)

    def update(self, collection: Collection, entity_id: str, **changes) -> None:
        store = self.stores[collection]
        store[entity_id] = store[entity_id].model_copy(update=changes)
        if entity_id not in self._created[collection]:
            keys = self._patched[collection].setdefault(entity_id, set())
            keys.update(to_camel(key) for key in changes)

    def delete(self, collection: Collection, entity_id: str) -> None:
        if self.stores[collection].pop(entity_id, None) is None:
            return
        self._patched[collection].pop(entity_id, None)
        if entity_id in self._created[collection]:
            self._created[collection].remove(entity_id)
        else:
            self._deleted[collection].append(entity_id)

    def _writes(self) -> List[DocumentWrite]:
        writes: List[DocumentWrite] = []
        for collection in Collection:
            store = self.stores[collection]
            for entity_id in self._created[collection]:
                writes.append(DocumentWrite(
                    collection=collection,
                    doc_id=entity_id,
                    op=WriteOp.CREATE,
                    data=store[entity_id].to_document(),
                ))
            for entity_id, keys in self._patched[collection].items():
                document = store[entity_id].to_document()
                writes.append(DocumentWrite(
                    collection=collection,
                    doc_id=entity_id,
                    op=WriteOp.UPDATE,
                    data={key: document[key] for key in sorted(keys)},
                ))
            for entity_id in self._deleted[collection]:
                writes.append(DocumentWrite(
                    collection=collection, doc_id=entity_id, op=WriteOp.DELETE
                ))
        return writes

    def _preferences(self) -> Optional[dict]:
        patch = {}
        if self.active_room_id != self.base.active_room_id:
            patch["activeRoomId"] = self.active_room_id
        if self.active_folder_id != self.base.active_folder_id:
            patch["activeFolderId"] = self.active_folder_id
        return patch or None

    def build(self, operation: str, **extra) -> MutationResult:
        snapshot = Snapshot(
            rooms=self.rooms,
            folders=self.folders,
            files=self.files,
            active_room_id=self.active_room_id,
            active_folder_id=self.active_folder_id,
        )
        return MutationResult(
            operation=operation,
            snapshot=snapshot,
            writes=self._writes(),
            preferences=self._preferences(),
            **extra,
        )


def _require_name(name: str) -> str:
    normalized = normalize_name(name)
    if not normalized:
        raise ValidationError(NAME_REQUIRED)
    return normalized


def _unique_ids(ids: Iterable[str]) -> List[str]:
    seen: Set[str] = set()
    ordered = []
    for item in ids:
        if item and item not in seen:
            seen.add(item)
            ordered.append(item)
    return ordered


# ---- rooms -----------------------------------------------------------------

def create_room(snapshot: Snapshot, name: str, now: Optional[int] = None) -> MutationResult:
    """Create a room and its root folder together; the room becomes active."""
    normalized = _require_name(name)
    used = {room.name.lower() for room in snapshot.rooms.values()}
    final_name = unique_folder_name(normalized, used)
    created_at = now if now is not None else now_ms()
    room_id, root_id = create_id(), create_id()

    draft = _Draft(snapshot)
    draft.create(Collection.ROOMS, Room(
        id=room_id, name=final_name, root_folder_id=root_id, created_at=created_at,
    ))
    draft.create(Collection.FOLDERS, Folder(
        id=root_id,
        name=ROOT_FOLDER_NAME,
        parent_id=None,
        room_id=room_id,
        created_at=created_at,
    ))
    draft.active_room_id = room_id
    draft.active_folder_id = root_id
    return draft.build("create_room", created_ids=[room_id, root_id])


def rename_room(snapshot: Snapshot, room_id: str, name: str) -> MutationResult:
    room = get_room(snapshot, room_id)
    normalized = _require_name(name)
    used = {r.name.lower() for r in snapshot.rooms.values() if r.id != room.id}
    if normalized.lower() in used:
        raise ValidationError(ROOM_NAME_TAKEN)

    draft = _Draft(snapshot)
    draft.update(Collection.ROOMS, room.id, name=normalized)
    return draft.build("rename_room")


def delete_room(snapshot: Snapshot, room_id: str) -> MutationResult:
    """Remove a room with every folder and file it owns."""
    room = get_room(snapshot, room_id)
    folder_ids = [f.id for f in snapshot.folders.values() if f.room_id == room.id]
    file_ids = [f.id for f in snapshot.files.values() if f.room_id == room.id]

    draft = _Draft(snapshot)
    for file_id in file_ids:
        draft.delete(Collection.FILES, file_id)
    for folder_id in folder_ids:
        draft.delete(Collection.FOLDERS, folder_id)
    draft.delete(Collection.ROOMS, room.id)

    remaining = sorted_rooms(draft.view())
    next_room = remaining[0] if remaining else None
    draft.active_room_id = next_room.id if next_room else None
    draft.active_folder_id = next_room.root_folder_id if next_room else None

    return draft.build(
        "delete_room", removed_folder_ids=folder_ids, removed_file_ids=file_ids
    )


def select_room(snapshot: Snapshot, room_id: str) -> MutationResult:
    room = get_room(snapshot, room_id)
    draft = _Draft(snapshot)
    draft.active_room_id = room.id
    draft.active_folder_id = room.root_folder_id
    return draft.build("select_room")


def select_folder(snapshot: Snapshot, folder_id: str) -> MutationResult:
    folder = get_folder(snapshot, folder_id)
    draft = _Draft(snapshot)
    draft.active_room_id = folder.room_id
    draft.active_folder_id = folder.id
    return draft.build("select_folder")


# ---- folders and files -----------------------------------------------------

def create_folder(
    snapshot: Snapshot, parent_id: str, name: str, now: Optional[int] = None
) -> MutationResult:
    parent = get_folder(snapshot, parent_id)
    normalized = _require_name(name)
    final_name = unique_folder_name(normalized, sibling_names(snapshot, parent.id))
    folder_id = create_id()

    draft = _Draft(snapshot)
    draft.create(Collection.FOLDERS, Folder(
        id=folder_id,
        name=final_name,
        parent_id=parent.id,
        room_id=parent.room_id,
        created_at=now if now is not None else now_ms(),
    ))
    draft.update(
        Collection.FOLDERS, parent.id,
        child_folder_ids=[*parent.child_folder_ids, folder_id],
    )
    return draft.build("create_folder", created_ids=[folder_id])


def rename_folder(snapshot: Snapshot, folder_id: str, name: str) -> MutationResult:
    folder = get_folder(snapshot, folder_id)
    normalized = _require_name(name)
    if normalized.lower() in sibling_names(snapshot, folder.parent_id, exclude_id=folder.id):
        raise ValidationError(NAME_TAKEN)

    draft = _Draft(snapshot)
    draft.update(Collection.FOLDERS, folder.id, name=normalized)
    return draft.build("rename_folder")


def rename_file(
    snapshot: Snapshot,
    file_id: str,
    name: str,
    extension: str = DEFAULT_FILE_EXTENSION,
) -> MutationResult:
    file = get_file(snapshot, file_id)
    final_name = ensure_extension(_require_name(name), extension)
    used = sibling_names(snapshot, file.parent_folder_id, exclude_id=file.id)
    if final_name.lower() in used:
        raise ValidationError(NAME_TAKEN)

    draft = _Draft(snapshot)
    draft.update(Collection.FILES, file.id, name=final_name)
    return draft.build("rename_file")


def upload_files(
    snapshot: Snapshot,
    folder_id: str,
    uploads: Sequence[UploadSpec],
    extension: str = DEFAULT_FILE_EXTENSION,
    now: Optional[int] = None,
) -> MutationResult:
    """Create file records for accepted uploads inside a folder.

    Uploads without the required extension are rejected and reported by
    name. Names are uniquified against the folder and against each other.
    """
    parent = get_folder(snapshot, folder_id)
    accepted = [u for u in uploads if has_extension(normalize_name(u.name), extension)]
    rejected = [u.name for u in uploads if u not in accepted]
    if not accepted:
        raise ValidationError(f"Only {extension} files are accepted.")

    used = sibling_names(snapshot, parent.id)
    created_at = now if now is not None else now_ms()
    draft = _Draft(snapshot)
    created_ids = []
    for upload in accepted:
        final_name = unique_file_name(upload.name, used, extension)
        used.add(final_name.lower())
        draft.create(Collection.FILES, FileRecord(
            id=upload.file_id,
            name=final_name,
            parent_folder_id=parent.id,
            room_id=parent.room_id,
            size=upload.size,
            created_at=created_at,
            origin="upload",
        ))
        created_ids.append(upload.file_id)

    draft.update(Collection.FOLDERS, parent.id, file_ids=[*parent.file_ids, *created_ids])
    return draft.build("upload_files", created_ids=created_ids, rejected_names=rejected)


def delete_folder(snapshot: Snapshot, folder_id: str) -> MutationResult:
    """Delete a folder with its whole subtree.

    The active folder, if it lived inside the subtree, moves to the deleted
    folder's parent (its nearest surviving ancestor).
    """
    folder = get_folder(snapshot, folder_id)
    if folder.id in root_folder_ids(snapshot):
        raise Forbidden(ROOT_NOT_DELETABLE)

    subtree = descendant_closure(snapshot, folder.id, include_self=True)
    file_ids = contained_file_ids(snapshot, subtree)

    draft = _Draft(snapshot)
    for file_id in sorted(file_ids):
        draft.delete(Collection.FILES, file_id)
    for removed_id in sorted(subtree):
        draft.delete(Collection.FOLDERS, removed_id)

    parent = draft.folders.get(folder.parent_id)
    if parent:
        draft.update(
            Collection.FOLDERS, parent.id,
            child_folder_ids=[i for i in parent.child_folder_ids if i != folder.id],
        )
    if draft.active_folder_id in subtree:
        draft.active_folder_id = parent.id if parent else None

    return draft.build(
        "delete_folder",
        removed_folder_ids=sorted(subtree),
        removed_file_ids=sorted(file_ids),
    )


def delete_file(snapshot: Snapshot, file_id: str) -> MutationResult:
    file = get_file(snapshot, file_id)
    draft = _Draft(snapshot)
    draft.delete(Collection.FILES, file.id)

    parent = draft.folders.get(file.parent_folder_id)
    if parent:
        draft.update(
            Collection.FOLDERS, parent.id,
            file_ids=[i for i in parent.file_ids if i != file.id],
        )
    return draft.build("delete_file", removed_file_ids=[file.id])


def move_items(
    snapshot: Snapshot,
    target_folder_id: str,
    folder_ids: Sequence[str],
    file_ids: Sequence[str],
    extension: str = DEFAULT_FILE_EXTENSION,
) -> MutationResult:
    """Reparent folders and files into a target folder.

    Items already in the target are left alone and not counted. A folder whose
    own closure contains the target, or any item from another room, is skipped
    and counted. Folders are processed before files and names are uniquified
    against the target's accumulating children, so two items arriving in the
    same batch cannot collide.
    """
    target = get_folder(snapshot, target_folder_id)
    draft = _Draft(snapshot)
    used = sibling_names(snapshot, target.id)
    moved = 0
    skipped = 0

    for folder_id in folder_ids:
        folder = draft.folders.get(folder_id)
        if folder is None or folder.parent_id == target.id:
            continue
        if folder.room_id != target.room_id or target.id in descendant_closure(
            draft.view(), folder.id, include_self=True
        ):
            skipped += 1
            continue

        next_name = unique_folder_name(folder.name, used)
        used.add(next_name.lower())

        old_parent = draft.folders.get(folder.parent_id)
        if old_parent:
            draft.update(
                Collection.FOLDERS, old_parent.id,
                child_folder_ids=[i for i in old_parent.child_folder_ids if i != folder.id],
            )
        draft.update(Collection.FOLDERS, folder.id, name=next_name, parent_id=target.id)

        current_target = draft.folders[target.id]
        if folder.id not in current_target.child_folder_ids:
            draft.update(
                Collection.FOLDERS, target.id,
                child_folder_ids=[*current_target.child_folder_ids, folder.id],
            )
        moved += 1

    for file_id in file_ids:
        file = draft.files.get(file_id)
        if file is None or file.parent_folder_id == target.id:
            continue
        if file.room_id != target.room_id:
            skipped += 1
            continue

        next_name = unique_file_name(file.name, used, extension)
        used.add(next_name.lower())

        old_parent = draft.folders.get(file.parent_folder_id)
        if old_parent:
            draft.update(
                Collection.FOLDERS, old_parent.id,
                file_ids=[i for i in old_parent.file_ids if i != file.id],
            )
        draft.update(Collection.FILES, file.id, name=next_name, parent_folder_id=target.id)

        current_target = draft.folders[target.id]
        if file.id not in current_target.file_ids:
            draft.update(
                Collection.FOLDERS, target.id,
                file_ids=[*current_target.file_ids, file.id],
            )
        moved += 1

    return draft.build("move_items", moved=moved, skipped=skipped)


def bulk_delete(
    snapshot: Snapshot, folder_ids: Sequence[str], file_ids: Sequence[str]
) -> MutationResult:
    """Delete several folders and files in one pass.

    Room roots are never deleted; they come back in ``rejected_root_ids``.
    Every surviving folder is scrubbed of removed ids, not only the direct
    parents of removed nodes.
    """
    roots = root_folder_ids(snapshot)
    requested = _unique_ids(folder_ids)
    rejected = [i for i in requested if i in roots]

    folders_to_delete: Set[str] = set()
    for folder_id in requested:
        if folder_id in roots or folder_id not in snapshot.folders:
            continue
        folders_to_delete.update(descendant_closure(snapshot, folder_id, include_self=True))

    files_to_delete = {i for i in file_ids if i in snapshot.files}
    files_to_delete.update(contained_file_ids(snapshot, folders_to_delete))

    draft = _Draft(snapshot)
    for file_id in sorted(files_to_delete):
        draft.delete(Collection.FILES, file_id)
    for folder_id in sorted(folders_to_delete):
        draft.delete(Collection.FOLDERS, folder_id)

    for folder in list(draft.folders.values()):
        child_folder_ids = [i for i in folder.child_folder_ids if i not in folders_to_delete]
        kept_file_ids = [i for i in folder.file_ids if i not in files_to_delete]
        changes = {}
        if len(child_folder_ids) != len(folder.child_folder_ids):
            changes["child_folder_ids"] = child_folder_ids
        if len(kept_file_ids) != len(folder.file_ids):
            changes["file_ids"] = kept_file_ids
        if changes:
            draft.update(Collection.FOLDERS, folder.id, **changes)

    if draft.active_folder_id and draft.active_folder_id not in draft.folders:
        room = draft.rooms.get(draft.active_room_id) if draft.active_room_id else None
        draft.active_folder_id = room.root_folder_id if room else None

    return draft.build(
        "bulk_delete",
        removed_folder_ids=sorted(folders_to_delete),
        removed_file_ids=sorted(files_to_delete),
        rejected_root_ids=rejected,
    )


# ---- local content handles -------------------------------------------------

def hydrate_content(snapshot: Snapshot, refs: Dict[str, str]) -> Snapshot:
    """Attach cached content refs to known files. Unknown ids are ignored."""
    files = dict(snapshot.files)
    changed = False
    for file_id, ref in refs.items():
        file = files.get(file_id)
        if file is not None and file.content_ref != ref:
            files[file_id] = file.model_copy(update={"content_ref": ref})
            changed = True
    return snapshot.replace(files=files) if changed else snapshot
