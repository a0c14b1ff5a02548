"""Hierarchy traversal and read-only views over a workspace snapshot."""
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set, Union

from dataroom.core.errors import NotFound
from dataroom.modules.workspace.models import FileRecord, Folder, Room, Snapshot
from dataroom.modules.workspace.naming import DEFAULT_FILE_EXTENSION, has_extension

Entity = Union[Room, Folder, FileRecord]

ROOT_LABEL = "Documents"


@dataclass
class DescendantStats:
    folder_count: int
    file_count: int

    def to_dict(self) -> dict:
        return {"folderCount": self.folder_count, "fileCount": self.file_count}


@dataclass
class MoveTarget:
    id: str
    label: str

    def to_dict(self) -> dict:
        return {"id": self.id, "label": self.label}


def get_room(snapshot: Snapshot, room_id: Optional[str]) -> Room:
    room = snapshot.rooms.get(room_id) if room_id else None
    if room is None:
        raise NotFound("Room", room_id)
    return room


def get_folder(snapshot: Snapshot, folder_id: Optional[str]) -> Folder:
    folder = snapshot.folders.get(folder_id) if folder_id else None
    if folder is None:
        raise NotFound("Folder", folder_id)
    return folder


def get_file(snapshot: Snapshot, file_id: Optional[str]) -> FileRecord:
    file = snapshot.files.get(file_id) if file_id else None
    if file is None:
        raise NotFound("File", file_id)
    return file


def lookup(snapshot: Snapshot, entity_id: str) -> Entity:
    """Find a room, folder or file by id."""
    for entities in (snapshot.rooms, snapshot.folders, snapshot.files):
        if entity_id in entities:
            return entities[entity_id]
    raise NotFound("Entity", entity_id)


def descendant_closure(
    snapshot: Snapshot, folder_id: str, include_self: bool = False
) -> Set[str]:
    """All folder ids reachable from folder_id through child links.

    The visited set keeps traversal finite even if the stored graph holds a
    cycle.
    """
    if folder_id not in snapshot.folders:
        return set()

    visited: Set[str] = {folder_id}
    stack = [folder_id]
    while stack:
        current = snapshot.folders.get(stack.pop())
        if current is None:
            continue
        for child_id in current.child_folder_ids:
            if child_id in visited or child_id not in snapshot.folders:
                continue
            visited.add(child_id)
            stack.append(child_id)

    if not include_self:
        visited.discard(folder_id)
    return visited


def contained_file_ids(snapshot: Snapshot, folder_ids: Iterable[str]) -> Set[str]:
    """Ids of the files held directly by any of the given folders."""
    file_ids: Set[str] = set()
    for folder_id in folder_ids:
        folder = snapshot.folders.get(folder_id)
        if folder:
            file_ids.update(folder.file_ids)
    return file_ids


def sibling_names(
    snapshot: Snapshot, folder_id: Optional[str], exclude_id: Optional[str] = None
) -> Set[str]:
    """Lowercase names of the direct folder and file children of folder_id."""
    folder = snapshot.folders.get(folder_id) if folder_id else None
    names: Set[str] = set()
    if folder is None:
        return names

    for child_id in folder.child_folder_ids:
        child = snapshot.folders.get(child_id)
        if child and child_id != exclude_id:
            names.add(child.name.lower())
    for file_id in folder.file_ids:
        file = snapshot.files.get(file_id)
        if file and file_id != exclude_id:
            names.add(file.name.lower())
    return names


def root_folder_ids(snapshot: Snapshot) -> Set[str]:
    roots = {room.root_folder_id for room in snapshot.rooms.values()}
    roots.update(f.id for f in snapshot.folders.values() if f.parent_id is None)
    return roots


def is_root_folder(snapshot: Snapshot, folder_id: str) -> bool:
    return folder_id in root_folder_ids(snapshot)


# ---- derived views ---------------------------------------------------------

def _sort_key(name: str):
    return (name.casefold(), name)


def path_to_root(snapshot: Snapshot, folder_id: Optional[str]) -> List[Folder]:
    """Folders from the room root down to folder_id (inclusive)."""
    path: List[Folder] = []
    seen: Set[str] = set()
    current = snapshot.folders.get(folder_id) if folder_id else None
    while current and current.id not in seen:
        seen.add(current.id)
        path.insert(0, current)
        if current.parent_id is None:
            break
        current = snapshot.folders.get(current.parent_id)
    return path


def sorted_child_folders(snapshot: Snapshot, parent_id: Optional[str]) -> List[Folder]:
    parent = snapshot.folders.get(parent_id) if parent_id else None
    if parent is None:
        return []
    children = [snapshot.folders[i] for i in parent.child_folder_ids if i in snapshot.folders]
    return sorted(children, key=lambda f: _sort_key(f.name))


def sorted_files(snapshot: Snapshot, parent_id: Optional[str]) -> List[FileRecord]:
    parent = snapshot.folders.get(parent_id) if parent_id else None
    if parent is None:
        return []
    files = [snapshot.files[i] for i in parent.file_ids if i in snapshot.files]
    return sorted(files, key=lambda f: _sort_key(f.name))


def sorted_rooms(snapshot: Snapshot) -> List[Room]:
    return sorted(snapshot.rooms.values(), key=lambda r: _sort_key(r.name))


def descendant_stats(snapshot: Snapshot, folder_id: str) -> DescendantStats:
    """Counts of folders below folder_id and of files anywhere in its subtree."""
    subtree = descendant_closure(snapshot, folder_id, include_self=True)
    file_count = len(contained_file_ids(snapshot, subtree))
    return DescendantStats(folder_count=max(len(subtree) - 1, 0), file_count=file_count)


def room_stats(snapshot: Snapshot, room_id: str) -> DescendantStats:
    folder_count = sum(1 for f in snapshot.folders.values() if f.room_id == room_id)
    file_count = sum(1 for f in snapshot.files.values() if f.room_id == room_id)
    return DescendantStats(folder_count=folder_count, file_count=file_count)


def folder_label(snapshot: Snapshot, folder_id: str) -> str:
    """Human-readable location such as "Documents / Finance / 2024"."""
    parts = []
    for folder in path_to_root(snapshot, folder_id):
        parts.append(ROOT_LABEL if folder.parent_id is None else folder.name)
    return " / ".join(parts)


def move_targets(
    snapshot: Snapshot, room_id: str, folder_ids: Iterable[str] = ()
) -> List[MoveTarget]:
    """Folders of a room that can receive the given folders without a cycle."""
    invalid: Set[str] = set()
    for folder_id in folder_ids:
        invalid.update(descendant_closure(snapshot, folder_id, include_self=True))

    targets = [
        MoveTarget(id=folder.id, label=folder_label(snapshot, folder.id))
        for folder in snapshot.folders.values()
        if folder.room_id == room_id and folder.id not in invalid
    ]
    return sorted(targets, key=lambda t: _sort_key(t.label))


def find_invariant_violations(
    snapshot: Snapshot, required_extension: str = DEFAULT_FILE_EXTENSION
) -> List[str]:
    """Describe every structural invariant the snapshot breaks.

    An empty list means the hierarchy is consistent.
    """
    problems: List[str] = []

    for room in snapshot.rooms.values():
        roots = [
            f for f in snapshot.folders.values()
            if f.room_id == room.id and f.parent_id is None
        ]
        if len(roots) != 1 or roots[0].id != room.root_folder_id:
            problems.append(f"room {room.id} does not have exactly one root")

    for folder in snapshot.folders.values():
        if folder.id in descendant_closure(snapshot, folder.id):
            problems.append(f"folder {folder.id} is its own descendant")

        children = {
            f.id for f in snapshot.folders.values() if f.parent_id == folder.id
        }
        if set(folder.child_folder_ids) != children or len(folder.child_folder_ids) != len(children):
            problems.append(f"folder {folder.id} child list out of sync")

        files = {
            f.id for f in snapshot.files.values() if f.parent_folder_id == folder.id
        }
        if set(folder.file_ids) != files or len(folder.file_ids) != len(files):
            problems.append(f"folder {folder.id} file list out of sync")

        names = [
            snapshot.folders[i].name.lower()
            for i in folder.child_folder_ids if i in snapshot.folders
        ] + [
            snapshot.files[i].name.lower()
            for i in folder.file_ids if i in snapshot.files
        ]
        if len(names) != len(set(names)):
            problems.append(f"folder {folder.id} has duplicate child names")

    for file in snapshot.files.values():
        if file.parent_folder_id not in snapshot.folders:
            problems.append(f"file {file.id} has a missing parent")
        if not has_extension(file.name, required_extension):
            problems.append(f"file {file.id} lacks {required_extension}")

    return problems
