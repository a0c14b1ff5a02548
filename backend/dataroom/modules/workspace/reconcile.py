"""
Merging remote feed deliveries into the local snapshot.

Each feed delivers the complete set of a user's documents for one collection.
The merge replaces that collection wholesale and then repairs the active
pointers:
1. Rooms feed: keep the active room if it still exists, else pick the first
   room by name; a changed room resets the active folder to its root
2. Folders feed: keep the active folder only if it exists inside the active
   room, else fall back to the room's root
3. Files feed: carry locally known content refs over to the new records
"""
import logging
from typing import Dict, Iterable, Optional

from pydantic import ValidationError as PydanticValidationError

from dataroom.modules.workspace.hierarchy import sorted_rooms
from dataroom.modules.workspace.models import (
    ENTITY_TYPES,
    Collection,
    FileRecord,
    Folder,
    Room,
    Snapshot,
)

logger = logging.getLogger(__name__)


def parse_documents(collection: Collection, documents: Iterable[dict]) -> Dict[str, object]:
    """Validate raw camelCase documents into entities, dropping malformed ones."""
    model = ENTITY_TYPES[collection]
    entities = {}
    for document in documents:
        try:
            entity = model.model_validate(document)
        except PydanticValidationError as e:
            logger.warning(
                "Dropping malformed %s document %s: %s",
                collection.value, document.get("id"), e.error_count(),
            )
            continue
        entities[entity.id] = entity
    return entities


def apply_rooms(snapshot: Snapshot, rooms: Dict[str, Room]) -> Snapshot:
    active_room_id = snapshot.active_room_id
    active_folder_id = snapshot.active_folder_id

    if active_room_id not in rooms:
        ordered = sorted(rooms.values(), key=lambda r: (r.name.casefold(), r.name))
        first = ordered[0] if ordered else None
        active_room_id = first.id if first else None

    if active_room_id != snapshot.active_room_id:
        # The root record may not have arrived yet; the id is enough.
        active_folder_id = rooms[active_room_id].root_folder_id if active_room_id else None

    return snapshot.replace(
        rooms=dict(rooms),
        active_room_id=active_room_id,
        active_folder_id=active_folder_id,
    )


def apply_folders(snapshot: Snapshot, folders: Dict[str, Folder]) -> Snapshot:
    room = snapshot.active_room
    active_folder_id = snapshot.active_folder_id
    if room is None:
        active_folder_id = None
    else:
        folder = folders.get(active_folder_id) if active_folder_id else None
        if folder is None or folder.room_id != room.id:
            active_folder_id = room.root_folder_id

    return snapshot.replace(folders=dict(folders), active_folder_id=active_folder_id)


def apply_files(snapshot: Snapshot, files: Dict[str, FileRecord]) -> Snapshot:
    merged = {}
    for file_id, file in files.items():
        known = snapshot.files.get(file_id)
        if known is not None and known.content_ref and not file.content_ref:
            file = file.model_copy(update={"content_ref": known.content_ref})
        merged[file_id] = file
    return snapshot.replace(files=merged)


def apply_preferences(snapshot: Snapshot, preferences: Optional[dict]) -> Snapshot:
    """Restore the persisted active room/folder if they still exist."""
    preferences = preferences or {}
    room = snapshot.rooms.get(preferences.get("activeRoomId") or "")
    if room is None:
        ordered = sorted_rooms(snapshot)
        room = ordered[0] if ordered else None
    if room is None:
        return snapshot.replace(active_room_id=None, active_folder_id=None)

    folder = snapshot.folders.get(preferences.get("activeFolderId") or "")
    folder_id = folder.id if folder is not None and folder.room_id == room.id else room.root_folder_id
    return snapshot.replace(active_room_id=room.id, active_folder_id=folder_id)
