"""Data models for the workspace module.

Entities live in id-indexed maps on a Snapshot; every parent/child pointer is
an id, never an object reference. Entities are frozen: operations replace
them with ``model_copy(update=...)`` instead of editing them in place.
"""
import time
import uuid
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ROOT_FOLDER_NAME = "All documents"


def create_id() -> str:
    return str(uuid.uuid4())


def now_ms() -> int:
    """Current time as epoch milliseconds (the wire format for createdAt)."""
    return int(time.time() * 1000)


class Collection(str, Enum):
    ROOMS = "rooms"
    FOLDERS = "folders"
    FILES = "files"


class Entity(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_document(self) -> dict:
        """Serialize to the camelCase document stored remotely."""
        return self.model_dump(by_alias=True)


class Room(Entity):
    id: str
    name: str
    root_folder_id: str
    created_at: int


class Folder(Entity):
    id: str
    name: str
    parent_id: Optional[str] = None
    room_id: str
    child_folder_ids: List[str] = Field(default_factory=list)
    file_ids: List[str] = Field(default_factory=list)
    created_at: int

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


class FileRecord(Entity):
    id: str
    name: str
    parent_folder_id: str
    room_id: str
    size: int = 0
    created_at: int
    # Session-local handle into the content cache. None means "not hydrated".
    content_ref: Optional[str] = None
    origin: Literal["upload", "demo"] = "upload"

    def to_document(self) -> dict:
        # Local handles never leave the client.
        return self.model_dump(by_alias=True, exclude={"content_ref"})

    @property
    def is_previewable(self) -> bool:
        return self.content_ref is not None


class Snapshot(BaseModel):
    """Full normalized workspace state at one point in time."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    rooms: Dict[str, Room] = Field(default_factory=dict)
    folders: Dict[str, Folder] = Field(default_factory=dict)
    files: Dict[str, FileRecord] = Field(default_factory=dict)
    active_room_id: Optional[str] = None
    active_folder_id: Optional[str] = None

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls()

    def replace(self, **changes) -> "Snapshot":
        return self.model_copy(update=changes)

    @property
    def active_room(self) -> Optional[Room]:
        if self.active_room_id is None:
            return None
        return self.rooms.get(self.active_room_id)

    @property
    def active_folder(self) -> Optional[Folder]:
        if self.active_folder_id is None:
            return None
        return self.folders.get(self.active_folder_id)


ENTITY_TYPES = {
    Collection.ROOMS: Room,
    Collection.FOLDERS: Folder,
    Collection.FILES: FileRecord,
}
