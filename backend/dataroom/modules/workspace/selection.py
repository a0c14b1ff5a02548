"""Multi-selection state and the drag payload exchanged between views."""
import json
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Literal, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

ItemKind = Literal["folder", "file"]


@dataclass
class Selection:
    folders: Set[str] = field(default_factory=set)
    files: Set[str] = field(default_factory=set)

    @property
    def is_empty(self) -> bool:
        return not self.folders and not self.files

    def toggle_folder(self, folder_id: str) -> None:
        self.folders ^= {folder_id}

    def toggle_file(self, file_id: str) -> None:
        self.files ^= {file_id}

    def select_all(self, folder_ids: Iterable[str], file_ids: Iterable[str]) -> None:
        """Replace both sets with the ids currently visible to the caller."""
        self.folders = set(folder_ids)
        self.files = set(file_ids)

    def clear(self) -> None:
        self.folders = set()
        self.files = set()

    def prune(self, folder_ids: Iterable[str] = (), file_ids: Iterable[str] = ()) -> None:
        """Forget ids that no longer exist."""
        self.folders -= set(folder_ids)
        self.files -= set(file_ids)

    def contains(self, kind: ItemKind, item_id: str) -> bool:
        return item_id in (self.folders if kind == "folder" else self.files)

    def to_dict(self) -> dict:
        return {"folderIds": sorted(self.folders), "fileIds": sorted(self.files)}


class DragPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    folder_ids: List[str] = Field(default_factory=list)
    file_ids: List[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.folder_ids and not self.file_ids


def build_drag_payload(selection: Selection, kind: ItemKind, item_id: str) -> DragPayload:
    """Dragging a selected item carries the whole selection; otherwise just the item."""
    if selection.contains(kind, item_id):
        return DragPayload(
            folder_ids=sorted(selection.folders), file_ids=sorted(selection.files)
        )
    if kind == "folder":
        return DragPayload(folder_ids=[item_id])
    return DragPayload(file_ids=[item_id])


def serialize_drag_payload(payload: DragPayload) -> str:
    return json.dumps(payload.model_dump(by_alias=True))


def parse_drag_payload(raw: Optional[str]) -> Optional[DragPayload]:
    """Parse a serialized payload, returning None for anything unusable.

    Both lists must be present and be lists; falsy entries are dropped.
    """
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.debug("Ignoring malformed drag payload")
        return None

    if not isinstance(data, dict):
        return None
    folder_ids = data.get("folderIds")
    file_ids = data.get("fileIds")
    if not isinstance(folder_ids, list) or not isinstance(file_ids, list):
        return None

    try:
        return DragPayload(
            folder_ids=[i for i in folder_ids if i],
            file_ids=[i for i in file_ids if i],
        )
    except PydanticValidationError:
        logger.debug("Ignoring drag payload with non-string ids")
        return None
