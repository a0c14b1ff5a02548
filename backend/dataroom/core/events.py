from enum import Enum
from pydantic import BaseModel
from datetime import datetime, timezone
from typing import Optional
import uuid


class WorkspaceEventType(str, Enum):
    SNAPSHOT_CHANGED = "snapshot_changed"
    SYNC_STATUS_CHANGED = "sync_status_changed"
    MUTATION_APPLIED = "mutation_applied"
    MUTATION_FAILED = "mutation_failed"
    FEED_ERROR = "feed_error"
    SESSION_CHANGED = "session_changed"


class WorkspaceEvent(BaseModel):
    id: str
    type: WorkspaceEventType
    timestamp: datetime
    user_id: Optional[str] = None
    data: dict

    @classmethod
    def create(
        cls,
        event_type: WorkspaceEventType,
        data: dict,
        user_id: Optional[str] = None
    ) -> "WorkspaceEvent":
        return cls(
            id=str(uuid.uuid4()),
            type=event_type,
            timestamp=datetime.now(timezone.utc),
            user_id=user_id,
            data=data,
        )
