from fastapi import APIRouter
from pydantic import BaseModel

from dataroom.core.config import settings

router = APIRouter(prefix="/settings", tags=["settings"])


class SettingsResponse(BaseModel):
    metadata_store_mode: str
    firestore_project_id: str
    firestore_api_key: str  # masked
    firestore_bearer_token: str  # masked
    firestore_poll_interval: float
    remote_timeout_seconds: float
    required_file_extension: str
    content_tombstone_ttl_seconds: float


@router.get("", response_model=SettingsResponse)
async def get_settings():
    """Retrieve current settings with masked sensitive values."""
    return settings.get_effective_settings()
