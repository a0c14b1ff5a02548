"""Dependency injection for API routes."""
from typing import Optional

from slowapi import Limiter
from slowapi.util import get_remote_address

from dataroom.core.config import settings
from dataroom.db.database import database
from dataroom.services.content_cache import ContentCache
from dataroom.services.metadata_store import get_metadata_store
from dataroom.services.sync_coordinator import SyncCoordinator

# Rate limiter shared by the app and the routes
limiter = Limiter(key_func=get_remote_address)

_coordinator: Optional[SyncCoordinator] = None


def get_settings():
    """Get application settings."""
    return settings


def get_coordinator() -> SyncCoordinator:
    """Get or create the process-wide sync coordinator."""
    global _coordinator
    if _coordinator is None:
        _coordinator = SyncCoordinator(
            store=get_metadata_store(),
            cache=ContentCache(database),
            required_extension=settings.required_file_extension,
            tombstone_ttl=settings.content_tombstone_ttl_seconds,
            anonymous_user_key=settings.anonymous_user_key,
        )
    return _coordinator


async def shutdown_coordinator() -> None:
    global _coordinator
    if _coordinator is not None:
        await _coordinator.close()
        await _coordinator.store.close()
        _coordinator = None
