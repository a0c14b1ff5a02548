"""Per-user persistence of the active room and folder."""
import logging
from typing import Optional

from dataroom.services.metadata_store import MetadataStore

logger = logging.getLogger(__name__)

PREFERENCE_KEYS = ("activeRoomId", "activeFolderId")


class PreferenceStore:
    """Best-effort wrapper: failures are logged and never reach the caller."""

    def __init__(self, store: MetadataStore):
        self.store = store

    async def load(self, user_id: str) -> Optional[dict]:
        try:
            preferences = await self.store.get_preferences(user_id)
        except Exception:
            logger.exception("Failed to load preferences for %s", user_id)
            return None
        if not preferences:
            return None
        return {key: preferences.get(key) for key in PREFERENCE_KEYS}

    async def save(self, user_id: str, patch: dict) -> bool:
        patch = {key: value for key, value in patch.items() if key in PREFERENCE_KEYS}
        if not patch:
            return True
        try:
            await self.store.set_preferences(user_id, patch)
        except Exception:
            logger.exception("Failed to save preferences for %s", user_id)
            return False
        return True
