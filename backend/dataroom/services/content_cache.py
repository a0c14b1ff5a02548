"""Local binary content cache keyed by (user, file id)."""
import logging
from typing import Dict, Optional

import databases

from dataroom.db.queries import content as content_queries

logger = logging.getLogger(__name__)

REF_SCHEME = "content://"


def make_content_ref(user_key: str, file_id: str) -> str:
    return f"{REF_SCHEME}{user_key}/{file_id}"


class ContentCache:
    """File bytes stored beside, never inside, remote metadata.

    A ref is a stable handle a client can resolve through the content route;
    holding one does not pin the bytes.
    """

    def __init__(self, db: databases.Database):
        self.db = db

    async def put(self, user_key: str, file_id: str, data: bytes) -> str:
        await content_queries.upsert_content(self.db, user_key, file_id, data)
        logger.debug("Cached %d bytes for %s/%s", len(data), user_key, file_id)
        return make_content_ref(user_key, file_id)

    async def get(self, user_key: str, file_id: str) -> Optional[str]:
        if await content_queries.content_exists(self.db, user_key, file_id):
            return make_content_ref(user_key, file_id)
        return None

    async def read(self, user_key: str, file_id: str) -> Optional[bytes]:
        return await content_queries.get_content(self.db, user_key, file_id)

    async def delete(self, user_key: str, file_id: str) -> None:
        await content_queries.delete_content(self.db, user_key, file_id)

    async def list_all(self, user_key: str) -> Dict[str, str]:
        file_ids = await content_queries.list_content_ids(self.db, user_key)
        return {file_id: make_content_ref(user_key, file_id) for file_id in file_ids}

    async def clear_user(self, user_key: str) -> int:
        removed = await content_queries.delete_user_content(self.db, user_key)
        if removed:
            logger.info("Purged %d cached file(s) for %s", removed, user_key)
        return removed
