"""Content cache database queries."""

from datetime import datetime, timezone
from typing import List, Optional
import databases


async def upsert_content(
    db: databases.Database,
    user_key: str,
    file_id: str,
    data: bytes
) -> None:
    """Store (or replace) the bytes of one file."""
    query = """
        INSERT OR REPLACE INTO ContentBlob (userKey, fileId, data, size, createdAt)
        VALUES (:user_key, :file_id, :data, :size, :created_at)
    """
    await db.execute(
        query,
        {
            "user_key": user_key,
            "file_id": file_id,
            "data": data,
            "size": len(data),
            "created_at": datetime.now(timezone.utc).isoformat()
        }
    )


async def content_exists(db: databases.Database, user_key: str, file_id: str) -> bool:
    query = "SELECT 1 FROM ContentBlob WHERE userKey = :user_key AND fileId = :file_id"
    row = await db.fetch_one(query, {"user_key": user_key, "file_id": file_id})
    return row is not None


async def get_content(db: databases.Database, user_key: str, file_id: str) -> Optional[bytes]:
    """Get the stored bytes of one file."""
    query = "SELECT data FROM ContentBlob WHERE userKey = :user_key AND fileId = :file_id"
    row = await db.fetch_one(query, {"user_key": user_key, "file_id": file_id})

    if not row:
        return None

    return bytes(row["data"])


async def delete_content(db: databases.Database, user_key: str, file_id: str) -> None:
    query = "DELETE FROM ContentBlob WHERE userKey = :user_key AND fileId = :file_id"
    await db.execute(query, {"user_key": user_key, "file_id": file_id})


async def list_content_ids(db: databases.Database, user_key: str) -> List[str]:
    """List ids of all files cached for a user."""
    query = "SELECT fileId FROM ContentBlob WHERE userKey = :user_key ORDER BY createdAt"
    rows = await db.fetch_all(query, {"user_key": user_key})
    return [row["fileId"] for row in rows]


async def delete_user_content(db: databases.Database, user_key: str) -> int:
    """Delete everything cached for a user. Returns the number of rows removed."""
    count_query = "SELECT COUNT(*) AS total FROM ContentBlob WHERE userKey = :user_key"
    row = await db.fetch_one(count_query, {"user_key": user_key})
    await db.execute(
        "DELETE FROM ContentBlob WHERE userKey = :user_key", {"user_key": user_key}
    )
    return row["total"] if row else 0
