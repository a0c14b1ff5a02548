"""Database connection and lifecycle management for the local content cache."""

import logging

import databases

from dataroom.core.config import settings

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS ContentBlob (
    userKey TEXT NOT NULL,
    fileId TEXT NOT NULL,
    data BLOB NOT NULL,
    size INTEGER NOT NULL,
    createdAt TEXT NOT NULL,
    PRIMARY KEY (userKey, fileId)
);

CREATE INDEX IF NOT EXISTS idx_contentblob_userKey ON ContentBlob(userKey);
"""

# Create database connection
database = databases.Database(settings.content_cache_url)


async def get_database() -> databases.Database:
    """Get database connection."""
    return database


async def create_schema(db: databases.Database) -> None:
    """Create cache tables if they do not exist yet."""
    for statement in SCHEMA_SQL.split(";"):
        if statement.strip():
            await db.execute(statement)


async def connect_db(db: databases.Database = database):
    """Connect to database on startup."""
    if not db.is_connected:
        await db.connect()
        await create_schema(db)
        logger.info("Content cache connected: %s", db.url)


async def disconnect_db(db: databases.Database = database):
    """Disconnect from database on shutdown."""
    if db.is_connected:
        await db.disconnect()
