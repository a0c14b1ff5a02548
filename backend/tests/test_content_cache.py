"""Tests for the SQLite-backed content cache."""

import databases
import pytest
import pytest_asyncio

from dataroom.db.database import connect_db, disconnect_db
from dataroom.services.content_cache import ContentCache, make_content_ref


@pytest_asyncio.fixture
async def cache(tmp_path):
    db = databases.Database(f"sqlite:///{tmp_path / 'cache.db'}")
    await connect_db(db)
    yield ContentCache(db)
    await disconnect_db(db)


class TestContentCache:
    @pytest.mark.asyncio
    async def test_put_returns_stable_ref(self, cache):
        ref = await cache.put("alice", "f1", b"%PDF-1.4")
        assert ref == make_content_ref("alice", "f1") == "content://alice/f1"
        assert await cache.get("alice", "f1") == ref

    @pytest.mark.asyncio
    async def test_read_returns_bytes(self, cache):
        await cache.put("alice", "f1", b"%PDF-1.4 body")
        assert await cache.read("alice", "f1") == b"%PDF-1.4 body"

    @pytest.mark.asyncio
    async def test_put_replaces_existing(self, cache):
        await cache.put("alice", "f1", b"one")
        await cache.put("alice", "f1", b"two")
        assert await cache.read("alice", "f1") == b"two"

    @pytest.mark.asyncio
    async def test_missing_entries(self, cache):
        assert await cache.get("alice", "nope") is None
        assert await cache.read("alice", "nope") is None

    @pytest.mark.asyncio
    async def test_entries_are_scoped_per_user(self, cache):
        await cache.put("alice", "f1", b"a")
        await cache.put("bob", "f2", b"b")
        assert await cache.list_all("alice") == {"f1": "content://alice/f1"}
        assert await cache.get("bob", "f1") is None

    @pytest.mark.asyncio
    async def test_delete(self, cache):
        await cache.put("alice", "f1", b"a")
        await cache.delete("alice", "f1")
        await cache.delete("alice", "f1")
        assert await cache.read("alice", "f1") is None

    @pytest.mark.asyncio
    async def test_clear_user(self, cache):
        await cache.put("anonymous", "f1", b"a")
        await cache.put("anonymous", "f2", b"b")
        await cache.put("alice", "f3", b"c")

        assert await cache.clear_user("anonymous") == 2
        assert await cache.list_all("anonymous") == {}
        assert await cache.list_all("alice") == {"f3": "content://alice/f3"}
