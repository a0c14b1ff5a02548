"""Shared fixtures: a small populated workspace and an in-memory content cache."""

from types import SimpleNamespace

import pytest

from dataroom.modules.workspace import mutations
from dataroom.modules.workspace.models import Snapshot
from dataroom.modules.workspace.mutations import UploadSpec
from dataroom.services.content_cache import make_content_ref


def build_workspace() -> SimpleNamespace:
    """
    Two rooms, built through the mutation engine:

    Deals (active)
      All documents
        Finance
          2024
            q1.pdf
          budget.pdf
          Forecast.pdf
        Legal
        readme.pdf
    Archive
      All documents
        old.pdf
    """
    result = mutations.create_room(Snapshot.empty(), "Deals", now=1)
    room, root = result.created_ids
    snapshot = result.snapshot

    result = mutations.create_folder(snapshot, root, "Finance", now=2)
    finance = result.created_ids[0]
    result = mutations.create_folder(result.snapshot, finance, "2024", now=3)
    y2024 = result.created_ids[0]
    result = mutations.create_folder(result.snapshot, root, "Legal", now=4)
    legal = result.created_ids[0]

    result = mutations.upload_files(
        result.snapshot, finance,
        [UploadSpec(name="budget.pdf", size=10), UploadSpec(name="Forecast.pdf", size=20)],
        now=5,
    )
    budget, forecast = result.created_ids
    result = mutations.upload_files(result.snapshot, y2024, [UploadSpec(name="q1.pdf", size=5)], now=6)
    q1 = result.created_ids[0]
    result = mutations.upload_files(result.snapshot, root, [UploadSpec(name="readme.pdf", size=1)], now=7)
    readme = result.created_ids[0]

    result = mutations.create_room(result.snapshot, "Archive", now=8)
    other_room, other_root = result.created_ids
    result = mutations.upload_files(result.snapshot, other_root, [UploadSpec(name="old.pdf")], now=9)
    old = result.created_ids[0]

    snapshot = mutations.select_room(result.snapshot, room).snapshot
    return SimpleNamespace(
        snapshot=snapshot,
        room=room,
        root=root,
        finance=finance,
        y2024=y2024,
        legal=legal,
        budget=budget,
        forecast=forecast,
        q1=q1,
        readme=readme,
        other_room=other_room,
        other_root=other_root,
        old=old,
    )


@pytest.fixture
def ws():
    return build_workspace()


class FakeContentCache:
    """Dict-backed stand-in with the ContentCache interface."""

    def __init__(self):
        self.blobs = {}

    async def put(self, user_key, file_id, data):
        self.blobs[(user_key, file_id)] = data
        return make_content_ref(user_key, file_id)

    async def get(self, user_key, file_id):
        if (user_key, file_id) in self.blobs:
            return make_content_ref(user_key, file_id)
        return None

    async def read(self, user_key, file_id):
        return self.blobs.get((user_key, file_id))

    async def delete(self, user_key, file_id):
        self.blobs.pop((user_key, file_id), None)

    async def list_all(self, user_key):
        return {
            file_id: make_content_ref(user_key, file_id)
            for (key, file_id) in self.blobs
            if key == user_key
        }

    async def clear_user(self, user_key):
        keys = [k for k in self.blobs if k[0] == user_key]
        for key in keys:
            del self.blobs[key]
        return len(keys)


@pytest.fixture
def content_cache():
    return FakeContentCache()
