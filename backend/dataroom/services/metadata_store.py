from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple
import copy
import logging

from dataroom.core.config import settings
from dataroom.core.errors import NotFound
from dataroom.modules.workspace.models import Collection

logger = logging.getLogger(__name__)

FeedCallback = Callable[[List[dict]], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class MetadataStore(ABC):
    """Per-user remote document store for rooms, folders, files and preferences.

    Feeds are full-collection: every delivery carries all of the user's
    documents for that collection.
    """

    @abstractmethod
    async def create(self, user_id: str, collection: Collection, doc_id: str, data: dict) -> None:
        """Create (or overwrite) a document."""
        ...

    @abstractmethod
    async def update(self, user_id: str, collection: Collection, doc_id: str, patch: dict) -> None:
        """Merge-patch an existing document."""
        ...

    @abstractmethod
    async def delete(self, user_id: str, collection: Collection, doc_id: str) -> None:
        ...

    @abstractmethod
    def subscribe(
        self,
        user_id: str,
        collection: Collection,
        on_change: FeedCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        """Start a live feed. Returns a callable that stops it."""
        ...

    @abstractmethod
    async def get_preferences(self, user_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    async def set_preferences(self, user_id: str, patch: dict) -> None:
        """Merge-patch the preference document, creating it if needed."""
        ...

    async def close(self) -> None:
        """Release transport resources."""


class InMemoryMetadataStore(MetadataStore):
    """Metadata store that keeps documents in process memory (mock mode)."""

    def __init__(self):
        self._documents: Dict[Tuple[str, Collection], Dict[str, dict]] = {}
        self._preferences: Dict[str, dict] = {}
        self._subscribers: Dict[Tuple[str, Collection], List[FeedCallback]] = {}

    def documents(self, user_id: str, collection: Collection) -> Dict[str, dict]:
        return self._documents.setdefault((user_id, collection), {})

    def _publish(self, user_id: str, collection: Collection) -> None:
        key = (user_id, collection)
        snapshot = [copy.deepcopy(doc) for doc in self.documents(user_id, collection).values()]
        for callback in list(self._subscribers.get(key, [])):
            callback(copy.deepcopy(snapshot))

    async def create(self, user_id: str, collection: Collection, doc_id: str, data: dict) -> None:
        self.documents(user_id, collection)[doc_id] = {**copy.deepcopy(data), "id": doc_id}
        self._publish(user_id, collection)

    async def update(self, user_id: str, collection: Collection, doc_id: str, patch: dict) -> None:
        documents = self.documents(user_id, collection)
        if doc_id not in documents:
            raise NotFound(collection.value, doc_id)
        documents[doc_id] = {**documents[doc_id], **copy.deepcopy(patch)}
        self._publish(user_id, collection)

    async def delete(self, user_id: str, collection: Collection, doc_id: str) -> None:
        self.documents(user_id, collection).pop(doc_id, None)
        self._publish(user_id, collection)

    def subscribe(
        self,
        user_id: str,
        collection: Collection,
        on_change: FeedCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        key = (user_id, collection)
        self._subscribers.setdefault(key, []).append(on_change)
        on_change([copy.deepcopy(doc) for doc in self.documents(user_id, collection).values()])

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key, [])
            if on_change in callbacks:
                callbacks.remove(on_change)

        return unsubscribe

    async def get_preferences(self, user_id: str) -> Optional[dict]:
        preferences = self._preferences.get(user_id)
        return dict(preferences) if preferences is not None else None

    async def set_preferences(self, user_id: str, patch: dict) -> None:
        self._preferences[user_id] = {**self._preferences.get(user_id, {}), **patch}


def get_metadata_store() -> MetadataStore:
    """Factory function based on the metadata_store_mode setting."""
    if settings.is_live:
        from dataroom.services.firestore_store import FirestoreMetadataStore

        logger.info("Using Firestore metadata store for project %s", settings.firestore_project_id)
        return FirestoreMetadataStore(
            project_id=settings.firestore_project_id,
            api_key=settings.firestore_api_key,
            bearer_token=settings.firestore_bearer_token,
            base_url=settings.firestore_base_url,
            poll_interval=settings.firestore_poll_interval,
            timeout=settings.remote_timeout_seconds,
        )
    return InMemoryMetadataStore()
