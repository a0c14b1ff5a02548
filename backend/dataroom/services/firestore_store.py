"""
Metadata store backed by the Firestore REST API (live mode).

Documents live under ``users/{uid}/{collection}/{id}`` and the preference
document under ``users/{uid}/preferences/settings``. Feeds are implemented by
polling the collection listing and delivering it whenever it changes.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from dataroom.modules.workspace.models import Collection
from dataroom.services.metadata_store import (
    ErrorCallback,
    FeedCallback,
    MetadataStore,
    Unsubscribe,
)

logger = logging.getLogger(__name__)

COLLECTION_PATHS = {
    Collection.ROOMS: "datarooms",
    Collection.FOLDERS: "folders",
    Collection.FILES: "files",
}
PREFERENCES_PATH = "preferences/settings"
PAGE_SIZE = 300


def encode_value(value: Any) -> dict:
    """Encode a Python value as a Firestore typed value."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    raise TypeError(f"Unsupported Firestore value: {type(value).__name__}")


def encode_fields(data: dict) -> dict:
    return {key: encode_value(value) for key, value in data.items()}


def decode_value(value: dict) -> Any:
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return value["booleanValue"]
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "timestampValue" in value:
        return value["timestampValue"]
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    raise ValueError(f"Unsupported Firestore value: {sorted(value)}")


def decode_fields(fields: dict) -> dict:
    return {key: decode_value(value) for key, value in fields.items()}


def decode_document(document: dict) -> dict:
    """Flatten a REST document, taking the id from the last path segment."""
    name = document.get("name")
    if not name:
        raise ValueError("Firestore document without a name")
    data = decode_fields(document.get("fields", {}))
    data["id"] = name.rsplit("/", 1)[-1]
    return data


class FirestoreMetadataStore(MetadataStore):
    def __init__(
        self,
        project_id: str,
        api_key: str = "",
        bearer_token: str = "",
        base_url: str = "https://firestore.googleapis.com/v1",
        poll_interval: float = 2.0,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.project_id = project_id
        self.poll_interval = poll_interval
        headers = {"Authorization": f"Bearer {bearer_token}"} if bearer_token else {}
        params = {"key": api_key} if api_key else {}
        self._client = httpx.AsyncClient(
            base_url=f"{base_url}/projects/{project_id}/databases/(default)/documents",
            headers=headers,
            params=params,
            timeout=timeout,
            transport=transport,
        )
        self._pollers: List[asyncio.Task] = []

    def _collection_path(self, user_id: str, collection: Collection) -> str:
        return f"/users/{user_id}/{COLLECTION_PATHS[collection]}"

    def _document_path(self, user_id: str, collection: Collection, doc_id: str) -> str:
        return f"{self._collection_path(user_id, collection)}/{doc_id}"

    async def create(self, user_id: str, collection: Collection, doc_id: str, data: dict) -> None:
        fields = {key: value for key, value in data.items() if key != "id"}
        fields["id"] = doc_id
        response = await self._client.patch(
            self._document_path(user_id, collection, doc_id),
            json={"fields": encode_fields(fields)},
        )
        response.raise_for_status()

    async def update(self, user_id: str, collection: Collection, doc_id: str, patch: dict) -> None:
        params = [("updateMask.fieldPaths", key) for key in patch]
        params.append(("currentDocument.exists", "true"))
        response = await self._client.patch(
            self._document_path(user_id, collection, doc_id),
            params=params,
            json={"fields": encode_fields(patch)},
        )
        response.raise_for_status()

    async def delete(self, user_id: str, collection: Collection, doc_id: str) -> None:
        response = await self._client.delete(self._document_path(user_id, collection, doc_id))
        if response.status_code != 404:
            response.raise_for_status()

    async def list_documents(self, user_id: str, collection: Collection) -> List[dict]:
        """Fetch every document of a collection, following page tokens."""
        documents: List[dict] = []
        page_token: Optional[str] = None
        while True:
            params: Dict[str, Any] = {"pageSize": PAGE_SIZE}
            if page_token:
                params["pageToken"] = page_token
            response = await self._client.get(
                self._collection_path(user_id, collection), params=params
            )
            response.raise_for_status()
            payload = response.json()
            documents.extend(decode_document(doc) for doc in payload.get("documents", []))
            page_token = payload.get("nextPageToken")
            if not page_token:
                return documents

    async def _poll(
        self,
        user_id: str,
        collection: Collection,
        on_change: FeedCallback,
        on_error: ErrorCallback,
    ) -> None:
        last: Optional[List[dict]] = None
        while True:
            try:
                documents = await self.list_documents(user_id, collection)
            except (httpx.HTTPError, ValueError, KeyError) as e:
                logger.warning("Feed poll failed for %s/%s: %s", user_id, collection.value, e)
                on_error(e)
                last = None
            else:
                if documents != last:
                    last = documents
                    on_change(documents)
            await asyncio.sleep(self.poll_interval)

    def subscribe(
        self,
        user_id: str,
        collection: Collection,
        on_change: FeedCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        task = asyncio.get_running_loop().create_task(
            self._poll(user_id, collection, on_change, on_error)
        )
        self._pollers.append(task)

        def unsubscribe() -> None:
            task.cancel()
            if task in self._pollers:
                self._pollers.remove(task)

        return unsubscribe

    async def get_preferences(self, user_id: str) -> Optional[dict]:
        response = await self._client.get(f"/users/{user_id}/{PREFERENCES_PATH}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return decode_fields(response.json().get("fields", {}))

    async def set_preferences(self, user_id: str, patch: dict) -> None:
        # A field mask without currentDocument gives merge semantics with upsert.
        params = [("updateMask.fieldPaths", key) for key in patch]
        response = await self._client.patch(
            f"/users/{user_id}/{PREFERENCES_PATH}",
            params=params,
            json={"fields": encode_fields(patch)},
        )
        response.raise_for_status()

    async def close(self) -> None:
        for task in self._pollers:
            task.cancel()
        self._pollers.clear()
        await self._client.aclose()
