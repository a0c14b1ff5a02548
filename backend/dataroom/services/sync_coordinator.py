"""
Synchronization coordinator: the single writer of the workspace snapshot.

Key principles:
1. One asyncio.Queue carries both remote feed deliveries and local intents;
   one worker drains it, so every operation finishes before the next event
   is observed
2. Signed out, mutations only touch the local snapshot
3. Signed in, the remote store is written first (all documents of one
   operation concurrently) and the local snapshot mirrors it only after every
   write succeeded
4. Binary content stays in the local content cache; remote metadata never
   carries it
"""
import asyncio
import functools
import inspect
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from dataroom.core.errors import PartialCascadeFailure, RemoteWriteFailure, WorkspaceError
from dataroom.core.events import WorkspaceEvent, WorkspaceEventType
from dataroom.modules.workspace import mutations
from dataroom.modules.workspace.hierarchy import get_file, sorted_child_folders, sorted_files
from dataroom.modules.workspace.models import Collection, Snapshot
from dataroom.modules.workspace.mutations import (
    DocumentWrite,
    MutationResult,
    UploadSpec,
    WriteOp,
    hydrate_content,
)
from dataroom.modules.workspace.naming import DEFAULT_FILE_EXTENSION
from dataroom.modules.workspace.reconcile import (
    apply_files,
    apply_folders,
    apply_preferences,
    apply_rooms,
    parse_documents,
)
from dataroom.modules.workspace.selection import (
    DragPayload,
    ItemKind,
    Selection,
    build_drag_payload,
    parse_drag_payload,
)
from dataroom.services.content_cache import ContentCache
from dataroom.services.metadata_store import MetadataStore
from dataroom.services.preferences import PreferenceStore

logger = logging.getLogger(__name__)

Listener = Callable[[WorkspaceEvent], Optional[Awaitable[None]]]


class SyncState(str, Enum):
    UNINITIALIZED = "uninitialized"
    SYNCING = "syncing"
    READY = "ready"
    ERROR = "error"


@dataclass
class _Job:
    handler: Callable[[], Awaitable[object]]
    future: Optional[asyncio.Future] = None


class SyncCoordinator:
    def __init__(
        self,
        store: MetadataStore,
        cache: ContentCache,
        required_extension: str = DEFAULT_FILE_EXTENSION,
        tombstone_ttl: float = 30.0,
        anonymous_user_key: str = "anonymous",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.cache = cache
        self.preferences = PreferenceStore(store)
        self.required_extension = required_extension
        self.tombstone_ttl = tombstone_ttl
        self.anonymous_user_key = anonymous_user_key
        self._clock = clock

        self.snapshot = Snapshot.empty()
        self.user_id: Optional[str] = None
        self.selection = Selection()
        self.collection_states: Dict[Collection, SyncState] = {
            c: SyncState.UNINITIALIZED for c in Collection
        }

        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._unsubscribes: List[Callable[[], None]] = []
        self._listeners: List[Listener] = []
        self._content_refs: Dict[str, str] = {}
        self._tombstones: Dict[str, float] = {}
        self._preferences_applied = False
        # Bumped on every identity change; feed events from older sessions are dropped.
        self._session = 0

    # ---- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        """Start the queue worker. Leftover anonymous content is purged."""
        if self._worker is not None:
            return
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._run())
        await self._purge_anonymous_content()
        logger.info("Sync coordinator started")

    async def close(self) -> None:
        if self._worker is None:
            return
        await self._submit(self._teardown)
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        self._queue = None
        logger.info("Sync coordinator stopped")

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                result = await job.handler()
            except Exception as e:
                if job.future is not None and not job.future.done():
                    job.future.set_exception(e)
                else:
                    logger.exception("Unhandled error while processing queued event")
            else:
                if job.future is not None and not job.future.done():
                    job.future.set_result(result)
            finally:
                self._queue.task_done()

    async def _submit(self, handler: Callable[[], Awaitable[object]]):
        if self._worker is None:
            await self.start()
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(_Job(handler=handler, future=future))
        return await future

    async def drain(self) -> None:
        """Wait until every queued event has been processed."""
        if self._queue is not None:
            await self._queue.join()

    # ---- observers ---------------------------------------------------------

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def _emit(self, event_type: WorkspaceEventType, data: dict) -> None:
        event = WorkspaceEvent.create(event_type, data, user_id=self.user_id)
        for listener in list(self._listeners):
            try:
                outcome = listener(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception("Listener failed for %s", event_type.value)

    async def _emit_snapshot(self) -> None:
        await self._emit(WorkspaceEventType.SNAPSHOT_CHANGED, {
            "activeRoomId": self.snapshot.active_room_id,
            "activeFolderId": self.snapshot.active_folder_id,
            "roomCount": len(self.snapshot.rooms),
            "folderCount": len(self.snapshot.folders),
            "fileCount": len(self.snapshot.files),
        })

    # ---- sync status -------------------------------------------------------

    @property
    def signed_in(self) -> bool:
        return self.user_id is not None

    @property
    def status(self) -> str:
        """Overall status derived from the per-collection states."""
        if not self.signed_in:
            return "local"
        states = set(self.collection_states.values())
        if SyncState.ERROR in states:
            return SyncState.ERROR.value
        if states == {SyncState.READY}:
            return SyncState.READY.value
        return SyncState.SYNCING.value

    def status_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "status": self.status,
            "collections": {c.value: s.value for c, s in self.collection_states.items()},
        }

    async def _set_states(self, state: SyncState, collections: Sequence[Collection] = tuple(Collection)) -> None:
        changed = False
        for collection in collections:
            if self.collection_states[collection] != state:
                self.collection_states[collection] = state
                changed = True
        if changed:
            await self._emit(WorkspaceEventType.SYNC_STATUS_CHANGED, self.status_dict())

    # ---- sessions ----------------------------------------------------------

    def _content_key(self) -> str:
        return self.user_id if self.user_id is not None else self.anonymous_user_key

    async def sign_in(self, user_id: str) -> None:
        await self._submit(functools.partial(self._sign_in, user_id))

    async def sign_out(self) -> None:
        await self._submit(self._sign_out)

    async def _sign_in(self, user_id: str) -> None:
        if user_id == self.user_id:
            return
        await self._teardown()
        self.user_id = user_id
        session = self._session

        try:
            self._content_refs = await self.cache.list_all(user_id)
        except Exception:
            logger.exception("Failed to list cached content for %s", user_id)
            self._content_refs = {}

        await self._set_states(SyncState.SYNCING)
        await self._emit(WorkspaceEventType.SESSION_CHANGED, {"userId": user_id})
        logger.info("Signed in as %s; subscribing to feeds", user_id)

        for collection in Collection:
            self._unsubscribes.append(self.store.subscribe(
                user_id,
                collection,
                on_change=functools.partial(self._enqueue_feed, session, collection),
                on_error=functools.partial(self._enqueue_feed_error, session, collection),
            ))

    async def _sign_out(self) -> None:
        if not self.signed_in:
            return
        await self._teardown()
        await self._emit(WorkspaceEventType.SESSION_CHANGED, {"userId": None})
        await self._emit_snapshot()

    async def _teardown(self) -> None:
        """Stop feeds and drop all session state, releasing content refs."""
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes = []
        self._session += 1

        if self.signed_in:
            logger.info("Ending session for %s", self.user_id)
        else:
            await self._purge_anonymous_content()

        self.user_id = None
        self.snapshot = Snapshot.empty()
        self.selection.clear()
        self._content_refs = {}
        self._tombstones = {}
        self._preferences_applied = False
        await self._set_states(SyncState.UNINITIALIZED)

    async def _purge_anonymous_content(self) -> None:
        try:
            await self.cache.clear_user(self.anonymous_user_key)
        except Exception:
            logger.exception("Failed to purge anonymous content")

    # ---- remote feeds ------------------------------------------------------

    def _enqueue_feed(self, session: int, collection: Collection, documents: List[dict]) -> None:
        if self._queue is None:
            return
        self._queue.put_nowait(_Job(
            handler=functools.partial(self._handle_feed, session, collection, documents)
        ))

    def _enqueue_feed_error(self, session: int, collection: Collection, error: Exception) -> None:
        if self._queue is None:
            return
        self._queue.put_nowait(_Job(
            handler=functools.partial(self._handle_feed_error, session, collection, error)
        ))

    async def _handle_feed(self, session: int, collection: Collection, documents: List[dict]) -> None:
        if session != self._session:
            logger.debug("Dropping stale %s feed delivery", collection.value)
            return

        entities = parse_documents(collection, documents)
        if collection == Collection.ROOMS:
            self.snapshot = apply_rooms(self.snapshot, entities)
        elif collection == Collection.FOLDERS:
            self.snapshot = apply_folders(self.snapshot, entities)
        else:
            self.snapshot = apply_files(self.snapshot, entities)
            self.snapshot = hydrate_content(self.snapshot, self._live_content_refs())
        logger.debug("Applied %s feed with %d document(s)", collection.value, len(entities))

        await self._set_states(SyncState.READY, [collection])

        if not self._preferences_applied and self.status == SyncState.READY.value:
            self._preferences_applied = True
            preferences = await self.preferences.load(self.user_id)
            self.snapshot = apply_preferences(self.snapshot, preferences)

        await self._emit_snapshot()

    async def _handle_feed_error(self, session: int, collection: Collection, error: Exception) -> None:
        if session != self._session:
            return
        logger.error("Feed for %s failed: %s", collection.value, error)
        await self._set_states(SyncState.ERROR, [collection])
        await self._emit(WorkspaceEventType.FEED_ERROR, {
            "collection": collection.value,
            "error": str(error),
        })

    # ---- content -----------------------------------------------------------

    def _prune_tombstones(self) -> None:
        now = self._clock()
        self._tombstones = {i: t for i, t in self._tombstones.items() if t > now}

    def _is_tombstoned(self, file_id: str) -> bool:
        self._prune_tombstones()
        return file_id in self._tombstones

    def _live_content_refs(self) -> Dict[str, str]:
        self._prune_tombstones()
        return {i: ref for i, ref in self._content_refs.items() if i not in self._tombstones}

    async def _store_content(self, file_id: str, data: bytes) -> Optional[str]:
        user_key = self._content_key()
        ref = await self.cache.put(user_key, file_id, data)
        if self._is_tombstoned(file_id):
            # The file was deleted while its bytes were being written.
            await self.cache.delete(user_key, file_id)
            return None
        self._content_refs[file_id] = ref
        return ref

    async def _release_files(self, file_ids: Sequence[str]) -> None:
        """Drop cached content of deleted files; failures are only logged."""
        user_key = self._content_key()
        deadline = self._clock() + self.tombstone_ttl
        failed: List[str] = []
        errors: List[BaseException] = []
        for file_id in file_ids:
            self._tombstones[file_id] = deadline
            self._content_refs.pop(file_id, None)
            try:
                await self.cache.delete(user_key, file_id)
            except Exception as e:
                failed.append(file_id)
                errors.append(e)
        if failed:
            logger.error("%s", PartialCascadeFailure(failed, errors))

    async def read_content(self, file_id: str) -> Optional[bytes]:
        """Bytes of a previewable file, or None when it is metadata-only."""
        file = get_file(self.snapshot, file_id)
        if not file.content_ref:
            return None
        return await self.cache.read(self._content_key(), file_id)

    # ---- mutations ---------------------------------------------------------

    async def _send(self, user_id: str, write: DocumentWrite) -> None:
        if write.op == WriteOp.CREATE:
            await self.store.create(user_id, write.collection, write.doc_id, write.data)
        elif write.op == WriteOp.UPDATE:
            await self.store.update(user_id, write.collection, write.doc_id, write.data)
        else:
            await self.store.delete(user_id, write.collection, write.doc_id)

    async def _write_remote(self, result: MutationResult) -> None:
        if not self.signed_in or not result.writes:
            return
        outcomes = await asyncio.gather(
            *(self._send(self.user_id, write) for write in result.writes),
            return_exceptions=True,
        )
        errors = [o for o in outcomes if isinstance(o, BaseException)]
        if errors:
            logger.error(
                "%d of %d remote write(s) failed for %s",
                len(errors), len(result.writes), result.operation,
            )
            raise RemoteWriteFailure(result.operation, errors)

    async def _commit(self, result: MutationResult) -> MutationResult:
        self.snapshot = result.snapshot
        self.selection.prune(result.removed_folder_ids, result.removed_file_ids)
        if result.operation in ("move_items", "bulk_delete"):
            self.selection.clear()
        if self.signed_in and result.preferences:
            await self.preferences.save(self.user_id, result.preferences)

        logger.info("Applied %s (%d write(s))", result.operation, len(result.writes))
        await self._emit(WorkspaceEventType.MUTATION_APPLIED, result.summary())
        await self._emit_snapshot()
        return result

    async def _run_mutation(self, operation: str, handler: Callable[[], Awaitable[MutationResult]]) -> MutationResult:
        try:
            return await self._submit(handler)
        except WorkspaceError as e:
            logger.warning("%s failed: %s", operation, e)
            await self._emit(WorkspaceEventType.MUTATION_FAILED, {
                "operation": operation,
                "error": type(e).__name__,
                "message": str(e),
            })
            raise

    def _mutate(self, operation: str, build: Callable[[Snapshot], MutationResult]):
        async def handler() -> MutationResult:
            result = build(self.snapshot)
            await self._write_remote(result)
            if result.removed_file_ids:
                await self._release_files(result.removed_file_ids)
            return await self._commit(result)

        return self._run_mutation(operation, handler)

    async def create_room(self, name: str) -> MutationResult:
        return await self._mutate("create_room", lambda s: mutations.create_room(s, name))

    async def rename_room(self, room_id: str, name: str) -> MutationResult:
        return await self._mutate("rename_room", lambda s: mutations.rename_room(s, room_id, name))

    async def delete_room(self, room_id: str) -> MutationResult:
        return await self._mutate("delete_room", lambda s: mutations.delete_room(s, room_id))

    async def select_room(self, room_id: str) -> MutationResult:
        return await self._mutate("select_room", lambda s: mutations.select_room(s, room_id))

    async def select_folder(self, folder_id: str) -> MutationResult:
        return await self._mutate("select_folder", lambda s: mutations.select_folder(s, folder_id))

    async def create_folder(self, parent_id: str, name: str) -> MutationResult:
        return await self._mutate(
            "create_folder", lambda s: mutations.create_folder(s, parent_id, name)
        )

    async def rename_folder(self, folder_id: str, name: str) -> MutationResult:
        return await self._mutate(
            "rename_folder", lambda s: mutations.rename_folder(s, folder_id, name)
        )

    async def rename_file(self, file_id: str, name: str) -> MutationResult:
        return await self._mutate(
            "rename_file",
            lambda s: mutations.rename_file(s, file_id, name, self.required_extension),
        )

    async def delete_folder(self, folder_id: str) -> MutationResult:
        return await self._mutate("delete_folder", lambda s: mutations.delete_folder(s, folder_id))

    async def delete_file(self, file_id: str) -> MutationResult:
        return await self._mutate("delete_file", lambda s: mutations.delete_file(s, file_id))

    async def move_items(
        self, target_folder_id: str, folder_ids: Sequence[str], file_ids: Sequence[str]
    ) -> MutationResult:
        return await self._mutate(
            "move_items",
            lambda s: mutations.move_items(
                s, target_folder_id, folder_ids, file_ids, self.required_extension
            ),
        )

    async def bulk_delete(self, folder_ids: Sequence[str], file_ids: Sequence[str]) -> MutationResult:
        result = await self._mutate(
            "bulk_delete", lambda s: mutations.bulk_delete(s, folder_ids, file_ids)
        )
        if result.rejected_root_ids:
            logger.warning("Refused to delete root folder(s): %s", ", ".join(result.rejected_root_ids))
        return result

    async def upload_files(self, folder_id: str, files: Sequence[Tuple[str, bytes]]) -> MutationResult:
        """Store content locally, then create the file records.

        Cached bytes of a batch whose remote writes fail are removed again.
        """
        async def handler() -> MutationResult:
            uploads = [UploadSpec(name=name, size=len(data)) for name, data in files]
            result = mutations.upload_files(
                self.snapshot, folder_id, uploads, self.required_extension
            )
            content = {u.file_id: data for u, (_, data) in zip(uploads, files)}

            refs: Dict[str, str] = {}
            for file_id in result.created_ids:
                ref = await self._store_content(file_id, content[file_id])
                if ref:
                    refs[file_id] = ref

            try:
                await self._write_remote(result)
            except RemoteWriteFailure:
                await self._release_files(list(refs))
                raise

            if result.rejected_names:
                logger.info(
                    "Rejected %d upload(s) without %s", len(result.rejected_names), self.required_extension
                )
            result.snapshot = hydrate_content(result.snapshot, refs)
            return await self._commit(result)

        return await self._run_mutation("upload_files", handler)

    # ---- selection and drag and drop ---------------------------------------

    def toggle_selection(self, kind: ItemKind, item_id: str) -> Selection:
        if kind == "folder":
            self.selection.toggle_folder(item_id)
        else:
            self.selection.toggle_file(item_id)
        return self.selection

    def select_all(
        self,
        folder_id: Optional[str] = None,
        folder_ids: Optional[Sequence[str]] = None,
        file_ids: Optional[Sequence[str]] = None,
    ) -> Selection:
        """Select the ids the caller has visible.

        Without explicit ids every child of the folder (the active folder by
        default) is selected.
        """
        if folder_ids is not None or file_ids is not None:
            self.selection.select_all(folder_ids or [], file_ids or [])
            return self.selection
        folder_id = folder_id or self.snapshot.active_folder_id
        self.selection.select_all(
            [f.id for f in sorted_child_folders(self.snapshot, folder_id)],
            [f.id for f in sorted_files(self.snapshot, folder_id)],
        )
        return self.selection

    def clear_selection(self) -> Selection:
        self.selection.clear()
        return self.selection

    def drag_payload(self, kind: ItemKind, item_id: str) -> DragPayload:
        return build_drag_payload(self.selection, kind, item_id)

    async def drop(self, target_folder_id: str, raw_payload: Optional[str]) -> Optional[MutationResult]:
        """Move whatever a serialized drag payload names. Unusable payloads are a no-op."""
        payload = parse_drag_payload(raw_payload)
        if payload is None or payload.is_empty:
            return None
        return await self.move_items(target_folder_id, payload.folder_ids, payload.file_ids)
