from itertools import batched

import structlog

from draggynotes.api.models import (
    BatchCreateRequest,
    BatchDeleteRequest,
    BatchNoteResponse,
    BatchUpdateRequest,
    ConflictResponse,
    NoteResponse,
)
from draggynotes.api.transformers import (
    transform_note_response_to_note,
    transform_note_to_create_request,
    transform_note_to_update_request,
)
from draggynotes.core.core import Service
from draggynotes.core.modules.note.models import Note
from draggynotes.core.modules.queue.models import QueueItem, SyncAction
from draggynotes.core.modules.sync.models import BatchResult, ConflictItem, FailedItem
from draggynotes.errors import ApiError, AuthenticationError

logger = structlog.get_logger(__name__)

NO_RESULT_ERROR = "No result returned for note"


def _resolve_uuid(uuid: str | None, index: int | None, sent: list[str]) -> str | None:
    """Map a response entry back to a sent note: by uuid, else by request index."""
    if uuid is not None and uuid in sent:
        return uuid
    if index is not None and 0 <= index < len(sent):
        return sent[index]
    return None


class BatchSyncService(Service):
    """Sends queued operations in batches and reconciles each result locally.

    Every sent note ends up in exactly one of successful, failed or conflicts.
    Queue bookkeeping happens here: synced items leave the queue, failed and
    conflicted ones move to the retry queue.
    """

    async def batch_sync_create_items(self, items: list[QueueItem]) -> BatchResult:
        result = BatchResult()
        pending: list[tuple[QueueItem, Note]] = []
        for item in items:
            note = self._load_local(item, result)
            if note is None:
                continue
            if note.has_server_id:
                # Already created by an earlier pass; push the current state as an update
                self.core.services.queue.enqueue(note.uuid, SyncAction.UPDATE)
                continue
            pending.append((item, note))

        for chunk in batched(pending, self.core.config.sync_batch_size):
            await self._send_notes(list(chunk), SyncAction.CREATE, result)
        return result

    async def batch_sync_update_items(self, items: list[QueueItem]) -> BatchResult:
        result = BatchResult()
        pending: list[tuple[QueueItem, Note]] = []
        for item in items:
            note = self._load_local(item, result)
            if note is None:
                continue
            if not note.has_server_id:
                error = "Note has no server id yet, it must be created first"
                self.core.services.note_storage.save(note.model_copy(update={"local_version": note.local_version + 1}))
                result.failed.append(FailedItem(note_uuid=item.note_uuid, error=error))
                logger.warning("update_without_server_id", note_uuid=item.note_uuid)
                # Requeued as a create by the queue precheck
                self.core.services.queue.enqueue(item.note_uuid, SyncAction.UPDATE)
                continue
            pending.append((item, note))

        for chunk in batched(pending, self.core.config.sync_batch_size):
            await self._send_notes(list(chunk), SyncAction.UPDATE, result)
        return result

    async def batch_sync_delete_items(self, items: list[QueueItem]) -> BatchResult:
        result = BatchResult()
        pending: list[tuple[QueueItem, Note]] = []
        for item in items:
            note = self._load_local(item, result)
            if note is None:
                continue
            if not note.has_server_id:
                # The server never saw it, nothing to delete remotely
                self.core.services.note_storage.delete(item.note_uuid)
                self.core.services.queue.remove([item.note_uuid])
                result.successful.append(item.note_uuid)
                continue
            pending.append((item, note))

        for chunk in batched(pending, self.core.config.sync_batch_size):
            await self._send_deletes(list(chunk), result)
        return result

    async def _send_notes(self, chunk: list[tuple[QueueItem, Note]], action: SyncAction, result: BatchResult) -> None:
        items = {item.note_uuid: item for item, _ in chunk}
        sent = [note.uuid for _, note in chunk]
        sent_versions = {note.uuid: note.local_version for _, note in chunk}

        try:
            response = await self._call_notes_api([note for _, note in chunk], action)
        except AuthenticationError as e:
            self._fail_all(list(items.values()), str(e), action, result)
            raise
        except ApiError as e:
            logger.warning("batch_request_failed", action=action, count=len(chunk), error=str(e))
            self._fail_all(list(items.values()), str(e), action, result)
            return

        if response.errors:
            logger.warning("batch_response_errors", action=action, errors=response.errors)

        resolved: set[str] = set()
        for note_response in response.successful:
            if note_response.uuid not in items or note_response.uuid in resolved:
                logger.warning("unexpected_batch_result", action=action, note_uuid=note_response.uuid)
                continue
            resolved.add(note_response.uuid)
            self._apply_success(items[note_response.uuid], note_response, sent_versions[note_response.uuid])
            result.successful.append(note_response.uuid)

        for conflict in response.conflicts:
            uuid = _resolve_uuid(conflict.note_uuid, conflict.index, sent)
            if uuid is None or uuid in resolved:
                logger.warning("unexpected_batch_conflict", action=action, note_uuid=conflict.note_uuid)
                continue
            resolved.add(uuid)
            self._apply_conflict(items[uuid], conflict, result)

        for failed in response.failed:
            uuid = _resolve_uuid(failed.uuid, failed.index, sent)
            if uuid is None or uuid in resolved:
                logger.warning("unexpected_batch_failure", action=action, note_uuid=failed.uuid, index=failed.index)
                continue
            resolved.add(uuid)
            self._apply_failure(items[uuid], failed.error or "Rejected by server", action, result)

        for uuid in sent:
            if uuid not in resolved:
                self._apply_failure(items[uuid], NO_RESULT_ERROR, action, result)

        logger.info(
            "batch_synced",
            action=action,
            sent=len(sent),
            successful=len(response.successful),
            conflicts=len(response.conflicts),
            failed=len(response.failed),
        )

    async def _call_notes_api(self, notes: list[Note], action: SyncAction) -> BatchNoteResponse:
        if action == SyncAction.CREATE:
            request = BatchCreateRequest(notes=[transform_note_to_create_request(note) for note in notes])
            return await self.core.api.batch_create_notes(request)
        update_request = BatchUpdateRequest(notes=[transform_note_to_update_request(note) for note in notes])
        return await self.core.api.batch_update_notes(update_request)

    async def _send_deletes(self, chunk: list[tuple[QueueItem, Note]], result: BatchResult) -> None:
        items = {item.note_uuid: item for item, _ in chunk}
        sent = [note.uuid for _, note in chunk]
        by_id = {note.id: note.uuid for _, note in chunk if note.id is not None}

        try:
            response = await self.core.api.batch_delete_notes(BatchDeleteRequest(ids=list(by_id)))
        except AuthenticationError as e:
            self._fail_all(list(items.values()), str(e), SyncAction.DELETE, result)
            raise
        except ApiError as e:
            logger.warning("batch_request_failed", action=SyncAction.DELETE, count=len(chunk), error=str(e))
            self._fail_all(list(items.values()), str(e), SyncAction.DELETE, result)
            return

        if response.errors:
            logger.warning("batch_response_errors", action=SyncAction.DELETE, errors=response.errors)

        resolved: set[str] = set()
        for deleted in response.successful:
            uuid = _resolve_uuid(deleted.uuid, deleted.index, sent) or by_id.get(deleted.id)
            if uuid is None or uuid in resolved:
                logger.warning("unexpected_batch_result", action=SyncAction.DELETE, note_id=deleted.id)
                continue
            resolved.add(uuid)
            self.core.services.note_storage.delete(uuid)
            self.core.services.queue.remove([uuid])
            result.successful.append(uuid)

        for failed in response.failed:
            uuid = _resolve_uuid(failed.uuid, failed.index, sent) or by_id.get(failed.id)
            if uuid is None or uuid in resolved:
                logger.warning("unexpected_batch_failure", action=SyncAction.DELETE, note_id=failed.id)
                continue
            resolved.add(uuid)
            self._apply_failure(items[uuid], failed.error or "Rejected by server", SyncAction.DELETE, result)

        for uuid in sent:
            if uuid not in resolved:
                self._apply_failure(items[uuid], NO_RESULT_ERROR, SyncAction.DELETE, result)

        logger.info("batch_synced", action=SyncAction.DELETE, sent=len(sent), successful=len(response.successful))

    def _load_local(self, item: QueueItem, result: BatchResult) -> Note | None:
        note = self.core.services.note_storage.get(item.note_uuid)
        if note is None:
            result.failed.append(FailedItem(note_uuid=item.note_uuid, error="Note not found locally"))
            self.core.services.queue.remove([item.note_uuid])
            logger.warning("queued_note_missing", note_uuid=item.note_uuid, action=item.action)
        return note

    def _apply_success(self, item: QueueItem, response: NoteResponse, sent_version: int) -> None:
        note_storage = self.core.services.note_storage
        queue = self.core.services.queue
        server_note = transform_note_response_to_note(response)
        current = note_storage.get(item.note_uuid)

        if current is None:
            # Hard-deleted while the create was in flight; delete the server copy as well
            tombstone = server_note.model_copy(
                update={"is_deleted": True, "local_version": server_note.local_version + 1}
            )
            note_storage.save(tombstone)
            queue.complete([item])
            queue.enqueue(item.note_uuid, SyncAction.DELETE)
            logger.info("synced_note_deleted_locally", note_uuid=item.note_uuid)
            return

        if current.has_server_id and current.id != server_note.id:
            logger.error("server_id_mismatch", note_uuid=current.uuid, local_id=current.id, server_id=server_note.id)
            server_note = server_note.model_copy(update={"id": current.id})

        if current.local_version != sent_version:
            # Edited while the request was in flight: take the server identity, keep local content
            merged = current.model_copy(
                update={
                    "id": server_note.id,
                    "sync_version": server_note.sync_version,
                    "created_at": server_note.created_at,
                    "last_synced_at": server_note.last_synced_at,
                    "has_conflict": False,
                    "conflict_sync_version": None,
                }
            )
            note_storage.save(merged)
            queue.complete([item])
            queue.enqueue(merged.uuid, SyncAction.DELETE if merged.is_deleted else SyncAction.UPDATE)
            logger.info("note_changed_during_sync", note_uuid=merged.uuid, sent_version=sent_version)
            return

        note_storage.save(server_note)
        queue.complete([item])

    def _apply_failure(self, item: QueueItem, error: str, action: SyncAction, result: BatchResult) -> None:
        """Keep content, bump local_version, park the item in the retry queue."""
        note = self.core.services.note_storage.get(item.note_uuid)
        if note is not None:
            self.core.services.note_storage.save(note.model_copy(update={"local_version": note.local_version + 1}))
        self.core.services.queue.move_to_retry([item], error)
        result.failed.append(FailedItem(note_uuid=item.note_uuid, error=error))
        logger.warning("sync_item_failed", note_uuid=item.note_uuid, action=action, error=error)

    def _apply_conflict(self, item: QueueItem, conflict: ConflictResponse, result: BatchResult) -> None:
        message = conflict.message or f"Conflict: {conflict.conflict_type}"
        note = self.core.services.note_storage.get(item.note_uuid)
        if note is not None:
            self.core.services.note_storage.save(
                note.model_copy(
                    update={
                        "local_version": note.local_version + 1,
                        "has_conflict": True,
                        "conflict_sync_version": conflict.server_sync_version,
                    }
                )
            )
        self.core.services.queue.move_to_retry([item], message, is_conflict=True)
        result.conflicts.append(
            ConflictItem(
                note_uuid=item.note_uuid,
                conflict_type=conflict.conflict_type,
                server_sync_version=conflict.server_sync_version,
                message=message,
            )
        )
        logger.warning(
            "sync_conflict",
            note_uuid=item.note_uuid,
            conflict_type=conflict.conflict_type,
            server_sync_version=conflict.server_sync_version,
        )

    def _fail_all(self, items: list[QueueItem], error: str, action: SyncAction, result: BatchResult) -> None:
        for item in items:
            self._apply_failure(item, error, action, result)
