import asyncio
import contextlib
from collections.abc import Callable
from datetime import datetime
from typing import Any

import structlog

from draggynotes.api.models import NoteResponse, NoteSyncEvent, NoteSyncEventType
from draggynotes.api.transformers import transform_note_response_to_note
from draggynotes.core.core import Service
from draggynotes.core.events import EventType
from draggynotes.core.modules.note.models import Note
from draggynotes.core.modules.queue.models import SyncAction
from draggynotes.core.modules.sync.models import BatchResult, SyncErrorRecord, SyncStatus
from draggynotes.core.storage import KeyValueStorage
from draggynotes.errors import ApiError, AuthenticationError
from draggynotes.utils import now

logger = structlog.get_logger(__name__)


class SyncService(Service):
    """Decides when queued changes are pushed and when server state is pulled.

    Reacts to connectivity, login/logout and force-reload events and runs a
    periodic timer. At most one sync pass runs at a time; a request arriving
    during a pass is a no-op. Errors inside a pass never escape: they are
    logged and kept in a bounded list for the status snapshot.
    """

    def __init__(self, storage: KeyValueStorage) -> None:
        super().__init__(storage)
        self.is_online = True
        self.is_api_available = False
        self.is_syncing = False
        self.last_sync_at: datetime | None = None
        self.last_result: BatchResult | None = None
        self._recent_errors: list[SyncErrorRecord] = []
        self._timer_task: asyncio.Task[None] | None = None
        self._unsubscribers: list[Callable[[], None]] = []
        self._pass_count = 0

    async def on_start(self) -> None:
        bus = self.core.bus
        self._unsubscribers = [
            bus.subscribe(EventType.NETWORK_CHANGED, self._on_network_changed),
            bus.subscribe(EventType.AUTH_CHANGED, self._on_auth_changed),
            bus.subscribe(EventType.FORCE_RELOAD, self._on_force_reload),
        ]
        if self.core.config.auto_sync:
            self.start()

    async def on_stop(self) -> None:
        await self.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    @property
    def is_authenticated(self) -> bool:
        return self.core.services.session.is_authenticated()

    @property
    def is_timer_active(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def start(self) -> None:
        """Start the periodic sync timer (idempotent)."""
        if self.is_timer_active:
            return
        self._timer_task = asyncio.create_task(self._run_timer())
        logger.info("sync_timer_started", interval_seconds=self.core.config.sync_interval_seconds)

    async def stop(self) -> None:
        if self._timer_task is None:
            return
        self._timer_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._timer_task
        self._timer_task = None
        logger.info("sync_timer_stopped")

    async def _run_timer(self) -> None:
        try:
            await self.check_api_health()
            if self.is_authenticated:
                await self.trigger_sync()
        except Exception:
            logger.exception("sync_timer_step_failed")
        while True:
            await asyncio.sleep(self.core.config.sync_interval_seconds)
            try:
                await self.tick()
            except Exception:
                logger.exception("sync_timer_step_failed")

    async def tick(self) -> bool:
        """One timer step: re-check an unavailable API, then try to sync."""
        if self.is_online and not self.is_api_available:
            await self.check_api_health()
        return await self.trigger_sync()

    async def check_api_health(self) -> bool:
        """Check /health. Any failure, including an unreadable answer, marks the API unavailable."""
        try:
            await self.core.api.get_health()
        except ApiError as e:
            if self.is_api_available:
                logger.warning("api_unavailable", error=str(e))
            self.is_api_available = False
        except Exception:
            logger.exception("api_health_check_failed")
            self.is_api_available = False
        else:
            if not self.is_api_available:
                logger.info("api_available")
            self.is_api_available = True
        return self.is_api_available

    async def set_online(self, is_online: bool) -> None:
        """Connectivity changed. Coming back online checks the API and syncs if possible."""
        was_online = self.is_online
        self.is_online = is_online
        if not is_online:
            self.is_api_available = False
            logger.info("network_offline")
            return
        if not was_online:
            logger.info("network_online")
        if (not was_online or not self.is_api_available) and await self.check_api_health() and self.is_authenticated:
            await self.trigger_sync()

    def can_sync(self) -> bool:
        return self.is_online and self.is_api_available and self.is_authenticated and not self.is_syncing

    async def trigger_sync(self) -> bool:
        """Run one sync pass if allowed. Returns False when skipped or failed."""
        if not self.can_sync():
            logger.debug(
                "sync_skipped",
                is_online=self.is_online,
                is_api_available=self.is_api_available,
                is_authenticated=self.is_authenticated,
                is_syncing=self.is_syncing,
            )
            return False

        self.is_syncing = True
        self._pass_count += 1
        try:
            with structlog.contextvars.bound_contextvars(sync_pass=self._pass_count):
                result = await self.perform_sync()
        except AuthenticationError as e:
            self._record_error(str(e))
            logger.warning("sync_auth_rejected")
            self.is_syncing = False
            await self.core.services.session.logout()
            return False
        except Exception as e:
            logger.exception("sync_pass_failed")
            self._record_error(str(e) or type(e).__name__)
            return False
        finally:
            self.is_syncing = False

        self.last_sync_at = now()
        self.last_result = result
        await self.core.bus.emit(
            EventType.SYNC_COMPLETED,
            {"successful": len(result.successful), "failed": len(result.failed), "conflicts": len(result.conflicts)},
        )
        await self.core.bus.emit(EventType.NOTES_RELOADED, {"reason": "sync"})
        return True

    async def perform_sync(self) -> BatchResult:
        """Retry processing, then creates, updates and deletes in that order."""
        queue = self.core.services.queue
        batch = self.core.services.batch
        queue.process_retry_queue()
        by_action = queue.get_primary_queue_by_action()

        result = BatchResult()
        if by_action[SyncAction.CREATE]:
            result.extend(await batch.batch_sync_create_items(by_action[SyncAction.CREATE]))
        if by_action[SyncAction.UPDATE]:
            result.extend(await batch.batch_sync_update_items(by_action[SyncAction.UPDATE]))
        if by_action[SyncAction.DELETE]:
            result.extend(await batch.batch_sync_delete_items(by_action[SyncAction.DELETE]))

        for failed in result.failed:
            self._record_error(failed.error, note_uuid=failed.note_uuid, action="sync")
        for conflict in result.conflicts:
            message = conflict.message or conflict.conflict_type
            self._record_error(message, note_uuid=conflict.note_uuid, action="conflict")

        if not result.is_empty:
            logger.info(
                "sync_pass_completed",
                successful=len(result.successful),
                failed=len(result.failed),
                conflicts=len(result.conflicts),
            )
        return result

    async def retry_failed_items(self) -> bool:
        """Manual retry: move every non-conflict retry item back and sync."""
        moved = self.core.services.queue.reset_retry_queue()
        logger.info("manual_retry_requested", count=moved)
        return await self.trigger_sync()

    async def reconcile(self) -> list[Note]:
        """Full reconciliation: push queued changes, then pull and merge server state."""
        if self.is_online and not self.is_api_available:
            await self.check_api_health()
        await self.trigger_sync()
        notes = await self.load_all_notes()
        await self.core.services.tag.sync_tags()
        return notes

    async def load_all_notes(self) -> list[Note]:
        """Merge the server's notes into the local store and return visible notes.

        Without a session (or before the first login) only local records are
        returned. An API failure also falls back to local records.
        """
        session = self.core.services.session
        if not session.has_ever_logged_in() or not session.is_authenticated():
            return self._visible_notes()

        try:
            responses = await self.core.api.get_all_notes()
        except AuthenticationError as e:
            self._record_error(str(e), action="load")
            await session.logout()
            return self._visible_notes()
        except ApiError as e:
            logger.warning("load_notes_failed", error=str(e))
            self._record_error(str(e), action="load")
            return self._visible_notes()

        self._merge_server_notes(responses)
        await self.core.bus.emit(EventType.NOTES_RELOADED, {"reason": "load"})
        return self._visible_notes()

    def _merge_server_notes(self, responses: list[NoteResponse]) -> None:
        note_storage = self.core.services.note_storage
        queue = self.core.services.queue
        local = {note.uuid: note for note in note_storage.get_all()}
        server_uuids = {response.uuid for response in responses}
        synced_at = now()
        saved = kept = removed = 0

        for response in responses:
            note = local.get(response.uuid)
            if note is None:
                note_storage.save(transform_note_response_to_note(response, synced_at))
                saved += 1
                continue
            if not note.has_server_id:
                # An earlier create reached the server but its response was lost
                note = note.model_copy(update={"id": response.id, "sync_version": response.sync_version})
                note_storage.save(note)
            if note.is_deleted:
                # Tombstones are never resurrected; make sure the delete goes out
                if not queue.is_queued(note.uuid):
                    queue.enqueue(note.uuid, SyncAction.DELETE)
                kept += 1
                continue
            if queue.is_queued(note.uuid) or note.local_version > response.sync_version:
                if not queue.is_queued(note.uuid):
                    queue.enqueue(note.uuid, SyncAction.UPDATE)
                kept += 1
                continue
            note_storage.save(transform_note_response_to_note(response, synced_at))
            saved += 1

        for uuid, note in local.items():
            if uuid in server_uuids or queue.is_queued(uuid):
                continue
            if note.is_deleted or (note.has_server_id and not note.has_unsynced_changes):
                # Deleted on the server (or our delete already went through)
                note_storage.delete(uuid)
                removed += 1
                continue
            queue.enqueue(uuid, SyncAction.UPDATE)
            kept += 1

        logger.info("server_notes_merged", server=len(responses), saved=saved, kept_local=kept, removed=removed)

    async def apply_remote_event(self, event: NoteSyncEvent) -> int:
        """Apply a push notification about notes changed elsewhere. Returns records touched."""
        user_id = self.core.services.session.user_id
        if user_id is not None and event.user_id != user_id:
            logger.debug("remote_event_ignored", event_user_id=event.user_id)
            return 0

        note_storage = self.core.services.note_storage
        touched = 0
        for response in event.notes:
            local = note_storage.get(response.uuid)
            if event.event_type == NoteSyncEventType.DELETE:
                if local is not None and local.local_version <= response.sync_version:
                    note_storage.delete(response.uuid)
                    self.core.services.queue.remove([response.uuid])
                    touched += 1
                continue

            if local is None:
                note_storage.save(transform_note_response_to_note(response))
                touched += 1
                continue
            if local.is_deleted or response.sync_version <= local.sync_version:
                continue
            if event.event_type == NoteSyncEventType.UPDATE and local.local_version != local.sync_version:
                # Unsynced local edits win until our own sync resolves them
                continue
            server_note = transform_note_response_to_note(response)
            if local.has_server_id and local.id != server_note.id:
                server_note = server_note.model_copy(update={"id": local.id})
            note_storage.save(server_note)
            touched += 1

        logger.info("remote_event_applied", event_type=event.event_type, notes=len(event.notes), touched=touched)
        await self.core.bus.emit(EventType.NOTES_RELOADED, {"reason": "remote_event"})
        return touched

    def get_status(self) -> SyncStatus:
        queue = self.core.services.queue
        stats = queue.get_queue_stats()
        return SyncStatus(
            is_online=self.is_online,
            is_authenticated=self.is_authenticated,
            is_api_available=self.is_api_available,
            is_syncing=self.is_syncing,
            is_timer_active=self.is_timer_active,
            storage_available=self.core.storage_available,
            primary_queue_count=stats.primary.total,
            retry_queue_count=stats.retry.total,
            conflict_count=len(queue.get_conflicts()),
            queue_stats=stats,
            last_sync_at=self.last_sync_at,
            last_error=self._recent_errors[-1].message if self._recent_errors else None,
            recent_errors=list(self._recent_errors),
        )

    async def _on_network_changed(self, payload: dict[str, Any]) -> None:
        await self.set_online(bool(payload.get("is_online")))

    async def _on_auth_changed(self, payload: dict[str, Any]) -> None:
        if not payload.get("is_authenticated"):
            logger.info("sync_suspended_logged_out")
            return
        await self.reconcile()

    async def _on_force_reload(self, payload: dict[str, Any]) -> None:
        logger.info("force_reload", reason=payload.get("reason"))
        await self.reconcile()

    def _visible_notes(self) -> list[Note]:
        return [note for note in self.core.services.note_storage.get_all() if not note.is_deleted]

    def _record_error(self, message: str, note_uuid: str | None = None, action: str | None = None) -> None:
        self._recent_errors.append(SyncErrorRecord(message=message, note_uuid=note_uuid, action=action))
        overflow = len(self._recent_errors) - self.core.config.max_recent_errors
        if overflow > 0:
            del self._recent_errors[:overflow]
