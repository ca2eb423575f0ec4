from datetime import datetime
from enum import StrEnum
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from draggynotes.api.transformers import transform_note_response_to_note
from draggynotes.core.core import Service
from draggynotes.core.events import EventType
from draggynotes.core.modules.note.models import Note, NoteTask, Position, Tag
from draggynotes.core.modules.queue.models import SyncAction
from draggynotes.core.storage import KeyValueStorage
from draggynotes.errors import ApiError, NotFoundError, ValidationError
from draggynotes.utils import as_utc, now, same_day

logger = structlog.get_logger(__name__)

# Fields a UI may change through update_note
EDITABLE_FIELDS = frozenset(
    {"title", "content", "date", "color", "position", "is_displayed", "is_pinned", "is_task_mode", "note_tasks"}
)


class ConflictStrategy(StrEnum):
    LOCAL = "local"  # Keep the local copy and push it again
    SERVER = "server"  # Discard local edits in favour of the server copy


def bump_local_version(note: Note, **changes: Any) -> Note:
    """Apply a local mutation: local_version + 1, client/updated timestamps refreshed.

    sync_version and last_synced_at are owned by the sync layer and untouched here.
    """
    timestamp = now()
    return note.model_copy(
        update={
            **changes,
            "local_version": note.local_version + 1,
            "client_updated_at": timestamp,
            "updated_at": timestamp,
        }
    )


class NoteService(Service):
    """UI-facing note operations.

    Every mutation is written to the local store immediately, queued for sync
    and announced on the bus; nothing here waits for the network except
    resolving a conflict in favour of the server.
    """

    def __init__(self, storage: KeyValueStorage) -> None:
        super().__init__(storage)
        # In-flight drag positions, applied on read and committed by finalize_drag
        self._drag_overlay: dict[str, Position] = {}

    async def create_note(
        self,
        title: str = "New Note",
        content: str = "",
        date: datetime | None = None,
        color: str | None = None,
        position: Position | None = None,
        is_task_mode: bool = False,
        tag_names: list[str] | None = None,
    ) -> Note:
        timestamp = now()
        note = Note(
            title=title,
            content=content,
            date=as_utc(date) or timestamp,
            position=position or Position(),
            is_task_mode=is_task_mode,
            tags=self._resolve_tags(tag_names or []),
            user_id=self.core.services.session.user_id,
            created_at=timestamp,
            updated_at=timestamp,
            client_updated_at=timestamp,
        )
        if color:
            note = note.model_copy(update={"color": color})
        logger.debug("note_created", note_uuid=note.uuid)
        return await self._commit(note, SyncAction.CREATE)

    def get_note(self, note_uuid: str) -> Note:
        note = self._get_live(note_uuid)
        return self._with_overlay(note)

    def list_notes(self, date: datetime | None = None) -> list[Note]:
        """Visible notes, newest first. With a date, notes of that day plus pinned ones."""
        notes = [n for n in self.core.services.note_storage.get_all() if not n.is_deleted]
        if date is not None:
            day = as_utc(date) or date
            notes = [n for n in notes if n.is_pinned or same_day(n.date, day)]
        return [self._with_overlay(n) for n in notes]

    async def update_note(self, note_uuid: str, changes: dict[str, Any]) -> Note:
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        note = self._get_live(note_uuid)
        if not changes:
            return note
        try:
            # Validate the merged record so bad values never reach storage
            updated = Note.model_validate({**note.model_dump(), **changes})
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid note data: {e.error_count()} error(s)") from e
        updated = bump_local_version(note, **{key: getattr(updated, key) for key in changes})
        return await self._commit(updated, SyncAction.UPDATE)

    async def delete_note(self, note_uuid: str) -> None:
        """Hard-delete a never-synced note; tombstone and queue a delete otherwise."""
        note = self._get_live(note_uuid)
        self._drag_overlay.pop(note_uuid, None)

        if not note.has_server_id:
            self.core.services.note_storage.delete(note_uuid)
            self.core.services.queue.remove([note_uuid])
            logger.debug("note_deleted_locally", note_uuid=note_uuid)
            await self._emit_changed(note_uuid, SyncAction.DELETE)
            return

        await self._commit(bump_local_version(note, is_deleted=True), SyncAction.DELETE)

    async def move_note_to_date(self, note_uuid: str, date: datetime) -> Note:
        note = self._get_live(note_uuid)
        return await self._commit(bump_local_version(note, date=as_utc(date)), SyncAction.UPDATE)

    def drag_note(self, note_uuid: str, position: Position) -> Note:
        """Record an in-progress drag position without touching storage or the queue."""
        note = self._get_live(note_uuid)
        self._drag_overlay[note_uuid] = position
        return self._with_overlay(note)

    async def finalize_drag(self, note_uuid: str, position: Position | None = None) -> Note:
        """Commit the drag position (given, or the last dragged one) and clear the overlay."""
        note = self._get_live(note_uuid)
        final_position = position or self._drag_overlay.get(note_uuid)
        self._drag_overlay.pop(note_uuid, None)
        if final_position is None or final_position == note.position:
            return note
        return await self._commit(bump_local_version(note, position=final_position), SyncAction.UPDATE)

    def cancel_drag(self, note_uuid: str) -> None:
        self._drag_overlay.pop(note_uuid, None)

    async def toggle_task(self, note_uuid: str, task_uuid: str) -> Note:
        note = self._get_live(note_uuid)
        tasks = list(note.note_tasks)
        for i, task in enumerate(tasks):
            if task.uuid == task_uuid:
                tasks[i] = task.model_copy(update={"completed": not task.completed})
                break
        else:
            raise NotFoundError(f"Task '{task_uuid}' not found")
        return await self._commit(bump_local_version(note, note_tasks=tasks), SyncAction.UPDATE)

    async def add_task(self, note_uuid: str, text: str) -> Note:
        if not text.strip():
            raise ValidationError("Task text must not be empty")
        note = self._get_live(note_uuid)
        task = NoteTask(text=text.strip(), created_at=now())
        return await self._commit(bump_local_version(note, note_tasks=[*note.note_tasks, task]), SyncAction.UPDATE)

    async def set_tags(self, note_uuid: str, names: list[str]) -> Note:
        note = self._get_live(note_uuid)
        tags = self._resolve_tags(names)
        current = {tag.uuid for tag in note.tags}
        for tag in tags:
            if tag.uuid not in current:
                self.core.services.tag.increment_tag_usage(tag.uuid)
        return await self._commit(bump_local_version(note, tags=tags), SyncAction.UPDATE)

    async def toggle_pin(self, note_uuid: str) -> Note:
        note = self._get_live(note_uuid)
        return await self._commit(bump_local_version(note, is_pinned=not note.is_pinned), SyncAction.UPDATE)

    def refresh_note_from_storage(self, note_uuid: str) -> Note | None:
        """Re-read a record after a background sync; None when it is gone or tombstoned."""
        note = self.core.services.note_storage.get(note_uuid)
        if note is None or note.is_deleted:
            self._drag_overlay.pop(note_uuid, None)
            return None
        return self._with_overlay(note)

    def get_conflicted_notes(self) -> list[Note]:
        return [n for n in self.core.services.note_storage.get_all() if n.has_conflict]

    async def resolve_conflict(self, note_uuid: str, strategy: ConflictStrategy) -> Note | None:
        """Settle a conflicted record.

        LOCAL clears the flag, adopts the server's sync_version so the next push
        is accepted, and queues the local copy again as an update.
        SERVER fetches the server copy and overwrites the local record; when
        the server no longer has the note the local record is removed and
        None is returned.
        """
        note = self.core.services.note_storage.get(note_uuid)
        if note is None:
            raise NotFoundError
        queue = self.core.services.queue

        if strategy == ConflictStrategy.LOCAL:
            changes = await self._rebase_on_server(note)
            queue.remove([note_uuid])
            action = SyncAction.DELETE if note.is_deleted else SyncAction.UPDATE
            resolved = await self._commit(
                bump_local_version(note, has_conflict=False, conflict_sync_version=None, **changes), action
            )
            logger.info("conflict_resolved", note_uuid=note_uuid, strategy=strategy, sync_version=resolved.sync_version)
            return resolved

        if not note.has_server_id:
            raise ValidationError("Note has never been synced; only the local copy exists")
        try:
            response = await self.core.api.get_note(note_uuid)
        except ApiError as e:
            if e.status_code != 404:
                raise
            self.core.services.note_storage.delete(note_uuid)
            queue.remove([note_uuid])
            self._drag_overlay.pop(note_uuid, None)
            logger.info("conflict_resolved_note_gone", note_uuid=note_uuid)
            await self._emit_changed(note_uuid, SyncAction.DELETE)
            return None

        server_note = transform_note_response_to_note(response)
        self.core.services.note_storage.save(server_note)
        queue.remove([note_uuid])
        self._drag_overlay.pop(note_uuid, None)
        logger.info("conflict_resolved", note_uuid=note_uuid, strategy=strategy)
        await self._emit_changed(note_uuid, SyncAction.UPDATE)
        return server_note

    async def _rebase_on_server(self, note: Note) -> dict[str, Any]:
        """Version fields that let the local copy overwrite the server copy on the next push."""
        if not note.has_server_id:
            return {}
        if note.conflict_sync_version is not None:
            return {"sync_version": note.conflict_sync_version}
        try:
            response = await self.core.api.get_note(note.uuid)
        except ApiError as e:
            if e.status_code != 404:
                raise
            raise NotFoundError("Note no longer exists on the server") from e
        return {"sync_version": response.sync_version}

    def should_queue(self) -> bool:
        return self.core.services.session.is_authenticated() or self.core.config.queue_when_unauthenticated

    async def _commit(self, note: Note, action: SyncAction) -> Note:
        self.core.services.note_storage.save(note)
        if self.should_queue():
            self.core.services.queue.enqueue(note.uuid, action)
        await self._emit_changed(note.uuid, action)
        return self._with_overlay(note)

    async def _emit_changed(self, note_uuid: str, action: SyncAction) -> None:
        await self.core.bus.emit(EventType.NOTE_CHANGED, {"note_uuid": note_uuid, "action": action})

    def _get_live(self, note_uuid: str) -> Note:
        note = self.core.services.note_storage.get(note_uuid)
        if note is None or note.is_deleted:
            raise NotFoundError
        return note

    def _with_overlay(self, note: Note) -> Note:
        position = self._drag_overlay.get(note.uuid)
        if position is None:
            return note
        return note.model_copy(update={"position": position})

    def _resolve_tags(self, names: list[str]) -> list[Tag]:
        tags: list[Tag] = []
        for name in names:
            if not name.strip():
                continue
            tag = self.core.services.tag.find_tag_by_name(name) or self.core.services.tag.create_local_tag(name)
            if all(t.uuid != tag.uuid for t in tags):
                tags.append(tag)
        return tags
