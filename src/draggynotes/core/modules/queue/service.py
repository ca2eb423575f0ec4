import json
from datetime import datetime, timedelta

import structlog
from pydantic import ValidationError as PydanticValidationError

from draggynotes.core.core import Service
from draggynotes.core.modules.queue.models import ActionCounts, QueueItem, QueueStats, SyncAction
from draggynotes.utils import now

logger = structlog.get_logger(__name__)


class QueueService(Service):
    """Primary and retry queues of pending sync operations.

    Both queues are FIFO lists persisted as JSON and hold at most one item per
    note. A newer enqueue for a note supersedes whatever was pending for it.
    """

    @property
    def _primary_key(self) -> str:
        return self.storage_key("sync-queue")

    @property
    def _retry_key(self) -> str:
        return self.storage_key("retry-queue")

    def enqueue(self, note_uuid: str, action: SyncAction) -> bool:
        """Queue the latest intended action for a note.

        Returns False when nothing needs to reach the server: the note is gone
        locally, or it is a delete of a note the server never saw.
        """
        note = self.core.services.note_storage.get(note_uuid)
        final_action = action

        if action == SyncAction.DELETE:
            if note is None or not note.has_server_id:
                self.remove([note_uuid])
                logger.debug("skip_delete_never_synced", note_uuid=note_uuid)
                return False
        elif note is None:
            logger.debug("skip_enqueue_missing_note", note_uuid=note_uuid, action=action)
            return False
        elif action == SyncAction.UPDATE and not note.has_server_id:
            # The server has never seen this note; a create carries the full state
            final_action = SyncAction.CREATE

        primary = [item for item in self.get_primary_queue() if item.note_uuid != note_uuid]
        primary.append(
            QueueItem(
                note_uuid=note_uuid,
                action=final_action,
                local_version=note.local_version if note else None,
                sync_version=note.sync_version if note else None,
            )
        )
        self._save_primary(primary)
        self._drop_from_retry([note_uuid])

        logger.debug("note_enqueued", note_uuid=note_uuid, action=final_action, requested_action=action)
        return True

    def get_primary_queue(self) -> list[QueueItem]:
        return self._load(self._primary_key)

    def get_retry_queue(self) -> list[QueueItem]:
        return self._load(self._retry_key)

    def get_primary_queue_by_action(self) -> dict[SyncAction, list[QueueItem]]:
        queue = self.get_primary_queue()
        return {action: [item for item in queue if item.action == action] for action in SyncAction}

    def get_item(self, note_uuid: str) -> QueueItem | None:
        """Pending primary item for a note, if any."""
        return next((item for item in self.get_primary_queue() if item.note_uuid == note_uuid), None)

    def is_queued(self, note_uuid: str) -> bool:
        return any(item.note_uuid == note_uuid for item in self.get_primary_queue() + self.get_retry_queue())

    def complete(self, items: list[QueueItem]) -> None:
        """Drop items that were synced, unless a newer operation replaced them meanwhile."""
        attempted = {item.note_uuid: item for item in items}
        primary = [item for item in self.get_primary_queue() if not _same_attempt(attempted.get(item.note_uuid), item)]
        self._save_primary(primary)
        self._drop_from_retry(list(attempted))

    def move_to_retry(self, items: list[QueueItem], error: str | None = None, is_conflict: bool = False) -> None:
        """Move failed items from primary to retry.

        Items superseded in the primary queue while they were in flight stay
        where they are; the newer operation will be attempted instead.
        """
        primary = self.get_primary_queue()
        retry = self.get_retry_queue()
        timestamp = now()
        moved: list[str] = []

        for item in items:
            current = next((p for p in primary if p.note_uuid == item.note_uuid), None)
            if current is None or not _same_attempt(item, current):
                continue
            primary.remove(current)
            retry = [r for r in retry if r.note_uuid != item.note_uuid]
            retry.append(
                current.model_copy(
                    update={
                        "retry_count": current.retry_count + 1,
                        "last_retry_at": timestamp,
                        "error_message": error or current.error_message or "Sync failed",
                        "is_conflict": is_conflict,
                    }
                )
            )
            moved.append(item.note_uuid)

        self._save_primary(primary)
        self._save_retry(retry)
        if moved:
            logger.info("moved_to_retry_queue", note_uuids=moved, error=error, is_conflict=is_conflict)

    def remove(self, note_uuids: list[str]) -> None:
        """Remove notes from both queues unconditionally."""
        targets = set(note_uuids)
        self._save_primary([item for item in self.get_primary_queue() if item.note_uuid not in targets])
        self._drop_from_retry(note_uuids)

    def process_retry_queue(self, current_time: datetime | None = None) -> int:
        """Move eligible retry items back to primary and return how many moved.

        Eligible: not a conflict, under the attempt cap, and at least
        `retry_delay_seconds` since the last attempt.
        """
        current_time = current_time or now()
        delay = timedelta(seconds=self.core.config.retry_delay_seconds)
        max_attempts = self.core.config.max_retry_attempts

        primary = self.get_primary_queue()
        primary_uuids = {item.note_uuid for item in primary}
        remaining: list[QueueItem] = []
        moved = 0

        for item in self.get_retry_queue():
            if item.note_uuid in primary_uuids:
                # A newer operation is already pending
                continue
            due = item.last_retry_at is None or current_time - item.last_retry_at >= delay
            if item.is_conflict or item.retry_count >= max_attempts or not due:
                remaining.append(item)
                continue
            primary.append(item.model_copy(update={"last_retry_at": None, "error_message": None}))
            primary_uuids.add(item.note_uuid)
            moved += 1

        self._save_primary(primary)
        self._save_retry(remaining)
        if moved:
            logger.info("retry_items_requeued", count=moved)
        return moved

    def reset_retry_queue(self) -> int:
        """Manual retry: requeue every non-conflict retry item with a fresh attempt count."""
        primary = self.get_primary_queue()
        primary_uuids = {item.note_uuid for item in primary}
        remaining: list[QueueItem] = []
        moved = 0
        for item in self.get_retry_queue():
            if item.is_conflict:
                remaining.append(item)
                continue
            if item.note_uuid not in primary_uuids:
                primary.append(item.model_copy(update={"retry_count": 0, "last_retry_at": None, "error_message": None}))
                moved += 1
        self._save_primary(primary)
        self._save_retry(remaining)
        return moved

    def get_conflicts(self) -> list[QueueItem]:
        return [item for item in self.get_retry_queue() if item.is_conflict]

    def get_queue_stats(self) -> QueueStats:
        return QueueStats(
            primary=ActionCounts.from_items(self.get_primary_queue()),
            retry=ActionCounts.from_items(self.get_retry_queue()),
        )

    def clear_all_queues(self) -> None:
        self.storage.remove_item(self._primary_key)
        self.storage.remove_item(self._retry_key)
        logger.info("sync_queues_cleared")

    def _drop_from_retry(self, note_uuids: list[str]) -> None:
        targets = set(note_uuids)
        retry = self.get_retry_queue()
        kept = [item for item in retry if item.note_uuid not in targets]
        if len(kept) != len(retry):
            self._save_retry(kept)

    def _load(self, key: str) -> list[QueueItem]:
        raw = self.storage.get_item(key)
        if not raw:
            return []
        try:
            return [QueueItem.model_validate(item) for item in json.loads(raw)]
        except (ValueError, TypeError, PydanticValidationError):
            logger.warning("sync_queue_corrupted", key=key, exc_info=True)
            return []

    def _save_primary(self, items: list[QueueItem]) -> None:
        self._save(self._primary_key, items)

    def _save_retry(self, items: list[QueueItem]) -> None:
        self._save(self._retry_key, items)

    def _save(self, key: str, items: list[QueueItem]) -> None:
        self.storage.set_item(key, json.dumps([item.model_dump(mode="json") for item in items]))


def _same_attempt(attempted: QueueItem | None, current: QueueItem) -> bool:
    return (
        attempted is not None
        and attempted.enqueued_at == current.enqueued_at
        and attempted.action == current.action
    )
