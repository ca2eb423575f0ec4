from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from draggynotes.utils import now


class SyncAction(StrEnum):
    """Operation a queue item asks the server to perform."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class QueueItem(BaseModel):
    """Pending (primary queue) or failed (retry queue) operation for one note.

    The version snapshot is taken at enqueue time and is only used for
    staleness logging, never as a precondition.
    """

    note_uuid: str
    action: SyncAction
    enqueued_at: datetime = Field(default_factory=now)
    retry_count: int = 0
    last_retry_at: datetime | None = None
    error_message: str | None = None
    is_conflict: bool = False
    local_version: int | None = None
    sync_version: int | None = None


class ActionCounts(BaseModel):
    total: int = 0
    create: int = 0
    update: int = 0
    delete: int = 0

    @classmethod
    def from_items(cls, items: list[QueueItem]) -> "ActionCounts":
        return cls(
            total=len(items),
            create=sum(1 for item in items if item.action == SyncAction.CREATE),
            update=sum(1 for item in items if item.action == SyncAction.UPDATE),
            delete=sum(1 for item in items if item.action == SyncAction.DELETE),
        )


class QueueStats(BaseModel):
    primary: ActionCounts
    retry: ActionCounts
