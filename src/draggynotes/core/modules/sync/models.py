from datetime import datetime

from pydantic import BaseModel, Field

from draggynotes.core.modules.queue.models import QueueStats
from draggynotes.utils import now


class FailedItem(BaseModel):
    note_uuid: str
    error: str


class ConflictItem(BaseModel):
    note_uuid: str
    conflict_type: str
    server_sync_version: int | None = None
    message: str | None = None


class BatchResult(BaseModel):
    """Per-note outcome of one or more batch calls."""

    successful: list[str] = Field(default_factory=list)
    failed: list[FailedItem] = Field(default_factory=list)
    conflicts: list[ConflictItem] = Field(default_factory=list)

    def extend(self, other: "BatchResult") -> None:
        self.successful.extend(other.successful)
        self.failed.extend(other.failed)
        self.conflicts.extend(other.conflicts)

    @property
    def is_empty(self) -> bool:
        return not (self.successful or self.failed or self.conflicts)


class SyncErrorRecord(BaseModel):
    at: datetime = Field(default_factory=now)
    action: str | None = None
    note_uuid: str | None = None
    message: str


class SyncStatus(BaseModel):
    """Snapshot of the orchestrator state for status displays."""

    is_online: bool
    is_authenticated: bool
    is_api_available: bool
    is_syncing: bool
    is_timer_active: bool
    storage_available: bool
    primary_queue_count: int
    retry_queue_count: int
    conflict_count: int
    queue_stats: QueueStats
    last_sync_at: datetime | None = None
    last_error: str | None = None
    recent_errors: list[SyncErrorRecord] = Field(default_factory=list)
