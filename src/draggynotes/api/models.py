"""Wire models for the remote notes REST service."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import Field

from draggynotes.core.modules.note.models import CamelModel


class ApiResponse(CamelModel):
    """Envelope every endpoint answers with."""

    success: bool = True
    message: str | None = None
    data: Any = None
    errors: list[str] | None = None


class PositionRequest(CamelModel):
    x: float
    y: float


class CreateTaskRequest(CamelModel):
    id: int = 0
    uuid: str
    text: str | None
    completed: bool


class UpdateTaskRequest(CamelModel):
    id: int
    uuid: str
    text: str | None
    completed: bool


class CreateNoteRequest(CamelModel):
    uuid: str
    title: str
    content: str
    date: str | None = None  # ISO date string
    color: str
    is_displayed: bool
    position: PositionRequest
    note_tasks: list[CreateTaskRequest] | None = None
    is_task_mode: bool | None = None
    is_pinned: bool | None = None
    tag_names: list[str] | None = None
    client_updated_at: str | None = None
    local_version: int = 1


class UpdateNoteRequest(CamelModel):
    id: int
    uuid: str
    title: str
    content: str
    date: str | None = None
    color: str
    is_displayed: bool
    position: PositionRequest
    tasks: list[UpdateTaskRequest] | None = None
    is_task_mode: bool | None = None
    is_pinned: bool | None = None
    tag_names: list[str] | None = None
    client_updated_at: str | None = None
    local_version: int
    sync_version: int  # Version the client last saw; the server detects conflicts against it


class BatchCreateRequest(CamelModel):
    notes: list[CreateNoteRequest]


class BatchUpdateRequest(CamelModel):
    notes: list[UpdateNoteRequest]


class BatchDeleteRequest(CamelModel):
    ids: list[int]


class PositionResponse(CamelModel):
    x: float
    y: float


class TaskResponse(CamelModel):
    id: int
    uuid: str
    text: str | None = ""
    completed: bool = False
    created_at: datetime | None = None


class TagResponse(CamelModel):
    id: int
    uuid: str
    name: str
    user_id: int | None = None
    usage_count: int = 0
    is_predefined: bool = False


class NoteResponse(CamelModel):
    id: int
    uuid: str
    title: str = ""
    content: str = ""
    date: datetime
    color: str = ""
    is_displayed: bool = True
    is_pinned: bool | None = None
    position: PositionResponse = Field(default_factory=lambda: PositionResponse(x=0, y=0))
    created_at: datetime
    updated_at: datetime
    tasks: list[TaskResponse] | None = None
    is_task_mode: bool | None = None
    tags: list[TagResponse] = Field(default_factory=list)
    user_id: int | None = None
    sync_version: int = 1


class FailedNoteResponse(CamelModel):
    """Per-item rejection. Servers identify the item by uuid, by its request index, or (deletes) by id."""

    uuid: str | None = None
    index: int | None = None
    id: int | None = None
    error: str | None = None


class ConflictType(StrEnum):
    VERSION_MISMATCH = "version_mismatch"
    DELETED_ON_SERVER = "deleted_on_server"
    CONCURRENT_EDIT = "concurrent_edit"


class ConflictResponse(CamelModel):
    note_uuid: str | None = None
    index: int | None = None
    conflict_type: str = ConflictType.VERSION_MISMATCH
    server_sync_version: int | None = None
    message: str | None = None


class BatchNoteResponse(CamelModel):
    """Batch outcome: per-item successes, failures and conflicts."""

    successful: list[NoteResponse] = Field(default_factory=list)
    failed: list[FailedNoteResponse] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    conflicts: list[ConflictResponse] = Field(default_factory=list)


class DeletedNoteResponse(CamelModel):
    id: int | None = None
    uuid: str | None = None
    index: int | None = None


class BatchDeleteResponse(CamelModel):
    successful: list[DeletedNoteResponse] = Field(default_factory=list)
    failed: list[FailedNoteResponse] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class CreateTagRequest(CamelModel):
    name: str


class UpdateTagRequest(CamelModel):
    id: int
    name: str


class HealthResponse(CamelModel):
    status: str | None = None
    timestamp: datetime | None = None
    version: str | None = None
    dependencies: dict[str, str] | None = None


class NoteSyncEventType(StrEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class NoteSyncEvent(CamelModel):
    """Push notification that notes changed on another client."""

    event_type: NoteSyncEventType
    user_id: int
    notes: list[NoteResponse]
    client_id: str | None = None
