"""Pure mappings between local records and wire requests/responses."""

from datetime import datetime

from draggynotes.api.models import (
    CreateNoteRequest,
    CreateTagRequest,
    CreateTaskRequest,
    NoteResponse,
    PositionRequest,
    TagResponse,
    TaskResponse,
    UpdateNoteRequest,
    UpdateTagRequest,
    UpdateTaskRequest,
)
from draggynotes.core.modules.note.models import Note, NoteTask, Position, Tag
from draggynotes.utils import now


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def transform_note_response_to_note(response: NoteResponse, synced_at: datetime | None = None) -> Note:
    """Server copy as a local record: confirmed, so local_version equals sync_version."""
    return Note(
        id=response.id,
        uuid=response.uuid,
        title=response.title,
        content=response.content,
        date=response.date,
        color=response.color,
        position=Position(x=response.position.x, y=response.position.y),
        is_displayed=response.is_displayed,
        is_pinned=bool(response.is_pinned),
        is_task_mode=bool(response.is_task_mode),
        note_tasks=[transform_task_response_to_note_task(task) for task in response.tasks or []],
        tags=[transform_tag_response_to_tag(tag) for tag in response.tags],
        user_id=response.user_id,
        created_at=response.created_at,
        updated_at=response.updated_at,
        sync_version=response.sync_version,
        local_version=response.sync_version,
        last_synced_at=synced_at or now(),
        client_updated_at=None,
    )


def transform_note_to_create_request(note: Note) -> CreateNoteRequest:
    return CreateNoteRequest(
        uuid=note.uuid,
        title=note.title,
        content=note.content,
        date=_iso(note.date),
        color=note.color,
        is_displayed=note.is_displayed,
        position=PositionRequest(x=note.position.x, y=note.position.y),
        note_tasks=[transform_note_task_to_create_request(task) for task in note.note_tasks],
        is_task_mode=note.is_task_mode,
        is_pinned=note.is_pinned,
        tag_names=[tag.name for tag in note.tags],
        client_updated_at=_iso(note.client_updated_at or note.updated_at),
        local_version=note.local_version,
    )


def transform_note_to_update_request(note: Note) -> UpdateNoteRequest:
    """Update request for a synced record. Callers check `note.has_server_id` first."""
    if note.id is None:
        raise ValueError(f"Note {note.uuid} has no server id")
    return UpdateNoteRequest(
        id=note.id,
        uuid=note.uuid,
        title=note.title,
        content=note.content,
        date=_iso(note.date),
        color=note.color,
        is_displayed=note.is_displayed,
        position=PositionRequest(x=note.position.x, y=note.position.y),
        tasks=[transform_note_task_to_update_request(task) for task in note.note_tasks],
        is_task_mode=note.is_task_mode,
        is_pinned=note.is_pinned,
        tag_names=[tag.name for tag in note.tags],
        client_updated_at=_iso(note.client_updated_at or note.updated_at),
        local_version=note.local_version,
        sync_version=note.sync_version,
    )


def transform_task_response_to_note_task(response: TaskResponse) -> NoteTask:
    return NoteTask(
        id=response.id,
        uuid=response.uuid,
        text=response.text or "",
        completed=response.completed,
        created_at=response.created_at,
    )


def transform_note_task_to_create_request(task: NoteTask) -> CreateTaskRequest:
    return CreateTaskRequest(id=0, uuid=task.uuid, text=task.text, completed=task.completed)


def transform_note_task_to_update_request(task: NoteTask) -> UpdateTaskRequest:
    # Tasks added after the note was synced have no id yet; 0 asks the server to create them
    return UpdateTaskRequest(id=task.id or 0, uuid=task.uuid, text=task.text, completed=task.completed)


def transform_tag_response_to_tag(response: TagResponse) -> Tag:
    return Tag(
        id=response.id,
        uuid=response.uuid,
        name=response.name,
        user_id=response.user_id,
        usage_count=response.usage_count,
        is_predefined=response.is_predefined,
    )


def transform_tag_to_create_request(tag: Tag) -> CreateTagRequest:
    return CreateTagRequest(name=tag.name.strip())


def transform_tag_to_update_request(tag: Tag) -> UpdateTagRequest:
    if tag.id is None:
        raise ValueError(f"Tag {tag.uuid} has no server id")
    return UpdateTagRequest(id=tag.id, name=tag.name.strip())
