from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from draggynotes.core.modules.note.models import Note, NoteTask, Position
from draggynotes.core.modules.note.service import ConflictStrategy
from draggynotes.web.deps import AppDep
from draggynotes.web.openapi import ErrorResponse

router: APIRouter = APIRouter(tags=["notes"])

NOT_FOUND = {404: {"model": ErrorResponse, "description": "Note not found"}}


class CreateNoteRequest(BaseModel):
    """Request to create a new note."""

    title: str = Field("New Note", description="Note title")
    content: str = Field("", description="Note body")
    date: datetime | None = Field(None, description="Canvas day the note belongs to (defaults to now)")
    color: str | None = Field(None, description="Background color, e.g. `#fff59d`")
    position: Position | None = Field(None, description="Position on the canvas")
    is_task_mode: bool = Field(False, description="Show the note as a checklist")
    tag_names: list[str] = Field(default_factory=list, description="Tag names; unknown names become user tags")


class UpdateNoteRequest(BaseModel):
    """Partial update: only the provided fields change."""

    title: str | None = None
    content: str | None = None
    date: datetime | None = None
    color: str | None = None
    position: Position | None = None
    is_displayed: bool | None = None
    is_pinned: bool | None = None
    is_task_mode: bool | None = None
    note_tasks: list[NoteTask] | None = None


class MoveNoteRequest(BaseModel):
    date: datetime


class DragRequest(BaseModel):
    position: Position | None = None


class AddTaskRequest(BaseModel):
    text: str


class SetTagsRequest(BaseModel):
    names: list[str]


class ResolveConflictRequest(BaseModel):
    strategy: ConflictStrategy = Field(..., description="`local` pushes the local copy, `server` takes the server copy")


@router.get("/notes", summary="List notes", operation_id="listNotes")
async def list_notes(
    app: AppDep,
    date: Annotated[datetime | None, Query(description="Only notes of this day (plus pinned ones)")] = None,
) -> list[Note]:
    return app.list_notes(date)


@router.get("/notes/conflicts", summary="List conflicted notes", operation_id="listConflictedNotes")
async def list_conflicted_notes(app: AppDep) -> list[Note]:
    return app.get_conflicted_notes()


@router.get("/notes/{note_uuid}", summary="Get note", operation_id="getNote", responses=NOT_FOUND)
async def get_note(note_uuid: str, app: AppDep) -> Note:
    return app.get_note(note_uuid)


@router.post("/notes", summary="Create note", operation_id="createNote", status_code=201)
async def create_note(request: CreateNoteRequest, app: AppDep) -> Note:
    return await app.create_note(
        request.title,
        request.content,
        request.date,
        request.color,
        request.position,
        request.is_task_mode,
        request.tag_names,
    )


@router.patch(
    "/notes/{note_uuid}",
    summary="Update note",
    operation_id="updateNote",
    responses={**NOT_FOUND, 400: {"model": ErrorResponse, "description": "Invalid field data"}},
)
async def update_note(note_uuid: str, request: UpdateNoteRequest, app: AppDep) -> Note:
    return await app.update_note(note_uuid, request.model_dump(exclude_unset=True))


@router.delete(
    "/notes/{note_uuid}", summary="Delete note", operation_id="deleteNote", status_code=204, responses=NOT_FOUND
)
async def delete_note(note_uuid: str, app: AppDep) -> None:
    await app.delete_note(note_uuid)


@router.post(
    "/notes/{note_uuid}/move", summary="Move note to another day", operation_id="moveNote", responses=NOT_FOUND
)
async def move_note(note_uuid: str, request: MoveNoteRequest, app: AppDep) -> Note:
    return await app.move_note_to_date(note_uuid, request.date)


@router.put(
    "/notes/{note_uuid}/drag",
    summary="Update drag position",
    description="Records the in-progress position only. Nothing is stored or queued until the drag is finalized.",
    operation_id="dragNote",
    responses=NOT_FOUND,
)
async def drag_note(note_uuid: str, request: DragRequest, app: AppDep) -> Note:
    return app.drag_note(note_uuid, request.position or Position())


@router.post(
    "/notes/{note_uuid}/drag/finalize", summary="Finish drag", operation_id="finalizeDrag", responses=NOT_FOUND
)
async def finalize_drag(note_uuid: str, request: DragRequest, app: AppDep) -> Note:
    return await app.finalize_drag(note_uuid, request.position)


@router.post(
    "/notes/{note_uuid}/tasks", summary="Add task", operation_id="addTask", status_code=201, responses=NOT_FOUND
)
async def add_task(note_uuid: str, request: AddTaskRequest, app: AppDep) -> Note:
    return await app.add_task(note_uuid, request.text)


@router.post(
    "/notes/{note_uuid}/tasks/{task_uuid}/toggle",
    summary="Toggle task completion",
    operation_id="toggleTask",
    responses=NOT_FOUND,
)
async def toggle_task(note_uuid: str, task_uuid: str, app: AppDep) -> Note:
    return await app.toggle_task(note_uuid, task_uuid)


@router.put("/notes/{note_uuid}/tags", summary="Replace note tags", operation_id="setTags", responses=NOT_FOUND)
async def set_tags(note_uuid: str, request: SetTagsRequest, app: AppDep) -> Note:
    return await app.set_tags(note_uuid, request.names)


@router.post("/notes/{note_uuid}/pin", summary="Toggle pin", operation_id="togglePin", responses=NOT_FOUND)
async def toggle_pin(note_uuid: str, app: AppDep) -> Note:
    return await app.toggle_pin(note_uuid)


@router.post(
    "/notes/{note_uuid}/conflict",
    summary="Resolve conflict",
    description="Returns the resolved note, or null when the server no longer has it and it was removed locally.",
    operation_id="resolveConflict",
    responses={**NOT_FOUND, 502: {"model": ErrorResponse, "description": "Remote API failed"}},
)
async def resolve_conflict(note_uuid: str, request: ResolveConflictRequest, app: AppDep) -> Note | None:
    return await app.resolve_conflict(note_uuid, request.strategy)
