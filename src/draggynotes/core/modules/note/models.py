"""Note records as held in the local store, and their versioned decode."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from draggynotes.utils import as_utc, new_uuid, now

# v1: original records (no tags, pin, sync metadata)
# v2: tags, pin, task mode, version counters, tombstone, conflict flag
NOTE_SCHEMA_VERSION = 2

# Defaults for fields introduced after a record may have been written.
# Keys are the persisted (camelCase) names.
NOTE_FIELD_DEFAULTS: dict[str, Any] = {
    "tags": [],
    "noteTasks": [],
    "isPinned": False,
    "isTaskMode": False,
    "isDisplayed": True,
    "syncVersion": 1,
    "localVersion": 1,
    "isDeleted": False,
    "hasConflict": False,
    "lastSyncedAt": None,
    "clientUpdatedAt": None,
    "userId": None,
}


class CamelModel(BaseModel):
    """Model persisted and sent over the wire with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Position(CamelModel):
    x: float = 0.0
    y: float = 0.0


class NoteTask(CamelModel):
    """Checklist item inside a note."""

    uuid: str = Field(default_factory=new_uuid)
    id: int | None = None  # Server id, None until synced
    text: str = ""
    completed: bool = False
    created_at: datetime | None = None


class Tag(CamelModel):
    """Tag reference. Predefined tags are shared and immutable."""

    uuid: str = Field(default_factory=new_uuid)
    id: int | None = None
    name: str
    user_id: int | None = None
    usage_count: int = 0
    is_predefined: bool = False
    created_at: datetime = Field(default_factory=now)
    updated_at: datetime = Field(default_factory=now)


class Note(CamelModel):
    """Note record with sync metadata.

    `uuid` is the local primary key and never changes. `id` is assigned by the
    server on the first successful create and is immutable afterwards.
    `local_version` counts local mutations, `sync_version` is owned by the
    server; the two are equal right after a confirmed sync.
    """

    uuid: str = Field(default_factory=new_uuid)
    id: int | None = None
    title: str = "New Note"
    content: str = ""
    date: datetime = Field(default_factory=now)  # Logical note date (canvas day)
    color: str = "#fff59d"
    position: Position = Field(default_factory=Position)
    is_displayed: bool = True
    is_pinned: bool = False
    is_task_mode: bool = False
    note_tasks: list[NoteTask] = Field(default_factory=list)
    tags: list[Tag] = Field(default_factory=list)
    user_id: int | None = None
    created_at: datetime = Field(default_factory=now)
    updated_at: datetime = Field(default_factory=now)
    sync_version: int = 1
    local_version: int = 1
    last_synced_at: datetime | None = None
    client_updated_at: datetime | None = None
    is_deleted: bool = False  # Tombstone, kept until the server confirms the delete
    has_conflict: bool = False
    conflict_sync_version: int | None = None  # Server sync_version reported with the last conflict

    @field_validator("date", "created_at", "updated_at", "last_synced_at", "client_updated_at")
    @classmethod
    def _naive_as_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @property
    def has_server_id(self) -> bool:
        return self.id is not None and self.id > 0

    @property
    def has_unsynced_changes(self) -> bool:
        return self.local_version != self.sync_version or self.last_synced_at is None


def encode_note(note: Note) -> dict[str, Any]:
    """Serialize the full record for storage (ISO dates, camelCase keys)."""
    data = note.model_dump(mode="json", by_alias=True)
    data["schemaVersion"] = NOTE_SCHEMA_VERSION
    return data


def _upgrade_v1(data: dict[str, Any]) -> dict[str, Any]:
    # v1 used 0 / -1 as "not synced yet" placeholders and kept tag ids only
    if data.get("id") is not None and data["id"] <= 0:
        data["id"] = None
    if data.get("userId") is not None and data["userId"] < 0:
        data["userId"] = None
    data.pop("tagIds", None)
    return data


def decode_note(raw: dict[str, Any]) -> Note:
    """Decode a stored record of any schema version.

    Older records are upgraded step by step, then every optional field that is
    missing (or null where null is not allowed) gets its default from
    NOTE_FIELD_DEFAULTS before validation.
    """
    data = dict(raw)
    version = data.pop("schemaVersion", 1)
    if version < 2:
        data = _upgrade_v1(data)
    for key, default in NOTE_FIELD_DEFAULTS.items():
        if data.get(key) is None:
            data[key] = list(default) if isinstance(default, list) else default
    return Note.model_validate(data)
