from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import httpx

from draggynotes.api.models import NoteSyncEvent
from draggynotes.config import Config
from draggynotes.core.core import Core
from draggynotes.core.events import EventType
from draggynotes.core.modules.note.models import Note, Position, Tag
from draggynotes.core.modules.note.service import ConflictStrategy
from draggynotes.core.modules.sync.models import SyncStatus
from draggynotes.core.storage import KeyValueStorage


class App:
    """Facade for the operations a UI process needs, delegating to Core services."""

    def __init__(
        self,
        config: Config,
        storage: KeyValueStorage | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._core = Core(config, storage=storage, http_client=http_client)

    @asynccontextmanager
    async def lifespan(self) -> AsyncGenerator[None]:
        """Application lifespan management - delegates to Core."""
        async with self._core.lifespan():
            yield

    # Notes

    def list_notes(self, date: datetime | None = None) -> list[Note]:
        return self._core.services.note.list_notes(date)

    def get_note(self, note_uuid: str) -> Note:
        return self._core.services.note.get_note(note_uuid)

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
        return await self._core.services.note.create_note(
            title, content, date, color, position, is_task_mode, tag_names
        )

    async def update_note(self, note_uuid: str, changes: dict[str, Any]) -> Note:
        return await self._core.services.note.update_note(note_uuid, changes)

    async def delete_note(self, note_uuid: str) -> None:
        await self._core.services.note.delete_note(note_uuid)

    async def move_note_to_date(self, note_uuid: str, date: datetime) -> Note:
        return await self._core.services.note.move_note_to_date(note_uuid, date)

    def drag_note(self, note_uuid: str, position: Position) -> Note:
        return self._core.services.note.drag_note(note_uuid, position)

    async def finalize_drag(self, note_uuid: str, position: Position | None = None) -> Note:
        return await self._core.services.note.finalize_drag(note_uuid, position)

    async def add_task(self, note_uuid: str, text: str) -> Note:
        return await self._core.services.note.add_task(note_uuid, text)

    async def toggle_task(self, note_uuid: str, task_uuid: str) -> Note:
        return await self._core.services.note.toggle_task(note_uuid, task_uuid)

    async def set_tags(self, note_uuid: str, names: list[str]) -> Note:
        return await self._core.services.note.set_tags(note_uuid, names)

    async def toggle_pin(self, note_uuid: str) -> Note:
        return await self._core.services.note.toggle_pin(note_uuid)

    def get_conflicted_notes(self) -> list[Note]:
        return self._core.services.note.get_conflicted_notes()

    async def resolve_conflict(self, note_uuid: str, strategy: ConflictStrategy) -> Note | None:
        return await self._core.services.note.resolve_conflict(note_uuid, strategy)

    # Sync

    def get_sync_status(self) -> SyncStatus:
        return self._core.services.sync.get_status()

    async def trigger_sync(self) -> bool:
        return await self._core.services.sync.trigger_sync()

    async def retry_failed_items(self) -> bool:
        return await self._core.services.sync.retry_failed_items()

    async def set_online(self, is_online: bool) -> None:
        """Publish a connectivity change so every listener sees it."""
        await self._core.bus.emit(EventType.NETWORK_CHANGED, {"is_online": is_online})

    async def force_reload(self, reason: str = "manual") -> list[Note]:
        await self._core.bus.emit(EventType.FORCE_RELOAD, {"reason": reason})
        return self._core.services.note.list_notes()

    async def apply_remote_event(self, event: NoteSyncEvent) -> int:
        return await self._core.services.sync.apply_remote_event(event)

    # Session

    async def login(self, token: str, user_id: int | None = None) -> None:
        await self._core.services.session.login(token, user_id)

    async def logout(self) -> None:
        await self._core.services.session.logout()

    def is_authenticated(self) -> bool:
        return self._core.services.session.is_authenticated()

    # Tags

    def get_all_tags(self) -> list[Tag]:
        return self._core.services.tag.get_all_tags()

    def get_tag_suggestions(self, query: str = "") -> list[Tag]:
        return self._core.services.tag.get_tag_suggestions(query)

    async def create_tag(self, name: str) -> Tag:
        return await self._core.services.tag.create_tag(name)

    async def rename_tag(self, tag_uuid: str, name: str) -> Tag:
        return await self._core.services.tag.rename_tag(tag_uuid, name)

    async def delete_tag(self, tag_uuid: str) -> None:
        await self._core.services.tag.delete_tag(tag_uuid)
