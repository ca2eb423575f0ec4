from __future__ import annotations

import importlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import cast

import httpx
import structlog

from draggynotes.api.client import NotesApi
from draggynotes.config import Config
from draggynotes.core.events import EventBus
from draggynotes.core.storage import KeyValueStorage, MemoryStorage, create_storage
from draggynotes.errors import StorageError

logger = structlog.get_logger(__name__)


class Service:
    """Base class for services with direct access to local storage."""

    def __init__(self, storage: KeyValueStorage) -> None:
        self.storage = storage
        self._core: Core | None = None

    async def on_start(self) -> None:
        """Initialize service on application startup."""

    async def on_stop(self) -> None:
        """Cleanup service on application shutdown."""

    @property
    def core(self) -> Core:
        """Get the core application context."""
        if self._core is None:
            raise RuntimeError("Core not set for service")
        return self._core

    def set_core(self, core: Core) -> None:
        """Set the core application context."""
        self._core = core

    def storage_key(self, suffix: str) -> str:
        """Namespaced storage key, e.g. `draggy-notes-list`."""
        return f"{self.core.config.storage_prefix}-{suffix}"


class Services:
    """Service registry that automatically discovers and initializes services."""

    from draggynotes.core.modules.note.service import NoteService  # noqa: PLC0415
    from draggynotes.core.modules.note.storage import NoteStorage  # noqa: PLC0415
    from draggynotes.core.modules.queue.service import QueueService  # noqa: PLC0415
    from draggynotes.core.modules.session.service import SessionService  # noqa: PLC0415
    from draggynotes.core.modules.sync.batch import BatchSyncService  # noqa: PLC0415
    from draggynotes.core.modules.sync.service import SyncService  # noqa: PLC0415
    from draggynotes.core.modules.tag.service import TagService  # noqa: PLC0415

    session: SessionService
    note_storage: NoteStorage
    queue: QueueService
    tag: TagService
    note: NoteService
    batch: BatchSyncService
    sync: SyncService

    def __init__(self, storage: KeyValueStorage) -> None:
        """Initialize all services automatically using service configuration."""
        self._services: list[Service] = []

        # Service configuration: (attribute_name, module_path, class_name)
        # Order matters for startup - session restores the token before sync starts its timer
        service_configs = [
            ("session", "draggynotes.core.modules.session.service", "SessionService"),
            ("note_storage", "draggynotes.core.modules.note.storage", "NoteStorage"),
            ("queue", "draggynotes.core.modules.queue.service", "QueueService"),
            ("tag", "draggynotes.core.modules.tag.service", "TagService"),
            ("note", "draggynotes.core.modules.note.service", "NoteService"),
            ("batch", "draggynotes.core.modules.sync.batch", "BatchSyncService"),
            ("sync", "draggynotes.core.modules.sync.service", "SyncService"),
        ]

        for attr_name, module_path, class_name in service_configs:
            module = importlib.import_module(module_path)
            service_class = cast(type[Service], getattr(module, class_name))
            service_instance = service_class(storage)
            setattr(self, attr_name, service_instance)
            self._services.append(service_instance)

    def set_core(self, core: Core) -> None:
        """Set core reference for all services."""
        for service in self._services:
            service.set_core(core)

    async def start_all(self) -> None:
        """Start all services that have startup logic."""
        for service in self._services:
            await service.on_start()

    async def stop_all(self) -> None:
        """Stop all services in reverse order."""
        for service in reversed(self._services):
            await service.on_stop()


class Core:
    """Container providing config, storage, event bus, API client and all services."""

    config: Config
    storage: KeyValueStorage
    storage_available: bool
    bus: EventBus
    api: NotesApi
    services: Services

    def __init__(
        self,
        config: Config,
        storage: KeyValueStorage | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize core with config and storage, build the API client and register services.

        Unavailable storage degrades to an in-memory store so local editing keeps working.
        """
        self.config = config
        self.storage, self.storage_available = self._open_storage(storage)
        self.bus = EventBus()
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            base_url=config.api_base_url, timeout=config.api_timeout_seconds
        )
        self.services = Services(self.storage)
        self.api = NotesApi(self._http_client, token_provider=self.services.session.get_token)
        self.services.set_core(self)

    def _open_storage(self, storage: KeyValueStorage | None) -> tuple[KeyValueStorage, bool]:
        try:
            candidate = storage or create_storage(self.config)
        except StorageError:
            logger.warning("storage_open_failed", backend=self.config.storage_backend, exc_info=True)
            return MemoryStorage(), False
        if candidate.is_available():
            return candidate, True
        logger.warning("storage_unavailable_using_memory", backend=self.config.storage_backend)
        candidate.close()
        return MemoryStorage(), False

    @asynccontextmanager
    async def lifespan(self) -> AsyncGenerator[None]:
        """Manage application lifecycle - startup and shutdown."""
        await self.on_start()
        try:
            yield
        finally:
            await self.on_stop()

    async def on_start(self) -> None:
        """Start all services on application startup."""
        await self.services.start_all()

    async def on_stop(self) -> None:
        """Stop services, close the HTTP client if we created it and release storage."""
        await self.services.stop_all()
        if self._owns_http_client:
            await self._http_client.aclose()
        self.storage.close()
