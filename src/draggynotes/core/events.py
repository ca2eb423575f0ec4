"""In-process event bus connecting push signals, session and sync."""

import inspect
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

EventHandler = Callable[[dict[str, Any]], Awaitable[None] | None]


class EventType(StrEnum):
    """Events published on the bus.

    - NETWORK_CHANGED: connectivity flipped, payload `{"is_online": bool}`
    - AUTH_CHANGED: login or logout, payload `{"is_authenticated": bool}`
    - FORCE_RELOAD: external request for a full reconciliation, payload `{"reason": str}`
    - SYNC_COMPLETED: a sync pass finished, payload `{"successful": int, "failed": int, "conflicts": int}`
    - NOTES_RELOADED: local records changed in bulk, UI should re-read the store
    - NOTE_CHANGED: a single record was written locally, payload `{"note_uuid": str, "action": str}`
    """

    NETWORK_CHANGED = "network_changed"
    AUTH_CHANGED = "auth_changed"
    FORCE_RELOAD = "force_reload"
    SYNC_COMPLETED = "sync_completed"
    NOTES_RELOADED = "notes_reloaded"
    NOTE_CHANGED = "note_changed"


class EventBus:
    """Subscribe/unsubscribe by event name; emit awaits every handler in order."""

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[EventHandler]] = {}

    def subscribe(self, event_type: EventType, handler: EventHandler) -> Callable[[], None]:
        """Register handler and return a callable that unregisters it."""
        self._handlers.setdefault(event_type, []).append(handler)
        return lambda: self.unsubscribe(event_type, handler)

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def handler_count(self, event_type: EventType) -> int:
        return len(self._handlers.get(event_type, []))

    async def emit(self, event_type: EventType, payload: dict[str, Any] | None = None) -> None:
        """Deliver payload to all handlers. A failing handler is logged and skipped."""
        data = payload or {}
        for handler in list(self._handlers.get(event_type, [])):
            try:
                result = handler(data)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("event_handler_failed", event_type=event_type)
