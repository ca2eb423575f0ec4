"""Tests for the in-process event bus."""

from draggynotes.core.events import EventBus, EventType


class TestEventBus:
    """Tests for subscribe, unsubscribe and emit."""

    async def test_sync_and_async_handlers(self):
        """Test that plain and coroutine handlers both receive the payload in order."""
        bus = EventBus()
        received = []

        async def async_handler(payload):
            received.append(("async", payload["is_online"]))

        bus.subscribe(EventType.NETWORK_CHANGED, lambda payload: received.append(("sync", payload["is_online"])))
        bus.subscribe(EventType.NETWORK_CHANGED, async_handler)

        await bus.emit(EventType.NETWORK_CHANGED, {"is_online": True})

        assert received == [("sync", True), ("async", True)]

    async def test_unsubscribe(self):
        """Test that the returned callable removes the handler."""
        bus = EventBus()
        received = []
        unsubscribe = bus.subscribe(EventType.FORCE_RELOAD, received.append)

        unsubscribe()
        await bus.emit(EventType.FORCE_RELOAD, {"reason": "test"})

        assert received == []
        assert bus.handler_count(EventType.FORCE_RELOAD) == 0

    async def test_failing_handler_isolated(self):
        """Test that one failing handler does not stop the others."""
        bus = EventBus()
        received = []

        def broken(payload):
            raise RuntimeError("boom")

        bus.subscribe(EventType.SYNC_COMPLETED, broken)
        bus.subscribe(EventType.SYNC_COMPLETED, received.append)

        await bus.emit(EventType.SYNC_COMPLETED)

        assert received == [{}]

    async def test_events_are_scoped_by_type(self):
        """Test that handlers only see their own event type."""
        bus = EventBus()
        received = []
        bus.subscribe(EventType.AUTH_CHANGED, received.append)

        await bus.emit(EventType.NOTES_RELOADED, {"reason": "sync"})

        assert received == []

    async def test_sync_service_subscribes_on_start(self, core):
        """Test that the started core has the sync listeners attached."""
        for event_type in (EventType.NETWORK_CHANGED, EventType.AUTH_CHANGED, EventType.FORCE_RELOAD):
            assert core.bus.handler_count(event_type) == 1
