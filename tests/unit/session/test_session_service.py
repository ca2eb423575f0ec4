"""Tests for the local user session."""

import pytest

from draggynotes.config import Config
from draggynotes.core.core import Core
from draggynotes.core.events import EventType
from draggynotes.core.storage import MemoryStorage
from draggynotes.errors import ValidationError


class TestLoginLogout:
    """Tests for session transitions and their signals."""

    async def test_login_emits_and_persists(self, core, user_id):
        """Test that login stores the token and announces the change."""
        seen = []
        core.bus.subscribe(EventType.AUTH_CHANGED, seen.append)

        await core.services.session.login(" abc ", user_id)

        session = core.services.session
        assert session.is_authenticated() is True
        assert session.get_token() == "abc"
        assert session.user_id == user_id
        assert session.has_ever_logged_in() is True
        assert seen == [{"is_authenticated": True, "user_id": user_id}]
        assert '"auth_token":"abc"' in core.storage.get_item("draggy-notes-session")

    async def test_empty_token_rejected(self, core):
        """Test that a blank token raises ValidationError."""
        with pytest.raises(ValidationError):
            await core.services.session.login("   ")
        assert core.services.session.is_authenticated() is False

    async def test_logout_keeps_history(self, online_core):
        """Test that logout forgets the token but remembers a previous login."""
        seen = []
        online_core.bus.subscribe(EventType.AUTH_CHANGED, seen.append)

        await online_core.services.session.logout()
        await online_core.services.session.logout()

        session = online_core.services.session
        assert session.is_authenticated() is False
        assert session.user_id is None
        assert session.has_ever_logged_in() is True
        assert seen == [{"is_authenticated": False, "user_id": None}]


class TestRestore:
    """Tests for restoring a session at startup."""

    async def test_restored_from_storage(self, config, http_client):
        """Test that a persisted session survives a restart."""
        storage = MemoryStorage()
        first = Core(config, storage=storage, http_client=http_client)
        async with first.lifespan():
            await first.services.session.login("persisted", 3)

        second = Core(config, storage=storage, http_client=http_client)
        async with second.lifespan():
            assert second.services.session.get_token() == "persisted"
            assert second.services.session.user_id == 3

    async def test_token_from_config(self, http_client):
        """Test that a configured token starts an authenticated session."""
        config = Config(_env_file=None, storage_backend="memory", auto_sync=False, auth_token="from-env")
        core = Core(config, storage=MemoryStorage(), http_client=http_client)
        async with core.lifespan():
            assert core.services.session.get_token() == "from-env"
            assert core.services.session.has_ever_logged_in() is True

    async def test_corrupted_record_ignored(self, config, http_client):
        """Test that an unreadable session record starts a fresh session."""
        storage = MemoryStorage()
        storage.set_item("draggy-notes-session", "{not json")
        core = Core(config, storage=storage, http_client=http_client)
        async with core.lifespan():
            assert core.services.session.is_authenticated() is False
