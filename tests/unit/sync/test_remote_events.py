"""Tests for applying push notifications about notes changed on other clients."""

import pytest

from draggynotes.api.models import NoteSyncEvent
from draggynotes.core.events import EventType
from draggynotes.core.modules.note.models import Note


@pytest.fixture
def make_event(server, user_id):
    def _make(event_type, *notes, owner=None):
        return NoteSyncEvent.model_validate(
            {"eventType": event_type, "userId": owner if owner is not None else user_id, "notes": list(notes)}
        )

    return _make


class TestRemoteEvents:
    """Tests for SyncService.apply_remote_event."""

    async def test_unknown_note_is_stored(self, online_core, server, make_event):
        """Test that a note created elsewhere appears locally."""
        event = make_event("CREATE", server.seed_note("r-new", title="From tablet"))

        assert await online_core.services.sync.apply_remote_event(event) == 1
        assert online_core.services.note.get_note("r-new").title == "From tablet"

    async def test_other_user_ignored(self, online_core, server, make_event):
        """Test that events for another account change nothing."""
        event = make_event("CREATE", server.seed_note("r-foreign"), owner=999)

        assert await online_core.services.sync.apply_remote_event(event) == 0
        assert online_core.services.note_storage.get("r-foreign") is None

    async def test_newer_update_applied(self, online_core, server, make_event):
        """Test that a newer server version replaces a clean local copy."""
        remote = server.seed_note("r-1", title="New title", sync_version=2)
        online_core.services.note_storage.save(Note(uuid="r-1", id=remote["id"], title="Old title"))

        assert await online_core.services.sync.apply_remote_event(make_event("UPDATE", remote)) == 1
        stored = online_core.services.note_storage.get("r-1")
        assert stored.title == "New title"
        assert stored.sync_version == 2

    async def test_stale_update_skipped(self, online_core, server, make_event):
        """Test that an event not newer than the local copy is ignored."""
        remote = server.seed_note("r-2", title="Stale", sync_version=3)
        online_core.services.note_storage.save(
            Note(uuid="r-2", id=remote["id"], title="Current", sync_version=3, local_version=3)
        )

        assert await online_core.services.sync.apply_remote_event(make_event("UPDATE", remote)) == 0
        assert online_core.services.note_storage.get("r-2").title == "Current"

    async def test_update_does_not_clobber_local_edits(self, online_core, server, make_event):
        """Test that unsynced local edits survive a remote update."""
        remote = server.seed_note("r-3", title="Theirs", sync_version=2)
        online_core.services.note_storage.save(
            Note(uuid="r-3", id=remote["id"], title="Mine", sync_version=1, local_version=2)
        )

        assert await online_core.services.sync.apply_remote_event(make_event("UPDATE", remote)) == 0
        assert online_core.services.note_storage.get("r-3").title == "Mine"

    async def test_update_does_not_resurrect_tombstone(self, online_core, server, make_event):
        """Test that a note deleted locally stays deleted."""
        remote = server.seed_note("r-4", sync_version=5)
        online_core.services.note_storage.save(Note(uuid="r-4", id=remote["id"], is_deleted=True))

        await online_core.services.sync.apply_remote_event(make_event("UPDATE", remote))
        assert online_core.services.note_storage.get("r-4").is_deleted is True

    async def test_delete_removes_clean_note(self, online_core, server, make_event):
        """Test that a remote delete removes a note without newer local edits."""
        remote = server.seed_note("r-5", sync_version=2)
        online_core.services.note_storage.save(Note(uuid="r-5", id=remote["id"], sync_version=2, local_version=2))

        assert await online_core.services.sync.apply_remote_event(make_event("DELETE", remote)) == 1
        assert online_core.services.note_storage.get("r-5") is None

    async def test_delete_keeps_newer_local_edits(self, online_core, server, make_event):
        """Test that a remote delete does not discard edits made after that version."""
        remote = server.seed_note("r-6", sync_version=1)
        online_core.services.note_storage.save(Note(uuid="r-6", id=remote["id"], title="Edited", local_version=4))

        assert await online_core.services.sync.apply_remote_event(make_event("DELETE", remote)) == 0
        assert online_core.services.note_storage.get("r-6").title == "Edited"

    async def test_reload_announced(self, online_core, server, make_event):
        """Test that applying an event asks the UI to re-read notes."""
        seen = []
        online_core.bus.subscribe(EventType.NOTES_RELOADED, seen.append)

        await online_core.services.sync.apply_remote_event(make_event("CREATE", server.seed_note("r-7")))

        assert seen == [{"reason": "remote_event"}]
