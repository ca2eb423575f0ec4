"""Tests for mappings between local records and wire models."""

from datetime import UTC, datetime

import pytest

from draggynotes.api.models import NoteResponse, TagResponse
from draggynotes.api.transformers import (
    transform_note_response_to_note,
    transform_note_to_create_request,
    transform_note_to_update_request,
    transform_tag_response_to_tag,
    transform_tag_to_update_request,
)
from draggynotes.core.modules.note.models import Note, NoteTask, Position, Tag


@pytest.fixture
def note():
    return Note(
        id=8,
        title="Shopping",
        content="bread",
        position=Position(x=12.5, y=40),
        note_tasks=[NoteTask(text="flour", id=3), NoteTask(text="yeast")],
        tags=[Tag(name="Errands")],
        sync_version=4,
        local_version=6,
        client_updated_at=datetime(2024, 3, 1, 12, 0, tzinfo=UTC),
    )


class TestNoteToRequest:
    """Tests for building create and update requests."""

    def test_create_request_fields(self, note):
        """Test that a create carries content, tag names and the local version."""
        payload = transform_note_to_create_request(note).model_dump(by_alias=True)

        assert payload["uuid"] == note.uuid
        assert payload["tagNames"] == ["Errands"]
        assert payload["localVersion"] == 6
        assert payload["clientUpdatedAt"] == "2024-03-01T12:00:00+00:00"
        assert payload["position"] == {"x": 12.5, "y": 40.0}
        assert [task["id"] for task in payload["noteTasks"]] == [0, 0]

    def test_update_request_carries_versions(self, note):
        """Test that an update sends the server id and the last seen sync version."""
        payload = transform_note_to_update_request(note).model_dump(by_alias=True)

        assert payload["id"] == 8
        assert payload["syncVersion"] == 4
        assert payload["localVersion"] == 6
        # Tasks created after the last sync have no server id yet
        assert [task["id"] for task in payload["tasks"]] == [3, 0]

    def test_update_request_requires_server_id(self, note):
        """Test that an unsynced note cannot become an update request."""
        with pytest.raises(ValueError):
            transform_note_to_update_request(note.model_copy(update={"id": None}))


class TestResponseToNote:
    """Tests for turning server copies into local records."""

    def test_server_copy_is_clean(self):
        """Test that a server copy is stored with equal version counters."""
        response = NoteResponse.model_validate(
            {
                "id": 3,
                "uuid": "abc",
                "title": "T",
                "date": "2024-01-02T00:00:00Z",
                "createdAt": "2024-01-01T00:00:00Z",
                "updatedAt": "2024-01-02T00:00:00Z",
                "isPinned": None,
                "tasks": None,
                "tags": [{"id": 5, "uuid": "t-5", "name": "Home", "usageCount": 2}],
                "syncVersion": 7,
            }
        )
        synced_at = datetime(2024, 5, 1, tzinfo=UTC)

        note = transform_note_response_to_note(response, synced_at)

        assert (note.sync_version, note.local_version) == (7, 7)
        assert note.last_synced_at == synced_at
        assert note.is_pinned is False
        assert note.note_tasks == []
        assert note.tags[0].name == "Home"
        assert note.has_unsynced_changes is False


class TestTags:
    """Tests for tag mappings."""

    def test_tag_response(self):
        """Test copying server tag fields."""
        tag = transform_tag_response_to_tag(TagResponse(id=4, uuid="t-4", name="Gym", usage_count=9))
        assert (tag.id, tag.uuid, tag.name, tag.usage_count) == (4, "t-4", "Gym", 9)

    def test_update_request_strips_name(self):
        """Test that tag names are trimmed before sending."""
        request = transform_tag_to_update_request(Tag(id=4, name="  Gym "))
        assert request.model_dump(by_alias=True) == {"id": 4, "name": "Gym"}
