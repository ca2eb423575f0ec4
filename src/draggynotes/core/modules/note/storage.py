import json

import structlog
from pydantic import ValidationError as PydanticValidationError

from draggynotes.core.core import Service
from draggynotes.core.modules.note.models import Note, decode_note, encode_note

logger = structlog.get_logger(__name__)


class NoteStorage(Service):
    """Local record store: one JSON record per note plus an index of all uuids.

    Writes are synchronous. Each save replaces one key in full, the index is
    updated after the record so a crash never leaves an index entry pointing
    at a half-written record (orphans are pruned on read instead).
    """

    @property
    def _index_key(self) -> str:
        return self.storage_key("list")

    def _record_key(self, uuid: str) -> str:
        return self.storage_key(uuid)

    def save(self, note: Note) -> None:
        """Write the full record and register its uuid in the index."""
        payload = json.dumps(encode_note(note))
        self.storage.set_item(self._record_key(note.uuid), payload)
        uuids = self.uuids()
        if note.uuid not in uuids:
            uuids.append(note.uuid)
            self._save_index(uuids)

    def get(self, uuid: str) -> Note | None:
        raw = self.storage.get_item(self._record_key(uuid))
        if raw is None:
            return None
        try:
            return decode_note(json.loads(raw))
        except (ValueError, PydanticValidationError):
            logger.warning("note_record_corrupted", note_uuid=uuid, exc_info=True)
            return None

    def exists(self, uuid: str) -> bool:
        return self.storage.get_item(self._record_key(uuid)) is not None

    def get_all(self) -> list[Note]:
        """All records, newest first. Index entries without a record are pruned."""
        uuids = self.uuids()
        notes: list[Note] = []
        orphans: list[str] = []
        for uuid in uuids:
            if not self.exists(uuid):
                orphans.append(uuid)
                continue
            note = self.get(uuid)
            if note is not None:
                notes.append(note)

        if orphans:
            logger.info("pruned_orphaned_index_entries", count=len(orphans), note_uuids=orphans)
            self._save_index([uuid for uuid in uuids if uuid not in orphans])

        return sorted(notes, key=lambda n: n.created_at, reverse=True)

    def delete(self, uuid: str) -> None:
        """Remove the record and its index entry."""
        self.storage.remove_item(self._record_key(uuid))
        uuids = self.uuids()
        if uuid in uuids:
            uuids.remove(uuid)
            self._save_index(uuids)

    def clear_all(self) -> None:
        for uuid in self.uuids():
            self.storage.remove_item(self._record_key(uuid))
        self.storage.remove_item(self._index_key)

    def uuids(self) -> list[str]:
        raw = self.storage.get_item(self._index_key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("note_index_corrupted")
            return []
        return [str(uuid) for uuid in data] if isinstance(data, list) else []

    def is_available(self) -> bool:
        return self.storage.is_available()

    def _save_index(self, uuids: list[str]) -> None:
        self.storage.set_item(self._index_key, json.dumps(uuids))
