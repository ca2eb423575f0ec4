"""Tests for key-value storage backends."""

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from draggynotes.config import Config
from draggynotes.core.core import Core
from draggynotes.core.storage import CHECK_KEY, FileStorage, MemoryStorage, MongoStorage, create_storage
from draggynotes.errors import StorageError


class FakeCollection:
    """Just enough of a pymongo collection for MongoStorage."""

    def __init__(self, fail: bool = False):
        self.docs: dict[str, dict] = {}
        self.fail = fail

    def _check(self):
        if self.fail:
            raise ServerSelectionTimeoutError("no servers")

    def find_one(self, query):
        self._check()
        return self.docs.get(query["_id"])

    def replace_one(self, query, doc, upsert=False):
        self._check()
        assert upsert
        self.docs[query["_id"]] = doc

    def delete_one(self, query):
        self._check()
        self.docs.pop(query["_id"], None)

    def find(self, query, projection):
        self._check()
        return [{"_id": key} for key in self.docs]


class BrokenStorage(MemoryStorage):
    def set_item(self, key, value):
        raise StorageError("disk full")


class TestMemoryStorage:
    """Tests for the in-memory backend."""

    def test_set_get_remove(self):
        """Test basic localStorage-like behaviour."""
        storage = MemoryStorage()
        assert storage.get_item("a") is None
        storage.set_item("a", "1")
        assert storage.get_item("a") == "1"
        storage.set_item("a", "2")
        assert storage.get_item("a") == "2"
        storage.remove_item("a")
        assert storage.get_item("a") is None

    def test_remove_missing_key_is_noop(self):
        """Test that removing an absent key does not raise."""
        MemoryStorage().remove_item("missing")

    def test_availability_check_leaves_no_key_behind(self):
        """Test that the availability check cleans up after itself."""
        storage = MemoryStorage()
        assert storage.is_available() is True
        assert CHECK_KEY not in storage.keys()


class TestFileStorage:
    """Tests for the one-file-per-key backend."""

    def test_roundtrip_and_keys(self, tmp_path):
        """Test values survive a new instance on the same directory."""
        FileStorage(tmp_path).set_item("draggy-notes-list", '["a"]')
        storage = FileStorage(tmp_path)
        assert storage.get_item("draggy-notes-list") == '["a"]'
        assert storage.keys() == ["draggy-notes-list"]

    def test_keys_with_path_characters_are_quoted(self, tmp_path):
        """Test that keys containing slashes stay inside the directory."""
        storage = FileStorage(tmp_path)
        storage.set_item("../escape/key", "x")
        assert storage.get_item("../escape/key") == "x"
        assert [p.parent for p in tmp_path.iterdir()] == [tmp_path]

    def test_no_temp_files_left_after_write(self, tmp_path):
        """Test that writes replace atomically without leftovers."""
        storage = FileStorage(tmp_path)
        storage.set_item("k", "v1")
        storage.set_item("k", "v2")
        assert [p.name for p in tmp_path.iterdir()] == ["k"]

    def test_missing_directory_reads_empty(self, tmp_path):
        """Test that an unused directory behaves as empty storage."""
        storage = FileStorage(tmp_path / "nope")
        assert storage.get_item("k") is None
        assert storage.keys() == []

    def test_unwritable_location_reports_unavailable(self, tmp_path):
        """Test that an OS error becomes StorageError and fails the availability check."""
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        storage = FileStorage(blocker / "sub")
        with pytest.raises(StorageError):
            storage.set_item("k", "v")
        assert storage.is_available() is False


class TestMongoStorage:
    """Tests for the MongoDB backend against a fake collection."""

    def test_upsert_and_remove(self):
        """Test that set_item upserts a document per key."""
        collection = FakeCollection()
        storage = MongoStorage(collection)
        storage.set_item("k", "v1")
        storage.set_item("k", "v2")
        assert collection.docs == {"k": {"_id": "k", "value": "v2"}}
        assert storage.get_item("k") == "v2"
        assert storage.keys() == ["k"]
        storage.remove_item("k")
        assert storage.get_item("k") is None

    def test_driver_errors_wrapped(self):
        """Test that pymongo errors surface as StorageError."""
        storage = MongoStorage(FakeCollection(fail=True))
        with pytest.raises(StorageError):
            storage.get_item("k")
        assert storage.is_available() is False


class TestCreateStorage:
    """Tests for backend selection and degraded startup."""

    def test_backend_selection(self, tmp_path):
        """Test that config picks the backend."""
        assert isinstance(create_storage(Config(_env_file=None, storage_backend="memory")), MemoryStorage)
        file_config = Config(_env_file=None, storage_backend="file", storage_path=str(tmp_path))
        assert isinstance(create_storage(file_config), FileStorage)

    async def test_core_degrades_to_memory(self, config):
        """Test that unavailable storage falls back to memory and is reported."""
        core = Core(config, storage=BrokenStorage())
        assert isinstance(core.storage, MemoryStorage)
        assert not isinstance(core.storage, BrokenStorage)
        assert core.storage_available is False
        await core.on_stop()

    async def test_core_keeps_working_storage(self, config):
        """Test that a healthy backend is used as is."""
        storage = MemoryStorage()
        core = Core(config, storage=storage)
        assert core.storage is storage
        assert core.storage_available is True
        await core.on_stop()
