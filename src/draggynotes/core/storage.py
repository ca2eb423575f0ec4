"""Key-value storage backends shaped like browser localStorage.

Every backend stores plain strings under string keys. Records are JSON
encoded by their owners; the backends never interpret values.
"""

import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote, urlparse

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from draggynotes.config import Config
from draggynotes.errors import StorageError

CHECK_KEY = "__storage_test__"


class KeyValueStorage(ABC):
    """Minimal localStorage contract: get, set, remove, enumerate."""

    @abstractmethod
    def get_item(self, key: str) -> str | None: ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None: ...

    @abstractmethod
    def remove_item(self, key: str) -> None: ...

    @abstractmethod
    def keys(self) -> list[str]: ...

    def is_available(self) -> bool:
        """Check the backend with a write and a delete. Never raises."""
        try:
            self.set_item(CHECK_KEY, CHECK_KEY)
            self.remove_item(CHECK_KEY)
        except StorageError:
            return False
        return True

    def close(self) -> None:
        """Release backend resources."""


class MemoryStorage(KeyValueStorage):
    """Process-local storage. Also used as the degraded fallback."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class FileStorage(KeyValueStorage):
    """One file per key inside a directory.

    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, so a reader sees either the old or the new value.
    """

    def __init__(self, path: str | Path) -> None:
        self._root = Path(path)

    def _path(self, key: str) -> Path:
        return self._root / quote(key, safe="")

    def get_item(self, key: str) -> str | None:
        try:
            return self._path(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read '{key}': {e}") from e

    def set_item(self, key: str, value: str) -> None:
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._root, prefix=".tmp-")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(value)
                os.replace(tmp_name, self._path(key))
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write '{key}': {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to remove '{key}': {e}") from e

    def keys(self) -> list[str]:
        if not self._root.exists():
            return []
        return [unquote(p.name) for p in self._root.iterdir() if p.is_file() and not p.name.startswith(".tmp-")]


class MongoStorage(KeyValueStorage):
    """Key-value documents `{_id: key, value: str}` in a MongoDB collection."""

    def __init__(
        self, collection: Collection[dict[str, Any]], client: MongoClient[dict[str, Any]] | None = None
    ) -> None:
        self._collection = collection
        self._client = client

    @classmethod
    def from_url(cls, database_url: str, collection_name: str = "kv") -> "MongoStorage":
        client: MongoClient[dict[str, Any]] = MongoClient(database_url, serverSelectionTimeoutMS=3000)
        database = client.get_database(urlparse(database_url).path[1:] or "draggynotes")
        return cls(database.get_collection(collection_name), client)

    def get_item(self, key: str) -> str | None:
        try:
            doc = self._collection.find_one({"_id": key})
        except PyMongoError as e:
            raise StorageError(f"Failed to read '{key}': {e}") from e
        return None if doc is None else str(doc["value"])

    def set_item(self, key: str, value: str) -> None:
        try:
            self._collection.replace_one({"_id": key}, {"_id": key, "value": value}, upsert=True)
        except PyMongoError as e:
            raise StorageError(f"Failed to write '{key}': {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            self._collection.delete_one({"_id": key})
        except PyMongoError as e:
            raise StorageError(f"Failed to remove '{key}': {e}") from e

    def keys(self) -> list[str]:
        try:
            return [str(doc["_id"]) for doc in self._collection.find({}, {"_id": 1})]
        except PyMongoError as e:
            raise StorageError(f"Failed to list keys: {e}") from e

    def close(self) -> None:
        if self._client is not None:
            self._client.close()


def create_storage(config: Config) -> KeyValueStorage:
    """Build the storage backend named in config."""
    if config.storage_backend == "memory":
        return MemoryStorage()
    if config.storage_backend == "mongo":
        return MongoStorage.from_url(config.database_url)
    return FileStorage(config.storage_path)
