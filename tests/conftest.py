"""Shared pytest fixtures."""

import json
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime
from typing import Any

import httpx
import pytest

from draggynotes.config import Config
from draggynotes.core.core import Core
from draggynotes.core.storage import MemoryStorage

USER_ID = 7


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _envelope(data: Any = None, success: bool = True, message: str | None = None) -> dict[str, Any]:
    return {"success": success, "message": message, "data": data, "errors": None}


class FakeNotesServer:
    """In-memory stand-in for the remote notes REST service, served through httpx.MockTransport.

    Knobs:
        offline: every request raises a transport error
        status_override: every request answers with this HTTP status
        fail_uuids / conflict_uuids / omit_uuids: per-note batch outcomes
        index_only_results: failures and conflicts name the request index, not the uuid
        malformed_batch: batch successes come back without the required note fields
        health_data: replaces the /health payload
        on_request: called with (method, path) before a request is answered
    """

    def __init__(self) -> None:
        self.notes: dict[str, dict[str, Any]] = {}
        self.tags: dict[int, dict[str, Any]] = {}
        self.requests: list[tuple[str, str, Any]] = []
        self.offline = False
        self.status_override: int | None = None
        self.fail_uuids: set[str] = set()
        self.conflict_uuids: set[str] = set()
        self.omit_uuids: set[str] = set()
        self.index_only_results = False
        self.malformed_batch = False
        self.health_data: Any = None
        self.on_request: Callable[[str, str], None] | None = None
        self._next_id = 1
        self._next_tag_id = 100

    # Helpers for tests

    def seed_note(self, uuid: str, title: str = "Server note", sync_version: int = 1, **extra: Any) -> dict[str, Any]:
        """Put a note on the server as if another client had created it."""
        note_id = self._take_id()
        note = {
            "id": note_id,
            "uuid": uuid,
            "title": title,
            "content": extra.pop("content", ""),
            "date": _now_iso(),
            "color": "#fff59d",
            "isDisplayed": True,
            "isPinned": False,
            "position": {"x": 0, "y": 0},
            "createdAt": _now_iso(),
            "updatedAt": _now_iso(),
            "tasks": [],
            "isTaskMode": False,
            "tags": [],
            "userId": USER_ID,
            "syncVersion": sync_version,
            **extra,
        }
        self.notes[uuid] = note
        return note

    def calls(self, method: str, path: str) -> list[Any]:
        return [body for m, p, body in self.requests if m == method and p == path]

    # Transport

    def handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, request.url.path, body))

        if self.on_request is not None:
            self.on_request(request.method, request.url.path)
        if self.offline:
            raise httpx.ConnectError("Server unreachable", request=request)
        if self.status_override is not None:
            return httpx.Response(self.status_override, json={"message": "Forced failure", "code": "FORCED"})

        path = request.url.path
        if path == "/health":
            health = self.health_data or {"status": "Healthy", "timestamp": _now_iso()}
            return httpx.Response(200, json=_envelope(health))
        if path == "/api/notes/batch" and self.malformed_batch and request.method in ("POST", "PUT"):
            broken = [{"id": self._take_id(), "uuid": payload["uuid"]} for payload in body["notes"]]
            return httpx.Response(200, json=_envelope({"successful": broken}))
        if path == "/api/notes" and request.method == "GET":
            return httpx.Response(200, json=_envelope(list(self.notes.values())))
        if path == "/api/notes/batch":
            if request.method == "POST":
                return httpx.Response(200, json=_envelope(self._batch_create(body["notes"])))
            if request.method == "PUT":
                return httpx.Response(200, json=_envelope(self._batch_update(body["notes"])))
            if request.method == "DELETE":
                return httpx.Response(200, json=_envelope(self._batch_delete(body["ids"])))
        if path.startswith("/api/notes/") and request.method == "GET":
            note = self.notes.get(path.rsplit("/", 1)[-1])
            if note is None:
                return httpx.Response(404, json={"message": "Note not found"})
            return httpx.Response(200, json=_envelope(note))
        if path.startswith("/api/tags"):
            return self._handle_tags(request.method, path, body)
        return httpx.Response(404, json={"message": f"No route {request.method} {path}"})

    def _batch_create(self, payloads: list[dict[str, Any]]) -> dict[str, Any]:
        result: dict[str, list[Any]] = {"successful": [], "failed": [], "errors": [], "conflicts": []}
        for index, payload in enumerate(payloads):
            uuid = payload["uuid"]
            if uuid in self.omit_uuids:
                continue
            if uuid in self.fail_uuids:
                result["failed"].append(self._identify({"uuid": uuid, "index": index, "error": "Rejected"}, "uuid"))
                continue
            if uuid in self.conflict_uuids:
                result["conflicts"].append(
                    self._identify({"noteUuid": uuid, "index": index, "conflictType": "version_mismatch"}, "noteUuid")
                )
                continue
            existing = self.notes.get(uuid)
            note_id = existing["id"] if existing else self._take_id()
            self.notes[uuid] = self._server_note(payload, note_id, 1, existing)
            result["successful"].append(self.notes[uuid])
        return result

    def _batch_update(self, payloads: list[dict[str, Any]]) -> dict[str, Any]:
        result: dict[str, list[Any]] = {"successful": [], "failed": [], "errors": [], "conflicts": []}
        for index, payload in enumerate(payloads):
            uuid = payload["uuid"]
            stored = self.notes.get(uuid)
            if uuid in self.omit_uuids:
                continue
            if uuid in self.fail_uuids or stored is None:
                result["failed"].append(self._identify({"uuid": uuid, "index": index, "error": "Rejected"}, "uuid"))
                continue
            if uuid in self.conflict_uuids or payload["syncVersion"] != stored["syncVersion"]:
                conflict = {
                    "noteUuid": uuid,
                    "index": index,
                    "conflictType": "version_mismatch",
                    "serverSyncVersion": stored["syncVersion"],
                }
                result["conflicts"].append(self._identify(conflict, "noteUuid"))
                continue
            self.notes[uuid] = self._server_note(payload, stored["id"], stored["syncVersion"] + 1, stored)
            result["successful"].append(self.notes[uuid])
        return result

    def _batch_delete(self, ids: list[int]) -> dict[str, Any]:
        result: dict[str, list[Any]] = {"successful": [], "failed": [], "errors": []}
        by_id = {note["id"]: uuid for uuid, note in self.notes.items()}
        for index, note_id in enumerate(ids):
            uuid = by_id.get(note_id)
            if uuid is None or uuid in self.fail_uuids:
                result["failed"].append({"id": note_id, "error": "Not found"})
                continue
            del self.notes[uuid]
            result["successful"].append({"id": note_id, "index": index})
        return result

    def _handle_tags(self, method: str, path: str, body: Any) -> httpx.Response:
        if path == "/api/tags" and method == "GET":
            return httpx.Response(200, json=_envelope(list(self.tags.values())))
        if path == "/api/tags/top" and method == "GET":
            top = sorted(self.tags.values(), key=lambda t: t["usageCount"], reverse=True)[:5]
            return httpx.Response(200, json=_envelope(top))
        if path == "/api/tags" and method == "POST":
            tag_id = self._next_tag_id
            self._next_tag_id += 1
            self.tags[tag_id] = tag = {
                "id": tag_id,
                "uuid": f"server-tag-{tag_id}",
                "name": body["name"],
                "userId": USER_ID,
                "usageCount": 1,
            }
            return httpx.Response(200, json=_envelope(tag))
        tag_id = int(path.rsplit("/", 1)[-1])
        if tag_id not in self.tags:
            return httpx.Response(404, json={"message": "Tag not found"})
        if method == "PUT":
            self.tags[tag_id] = {**self.tags[tag_id], "name": body["name"]}
            return httpx.Response(200, json=_envelope(self.tags[tag_id]))
        del self.tags[tag_id]
        return httpx.Response(204)

    def _server_note(
        self, payload: dict[str, Any], note_id: int, sync_version: int, existing: dict[str, Any] | None
    ) -> dict[str, Any]:
        tasks = payload.get("noteTasks") or payload.get("tasks") or []
        return {
            "id": note_id,
            "uuid": payload["uuid"],
            "title": payload["title"],
            "content": payload["content"],
            "date": payload.get("date") or _now_iso(),
            "color": payload["color"],
            "isDisplayed": payload["isDisplayed"],
            "isPinned": payload.get("isPinned"),
            "position": payload["position"],
            "createdAt": existing["createdAt"] if existing else _now_iso(),
            "updatedAt": _now_iso(),
            "tasks": [
                {
                    "id": task.get("id") or 1000 + i,
                    "uuid": task["uuid"],
                    "text": task["text"],
                    "completed": task["completed"],
                }
                for i, task in enumerate(tasks)
            ],
            "isTaskMode": payload.get("isTaskMode"),
            "tags": [
                {"id": 500 + i, "uuid": f"server-tag-{name.lower()}", "name": name}
                for i, name in enumerate(payload.get("tagNames") or [])
            ],
            "userId": USER_ID,
            "syncVersion": sync_version,
        }

    def _identify(self, entry: dict[str, Any], uuid_key: str) -> dict[str, Any]:
        if self.index_only_results:
            entry.pop(uuid_key)
        return entry

    def _take_id(self) -> int:
        note_id = self._next_id
        self._next_id += 1
        return note_id


@pytest.fixture
def user_id() -> int:
    return USER_ID


@pytest.fixture
def server() -> FakeNotesServer:
    return FakeNotesServer()


@pytest.fixture
def config() -> Config:
    return Config(
        _env_file=None,
        api_base_url="http://notes.test",
        storage_backend="memory",
        auto_sync=False,
        retry_delay_seconds=60,
        max_retry_attempts=3,
        sync_batch_size=50,
    )


@pytest.fixture
async def http_client(server: FakeNotesServer) -> AsyncGenerator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(server.handle), base_url="http://notes.test") as client:
        yield client


@pytest.fixture
async def core(config: Config, http_client: httpx.AsyncClient) -> AsyncGenerator[Core]:
    """Started core with in-memory storage, talking to the fake server. Not logged in."""
    instance = Core(config, storage=MemoryStorage(), http_client=http_client)
    async with instance.lifespan():
        yield instance


@pytest.fixture
async def online_core(core: Core) -> Core:
    """Logged in with the API reachable; the login reconciliation has already run."""
    await core.services.session.login("test-token", USER_ID)
    await core.services.sync.check_api_health()
    return core
