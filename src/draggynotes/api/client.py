"""HTTP client for the remote notes REST service."""

from collections.abc import Callable
from typing import Any, TypeVar

import httpx
import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from draggynotes.api.models import (
    ApiResponse,
    BatchCreateRequest,
    BatchDeleteRequest,
    BatchDeleteResponse,
    BatchNoteResponse,
    BatchUpdateRequest,
    CreateTagRequest,
    HealthResponse,
    NoteResponse,
    TagResponse,
    UpdateTagRequest,
)
from draggynotes.errors import ApiError, AuthenticationError, NetworkError

logger = structlog.get_logger(__name__)

NOTES_PATH = "/api/notes"
TAGS_PATH = "/api/tags"

M = TypeVar("M", bound=BaseModel)


def _parse(model: type[M], data: Any, path: str) -> M:
    """Validate envelope data; a payload that does not fit the model is an ApiError."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        logger.warning("malformed_api_data", path=path, model=model.__name__, errors=e.error_count())
        raise ApiError(f"Malformed {model.__name__} from {path}", 502) from e


def _parse_list(model: type[M], data: Any, path: str) -> list[M]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise ApiError(f"Expected a list from {path}", 502)
    return [_parse(model, item, path) for item in data]


class NotesApi:
    """Thin async wrapper over the notes endpoints.

    The bearer token is read from `token_provider` on every request so login
    and logout take effect without rebuilding the client.
    """

    def __init__(self, client: httpx.AsyncClient, token_provider: Callable[[], str | None]) -> None:
        self._client = client
        self._token_provider = token_provider

    async def _request(self, method: str, path: str, json: Any | None = None) -> Any:
        """Send a request and return the envelope's `data`.

        Raises:
            AuthenticationError: on HTTP 401
            ApiError: on any other non-success status or malformed body
            NetworkError: when the server cannot be reached
        """
        headers = {"Content-Type": "application/json"}
        token = self._token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._client.request(method, path, json=json, headers=headers)
        except httpx.TransportError as e:
            logger.warning("api_request_failed", method=method, path=path, error=str(e))
            raise NetworkError from e

        if response.status_code == 401:
            raise AuthenticationError("Authentication failed. Please login again.")

        if response.is_error:
            try:
                error_data = response.json()
            except ValueError:
                error_data = {}
            if not isinstance(error_data, dict):
                error_data = {}
            raise ApiError(
                error_data.get("message") or f"API Error: {response.status_code} {response.reason_phrase}",
                response.status_code,
                error_data.get("code"),
                error_data.get("details"),
            )

        if response.status_code == 204 or not response.content:
            return None

        try:
            envelope = ApiResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise ApiError(f"Malformed response from {path}", response.status_code) from e
        if not envelope.success:
            message = envelope.message or f"Request to {path} was not successful"
            raise ApiError(message, response.status_code, details=envelope.errors)
        return envelope.data

    async def get_health(self) -> HealthResponse:
        data = await self._request("GET", "/health")
        if data is None:
            raise ApiError("No health data returned", 500)
        return _parse(HealthResponse, data, "/health")

    async def get_all_notes(self) -> list[NoteResponse]:
        data = await self._request("GET", NOTES_PATH)
        return _parse_list(NoteResponse, data, NOTES_PATH)

    async def get_note(self, uuid: str) -> NoteResponse:
        data = await self._request("GET", f"{NOTES_PATH}/{uuid}")
        if data is None:
            raise ApiError("Note not found", 404)
        return _parse(NoteResponse, data, NOTES_PATH)

    async def batch_create_notes(self, request: BatchCreateRequest) -> BatchNoteResponse:
        data = await self._request("POST", f"{NOTES_PATH}/batch", json=request.model_dump(mode="json", by_alias=True))
        return _parse(BatchNoteResponse, data or {}, f"{NOTES_PATH}/batch")

    async def batch_update_notes(self, request: BatchUpdateRequest) -> BatchNoteResponse:
        data = await self._request("PUT", f"{NOTES_PATH}/batch", json=request.model_dump(mode="json", by_alias=True))
        return _parse(BatchNoteResponse, data or {}, f"{NOTES_PATH}/batch")

    async def batch_delete_notes(self, request: BatchDeleteRequest) -> BatchDeleteResponse:
        data = await self._request("DELETE", f"{NOTES_PATH}/batch", json=request.model_dump(mode="json", by_alias=True))
        return _parse(BatchDeleteResponse, data or {}, f"{NOTES_PATH}/batch")

    async def get_all_tags(self) -> list[TagResponse]:
        data = await self._request("GET", TAGS_PATH)
        return _parse_list(TagResponse, data, TAGS_PATH)

    async def get_top_tags(self) -> list[TagResponse]:
        data = await self._request("GET", f"{TAGS_PATH}/top")
        return _parse_list(TagResponse, data, TAGS_PATH)

    async def create_tag(self, request: CreateTagRequest) -> TagResponse:
        data = await self._request("POST", TAGS_PATH, json=request.model_dump(mode="json", by_alias=True))
        if data is None:
            raise ApiError("No data returned from create tag", 500)
        return _parse(TagResponse, data, TAGS_PATH)

    async def update_tag(self, tag_id: int, request: UpdateTagRequest) -> TagResponse:
        data = await self._request("PUT", f"{TAGS_PATH}/{tag_id}", json=request.model_dump(mode="json", by_alias=True))
        if data is None:
            raise ApiError("No data returned from update tag", 500)
        return _parse(TagResponse, data, TAGS_PATH)

    async def delete_tag(self, tag_id: int) -> None:
        await self._request("DELETE", f"{TAGS_PATH}/{tag_id}")
