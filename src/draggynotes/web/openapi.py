from typing import Any

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi
from pydantic import BaseModel, Field


def set_custom_openapi(app: FastAPI) -> None:
    def custom_openapi() -> dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        openapi_schema = get_openapi(
            title="draggynotes local API",
            version="0.1.0",
            summary="Offline-first sticky notes: local store, sync queue and status",
            routes=app.routes,
        )
        openapi_schema["tags"] = [
            {"name": "notes", "description": "Local note records and UI operations"},
            {"name": "sync", "description": "Sync status and control"},
            {"name": "session", "description": "Remote API session"},
            {"name": "tags", "description": "Predefined and user tags"},
        ]

        app.openapi_schema = openapi_schema
        return app.openapi_schema

    app.openapi = custom_openapi  # type: ignore[method-assign]


class ErrorResponse(BaseModel):
    """Standard error response format."""

    message: str = Field(..., description="Human-readable error message")
    type: str | None = Field(None, description="Machine-readable error type")
