from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from draggynotes.app import App
from draggynotes.config import Config
from draggynotes.errors import ApiError, StorageError, UserError
from draggynotes.web.error_handlers import (
    api_error_handler,
    general_exception_handler,
    storage_error_handler,
    user_error_handler,
)
from draggynotes.web.openapi import set_custom_openapi
from draggynotes.web.routers import notes_router, session_router, sync_router, tags_router


def create_fastapi_app(app_instance: App, config: Config) -> FastAPI:
    """Create and configure FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        """FastAPI application lifespan management."""
        # Store app instance and config in app state
        app.state.app = app_instance
        app.state.config = config
        async with app_instance.lifespan():
            yield

    app = FastAPI(title="draggynotes local API", lifespan=lifespan)

    # The UI usually runs on another origin during development
    if config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    app.include_router(notes_router, prefix="/api/v1")
    app.include_router(sync_router, prefix="/api/v1")
    app.include_router(session_router, prefix="/api/v1")
    app.include_router(tags_router, prefix="/api/v1")

    app.add_exception_handler(UserError, user_error_handler)
    app.add_exception_handler(StorageError, storage_error_handler)
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    set_custom_openapi(app)

    return app
