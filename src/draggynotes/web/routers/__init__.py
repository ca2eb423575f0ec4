from draggynotes.web.routers.notes import router as notes_router
from draggynotes.web.routers.session import router as session_router
from draggynotes.web.routers.sync import router as sync_router
from draggynotes.web.routers.tags import router as tags_router

__all__ = [
    "notes_router",
    "session_router",
    "sync_router",
    "tags_router",
]
