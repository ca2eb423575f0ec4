from fastapi import APIRouter
from pydantic import BaseModel

from draggynotes.api.models import NoteSyncEvent
from draggynotes.core.modules.note.models import Note
from draggynotes.core.modules.sync.models import SyncStatus
from draggynotes.web.deps import AppDep

router = APIRouter(tags=["sync"])


class SyncTriggerResponse(BaseModel):
    started: bool


class NetworkStateRequest(BaseModel):
    is_online: bool


class RemoteEventResponse(BaseModel):
    applied: int


@router.get("/sync/status", summary="Sync status snapshot", operation_id="getSyncStatus")
async def get_status(app: AppDep) -> SyncStatus:
    return app.get_sync_status()


@router.post(
    "/sync/trigger",
    summary="Run a sync pass",
    description="No-op (`started: false`) when offline, signed out, the API is down or a pass is already running.",
    operation_id="triggerSync",
)
async def trigger_sync(app: AppDep) -> SyncTriggerResponse:
    return SyncTriggerResponse(started=await app.trigger_sync())


@router.post("/sync/retry", summary="Retry failed items now", operation_id="retrySync")
async def retry_failed(app: AppDep) -> SyncTriggerResponse:
    return SyncTriggerResponse(started=await app.retry_failed_items())


@router.post("/sync/network", summary="Report connectivity change", operation_id="setNetworkState", status_code=204)
async def set_network_state(request: NetworkStateRequest, app: AppDep) -> None:
    await app.set_online(request.is_online)


@router.post("/sync/reload", summary="Full reconciliation with the server", operation_id="forceReload")
async def force_reload(app: AppDep) -> list[Note]:
    return await app.force_reload("api")


@router.post("/sync/events", summary="Apply a push event from the server", operation_id="applyRemoteEvent")
async def apply_remote_event(event: NoteSyncEvent, app: AppDep) -> RemoteEventResponse:
    return RemoteEventResponse(applied=await app.apply_remote_event(event))
