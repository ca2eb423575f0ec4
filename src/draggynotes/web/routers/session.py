from fastapi import APIRouter
from pydantic import BaseModel, Field

from draggynotes.web.deps import AppDep
from draggynotes.web.openapi import ErrorResponse

router = APIRouter(tags=["session"])


class LoginRequest(BaseModel):
    """Bearer token issued by the remote notes service."""

    token: str = Field(..., description="Token sent as `Authorization: Bearer` to the remote API")
    user_id: int | None = Field(None, description="Remote user id, scopes tags and push events")


class SessionResponse(BaseModel):
    is_authenticated: bool


@router.get("/session", summary="Session state", operation_id="getSession")
async def get_session(app: AppDep) -> SessionResponse:
    return SessionResponse(is_authenticated=app.is_authenticated())


@router.post(
    "/session/login",
    summary="Sign in",
    description="Stores the token and starts a full reconciliation with the server.",
    operation_id="login",
    status_code=204,
    responses={400: {"model": ErrorResponse, "description": "Empty token"}},
)
async def login(request: LoginRequest, app: AppDep) -> None:
    await app.login(request.token, request.user_id)


@router.post("/session/logout", summary="Sign out", operation_id="logout", status_code=204)
async def logout(app: AppDep) -> None:
    await app.logout()
