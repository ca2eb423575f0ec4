from typing import Annotated

from fastapi import APIRouter, Query
from pydantic import BaseModel

from draggynotes.core.modules.note.models import Tag
from draggynotes.web.deps import AppDep
from draggynotes.web.openapi import ErrorResponse

router = APIRouter(tags=["tags"])

PREDEFINED_OR_MISSING = {
    400: {"model": ErrorResponse, "description": "Predefined tags cannot be changed"},
    404: {"model": ErrorResponse, "description": "Tag not found"},
}


class TagNameRequest(BaseModel):
    name: str


@router.get("/tags", summary="List tags", operation_id="listTags")
async def list_tags(app: AppDep) -> list[Tag]:
    return app.get_all_tags()


@router.get("/tags/suggestions", summary="Tag autocomplete", operation_id="suggestTags")
async def suggest_tags(
    app: AppDep, q: Annotated[str, Query(description="Partial tag name without #")] = ""
) -> list[Tag]:
    return app.get_tag_suggestions(q)


@router.post("/tags", summary="Create tag", operation_id="createTag", status_code=201)
async def create_tag(request: TagNameRequest, app: AppDep) -> Tag:
    return await app.create_tag(request.name)


@router.patch("/tags/{tag_uuid}", summary="Rename tag", operation_id="renameTag", responses=PREDEFINED_OR_MISSING)
async def rename_tag(tag_uuid: str, request: TagNameRequest, app: AppDep) -> Tag:
    return await app.rename_tag(tag_uuid, request.name)


@router.delete(
    "/tags/{tag_uuid}", summary="Delete tag", operation_id="deleteTag", status_code=204, responses=PREDEFINED_OR_MISSING
)
async def delete_tag(tag_uuid: str, app: AppDep) -> None:
    await app.delete_tag(tag_uuid)
