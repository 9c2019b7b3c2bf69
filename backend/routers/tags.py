# routers/tags.py - Coloured labels that can be attached to tasks
from typing import Optional

from fastapi import APIRouter, Depends, Response
from pydantic import Field, field_validator

from auth import get_current_user, get_services, owned_resource
from entities import Services
from models import DEFAULT_TAG_COLOR
from responses import Envelope, ListEnvelope, ok, ok_list
from schemas import TagOut, TaskOut
from storage import Record
from validation import ApiModel, PatchModel, validate_hex_color

router = APIRouter(prefix="/api/tags", tags=["Tags"])


class TagCreate(ApiModel):
    name: str = Field(..., min_length=1, max_length=50)
    color: str = DEFAULT_TAG_COLOR

    @field_validator("color")
    @classmethod
    def check_color(cls, v):
        return validate_hex_color(v)


class TagUpdate(PatchModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    color: Optional[str] = None

    @field_validator("color")
    @classmethod
    def check_color(cls, v):
        return validate_hex_color(v)


@router.get("", response_model=ListEnvelope[TagOut])
async def list_tags(
    user: Record = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return ok_list(await services.tags.list_for_owner(user["id"]))


@router.post("", response_model=Envelope[TagOut], status_code=201)
async def create_tag(
    data: TagCreate,
    user: Record = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return ok(await services.tags.create(user["id"], data.model_dump()))


@router.get("/{id}", response_model=Envelope[TagOut])
async def get_tag(tag: Record = Depends(owned_resource("tag"))):
    return ok(tag)


@router.get("/{id}/tasks", response_model=ListEnvelope[TaskOut])
async def list_tag_tasks(
    tag: Record = Depends(owned_resource("tag")),
    user: Record = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """The caller's tasks carrying this tag"""
    rows = await services.task_queries.search(user["id"], tag_id=tag["id"])
    return ok_list(rows)


@router.patch("/{id}", response_model=Envelope[TagOut])
async def update_tag(
    data: TagUpdate,
    tag: Record = Depends(owned_resource("tag")),
    services: Services = Depends(get_services),
):
    return ok(await services.tags.update(tag["id"], data.changes()))


@router.delete("/{id}", status_code=204, response_class=Response)
async def delete_tag(
    tag: Record = Depends(owned_resource("tag")),
    services: Services = Depends(get_services),
):
    """Delete a tag and remove it from every task"""
    await services.tags.delete(tag["id"])
    return Response(status_code=204)
