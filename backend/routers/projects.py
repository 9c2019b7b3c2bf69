# routers/projects.py - Projects group tasks; deleting one leaves its tasks in place
from typing import ClassVar, FrozenSet, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import Field

from auth import get_current_user, get_services, owned_resource
from entities import Services
from models import ProjectStatus
from responses import Envelope, ListEnvelope, ok, ok_list
from schemas import ProjectOut, TaskOut
from storage import Record
from validation import ApiModel, PatchModel

router = APIRouter(prefix="/api/projects", tags=["Projects"])


class ProjectCreate(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    status: ProjectStatus = ProjectStatus.ACTIVE


class ProjectUpdate(PatchModel):
    NULLABLE: ClassVar[FrozenSet[str]] = frozenset({"description"})

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    status: Optional[ProjectStatus] = None


@router.get("", response_model=ListEnvelope[ProjectOut])
async def list_projects(
    user: Record = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return ok_list(await services.projects.list_for_owner(user["id"]))


@router.post("", response_model=Envelope[ProjectOut], status_code=201)
async def create_project(
    data: ProjectCreate,
    user: Record = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return ok(await services.projects.create(user["id"], data.model_dump()))


@router.get("/{id}", response_model=Envelope[ProjectOut])
async def get_project(project: Record = Depends(owned_resource("project"))):
    return ok(project)


@router.get("/{id}/tasks", response_model=ListEnvelope[TaskOut])
async def list_project_tasks(
    project: Record = Depends(owned_resource("project")),
    services: Services = Depends(get_services),
):
    return ok_list(await services.tasks.list_for_owner(project["user_id"], project_id=project["id"]))


@router.patch("/{id}", response_model=Envelope[ProjectOut])
async def update_project(
    data: ProjectUpdate,
    project: Record = Depends(owned_resource("project")),
    services: Services = Depends(get_services),
):
    return ok(await services.projects.update(project["id"], data.changes()))


@router.delete("/{id}", status_code=204, response_class=Response)
async def delete_project(
    project: Record = Depends(owned_resource("project")),
    services: Services = Depends(get_services),
):
    """Delete a project; its tasks keep existing without a project"""
    await services.projects.delete(project["id"])
    return Response(status_code=204)
