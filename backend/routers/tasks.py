# routers/tasks.py - Tasks with status/priority lifecycle, due dates and tags
from datetime import datetime
from typing import ClassVar, FrozenSet, List, Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import Field, field_validator

from auth import get_current_user, get_services, owned_resource
from entities import Services
from models import TaskPriority, TaskStatus
from responses import Envelope, ListEnvelope, ok, ok_list
from schemas import TagOut, TaskOut
from storage import Record
from validation import ApiModel, PatchModel, as_utc

router = APIRouter(prefix="/api/tasks", tags=["Tasks"])


# ============================================================
# SCHEMAS
# ============================================================

class TaskCreate(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    project_id: Optional[str] = None

    @field_validator("due_date")
    @classmethod
    def due_date_utc(cls, v):
        return as_utc(v)


class TaskUpdate(PatchModel):
    NULLABLE: ClassVar[FrozenSet[str]] = frozenset({"description", "due_date", "project_id"})

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    project_id: Optional[str] = None

    @field_validator("due_date")
    @classmethod
    def due_date_utc(cls, v):
        return as_utc(v)


class TaskTagsReplace(ApiModel):
    tag_ids: List[str] = Field(default_factory=list)


# ============================================================
# LISTS
# ============================================================

@router.get("", response_model=ListEnvelope[TaskOut])
async def list_tasks(
    status: Optional[TaskStatus] = Query(None),
    priority: Optional[TaskPriority] = Query(None),
    project_id: Optional[str] = Query(None, alias="projectId"),
    tag_id: Optional[str] = Query(None, alias="tagId"),
    search: Optional[str] = Query(None, max_length=200),
    user: Record = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    rows = await services.task_queries.search(
        user["id"],
        status=status.value if status else None,
        priority=priority.value if priority else None,
        project_id=project_id,
        tag_id=tag_id,
        search=search,
    )
    return ok_list(rows)


@router.get("/today", response_model=ListEnvelope[TaskOut])
async def tasks_due_today(
    user: Record = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Tasks due on the current UTC date"""
    return ok_list(await services.task_queries.due_today(user["id"]))


@router.get("/overdue", response_model=ListEnvelope[TaskOut])
async def overdue_tasks(
    user: Record = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Tasks past their due date that are not completed"""
    return ok_list(await services.task_queries.overdue(user["id"]))


# ============================================================
# CRUD
# ============================================================

@router.post("", response_model=Envelope[TaskOut], status_code=201)
async def create_task(
    data: TaskCreate,
    user: Record = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    task = await services.tasks.create(user["id"], data.model_dump())
    return ok(task)


@router.get("/{id}", response_model=Envelope[TaskOut])
async def get_task(task: Record = Depends(owned_resource("task"))):
    return ok(task)


@router.patch("/{id}", response_model=Envelope[TaskOut])
async def update_task(
    data: TaskUpdate,
    task: Record = Depends(owned_resource("task")),
    services: Services = Depends(get_services),
):
    return ok(await services.tasks.update(task["id"], data.changes()))


@router.delete("/{id}", status_code=204, response_class=Response)
async def delete_task(
    task: Record = Depends(owned_resource("task")),
    services: Services = Depends(get_services),
):
    await services.tasks.delete(task["id"])
    return Response(status_code=204)


@router.post("/{id}/complete", response_model=Envelope[TaskOut])
async def complete_task(
    task: Record = Depends(owned_resource("task")),
    services: Services = Depends(get_services),
):
    return ok(await services.task_queries.set_status(task["id"], TaskStatus.COMPLETED))


@router.post("/{id}/reopen", response_model=Envelope[TaskOut])
async def reopen_task(
    task: Record = Depends(owned_resource("task")),
    services: Services = Depends(get_services),
):
    return ok(await services.task_queries.set_status(task["id"], TaskStatus.TODO))


# ============================================================
# TAGS
# ============================================================

@router.get("/{id}/tags", response_model=ListEnvelope[TagOut])
async def list_task_tags(
    task: Record = Depends(owned_resource("task")),
    services: Services = Depends(get_services),
):
    return ok_list(await services.task_links.list_tags(task))


@router.put("/{id}/tags", response_model=ListEnvelope[TagOut])
async def replace_task_tags(
    data: TaskTagsReplace,
    task: Record = Depends(owned_resource("task")),
    services: Services = Depends(get_services),
):
    """Replace the full set of tags on a task"""
    return ok_list(await services.task_links.replace(task, data.tag_ids))


@router.post("/{id}/tags/{tag_id}", response_model=ListEnvelope[TagOut])
async def attach_tag(
    tag_id: str,
    task: Record = Depends(owned_resource("task")),
    services: Services = Depends(get_services),
):
    return ok_list(await services.task_links.attach(task, tag_id))


@router.delete("/{id}/tags/{tag_id}", status_code=204, response_class=Response)
async def detach_tag(
    tag_id: str,
    task: Record = Depends(owned_resource("task")),
    services: Services = Depends(get_services),
):
    await services.task_links.detach(task, tag_id)
    return Response(status_code=204)
