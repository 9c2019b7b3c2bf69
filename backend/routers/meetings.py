# routers/meetings.py - Meetings with a start/end window and derived duration
from datetime import datetime
from typing import ClassVar, FrozenSet, Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import Field, field_validator, model_validator

from auth import get_current_user, get_services, owned_resource
from entities import Services
from responses import Envelope, ListEnvelope, ok, ok_list
from schemas import MeetingOut
from storage import Record
from validation import ApiModel, PatchModel, as_utc

router = APIRouter(prefix="/api/meetings", tags=["Meetings"])


class MeetingCreate(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    start_time: datetime
    end_time: datetime

    @field_validator("start_time", "end_time")
    @classmethod
    def times_utc(cls, v):
        return as_utc(v)

    @model_validator(mode="after")
    def end_after_start(self):
        if self.end_time <= self.start_time:
            raise ValueError("endTime must be after startTime")
        return self


class MeetingUpdate(PatchModel):
    NULLABLE: ClassVar[FrozenSet[str]] = frozenset({"description"})

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def times_utc(cls, v):
        return as_utc(v)


@router.get("", response_model=ListEnvelope[MeetingOut])
async def list_meetings(
    upcoming: bool = Query(False),
    user: Record = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """All meetings by start time, or only those that have not started yet"""
    return ok_list(await services.meeting_queries.search(user["id"], upcoming=upcoming))


@router.post("", response_model=Envelope[MeetingOut], status_code=201)
async def create_meeting(
    data: MeetingCreate,
    user: Record = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return ok(await services.meetings.create(user["id"], data.model_dump()))


@router.get("/{id}", response_model=Envelope[MeetingOut])
async def get_meeting(meeting: Record = Depends(owned_resource("meeting"))):
    return ok(meeting)


@router.patch("/{id}", response_model=Envelope[MeetingOut])
async def update_meeting(
    data: MeetingUpdate,
    meeting: Record = Depends(owned_resource("meeting")),
    services: Services = Depends(get_services),
):
    """Partial update; the duration is recomputed when either bound changes"""
    return ok(await services.meetings.update(meeting["id"], data.changes()))


@router.delete("/{id}", status_code=204, response_class=Response)
async def delete_meeting(
    meeting: Record = Depends(owned_resource("meeting")),
    services: Services = Depends(get_services),
):
    await services.meetings.delete(meeting["id"])
    return Response(status_code=204)
