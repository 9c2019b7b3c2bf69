# schemas.py - Response shapes shared across routers
# Request schemas live next to their router; these are returned by more than one.

from datetime import datetime
from typing import Optional

from validation import ApiModel


class OwnedOut(ApiModel):
    id: str
    user_id: str
    created_at: datetime
    updated_at: datetime


class TaskOut(OwnedOut):
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    due_date: Optional[datetime] = None
    project_id: Optional[str] = None


class ProjectOut(OwnedOut):
    title: str
    description: Optional[str] = None
    status: str


class MeetingOut(OwnedOut):
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration: int


class NoteOut(OwnedOut):
    title: str
    content: str


class TagOut(OwnedOut):
    name: str
    color: str
