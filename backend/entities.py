# entities.py - Per-entity rules, queries and the service container
#
# Each entity is a CrudService configured with an EntitySpec. Cross-entity
# rules (a task's project must belong to the caller, deleting a tag removes
# its task links, ...) live in the hooks below and run inside the write's
# transaction.

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from crud import CrudService, EntitySpec, next_timestamp
from errors import ForeignKeyError, NotFoundError, ValidationError
from logging_system import LogCategory, StructuredLogger
from models import DEFAULT_TAG_COLOR, ProjectStatus, TaskPriority, TaskStatus, utcnow
from storage import Record, Storage, StorageTransaction


# ============================================================
# TASKS
# ============================================================

async def _check_project(tx: StorageTransaction, owner_id: str, project_id: Optional[str]) -> None:
    if project_id is None:
        return
    project = await tx.get("project", project_id)
    if project is None or project["user_id"] != owner_id:
        raise ForeignKeyError("project")


async def _task_prepare_create(tx, owner_id, values):
    await _check_project(tx, owner_id, values.get("project_id"))


async def _task_prepare_update(tx, current, changes):
    if "project_id" in changes:
        await _check_project(tx, current["user_id"], changes["project_id"])


async def _task_before_delete(tx, record):
    await tx.delete_where("task_tag", {"task_id": record["id"]})


TASK = EntitySpec(
    entity="task",
    label="Task",
    defaults={
        "description": None,
        "status": TaskStatus.TODO.value,
        "priority": TaskPriority.MEDIUM.value,
        "due_date": None,
        "project_id": None,
    },
    prepare_create=_task_prepare_create,
    prepare_update=_task_prepare_update,
    before_delete=_task_before_delete,
)


# ============================================================
# PROJECTS
# ============================================================

async def _project_before_delete(tx, record):
    # Tasks outlive their project; they only lose the reference
    await tx.update_where(
        "task", {"project_id": record["id"]}, {"project_id": None, "updated_at": utcnow()},
    )


PROJECT = EntitySpec(
    entity="project",
    label="Project",
    defaults={"description": None, "status": ProjectStatus.ACTIVE.value},
    before_delete=_project_before_delete,
)


# ============================================================
# MEETINGS
# ============================================================

def meeting_duration(start: datetime, end: datetime) -> int:
    """Whole minutes between start and end, rounded."""
    return round((end - start).total_seconds() / 60)


def _check_meeting_window(start: datetime, end: datetime) -> None:
    if end <= start:
        raise ValidationError(
            "endTime must be after startTime",
            details=[{
                "field": "endTime",
                "location": "body",
                "message": "endTime must be after startTime",
                "type": "value_error",
            }],
        )


async def _meeting_prepare_create(tx, owner_id, values):
    _check_meeting_window(values["start_time"], values["end_time"])
    values["duration"] = meeting_duration(values["start_time"], values["end_time"])


async def _meeting_prepare_update(tx, current, changes):
    if "start_time" not in changes and "end_time" not in changes:
        return
    start = changes.get("start_time", current["start_time"])
    end = changes.get("end_time", current["end_time"])
    _check_meeting_window(start, end)
    changes["duration"] = meeting_duration(start, end)


MEETING = EntitySpec(
    entity="meeting",
    label="Meeting",
    order_by=("start_time",),
    defaults={"description": None},
    prepare_create=_meeting_prepare_create,
    prepare_update=_meeting_prepare_update,
)


# ============================================================
# NOTES & TAGS
# ============================================================

NOTE = EntitySpec(entity="note", label="Note", order_by=("-updated_at",))


async def _tag_before_delete(tx, record):
    await tx.delete_where("task_tag", {"tag_id": record["id"]})


TAG = EntitySpec(
    entity="tag",
    label="Tag",
    order_by=("name",),
    defaults={"color": DEFAULT_TAG_COLOR},
    before_delete=_tag_before_delete,
)

TASK_TAG = EntitySpec(entity="task_tag", label="Task tag", timestamps=("created_at",))


# ============================================================
# ACCOUNTS
# ============================================================

USER = EntitySpec(entity="user", label="User", owned=False, defaults={"name": None})

REVOKED_TOKEN = EntitySpec(
    entity="revoked_token",
    label="Revoked token",
    owned=False,
    timestamps=("created_at",),
    caller_assigned_id=True,
)


# ============================================================
# QUERIES
# ============================================================

def _contains(record: Record, needle: str, fields: Iterable[str]) -> bool:
    needle = needle.lower()
    return any(needle in (record.get(f) or "").lower() for f in fields)


class TaskQueries:
    """Filtered views over a user's tasks."""

    def __init__(self, tasks: CrudService, storage: Storage):
        self.tasks = tasks
        self.storage = storage

    async def search(
        self,
        owner_id: str,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        project_id: Optional[str] = None,
        tag_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Record]:
        filters = {}
        if status:
            filters["status"] = status
        if priority:
            filters["priority"] = priority
        if project_id:
            filters["project_id"] = project_id
        if tag_id:
            filters["id"] = await self._task_ids_with_tag(owner_id, tag_id)
        rows = await self.tasks.list_for_owner(owner_id, **filters)
        if search:
            rows = [r for r in rows if _contains(r, search, ("title", "description"))]
        return rows

    async def _task_ids_with_tag(self, owner_id: str, tag_id: str) -> List[str]:
        async with self.storage.transaction() as tx:
            links = await tx.list("task_tag", {"tag_id": tag_id, "user_id": owner_id})
        return [link["task_id"] for link in links]

    async def due_today(self, owner_id: str, now: Optional[datetime] = None) -> List[Record]:
        today = (now or utcnow()).date()
        rows = await self.tasks.list_for_owner(owner_id, order_by=("due_date", "-created_at"))
        return [r for r in rows if r["due_date"] is not None and r["due_date"].date() == today]

    async def overdue(self, owner_id: str, now: Optional[datetime] = None) -> List[Record]:
        now = now or utcnow()
        rows = await self.tasks.list_for_owner(owner_id, order_by=("due_date", "-created_at"))
        return [
            r for r in rows
            if r["due_date"] is not None
            and r["due_date"] < now
            and r["status"] != TaskStatus.COMPLETED.value
        ]

    async def set_status(self, task_id: str, status: TaskStatus) -> Record:
        return await self.tasks.update(task_id, {"status": status.value})


class MeetingQueries:
    def __init__(self, meetings: CrudService):
        self.meetings = meetings

    async def search(self, owner_id: str, upcoming: bool = False, now: Optional[datetime] = None) -> List[Record]:
        rows = await self.meetings.list_for_owner(owner_id)
        if upcoming:
            now = now or utcnow()
            rows = [r for r in rows if r["start_time"] >= now]
        return rows


class NoteQueries:
    def __init__(self, notes: CrudService):
        self.notes = notes

    async def search(self, owner_id: str, search: Optional[str] = None) -> List[Record]:
        rows = await self.notes.list_for_owner(owner_id)
        if search:
            rows = [r for r in rows if _contains(r, search, ("title", "content"))]
        return rows


class TaskTagLinks:
    """Many-to-many links between a task and the caller's tags."""

    def __init__(self, links: CrudService, storage: Storage, logger: StructuredLogger):
        self.links = links
        self.storage = storage
        self.logger = logger

    @staticmethod
    async def _owned_tags(tx: StorageTransaction, owner_id: str, tag_ids: Iterable[str]) -> List[Record]:
        wanted = set(tag_ids)
        if not wanted:
            return []
        tags = await tx.list("tag", {"id": list(wanted), "user_id": owner_id})
        if len(tags) != len(wanted):
            raise ForeignKeyError("tag")
        return tags

    @staticmethod
    async def _tags_of(tx: StorageTransaction, task_id: str) -> List[Record]:
        links = await tx.list("task_tag", {"task_id": task_id})
        if not links:
            return []
        return await tx.list("tag", {"id": [link["tag_id"] for link in links]}, order_by=("name",))

    async def list_tags(self, task: Record) -> List[Record]:
        async with self.storage.transaction() as tx:
            return await self._tags_of(tx, task["id"])

    async def attach(self, task: Record, tag_id: str) -> List[Record]:
        """Attach a tag; attaching one that is already there changes nothing."""
        owner_id = task["user_id"]
        with self.logger.timed("attach", "task_tag", {"task_id": task["id"], "tag_id": tag_id}):
            async with self.storage.transaction() as tx:
                await self._owned_tags(tx, owner_id, [tag_id])
                existing = await tx.list("task_tag", {"task_id": task["id"], "tag_id": tag_id})
                if not existing:
                    await self.links.create_in(tx, owner_id, {"task_id": task["id"], "tag_id": tag_id})
                    await self._touch(tx, task)
                return await self._tags_of(tx, task["id"])

    async def detach(self, task: Record, tag_id: str) -> None:
        with self.logger.timed("detach", "task_tag", {"task_id": task["id"], "tag_id": tag_id}):
            async with self.storage.transaction() as tx:
                removed = await tx.delete_where("task_tag", {"task_id": task["id"], "tag_id": tag_id})
                if not removed:
                    raise NotFoundError("Tag is not attached to this task")
                await self._touch(tx, task)

    async def replace(self, task: Record, tag_ids: List[str]) -> List[Record]:
        owner_id = task["user_id"]
        with self.logger.timed("replace", "task_tag", {"task_id": task["id"], "count": len(tag_ids)}):
            async with self.storage.transaction() as tx:
                await self._owned_tags(tx, owner_id, tag_ids)
                await tx.delete_where("task_tag", {"task_id": task["id"]})
                for tag_id in dict.fromkeys(tag_ids):
                    await self.links.create_in(tx, owner_id, {"task_id": task["id"], "tag_id": tag_id})
                await self._touch(tx, task)
                tags = await self._tags_of(tx, task["id"])
        self.logger.info(
            "Task tags replaced",
            category=LogCategory.BUSINESS,
            metadata={"task_id": task["id"], "tags": len(tags)},
        )
        return tags

    @staticmethod
    async def _touch(tx: StorageTransaction, task: Record) -> None:
        current = await tx.get("task", task["id"])
        if current is not None:
            await tx.update("task", task["id"], {"updated_at": next_timestamp(current["updated_at"])})


# ============================================================
# SERVICE CONTAINER
# ============================================================

@dataclass
class Services:
    users: CrudService
    revoked_tokens: CrudService
    tasks: CrudService
    projects: CrudService
    meetings: CrudService
    notes: CrudService
    tags: CrudService
    task_tags: CrudService
    task_queries: TaskQueries
    meeting_queries: MeetingQueries
    note_queries: NoteQueries
    task_links: TaskTagLinks

    def for_entity(self, entity: str) -> CrudService:
        by_entity: Dict[str, CrudService] = {
            svc.entity: svc
            for svc in (
                self.users, self.revoked_tokens, self.tasks, self.projects,
                self.meetings, self.notes, self.tags, self.task_tags,
            )
        }
        return by_entity[entity]


def build_services(storage: Storage, logger: StructuredLogger) -> Services:
    def crud(spec: EntitySpec) -> CrudService:
        return CrudService(spec, storage, logger)

    tasks = crud(TASK)
    meetings = crud(MEETING)
    notes = crud(NOTE)
    task_tags = crud(TASK_TAG)
    return Services(
        users=crud(USER),
        revoked_tokens=crud(REVOKED_TOKEN),
        tasks=tasks,
        projects=crud(PROJECT),
        meetings=meetings,
        notes=notes,
        tags=crud(TAG),
        task_tags=task_tags,
        task_queries=TaskQueries(tasks, storage),
        meeting_queries=MeetingQueries(meetings),
        note_queries=NoteQueries(notes),
        task_links=TaskTagLinks(task_tags, storage, logger),
    )
