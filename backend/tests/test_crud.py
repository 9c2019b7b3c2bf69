# tests/test_crud.py - Generic CRUD service and entity hooks
import io
from datetime import datetime, timedelta, timezone

import pytest

from crud import CrudService, EntitySpec, next_timestamp
from errors import ForeignKeyError, RecordNotFoundError
from entities import build_services
from logging_system import LogLevel, StructuredLogger
from storage import MemoryStorage


def test_next_timestamp_is_strictly_later():
    future = datetime.now(timezone.utc) + timedelta(hours=1)
    assert next_timestamp(future) == future + timedelta(microseconds=1)
    past = datetime(2020, 1, 1, tzinfo=timezone.utc)
    assert next_timestamp(past) > past
    assert next_timestamp(None).tzinfo is not None


@pytest.fixture
def services():
    logger = StructuredLogger(min_level=LogLevel.DEBUG, stream=io.StringIO())
    return build_services(MemoryStorage(), logger)


@pytest.mark.asyncio
async def test_create_fills_defaults_and_owner(services):
    task = await services.tasks.create("u1", {"title": "Write tests"})
    assert task["user_id"] == "u1"
    assert task["status"] == "TODO"
    assert task["priority"] == "MEDIUM"
    assert task["created_at"] == task["updated_at"]


@pytest.mark.asyncio
async def test_update_protects_identity_fields(services):
    task = await services.tasks.create("u1", {"title": "Original"})
    updated = await services.tasks.update(task["id"], {"title": "Renamed", "user_id": "u2", "id": "other"})
    assert updated["id"] == task["id"]
    assert updated["user_id"] == "u1"
    assert updated["created_at"] == task["created_at"]
    assert updated["updated_at"] > task["updated_at"]


@pytest.mark.asyncio
async def test_hook_failure_rolls_back(services):
    with pytest.raises(ForeignKeyError):
        await services.tasks.create("u1", {"title": "Orphan", "project_id": "missing"})
    assert await services.tasks.find() == []


@pytest.mark.asyncio
async def test_missing_and_foreign_records(services):
    note = await services.notes.create("u1", {"title": "Mine", "content": "x"})
    with pytest.raises(RecordNotFoundError):
        await services.notes.get_owned(note["id"], "u2")
    with pytest.raises(RecordNotFoundError):
        await services.notes.update("missing", {"title": "x"})
    with pytest.raises(RecordNotFoundError):
        await services.notes.delete("missing")
    assert services.notes.logger.get_logs(search="ownership_mismatch")


@pytest.mark.asyncio
async def test_custom_spec_ordering():
    logger = StructuredLogger(stream=io.StringIO())
    spec = EntitySpec(entity="note", label="Note", order_by=("title",))
    notes = CrudService(spec, MemoryStorage(), logger)
    for title in ("b", "c", "a"):
        await notes.create("u1", {"title": title, "content": "-"})
    assert [n["title"] for n in await notes.list_for_owner("u1")] == ["a", "b", "c"]
    assert [n["title"] for n in await notes.list_for_owner("u1", order_by=("-title",))] == ["c", "b", "a"]
    assert await notes.list_for_owner("u2") == []


@pytest.mark.asyncio
async def test_get_by_id(services):
    tag = await services.tags.create("u1", {"name": "Work"})
    assert (await services.tags.get_by_id(tag["id"]))["name"] == "Work"
    with pytest.raises(RecordNotFoundError) as info:
        await services.tags.get_by_id("missing")
    assert info.value.message == "Tag with id missing not found"


@pytest.mark.asyncio
async def test_delete_many(services):
    notes = [await services.notes.create("u1", {"title": t, "content": "-"}) for t in ("a", "b", "c")]
    assert await services.notes.delete_many([]) == 0
    assert await services.notes.delete_many([notes[0]["id"], notes[2]["id"], "missing"]) == 2
    assert [n["title"] for n in await services.notes.find()] == ["b"]
