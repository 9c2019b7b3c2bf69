# routers/notes.py - Free-text notes
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import Field

from auth import get_current_user, get_services, owned_resource
from entities import Services
from responses import Envelope, ListEnvelope, ok, ok_list
from schemas import NoteOut
from storage import Record
from validation import ApiModel, PatchModel

router = APIRouter(prefix="/api/notes", tags=["Notes"])


class NoteCreate(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1, max_length=50000)


class NoteUpdate(PatchModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = Field(None, min_length=1, max_length=50000)


@router.get("", response_model=ListEnvelope[NoteOut])
async def list_notes(
    search: Optional[str] = Query(None, max_length=200),
    user: Record = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return ok_list(await services.note_queries.search(user["id"], search=search))


@router.post("", response_model=Envelope[NoteOut], status_code=201)
async def create_note(
    data: NoteCreate,
    user: Record = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return ok(await services.notes.create(user["id"], data.model_dump()))


@router.get("/{id}", response_model=Envelope[NoteOut])
async def get_note(note: Record = Depends(owned_resource("note"))):
    return ok(note)


@router.patch("/{id}", response_model=Envelope[NoteOut])
async def update_note(
    data: NoteUpdate,
    note: Record = Depends(owned_resource("note")),
    services: Services = Depends(get_services),
):
    return ok(await services.notes.update(note["id"], data.changes()))


@router.delete("/{id}", status_code=204, response_class=Response)
async def delete_note(
    note: Record = Depends(owned_resource("note")),
    services: Services = Depends(get_services),
):
    await services.notes.delete(note["id"])
    return Response(status_code=204)
