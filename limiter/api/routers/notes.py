"""
/notes — timeout notes shown on the interstitial page.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from ...api.schemas import NoteIn, NoteOut

router = APIRouter(prefix="/notes", tags=["notes"])


def _get_notes(request: Request):
    return request.app.state.notes


def _get_bridge(request: Request):
    return request.app.state.bridge


@router.get("", response_model=list[NoteOut])
async def list_notes(notes=Depends(_get_notes)):
    return [NoteOut(**n.to_dict()) for n in await notes.list()]


@router.get("/random", response_model=NoteOut)
async def random_note(exclude: Optional[str] = None, notes=Depends(_get_notes)):
    """A random note; pass the current note id as *exclude* to shuffle."""
    note = await notes.random(exclude=exclude)
    if note is None:
        raise HTTPException(status_code=404, detail="No notes stored")
    return NoteOut(**note.to_dict())


@router.post("", response_model=NoteOut, status_code=201)
async def add_note(req: NoteIn, notes=Depends(_get_notes), bridge=Depends(_get_bridge)):
    note = await notes.add(req.text)
    await bridge.broadcast("noteAdded", note.to_dict())
    return NoteOut(**note.to_dict())


@router.patch("/{note_id}", response_model=NoteOut)
async def update_note(note_id: str, req: NoteIn, notes=Depends(_get_notes), bridge=Depends(_get_bridge)):
    note = await notes.update(note_id, req.text)
    await bridge.broadcast("noteUpdated", note.to_dict())
    return NoteOut(**note.to_dict())


@router.delete("/{note_id}")
async def delete_note(note_id: str, notes=Depends(_get_notes), bridge=Depends(_get_bridge)):
    await notes.delete(note_id)
    await bridge.broadcast("noteDeleted", {"id": note_id})
    return {"status": "removed"}
