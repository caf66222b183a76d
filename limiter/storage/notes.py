"""
Timeout notes: short messages to self shown on the interstitial page.
"""

from __future__ import annotations

import logging
import random
import uuid
from typing import List, Optional

from ..errors import NotFoundError, ValidationError
from ..models import TimeoutNote
from ..validation import MAX_NOTES, validate_note_text
from . import keys
from .store import DocumentStore

log = logging.getLogger("limiter.notes")


class NoteRepository:

    def __init__(self, store: DocumentStore, rng: Optional[random.Random] = None):
        self._store = store
        self._rng = rng or random.Random()

    async def list(self) -> List[TimeoutNote]:
        raw = await self._store.get(keys.TIMEOUT_NOTES, [])
        return [TimeoutNote.from_dict(d) for d in raw if isinstance(d, dict) and d.get("id")]

    async def random(self, exclude: Optional[str] = None) -> Optional[TimeoutNote]:
        """Pick a random note, avoiding *exclude* when there is a choice."""
        notes = await self.list()
        if exclude and len(notes) > 1:
            notes = [n for n in notes if n.id != exclude]
        return self._rng.choice(notes) if notes else None

    async def add(self, text: str) -> TimeoutNote:
        note = TimeoutNote(id=str(uuid.uuid4()), text=validate_note_text(text))

        def _append(notes: list) -> list:
            if len(notes) >= MAX_NOTES:
                raise ValidationError(f"Cannot store more than {MAX_NOTES} notes")
            notes.append(note.to_dict())
            return notes

        await self._store.update(keys.TIMEOUT_NOTES, _append, default=[])
        return note

    async def update(self, note_id: str, text: str) -> TimeoutNote:
        clean = validate_note_text(text)

        def _edit(notes: list) -> list:
            for d in notes:
                if d.get("id") == note_id:
                    d["text"] = clean
                    return notes
            raise NotFoundError(f"Note {note_id!r} not found")

        await self._store.update(keys.TIMEOUT_NOTES, _edit, default=[])
        return TimeoutNote(id=note_id, text=clean)

    async def delete(self, note_id: str) -> None:
        def _drop(notes: list) -> list:
            kept = [d for d in notes if d.get("id") != note_id]
            if len(kept) == len(notes):
                raise NotFoundError(f"Note {note_id!r} not found")
            return kept

        await self._store.update(keys.TIMEOUT_NOTES, _drop, default=[])
        log.info(f"Deleted note {note_id}")
