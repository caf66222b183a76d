"""Tests for display preferences and timeout notes."""

from __future__ import annotations

import random

import pytest

from limiter.errors import NotFoundError, ValidationError
from limiter.preferences import DEFAULTS, get_preferences, update_preferences
from limiter.storage import keys
from limiter.storage.notes import NoteRepository


# ── Preferences ────────────────────────────────────────────────────────────

class TestPreferences:
    async def test_defaults_when_nothing_saved(self, store):
        assert await get_preferences(store) == DEFAULTS

    async def test_patch_is_merged_and_persisted(self, store):
        updated = await update_preferences(store, {"showRandomMessage": False, "bogus": 1})
        assert updated == {"showRandomMessage": False, "showActivitySuggestions": True}
        assert await get_preferences(store) == updated
        assert "bogus" not in await store.get(keys.DISPLAY_PREFERENCES)

    async def test_non_boolean_is_rejected(self, store):
        with pytest.raises(ValidationError):
            await update_preferences(store, {"showRandomMessage": "no"})

    async def test_malformed_saved_values_fall_back(self, store):
        await store.set({keys.DISPLAY_PREFERENCES: {"showRandomMessage": "yes"}})
        assert (await get_preferences(store))["showRandomMessage"] is True


# ── Notes ──────────────────────────────────────────────────────────────────

class TestNotes:
    @pytest.fixture()
    def notes(self, store):
        return NoteRepository(store, rng=random.Random(7))

    async def test_add_edit_delete(self, notes):
        note = await notes.add("  Go for a walk instead  ")
        assert note.text == "Go for a walk instead"

        await notes.update(note.id, "Call a friend")
        assert [n.text for n in await notes.list()] == ["Call a friend"]

        await notes.delete(note.id)
        assert await notes.list() == []

    async def test_missing_note(self, notes):
        with pytest.raises(NotFoundError):
            await notes.update("nope", "text")
        with pytest.raises(NotFoundError):
            await notes.delete("nope")

    async def test_empty_text_is_rejected(self, notes):
        with pytest.raises(ValidationError):
            await notes.add("   ")

    async def test_random_avoids_excluded_note(self, notes):
        assert await notes.random() is None
        a = await notes.add("first")
        b = await notes.add("second")
        for _ in range(10):
            assert (await notes.random(exclude=a.id)).id == b.id

    async def test_random_with_single_note_ignores_exclude(self, notes):
        only = await notes.add("only one")
        assert (await notes.random(exclude=only.id)).id == only.id
