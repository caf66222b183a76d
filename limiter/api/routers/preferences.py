"""
/preferences — read and update the interstitial page's display preferences.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ...api.schemas import PreferencesPatch
from ...preferences import DEFAULTS, get_preferences, update_preferences

router = APIRouter(prefix="/preferences", tags=["preferences"])


def _get_store(request: Request):
    return request.app.state.store


@router.get("")
async def read_preferences(store=Depends(_get_store)):
    """Return current preferences with their defaults for reference."""
    return {"preferences": await get_preferences(store), "defaults": DEFAULTS}


@router.put("")
async def write_preferences(patch: PreferencesPatch, request: Request, store=Depends(_get_store)):
    """Apply a partial update; omitted keys keep their stored value."""
    data = {k: v for k, v in patch.model_dump().items() if v is not None}
    prefs = await update_preferences(store, data)
    await request.app.state.bridge.broadcast("preferencesUpdated", prefs)
    return {"preferences": prefs}
