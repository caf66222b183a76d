"""
User-tunable display preferences, persisted under `displayPreferences`.

Call get_preferences(store) to read current values and
update_preferences(store, patch) to mutate and save.
"""

from __future__ import annotations

import logging
from typing import Any

from .errors import ValidationError
from .storage import keys
from .storage.store import DocumentStore

log = logging.getLogger("limiter.preferences")

DEFAULTS: dict[str, Any] = {
    "showRandomMessage": True,         # a random timeout note on the interstitial
    "showActivitySuggestions": True,   # offline activity ideas on the interstitial
}


def _merge(saved: Any) -> dict[str, Any]:
    current = dict(DEFAULTS)
    if isinstance(saved, dict):
        for k, v in saved.items():
            if k in DEFAULTS and isinstance(v, type(DEFAULTS[k])):
                current[k] = v
    elif saved is not None:
        log.warning("Malformed display preferences in store; using defaults")
    return current


async def get_preferences(store: DocumentStore) -> dict[str, Any]:
    """Return the stored preferences, with defaults for anything missing."""
    return _merge(await store.get(keys.DISPLAY_PREFERENCES))


async def update_preferences(store: DocumentStore, patch: dict[str, Any]) -> dict[str, Any]:
    """Apply *patch* (unknown keys ignored), persist, return full preferences."""
    for k, v in patch.items():
        if k in DEFAULTS and not isinstance(v, type(DEFAULTS[k])):
            raise ValidationError(f"{k} must be a boolean", field=k)

    def _apply(saved: Any) -> dict[str, Any]:
        current = _merge(saved)
        for k, v in patch.items():
            if k in DEFAULTS:
                current[k] = v
        return current

    return await store.update(keys.DISPLAY_PREFERENCES, _apply, default=None)
