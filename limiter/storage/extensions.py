"""
Grace extensions, one `extensions-YYYY-MM-DD` document per day mapping
site id to the single extension granted for that site today.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from ..models import Extension
from . import keys
from .store import DocumentStore

log = logging.getLogger("limiter.extensions")


class ExtensionRepository:

    def __init__(self, store: DocumentStore):
        self._store = store

    async def get_day(self, date: str) -> Dict[str, Extension]:
        raw = await self._store.get(keys.extensions_key(date), {})
        if not isinstance(raw, dict):
            log.warning(f"Ignoring malformed extensions document for {date}")
            return {}
        return {site_id: Extension.from_dict(v) for site_id, v in raw.items() if isinstance(v, dict)}

    async def get(self, date: str, site_id: str) -> Optional[Extension]:
        return (await self.get_day(date)).get(site_id)

    async def put(
        self,
        date: str,
        site_id: str,
        build: Callable[[Optional[Extension]], Extension],
    ) -> Extension:
        """
        Replace the site's extension for *date*. *build* receives the
        previous extension (or None) under the document lock, so the
        applied count cannot be lost to a concurrent grant.
        """
        result = {}

        def _replace(day: dict) -> dict:
            if not isinstance(day, dict):
                day = {}
            prev_raw = day.get(site_id)
            previous = Extension.from_dict(prev_raw) if isinstance(prev_raw, dict) else None
            ext = build(previous)
            day[site_id] = ext.to_dict()
            result["ext"] = ext
            return day

        await self._store.update(keys.extensions_key(date), _replace, default={})
        return result["ext"]

    async def remove(self, date: str, site_id: str) -> bool:
        removed = []

        def _drop(day: dict) -> dict:
            if isinstance(day, dict) and site_id in day:
                del day[site_id]
                removed.append(site_id)
            return day if isinstance(day, dict) else {}

        await self._store.update(keys.extensions_key(date), _drop, default={})
        return bool(removed)
