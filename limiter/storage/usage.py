"""
Daily usage counters, one `usageStats-YYYY-MM-DD` document per day mapping
site id to {timeSpentSeconds, opens}. Documents are created on first write.
"""

from __future__ import annotations

import logging
from typing import Dict

from ..models import UsageStat
from . import keys
from .store import DocumentStore

log = logging.getLogger("limiter.usage")


class UsageRepository:

    def __init__(self, store: DocumentStore):
        self._store = store

    async def get_day(self, date: str) -> Dict[str, UsageStat]:
        raw = await self._store.get(keys.usage_key(date), {})
        if not isinstance(raw, dict):
            log.warning(f"Ignoring malformed usage document for {date}")
            return {}
        return {site_id: UsageStat.from_dict(v) for site_id, v in raw.items() if isinstance(v, dict)}

    async def get(self, date: str, site_id: str) -> UsageStat:
        return (await self.get_day(date)).get(site_id, UsageStat())

    async def add(self, date: str, site_id: str, seconds: int = 0, opens: int = 0) -> UsageStat:
        """Atomically add to one site's counters and return the new totals."""
        result = {}

        def _increment(day: dict) -> dict:
            if not isinstance(day, dict):
                day = {}
            stat = UsageStat.from_dict(day.get(site_id)) + UsageStat(seconds, opens)
            day[site_id] = stat.to_dict()
            result["stat"] = stat
            return day

        await self._store.update(keys.usage_key(date), _increment, default={})
        return result["stat"]
