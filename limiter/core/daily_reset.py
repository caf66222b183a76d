"""
Daily Reset — prunes date-partitioned usage and extension documents that
are not today's (local time). Runs at startup and at every local midnight.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Callable, List

from ..errors import LimiterError
from ..storage import keys
from ..storage.store import DocumentStore

log = logging.getLogger("limiter.daily_reset")

DAILY_RESET_ALARM = "dailyResetAlarm"


class DailyReset:

    def __init__(self, store: DocumentStore, clock: Callable[[], float] = time.time):
        self._store = store
        self._clock = clock
        self.last_run: float = 0.0

    async def perform(self) -> List[str]:
        """Delete every partitioned key whose date is not today. Idempotent."""
        today = keys.date_string(self._clock())
        stale: List[str] = []
        for prefix in keys.DATE_PARTITIONED_PREFIXES:
            for key in await self._store.keys(prefix):
                if keys.date_from_key(key) != today:
                    stale.append(key)

        if stale:
            log.info(f"Daily reset: removing {len(stale)} old entries: {stale}")
            await self._store.remove(stale)
        else:
            log.info("Daily reset: nothing to remove")
        self.last_run = self._clock()
        return stale

    def seconds_until_next_midnight(self) -> float:
        now = datetime.fromtimestamp(self._clock())
        midnight = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
        return max(0.0, (midnight - now).total_seconds())

    async def run_forever(self) -> None:
        """Sleep until each local midnight, then prune."""
        while True:
            delay = self.seconds_until_next_midnight()
            log.debug(f"Next daily reset in {delay:.0f}s")
            # a small margin so the run lands on the new date
            await asyncio.sleep(delay + 1.0)
            try:
                await self.perform()
            except LimiterError as exc:
                log.error(f"Daily reset failed, will retry at next midnight: {exc}")
