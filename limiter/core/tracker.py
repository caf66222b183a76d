"""
Session Tracker — the single (tab, site) pair currently being timed.

Two states, Idle and Tracking. Every transition runs under one asyncio.Lock,
so a periodic tick can never interleave with a stop or a start that is
replacing the same session. The session is mirrored to the store under
`trackingSession` so it survives a restart; a mirrored session whose
`lastSeen` is older than the staleness threshold is treated as orphaned.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from ..errors import LimiterError, StoreError
from ..models import TrackingSession
from ..storage import keys
from ..storage.store import DocumentStore
from ..storage.usage import UsageRepository

log = logging.getLogger("limiter.tracker")


@dataclass(frozen=True)
class TrackingInfo:
    is_tracking: bool = False
    session_id: Optional[str] = None
    site_id: Optional[str] = None
    tab_id: Optional[int] = None
    start_time: Optional[float] = None
    last_seen: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "isTracking": self.is_tracking,
            "sessionId": self.session_id,
            "siteId": self.site_id,
            "tabId": self.tab_id,
            "startTime": self.start_time,
            "lastSeen": self.last_seen,
        }


IDLE = TrackingInfo()


def _round_half_up(seconds: float) -> int:
    return int(seconds + 0.5)


class SessionTracker:

    def __init__(
        self,
        store: DocumentStore,
        usage: UsageRepository,
        clock: Callable[[], float] = time.time,
        stale_after_s: float = 60.0,
    ):
        self._store = store
        self._usage = usage
        self._clock = clock
        self._stale_after_s = stale_after_s
        self._lock = asyncio.Lock()
        self._session: Optional[TrackingSession] = None
        # a usage write whose flush was cancelled: (write, session, credit)
        self._inflight: Optional[Tuple[asyncio.Future, TrackingSession, int]] = None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def start(self, tab_id: int, site_id: str) -> Optional[TrackingInfo]:
        """
        Begin timing *site_id* in *tab_id* and count one open.

        A different active pair is flushed and stopped first. Starting the
        pair that is already tracked continues the existing session and does
        not count another open. Returns None for invalid ids.
        """
        if isinstance(tab_id, bool) or not isinstance(tab_id, int) or tab_id < 0:
            log.warning(f"Refusing to track invalid tab id {tab_id!r}")
            return None
        if not isinstance(site_id, str) or not site_id:
            log.warning(f"Refusing to track invalid site id {site_id!r}")
            return None

        async with self._lock:
            current = self._session
            if current is not None:
                if current.tab_id == tab_id and current.site_id == site_id:
                    return self._info(current)
                log.info(f"Superseding session {current.session_id} ({current.site_id} in tab {current.tab_id})")
                await self._stop_locked(current)

            now = self._clock()
            session = TrackingSession(
                session_id=uuid.uuid4().hex,
                site_id=site_id,
                tab_id=tab_id,
                start_time=now,
                last_seen=now,
            )
            self._session = session
            await self._persist(session)

            try:
                await self._usage.add(keys.date_string(now), site_id, opens=1)
            except StoreError as exc:
                log.warning(f"Could not record open for site {site_id}: {exc}")

            log.info(f"Started tracking site {site_id} in tab {tab_id} (session {session.session_id})")
            return self._info(session)

    async def tick(self, session_id: Optional[str] = None) -> int:
        """
        Flush elapsed whole seconds into today's usage and keep tracking.

        Returns the site's cumulative seconds for today, or 0 when idle, when
        *session_id* names a session that is no longer current, or when the
        write fails (the slice is then retried on the next tick).
        """
        async with self._lock:
            session = self._session
            if session is None:
                return 0
            if session_id is not None and session_id != session.session_id:
                log.debug(f"Discarding stale tick for session {session_id}")
                return 0
            try:
                return await self._flush(session)
            except StoreError as exc:
                log.warning(f"Usage flush failed for site {session.site_id}, will retry: {exc}")
                return 0

    async def stop(self) -> int:
        """Flush once and go Idle. Safe to call when already Idle."""
        async with self._lock:
            session = self._session
            if session is None:
                return 0
            return await self._stop_locked(session)

    async def record_open(self, site_id: str) -> None:
        """Count an open for *site_id* without starting a session."""
        await self._usage.add(keys.date_string(self._clock()), site_id, opens=1)

    async def restore(self) -> TrackingInfo:
        """Resume a persisted session unless it has gone stale."""
        async with self._lock:
            try:
                raw = await self._store.get(keys.TRACKING_SESSION)
            except StoreError as exc:
                log.warning(f"Could not read persisted session: {exc}")
                return self._info(self._session)
            if not raw:
                return self._info(self._session)

            try:
                session = TrackingSession.from_dict(raw)
            except (KeyError, TypeError, ValueError):
                log.warning("Discarding malformed persisted session")
                await self._clear_persisted()
                return self._info(self._session)

            age = self._clock() - session.last_seen
            if not session.is_active or age > self._stale_after_s:
                log.info(f"Discarding orphaned session {session.session_id} (last seen {age:.0f}s ago)")
                await self._clear_persisted()
                return self._info(self._session)

            self._session = session
            log.info(f"Resumed session {session.session_id} for site {session.site_id} in tab {session.tab_id}")
            return self._info(session)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def info(self) -> TrackingInfo:
        return self._info(self._session)

    def is_tracking(self, tab_id: Optional[int] = None) -> bool:
        session = self._session
        if session is None:
            return False
        return tab_id is None or session.tab_id == tab_id

    # ------------------------------------------------------------------
    # Internal (caller holds the lock)
    # ------------------------------------------------------------------

    async def _stop_locked(self, session: TrackingSession) -> int:
        total = 0
        try:
            total = await self._flush(session)
        except StoreError as exc:
            log.warning(f"Final flush failed for site {session.site_id}; clearing session anyway: {exc}")
        self._session = None
        await self._clear_persisted()
        log.info(f"Stopped tracking site {session.site_id} in tab {session.tab_id}")
        return total

    async def _flush(self, session: TrackingSession) -> int:
        await self._settle_inflight()
        now = self._clock()
        elapsed = now - session.start_time
        if elapsed < -0.5:
            log.warning(f"Clock moved backwards by {-elapsed:.1f}s; restarting the slice")
            session.start_time = now
            elapsed = 0.0
        elif elapsed < 0:
            # a rounded-up credit runs ahead of the clock by under half a second
            elapsed = 0.0

        credit = _round_half_up(elapsed)
        date = keys.date_string(now)
        if credit > 0:
            # the executor write outlives a cancelled caller
            write = asyncio.ensure_future(self._usage.add(date, session.site_id, seconds=credit))
            try:
                stat = await asyncio.shield(write)
            except asyncio.CancelledError:
                session.start_time += credit
                self._inflight = (write, session, credit)
                raise
        else:
            stat = await self._usage.get(date, session.site_id)

        # the unrounded remainder stays in the session for the next flush
        session.start_time += credit
        session.last_seen = now
        if self._session is session:
            await self._persist(session)
        return stat.time_spent_seconds

    async def _settle_inflight(self) -> None:
        """Wait out a write left behind by a cancelled flush; re-open its slice if it failed."""
        if self._inflight is None:
            return
        write, session, credit = self._inflight
        self._inflight = None
        try:
            await asyncio.shield(write)
        except asyncio.CancelledError:
            self._inflight = (write, session, credit)
            raise
        except StoreError as exc:
            log.warning(f"Interrupted usage write for site {session.site_id} failed, will retry: {exc}")
            session.start_time -= credit

    async def _persist(self, session: TrackingSession) -> None:
        try:
            await self._store.set({keys.TRACKING_SESSION: session.to_dict()})
        except LimiterError as exc:
            log.warning(f"Could not persist tracking session: {exc}")

    async def _clear_persisted(self) -> None:
        try:
            await self._store.remove([keys.TRACKING_SESSION])
        except LimiterError as exc:
            log.warning(f"Could not clear persisted session: {exc}")

    @staticmethod
    def _info(session: Optional[TrackingSession]) -> TrackingInfo:
        if session is None:
            return IDLE
        return TrackingInfo(
            is_tracking=True,
            session_id=session.session_id,
            site_id=session.site_id,
            tab_id=session.tab_id,
            start_time=session.start_time,
            last_seen=session.last_seen,
        )
