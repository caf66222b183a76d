"""
Blocking Orchestrator — wires the detector, tracker and calculator to host
events.

Entry points mirror the extension's callbacks (navigation, tab activation,
tab updates, window focus, alarms, install). Configuration writes finish
with apply_config_change(), which reloads the detector and re-evaluates
every open tab so no tab keeps a stale blocked/unblocked state.

Navigation and tick paths never raise: any store or host failure resolves
to "do not block".
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
from urllib.parse import parse_qs, quote, urlencode, urlsplit

from ..config import config
from ..errors import LimiterError, NotFoundError
from ..host.base import WINDOW_ID_NONE, HostAdapter
from ..models import Extension, Group, Site, UsageStat
from ..storage import keys
from ..storage.catalog import Catalog
from ..storage.extensions import ExtensionRepository
from ..storage.usage import UsageRepository
from ..validation import validate_extension_request
from .badge import badge_text
from .calculator import (
    NOT_BLOCKED,
    BlockDecision,
    EffectiveLimits,
    evaluate,
    resolve_limits,
    would_exceed_opens,
)
from .daily_reset import DAILY_RESET_ALARM, DailyReset
from .detector import DistractionDetector, hostname_of
from .tracker import SessionTracker

log = logging.getLogger("limiter.orchestrator")

USAGE_TIMER_ALARM = "usageTimer"

_INTERNAL_PREFIXES = (
    "about:",
    "chrome://",
    "chrome-extension://",
    "edge://",
    "moz-extension://",
    "view-source:",
)
_INTERSTITIAL_MARKER = "pages/timeout/index.html"

Tables = Tuple[Tuple[Site, ...], Tuple[Group, ...], Dict[str, UsageStat], Dict[str, Extension]]


def is_internal(url: str) -> bool:
    return url.startswith(_INTERNAL_PREFIXES)


@dataclass
class ReevaluationResult:
    event: str
    evaluated: int = 0
    blocked: List[int] = field(default_factory=list)
    restored: List[int] = field(default_factory=list)
    notifications: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return {
            "event": self.event,
            "evaluated": self.evaluated,
            "blocked": self.blocked,
            "restored": self.restored,
            "notifications": self.notifications,
            "errors": self.errors,
        }


class BlockingOrchestrator:

    def __init__(
        self,
        detector: DistractionDetector,
        tracker: SessionTracker,
        catalog: Catalog,
        usage: UsageRepository,
        extensions: ExtensionRepository,
        host: HostAdapter,
        daily_reset: Optional[DailyReset] = None,
        clock: Callable[[], float] = time.time,
        interstitial_url: str = config.interstitial_url,
        tick_interval_s: float = config.tick_interval_s,
        max_restore_notifications: int = config.max_restore_notifications,
    ):
        self._detector = detector
        self._tracker = tracker
        self._catalog = catalog
        self._usage = usage
        self._extensions = extensions
        self._host = host
        self._daily_reset = daily_reset
        self._clock = clock
        self._interstitial_url = interstitial_url
        self._tick_interval_s = tick_interval_s
        self._max_restore_notifications = max_restore_notifications

        self._timer: Optional[asyncio.Task] = None
        # interstitial tabs already told their block has cleared, by tab id
        self._restore_notified: Dict[int, str] = {}

    # ------------------------------------------------------------------
    # Interstitial URLs
    # ------------------------------------------------------------------

    def interstitial_for(self, url: str, decision: BlockDecision) -> str:
        query = urlencode(
            {
                "blockedUrl": url,
                "siteId": decision.site_id or "",
                "reason": decision.reason or "",
                "limitType": decision.limit_type or "",
            },
            quote_via=quote,
        )
        return f"{self._interstitial_url}?{query}"

    def is_interstitial(self, url: str) -> bool:
        return bool(url) and (url.startswith(self._interstitial_url) or _INTERSTITIAL_MARKER in url)

    @staticmethod
    def blocked_url_of(url: str) -> Optional[str]:
        values = parse_qs(urlsplit(url).query).get("blockedUrl")
        return values[0] if values else None

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    async def _tables(self) -> Tables:
        if not self._detector.loaded:
            await self._detector.load()
        snapshot = self._detector.snapshot
        date = keys.date_string(self._clock())
        usage = await self._usage.get_day(date)
        extensions = await self._extensions.get_day(date)
        return snapshot.sites, snapshot.groups, usage, extensions

    async def check(self, url: str) -> BlockDecision:
        """Evaluate *url* against today's usage. Never raises."""
        try:
            return evaluate(url, *await self._tables())
        except LimiterError as exc:
            log.warning(f"Could not load state to check {url!r}; not blocking: {exc}")
            return NOT_BLOCKED

    def _limits_from(self, url: str, tables: Tables) -> Optional[EffectiveLimits]:
        match = self._detector.match(url)
        if not match.is_match:
            return None
        sites, groups, usage, extensions = tables
        site = next((s for s in sites if s.id == match.site_id), None)
        if site is None:
            return None
        return resolve_limits(site, sites, groups, usage, extensions)

    async def _block(self, tab_id: int, url: str, decision: BlockDecision) -> None:
        log.info(f"Blocking tab {tab_id} ({url}): {decision.reason}")
        await self._host.redirect(tab_id, self.interstitial_for(url, decision))
        if self._tracker.is_tracking(tab_id):
            await self._tracker.stop()
            self._cancel_timer()

    # ------------------------------------------------------------------
    # Host events
    # ------------------------------------------------------------------

    async def handle_before_navigate(self, tab_id: int, url: str, frame_id: int = 0) -> bool:
        """Main-frame navigation check. Returns True if the tab was redirected."""
        if frame_id != 0 or not url or self.is_interstitial(url):
            return False
        try:
            if self._tracker.is_tracking(tab_id):
                # fresh usage for the decision below
                await self._tracker.tick()
            decision = await self.check(url)
            if decision.should_block:
                await self._block(tab_id, url, decision)
                return True
        except Exception:
            log.exception(f"Navigation check failed for tab {tab_id}; not blocking")
        return False

    async def handle_tab_activated(self, tab_id: int) -> None:
        try:
            tab = await self._host.get_tab(tab_id)
            await self._handle_tab_activity(tab_id, tab.url if tab else "", should_track=True)
        except Exception:
            log.exception(f"Error handling activation of tab {tab_id}")

    async def handle_tab_updated(self, tab_id: int, url: Optional[str], status: Optional[str] = None) -> None:
        if not url and status != "complete":
            return
        try:
            if not url:
                tab = await self._host.get_tab(tab_id)
                url = tab.url if tab else ""
            if not url:
                return
            active = await self._host.active_tab()
            is_active = active is not None and active.id == tab_id
            focused = await self._host.is_window_focused()
            await self._handle_tab_activity(tab_id, url, should_track=is_active and focused)
        except Exception:
            log.exception(f"Error handling update of tab {tab_id}")

    async def handle_tab_removed(self, tab_id: int) -> None:
        self._restore_notified.pop(tab_id, None)
        if self._tracker.is_tracking(tab_id):
            await self._tracker.stop()
            self._cancel_timer()

    async def handle_window_focus_changed(self, window_id: int) -> None:
        try:
            if window_id == WINDOW_ID_NONE:
                await self._tracker.stop()
                self._cancel_timer()
                log.info("Stopped tracking: no browser window focused")
                return
            active = await self._host.active_tab(window_id)
            if active is not None and active.url:
                await self._handle_tab_activity(active.id, active.url, should_track=True)
        except Exception:
            log.exception(f"Error handling focus change to window {window_id}")

    async def handle_alarm(self, name: str) -> None:
        try:
            if name == DAILY_RESET_ALARM:
                if self._daily_reset is not None:
                    await self._daily_reset.perform()
            elif name == USAGE_TIMER_ALARM:
                await self.on_usage_tick()
            else:
                log.warning(f"Unknown alarm: {name}")
        except Exception:
            log.exception(f"Error handling alarm {name!r}")

    async def handle_installed(self, reason: str = "startup") -> None:
        """Load the catalog, resume a live session and self-heal old usage."""
        log.info(f"Extension installed/started ({reason})")
        await self._detector.start()
        info = await self._tracker.restore()
        if info.is_tracking:
            self._start_timer(info.session_id)
        if self._daily_reset is not None:
            try:
                await self._daily_reset.perform()
            except LimiterError as exc:
                log.error(f"Startup daily reset failed: {exc}")

    async def _handle_tab_activity(self, tab_id: int, url: str, should_track: bool) -> None:
        match = self._detector.match(url) if url else None

        if not should_track or match is None or not match.is_match:
            # a background tab must not end the foreground tab's session
            if should_track or self._tracker.is_tracking(tab_id):
                await self._tracker.stop()
                self._cancel_timer()
            await self.refresh_badge(tab_id)
            return

        info = self._tracker.info()
        if info.is_tracking and info.tab_id == tab_id and info.site_id == match.site_id:
            if self._timer is None or self._timer.done():
                self._start_timer(info.session_id)
            await self.refresh_badge(tab_id)
            return

        started = await self._tracker.start(tab_id, match.site_id)
        if started is not None:
            self._start_timer(started.session_id)
        await self.refresh_badge(tab_id)

    # ------------------------------------------------------------------
    # Usage timer
    # ------------------------------------------------------------------

    def _start_timer(self, session_id: Optional[str]) -> None:
        self._cancel_timer()
        self._timer = asyncio.create_task(self._timer_loop(session_id))

    def _cancel_timer(self) -> None:
        task, self._timer = self._timer, None
        # a tick that blocks its own tab ends its loop by returning instead
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    @property
    def timer_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    async def _timer_loop(self, session_id: Optional[str]) -> None:
        while True:
            await asyncio.sleep(self._tick_interval_s)
            if not await self.on_usage_tick(session_id):
                return

    async def on_usage_tick(self, session_id: Optional[str] = None) -> bool:
        """
        One usage flush for the active session. Returns False when the
        session is gone or its tab was just blocked, so the timer stops.
        """
        info = self._tracker.info()
        if not info.is_tracking or (session_id is not None and info.session_id != session_id):
            return False
        try:
            total = await self._tracker.tick(info.session_id)
            await self.refresh_badge(info.tab_id)

            tab = await self._host.get_tab(info.tab_id)
            if tab is not None and tab.url and not self.is_interstitial(tab.url):
                decision = await self.check(tab.url)
                if decision.should_block:
                    log.info(f"Limit reached while browsing; redirecting tab {info.tab_id}")
                    await self._block(info.tab_id, tab.url, decision)
                    return False

            await self._host.broadcast(
                "usageUpdated",
                {"siteId": info.site_id, "totalTimeSeconds": total, "tabId": info.tab_id},
            )
        except Exception:
            log.exception("Usage tick failed")
        return True

    # ------------------------------------------------------------------
    # Badges
    # ------------------------------------------------------------------

    async def refresh_badge(self, tab_id: int, tables: Optional[Tables] = None) -> str:
        text = ""
        try:
            tab = await self._host.get_tab(tab_id)
            if tab is not None and tab.url and not is_internal(tab.url):
                limits = self._limits_from(tab.url, tables or await self._tables())
                text = badge_text(limits)
        except Exception as exc:
            log.warning(f"Could not compute badge for tab {tab_id}; clearing it: {exc}")
            text = ""
        try:
            await self._host.set_badge(tab_id, text)
        except Exception as exc:
            log.warning(f"Could not set badge for tab {tab_id}: {exc}")
        return text

    # ------------------------------------------------------------------
    # Configuration changes
    # ------------------------------------------------------------------

    async def apply_config_change(self, event: str, data: Optional[Dict[str, Any]] = None) -> ReevaluationResult:
        """
        Reload the detector, re-evaluate every open tab, then broadcast
        *event*. Interstitial tabs are evaluated against their blocked URL.
        """
        result = ReevaluationResult(event=event)
        await self._detector.load()

        try:
            tables = await self._tables()
            tabs = await self._host.list_tabs()
        except LimiterError as exc:
            log.error(f"Re-evaluation after {event} skipped; state unavailable: {exc}")
            result.errors += 1
            tables, tabs = None, []

        notified_now = 0
        seen: Set[int] = set()
        for tab in tabs:
            if not tab.url:
                continue
            seen.add(tab.id)
            try:
                if self.is_interstitial(tab.url):
                    target = self.blocked_url_of(tab.url)
                    if not target:
                        continue
                    decision = evaluate(target, *tables)
                    result.evaluated += 1
                    await self._host.set_badge(tab.id, "")
                    if decision.should_block:
                        self._restore_notified.pop(tab.id, None)
                        continue
                    result.restored.append(tab.id)
                    if self._restore_notified.get(tab.id) == tab.url:
                        continue
                    if notified_now < self._max_restore_notifications:
                        await self._host.notify(
                            "Site Limit Changed",
                            "You can now access this site. Go back or refresh the page.",
                        )
                        notified_now += 1
                        self._restore_notified[tab.id] = tab.url
                    continue

                if is_internal(tab.url):
                    continue
                decision = evaluate(tab.url, *tables)
                result.evaluated += 1
                if decision.should_block:
                    await self._block(tab.id, tab.url, decision)
                    result.blocked.append(tab.id)
                else:
                    await self.refresh_badge(tab.id, tables)
            except Exception:
                log.warning(f"Re-evaluation of tab {tab.id} failed", exc_info=True)
                result.errors += 1

        for gone in set(self._restore_notified) - seen:
            self._restore_notified.pop(gone, None)

        await self._retarget_session()

        result.notifications = notified_now
        log.info(
            f"Re-evaluated {result.evaluated} tabs after {event}: "
            f"{len(result.blocked)} blocked, {len(result.restored)} cleared, {result.errors} errors"
        )
        try:
            await self._host.broadcast(event, data or {})
        except Exception as exc:
            log.warning(f"Broadcast of {event} failed: {exc}")
        return result

    async def _retarget_session(self) -> None:
        """Stop or move the active session when its site no longer matches its tab."""
        info = self._tracker.info()
        if not info.is_tracking:
            return
        try:
            tab = await self._host.get_tab(info.tab_id)
            if tab is None or not tab.url:
                return
            url = tab.url
            match = self._detector.match(url)
            if match.is_match and match.site_id == info.site_id:
                return
            log.info(f"Tracked site {info.site_id} no longer matches tab {info.tab_id}; re-evaluating")
            await self._handle_tab_activity(info.tab_id, url, should_track=True)
        except Exception:
            log.exception(f"Could not re-evaluate the session in tab {info.tab_id}")

    # ------------------------------------------------------------------
    # Extensions
    # ------------------------------------------------------------------

    async def grant_extension(self, site_id: str, minutes: Any, opens: Any, excuse: Any) -> Extension:
        """
        Raise today's limits for one site. The grant snapshots the usage the
        calculator compares, so only usage after the grant counts against
        the extended limits.
        """
        minutes, opens, excuse = validate_extension_request(minutes, opens, excuse)
        site = await self._catalog.get_site(site_id)
        if site is None:
            raise NotFoundError(f"Site {site_id!r} not found")

        now = self._clock()
        date = keys.date_string(now)
        sites = await self._catalog.list_sites()
        groups = await self._catalog.list_groups()
        usage = await self._usage.get_day(date)
        snapshot = resolve_limits(site, sites, groups, usage, {}).usage

        def _build(previous: Optional[Extension]) -> Extension:
            return Extension(
                extended_minutes=minutes,
                extended_opens=opens,
                excuse=excuse,
                timestamp=int(now * 1000),
                applied_count=previous.applied_count + 1 if previous else 1,
                usage_at_extension_time=snapshot,
            )

        extension = await self._extensions.put(date, site_id, _build)
        log.info(f"Granted extension for site {site_id}: +{minutes}m, +{opens} opens")
        await self.apply_config_change("limitExtended", {"siteId": site_id, "extension": extension.to_dict()})
        return extension

    # ------------------------------------------------------------------
    # Popup queries
    # ------------------------------------------------------------------

    async def page_limit_info(self, url: Optional[str] = None) -> Dict[str, Any]:
        """Limit and usage details for *url*, or for the active tab."""
        if url is None:
            active = await self._host.active_tab()
            if active is None or not active.url:
                raise NotFoundError("No active tab found")
            url = active.url

        info: Dict[str, Any] = {
            "url": url,
            "hostname": hostname_of(url),
            "isDistractingSite": False,
            "hasLimits": False,
            "isEnabled": None,
            "siteInfo": None,
            "decision": NOT_BLOCKED.to_dict(),
            "wouldExceedOpens": False,
        }
        configured = self._detector.has_limits(url)
        info["hasLimits"] = configured.is_match
        info["isEnabled"] = configured.is_enabled
        if not self._detector.match(url).is_match:
            return info

        tables = await self._tables()
        limits = self._limits_from(url, tables)
        if limits is None:
            return info
        info["isDistractingSite"] = True
        info["siteInfo"] = {**limits.site.to_dict(), **limits.to_dict(), "lastUpdated": int(self._clock() * 1000)}
        info["decision"] = evaluate(url, *tables).to_dict()
        info["wouldExceedOpens"] = would_exceed_opens(url, *tables)
        return info

    async def badge_info(self, url: str) -> Dict[str, Any]:
        limits = self._limits_from(url, await self._tables()) if url else None
        if limits is None or not limits.site.is_enabled:
            return {"showBadge": False, "badgeText": "", "limitInfo": None}
        return {"showBadge": True, "badgeText": badge_text(limits), "limitInfo": limits.to_dict()}

    async def shutdown(self) -> None:
        """Flush the active session and stop the usage timer."""
        task = self._timer
        self._cancel_timer()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._tracker.stop()
