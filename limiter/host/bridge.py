"""
Extension Bridge — HostAdapter backed by the browser extension itself.

The extension pushes its tab/window snapshot (PUT /host/tabs) and host
events; the bridge keeps a mirror of open tabs from both. Outbound effects
are queued as HostCommands that the extension drains (GET /host/commands)
and applies. Broadcasts are additionally fanned out to WebSocket
subscribers.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Sequence, Set

from ..core.badge import BADGE_COLOR
from .base import WINDOW_ID_NONE, HostAdapter, TabInfo
from .events import HostEvent, HostEventType

log = logging.getLogger("limiter.bridge")

CMD_REDIRECT = "redirect"
CMD_BADGE = "badge"
CMD_NOTIFY = "notify"
CMD_BROADCAST = "broadcast"


@dataclass
class HostCommand:
    id: int
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "kind": self.kind, "payload": self.payload, "createdAt": self.created_at}


class ExtensionBridge(HostAdapter):

    def __init__(self, clock: Callable[[], float] = time.time, max_pending: int = 1000):
        self._clock = clock
        self._tabs: Dict[int, TabInfo] = {}
        self._focused_window: Optional[int] = None
        self._commands: Deque[HostCommand] = deque(maxlen=max_pending)
        self._seq = itertools.count(1)
        self._subscribers: Set[asyncio.Queue] = set()

    # ------------------------------------------------------------------
    # Inbound: tab mirror
    # ------------------------------------------------------------------

    def sync(self, tabs: Iterable[TabInfo], focused_window_id: Optional[int]) -> None:
        """Replace the tab mirror with a full snapshot from the extension."""
        self._tabs = {t.id: t for t in tabs}
        self._focused_window = focused_window_id
        log.debug(f"Tab mirror synced: {len(self._tabs)} tabs, focused window {focused_window_id}")

    def observe(self, event: HostEvent) -> None:
        """Keep the mirror current between snapshots."""
        data = event.data
        if event.type == HostEventType.TAB_ACTIVATED:
            tab = self._tabs.setdefault(data["tabId"], TabInfo(id=data["tabId"]))
            window_id = data.get("windowId", tab.window_id)
            for other in self._tabs.values():
                if other.window_id == window_id:
                    other.active = False
            tab.window_id = window_id
            tab.active = True
        elif event.type == HostEventType.TAB_UPDATED:
            url = data.get("url") or data.get("tabUrl")
            if url:
                self._tabs.setdefault(data["tabId"], TabInfo(id=data["tabId"])).url = url
        elif event.type == HostEventType.BEFORE_NAVIGATE and data.get("frameId", 0) == 0:
            self._tabs.setdefault(data["tabId"], TabInfo(id=data["tabId"])).url = data["url"]
        elif event.type == HostEventType.TAB_REMOVED:
            self._tabs.pop(data["tabId"], None)
        elif event.type == HostEventType.WINDOW_FOCUS_CHANGED:
            self._focused_window = data["windowId"]

    # ------------------------------------------------------------------
    # Outbound: command queue
    # ------------------------------------------------------------------

    def drain(self, limit: Optional[int] = None) -> List[HostCommand]:
        out: List[HostCommand] = []
        while self._commands and (limit is None or len(out) < limit):
            out.append(self._commands.popleft())
        return out

    @property
    def pending(self) -> int:
        return len(self._commands)

    def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=100)
        self._subscribers.add(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        self._subscribers.discard(q)

    def _enqueue(self, kind: str, payload: Dict[str, Any]) -> HostCommand:
        if len(self._commands) == self._commands.maxlen:
            log.warning(f"Command queue full; dropping oldest ({self._commands[0].kind})")
        cmd = HostCommand(id=next(self._seq), kind=kind, payload=payload, created_at=self._clock())
        self._commands.append(cmd)
        return cmd

    # ------------------------------------------------------------------
    # HostAdapter
    # ------------------------------------------------------------------

    async def get_tab(self, tab_id: int) -> Optional[TabInfo]:
        return self._tabs.get(tab_id)

    async def list_tabs(self) -> List[TabInfo]:
        return list(self._tabs.values())

    async def active_tab(self, window_id: Optional[int] = None) -> Optional[TabInfo]:
        target = self._focused_window if window_id is None else window_id
        candidates = [t for t in self._tabs.values() if t.active]
        if target is not None and target != WINDOW_ID_NONE:
            in_window = [t for t in candidates if t.window_id == target]
            if in_window:
                return in_window[0]
            if window_id is not None:
                return None
        return candidates[0] if len(candidates) == 1 else None

    async def is_window_focused(self) -> bool:
        return self._focused_window is None or self._focused_window != WINDOW_ID_NONE

    async def redirect(self, tab_id: int, url: str) -> None:
        self._enqueue(CMD_REDIRECT, {"tabId": tab_id, "url": url})
        tab = self._tabs.get(tab_id)
        if tab is not None:
            tab.url = url

    async def set_badge(self, tab_id: int, text: str, color: Optional[Sequence[int]] = None) -> None:
        payload: Dict[str, Any] = {"tabId": tab_id, "text": text}
        if text:
            payload["color"] = list(color or BADGE_COLOR)
        self._enqueue(CMD_BADGE, payload)

    async def notify(self, title: str, message: str) -> None:
        self._enqueue(CMD_NOTIFY, {"title": title, "message": message})

    async def broadcast(self, event: str, data: Dict[str, Any]) -> None:
        message = {
            "type": "BROADCAST",
            "event": event,
            "data": data,
            "timestamp": int(self._clock() * 1000),
        }
        self._enqueue(CMD_BROADCAST, message)
        for q in list(self._subscribers):
            try:
                q.put_nowait(message)
            except asyncio.QueueFull:
                log.warning("Broadcast subscriber is not keeping up; dropping message")
