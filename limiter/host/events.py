"""
Host Events — maps raw callbacks reported by the browser extension onto a
fixed event enum, and routes parsed events to the orchestrator.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional

if TYPE_CHECKING:
    from ..core.orchestrator import BlockingOrchestrator
    from .bridge import ExtensionBridge

log = logging.getLogger("limiter.events")


class HostEventType(str, Enum):
    BEFORE_NAVIGATE = "BEFORE_NAVIGATE"
    TAB_ACTIVATED = "TAB_ACTIVATED"
    TAB_UPDATED = "TAB_UPDATED"
    TAB_REMOVED = "TAB_REMOVED"
    WINDOW_FOCUS_CHANGED = "WINDOW_FOCUS_CHANGED"
    ALARM = "ALARM"
    INSTALLED = "INSTALLED"


# Extension event names, including the WebExtension listener names, → enum
_EVENT_MAP: Dict[str, HostEventType] = {
    **{t.value: t for t in HostEventType},
    "webNavigation.onBeforeNavigate": HostEventType.BEFORE_NAVIGATE,
    "tabs.onActivated": HostEventType.TAB_ACTIVATED,
    "tabs.onUpdated": HostEventType.TAB_UPDATED,
    "tabs.onRemoved": HostEventType.TAB_REMOVED,
    "windows.onFocusChanged": HostEventType.WINDOW_FOCUS_CHANGED,
    "alarms.onAlarm": HostEventType.ALARM,
    "runtime.onInstalled": HostEventType.INSTALLED,
    "runtime.onStartup": HostEventType.INSTALLED,
}


@dataclass
class HostEvent:
    type: HostEventType
    timestamp: float
    data: Dict[str, Any] = field(default_factory=dict)


def _int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def parse_host_event(payload: Dict[str, Any]) -> Optional[HostEvent]:
    """
    Parse a raw extension payload into a HostEvent.
    Returns None if the event type is unknown or required fields are missing.

    Expected payload shape:
    {
        "type": "BEFORE_NAVIGATE",
        "timestamp": 1700000000.123,   # optional, defaults to now
        "data": {"tabId": 4, "url": "https://...", "frameId": 0}
    }
    """
    event_type = _EVENT_MAP.get(payload.get("type", ""))
    if event_type is None:
        return None

    data = payload.get("data") or {}
    if not isinstance(data, dict):
        return None
    timestamp = float(payload.get("timestamp") or time.time())
    parsed: Dict[str, Any] = {}

    if event_type in (
        HostEventType.BEFORE_NAVIGATE,
        HostEventType.TAB_ACTIVATED,
        HostEventType.TAB_UPDATED,
        HostEventType.TAB_REMOVED,
    ):
        tab_id = _int(data.get("tabId"))
        if tab_id is None:
            return None
        parsed["tabId"] = tab_id

    if event_type == HostEventType.BEFORE_NAVIGATE:
        url = data.get("url")
        if not isinstance(url, str) or not url:
            return None
        parsed["url"] = url
        parsed["frameId"] = _int(data.get("frameId", 0)) or 0

    elif event_type == HostEventType.TAB_ACTIVATED:
        window_id = _int(data.get("windowId"))
        if window_id is not None:
            parsed["windowId"] = window_id

    elif event_type == HostEventType.TAB_UPDATED:
        # tabs.onUpdated reports changes under changeInfo; accept both shapes
        change = data.get("changeInfo") if isinstance(data.get("changeInfo"), dict) else data
        tab = data.get("tab") if isinstance(data.get("tab"), dict) else {}
        parsed["url"] = change.get("url")
        parsed["status"] = change.get("status")
        parsed["tabUrl"] = tab.get("url") or data.get("tabUrl")
        if not parsed["url"] and parsed["status"] != "complete":
            return None

    elif event_type == HostEventType.WINDOW_FOCUS_CHANGED:
        window_id = _int(data.get("windowId"))
        if window_id is None:
            return None
        parsed["windowId"] = window_id

    elif event_type == HostEventType.ALARM:
        name = data.get("name")
        if not isinstance(name, str) or not name:
            return None
        parsed["name"] = name

    elif event_type == HostEventType.INSTALLED:
        parsed["reason"] = data.get("reason") or "startup"

    return HostEvent(type=event_type, timestamp=timestamp, data=parsed)


Handler = Callable[[HostEvent], Awaitable[Any]]


class EventDispatcher:
    """Routes parsed host events to the orchestrator's entry points."""

    def __init__(self, orchestrator: "BlockingOrchestrator", bridge: Optional["ExtensionBridge"] = None):
        self._orchestrator = orchestrator
        self._bridge = bridge
        self._handlers: Dict[HostEventType, Handler] = {
            HostEventType.BEFORE_NAVIGATE: lambda e: orchestrator.handle_before_navigate(
                e.data["tabId"], e.data["url"], e.data.get("frameId", 0)
            ),
            HostEventType.TAB_ACTIVATED: lambda e: orchestrator.handle_tab_activated(e.data["tabId"]),
            HostEventType.TAB_UPDATED: lambda e: orchestrator.handle_tab_updated(
                e.data["tabId"], e.data.get("url") or e.data.get("tabUrl"), e.data.get("status")
            ),
            HostEventType.TAB_REMOVED: lambda e: orchestrator.handle_tab_removed(e.data["tabId"]),
            HostEventType.WINDOW_FOCUS_CHANGED: lambda e: orchestrator.handle_window_focus_changed(
                e.data["windowId"]
            ),
            HostEventType.ALARM: lambda e: orchestrator.handle_alarm(e.data["name"]),
            HostEventType.INSTALLED: lambda e: orchestrator.handle_installed(e.data.get("reason", "startup")),
        }
        self.dispatched = 0

    async def dispatch(self, event: HostEvent) -> None:
        if self._bridge is not None:
            self._bridge.observe(event)
        handler = self._handlers.get(event.type)
        if handler is None:
            log.warning(f"No handler for host event {event.type}")
            return
        try:
            await handler(event)
        except Exception:
            log.exception(f"Handler for {event.type.value} failed")
        self.dispatched += 1
