"""
Host adapter interface: the browser operations the core needs.

The core never talks to a browser directly. It asks a HostAdapter about
tabs and windows and hands it redirects, badges, notifications and
broadcasts to carry out.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

WINDOW_ID_NONE = -1


@dataclass
class TabInfo:
    id: int
    url: str = ""
    window_id: int = 0
    active: bool = False

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TabInfo":
        return cls(
            id=int(d["id"]),
            url=d.get("url") or "",
            window_id=int(d.get("windowId") or 0),
            active=bool(d.get("active", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "url": self.url, "windowId": self.window_id, "active": self.active}


class HostAdapter(ABC):

    @abstractmethod
    async def get_tab(self, tab_id: int) -> Optional[TabInfo]: ...

    @abstractmethod
    async def list_tabs(self) -> List[TabInfo]: ...

    @abstractmethod
    async def active_tab(self, window_id: Optional[int] = None) -> Optional[TabInfo]:
        """Active tab of *window_id*, or of the focused window when omitted."""

    @abstractmethod
    async def is_window_focused(self) -> bool: ...

    @abstractmethod
    async def redirect(self, tab_id: int, url: str) -> None: ...

    @abstractmethod
    async def set_badge(self, tab_id: int, text: str, color: Optional[Sequence[int]] = None) -> None: ...

    @abstractmethod
    async def notify(self, title: str, message: str) -> None: ...

    @abstractmethod
    async def broadcast(self, event: str, data: Dict[str, Any]) -> None: ...
