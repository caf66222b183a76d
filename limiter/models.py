"""
Domain records — sites, groups, daily usage, grace extensions and the
tracking session. Each record round-trips to the camelCase JSON document
kept in the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class Site:
    id: str
    url_pattern: str
    daily_limit_seconds: Optional[int] = None
    daily_open_limit: Optional[int] = None
    is_enabled: bool = True
    group_id: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Site":
        return cls(
            id=d["id"],
            url_pattern=d.get("urlPattern") or "",
            daily_limit_seconds=d.get("dailyLimitSeconds"),
            daily_open_limit=d.get("dailyOpenLimit"),
            # a missing flag counts as enabled
            is_enabled=d.get("isEnabled") is not False,
            group_id=d.get("groupId") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "urlPattern": self.url_pattern,
            "isEnabled": self.is_enabled,
        }
        if self.daily_limit_seconds is not None:
            d["dailyLimitSeconds"] = self.daily_limit_seconds
        if self.daily_open_limit is not None:
            d["dailyOpenLimit"] = self.daily_open_limit
        if self.group_id:
            d["groupId"] = self.group_id
        return d


@dataclass
class Group:
    id: str
    name: str
    daily_limit_seconds: int
    color: str = "#6366f1"
    daily_open_limit: Optional[int] = None
    is_enabled: bool = True
    site_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Group":
        return cls(
            id=d["id"],
            name=d.get("name", ""),
            daily_limit_seconds=d.get("dailyLimitSeconds") or 0,
            color=d.get("color") or "#6366f1",
            daily_open_limit=d.get("dailyOpenLimit"),
            is_enabled=d.get("isEnabled") is not False,
            site_ids=list(d.get("siteIds") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "dailyLimitSeconds": self.daily_limit_seconds,
            "isEnabled": self.is_enabled,
            "siteIds": list(self.site_ids),
        }
        if self.daily_open_limit is not None:
            d["dailyOpenLimit"] = self.daily_open_limit
        return d


@dataclass
class UsageStat:
    time_spent_seconds: int = 0
    opens: int = 0

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> "UsageStat":
        if not d:
            return cls()
        return cls(
            time_spent_seconds=int(d.get("timeSpentSeconds") or 0),
            opens=int(d.get("opens") or 0),
        )

    def to_dict(self) -> Dict[str, int]:
        return {"timeSpentSeconds": self.time_spent_seconds, "opens": self.opens}

    def __add__(self, other: "UsageStat") -> "UsageStat":
        return UsageStat(
            time_spent_seconds=self.time_spent_seconds + other.time_spent_seconds,
            opens=self.opens + other.opens,
        )

    def since(self, snapshot: "UsageStat") -> "UsageStat":
        """Usage accumulated after *snapshot*, floored at zero."""
        return UsageStat(
            time_spent_seconds=max(0, self.time_spent_seconds - snapshot.time_spent_seconds),
            opens=max(0, self.opens - snapshot.opens),
        )


@dataclass
class Extension:
    extended_minutes: int = 0
    extended_opens: int = 0
    excuse: str = ""
    timestamp: float = 0.0
    applied_count: int = 1
    usage_at_extension_time: Optional[UsageStat] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Extension":
        snap = d.get("usageAtExtensionTime")
        return cls(
            extended_minutes=int(d.get("extendedMinutes") or 0),
            extended_opens=int(d.get("extendedOpens") or 0),
            excuse=d.get("excuse", ""),
            timestamp=float(d.get("timestamp") or 0.0),
            applied_count=int(d.get("appliedCount") or 1),
            usage_at_extension_time=UsageStat.from_dict(snap) if isinstance(snap, dict) and snap else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "extendedMinutes": self.extended_minutes,
            "extendedOpens": self.extended_opens,
            "excuse": self.excuse,
            "timestamp": self.timestamp,
            "appliedCount": self.applied_count,
        }
        if self.usage_at_extension_time is not None:
            d["usageAtExtensionTime"] = self.usage_at_extension_time.to_dict()
        return d


@dataclass
class TrackingSession:
    """The single (tab, site) pair currently being timed."""
    session_id: str
    site_id: str
    tab_id: int
    start_time: float
    last_seen: float
    is_active: bool = True

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TrackingSession":
        return cls(
            session_id=d["sessionId"],
            site_id=d["siteId"],
            tab_id=int(d["tabId"]),
            start_time=float(d["startTime"]),
            last_seen=float(d.get("lastSeen") or d["startTime"]),
            is_active=bool(d.get("isActive", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "siteId": self.site_id,
            "tabId": self.tab_id,
            "startTime": self.start_time,
            "lastSeen": self.last_seen,
            "isActive": self.is_active,
        }


@dataclass
class TimeoutNote:
    id: str
    text: str

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TimeoutNote":
        return cls(id=d["id"], text=d.get("text", ""))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "text": self.text}
