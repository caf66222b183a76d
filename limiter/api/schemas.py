"""
Pydantic schemas for the FastAPI local API.

Field names follow the extension's camelCase JSON so payloads pass
through unchanged.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# ── Host events ────────────────────────────────────────────────────────────

class HostEventIn(BaseModel):
    type: str = Field(..., description="BEFORE_NAVIGATE | TAB_ACTIVATED | TAB_UPDATED | ...")
    timestamp: Optional[float] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class TabIn(BaseModel):
    id: int
    url: str = ""
    windowId: int = 0
    active: bool = False


class TabSnapshotIn(BaseModel):
    tabs: List[TabIn] = Field(default_factory=list)
    focusedWindowId: Optional[int] = None


class HostCommandOut(BaseModel):
    id: int
    kind: str
    payload: Dict[str, Any]
    createdAt: float


class HostCommandsOut(BaseModel):
    commands: List[HostCommandOut]
    pending: int


# ── Sites & groups ─────────────────────────────────────────────────────────
# Request bodies are loose dicts validated by the catalog, so a partial
# update can tell "field omitted" apart from "field set to null".

class SiteOut(BaseModel):
    id: str
    urlPattern: str
    dailyLimitSeconds: Optional[int] = None
    dailyOpenLimit: Optional[int] = None
    isEnabled: bool = True
    groupId: Optional[str] = None


class GroupOut(BaseModel):
    id: str
    name: str
    color: str
    dailyLimitSeconds: int
    dailyOpenLimit: Optional[int] = None
    isEnabled: bool = True
    siteIds: List[str] = Field(default_factory=list)


class ReevaluationOut(BaseModel):
    event: str
    evaluated: int
    blocked: List[int]
    restored: List[int]
    notifications: int
    errors: int


class SiteChangeOut(BaseModel):
    site: SiteOut
    reevaluation: ReevaluationOut


class GroupChangeOut(BaseModel):
    group: GroupOut
    reevaluation: ReevaluationOut


# ── Extensions ─────────────────────────────────────────────────────────────

class ExtensionRequest(BaseModel):
    siteId: str
    extendedMinutes: int = 0
    extendedOpens: int = 0
    excuse: str = ""


class UsageSnapshotOut(BaseModel):
    timeSpentSeconds: int
    opens: int


class ExtensionOut(BaseModel):
    extendedMinutes: int
    extendedOpens: int
    excuse: str
    timestamp: float
    appliedCount: int
    usageAtExtensionTime: Optional[UsageSnapshotOut] = None


# ── Notes ──────────────────────────────────────────────────────────────────

class NoteIn(BaseModel):
    text: str


class NoteOut(BaseModel):
    id: str
    text: str


# ── Preferences ────────────────────────────────────────────────────────────

class PreferencesPatch(BaseModel):
    showRandomMessage: Optional[bool] = None
    showActivitySuggestions: Optional[bool] = None


# ── State ──────────────────────────────────────────────────────────────────

class TrackingStateOut(BaseModel):
    isTracking: bool
    sessionId: Optional[str] = None
    siteId: Optional[str] = None
    tabId: Optional[int] = None
    startTime: Optional[float] = None
    lastSeen: Optional[float] = None
    timerRunning: bool = False
    pendingCommands: int = 0
    today: str


class BadgeInfoOut(BaseModel):
    showBadge: bool
    badgeText: str
    limitInfo: Optional[Dict[str, Any]] = None
