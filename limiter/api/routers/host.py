"""
/host — tab snapshot upload and outbound command polling for the extension.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ...api.schemas import HostCommandOut, HostCommandsOut, TabSnapshotIn
from ...host.base import TabInfo

router = APIRouter(prefix="/host", tags=["host"])


def _get_bridge(request: Request):
    return request.app.state.bridge


@router.put("/tabs")
def put_tabs(snapshot: TabSnapshotIn, bridge=Depends(_get_bridge)):
    """Replace the mirrored tab list with the extension's full snapshot."""
    bridge.sync(
        [TabInfo(id=t.id, url=t.url, window_id=t.windowId, active=t.active) for t in snapshot.tabs],
        snapshot.focusedWindowId,
    )
    return {"tabs": len(snapshot.tabs)}


@router.get("/commands", response_model=HostCommandsOut)
def get_commands(
    limit: Optional[int] = Query(None, ge=1, le=1000),
    bridge=Depends(_get_bridge),
):
    """Drain pending redirects, badge updates, notifications and broadcasts."""
    commands = bridge.drain(limit)
    return HostCommandsOut(
        commands=[HostCommandOut(**c.to_dict()) for c in commands],
        pending=bridge.pending,
    )
