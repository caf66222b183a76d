"""
/state — tracking status, popup page info, badge info + WebSocket broadcast stream.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect

from ...api.schemas import BadgeInfoOut, TrackingStateOut
from ...storage import keys

router = APIRouter(prefix="/state", tags=["state"])


def _get_tracker(request: Request):
    return request.app.state.tracker


def _get_orchestrator(request: Request):
    return request.app.state.orchestrator


@router.get("", response_model=TrackingStateOut)
def get_state(request: Request, tracker=Depends(_get_tracker), orchestrator=Depends(_get_orchestrator)):
    """Return the current tracking session snapshot."""
    return TrackingStateOut(
        **tracker.info().to_dict(),
        timerRunning=orchestrator.timer_running,
        pendingCommands=request.app.state.bridge.pending,
        today=keys.date_string(request.app.state.clock()),
    )


@router.get("/page")
async def get_page_info(url: Optional[str] = None, orchestrator=Depends(_get_orchestrator)):
    """Limits and usage for *url*, or for the active tab when omitted."""
    return await orchestrator.page_limit_info(url)


@router.get("/badge", response_model=BadgeInfoOut)
async def get_badge_info(url: str, orchestrator=Depends(_get_orchestrator)):
    return BadgeInfoOut(**await orchestrator.badge_info(url))


@router.websocket("/ws")
async def state_websocket(websocket: WebSocket):
    """
    WebSocket stream — pushes every broadcast ({type:'BROADCAST', event,
    data, timestamp}) as it happens. Popup and settings pages subscribe to
    this for live updates.
    """
    bridge = websocket.app.state.bridge
    await websocket.accept()
    queue = bridge.subscribe()
    try:
        while True:
            message = await queue.get()
            await websocket.send_json(message)
    except WebSocketDisconnect:
        pass
    finally:
        bridge.unsubscribe(queue)
