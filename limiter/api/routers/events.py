"""
/events — ingest host events (navigation, tabs, focus, alarms) from the extension.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ...api.schemas import HostEventIn
from ...host.events import parse_host_event

router = APIRouter(prefix="/events", tags=["events"])


def _get_dispatcher(request: Request):
    """Dependency — resolved by the app lifespan state."""
    return request.app.state.dispatcher


def _to_payload(event: HostEventIn) -> dict:
    payload = {"type": event.type, "data": event.data}
    if event.timestamp is not None:
        payload["timestamp"] = event.timestamp
    return payload


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def ingest_event(event: HostEventIn, dispatcher=Depends(_get_dispatcher)):
    """Accept a single host event and run it through the orchestrator."""
    parsed = parse_host_event(_to_payload(event))
    if parsed is None:
        raise HTTPException(status_code=422, detail=f"Unrecognised or malformed event: {event.type!r}")

    await dispatcher.dispatch(parsed)
    return {"status": "accepted"}


@router.post("/batch", status_code=status.HTTP_202_ACCEPTED)
async def ingest_batch(events: list[HostEventIn], dispatcher=Depends(_get_dispatcher)):
    """Accept a batch of events, dispatched in order; malformed ones are skipped."""
    accepted = 0
    for event in events:
        parsed = parse_host_event(_to_payload(event))
        if parsed:
            await dispatcher.dispatch(parsed)
            accepted += 1
    return {"accepted": accepted, "total": len(events)}
