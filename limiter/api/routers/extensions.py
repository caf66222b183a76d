"""
/extensions — today's grace extensions and granting a new one.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ...api.schemas import ExtensionOut, ExtensionRequest
from ...storage import keys

router = APIRouter(prefix="/extensions", tags=["extensions"])


def _get_extensions(request: Request):
    return request.app.state.extensions


def _get_orchestrator(request: Request):
    return request.app.state.orchestrator


@router.get("", response_model=dict[str, ExtensionOut])
async def list_extensions(request: Request, extensions=Depends(_get_extensions)):
    """Extensions granted today, keyed by site id."""
    today = keys.date_string(request.app.state.clock())
    return {site_id: ExtensionOut(**ext.to_dict()) for site_id, ext in (await extensions.get_day(today)).items()}


@router.post("", response_model=ExtensionOut, status_code=201)
async def grant_extension(req: ExtensionRequest, orchestrator=Depends(_get_orchestrator)):
    """Raise a site's limits for the rest of today. Replaces an earlier grant."""
    ext = await orchestrator.grant_extension(req.siteId, req.extendedMinutes, req.extendedOpens, req.excuse)
    return ExtensionOut(**ext.to_dict())
