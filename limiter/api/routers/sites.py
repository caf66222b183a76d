"""
/sites — CRUD for limited sites. Every write re-evaluates all open tabs.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request

from ...api.schemas import ReevaluationOut, SiteChangeOut, SiteOut

router = APIRouter(prefix="/sites", tags=["sites"])


def _get_catalog(request: Request):
    return request.app.state.catalog


def _get_orchestrator(request: Request):
    return request.app.state.orchestrator


@router.get("", response_model=list[SiteOut])
async def list_sites(catalog=Depends(_get_catalog)):
    return [SiteOut(**s.to_dict()) for s in await catalog.list_sites()]


@router.post("", response_model=SiteChangeOut, status_code=201)
async def add_site(
    payload: Dict[str, Any] = Body(...),
    catalog=Depends(_get_catalog),
    orchestrator=Depends(_get_orchestrator),
):
    site = await catalog.add_site(payload)
    result = await orchestrator.apply_config_change("siteAdded", site.to_dict())
    return SiteChangeOut(site=SiteOut(**site.to_dict()), reevaluation=ReevaluationOut(**result.to_dict()))


@router.patch("/{site_id}", response_model=SiteChangeOut)
async def update_site(
    site_id: str,
    updates: Dict[str, Any] = Body(...),
    catalog=Depends(_get_catalog),
    orchestrator=Depends(_get_orchestrator),
):
    """Partial update; null clears dailyLimitSeconds, dailyOpenLimit or groupId."""
    site = await catalog.update_site(site_id, updates)
    result = await orchestrator.apply_config_change("siteUpdated", site.to_dict())
    return SiteChangeOut(site=SiteOut(**site.to_dict()), reevaluation=ReevaluationOut(**result.to_dict()))


@router.delete("/{site_id}", response_model=SiteChangeOut)
async def delete_site(
    site_id: str,
    catalog=Depends(_get_catalog),
    orchestrator=Depends(_get_orchestrator),
):
    """Remove a site. Its usage history for today is kept."""
    site = await catalog.delete_site(site_id)
    result = await orchestrator.apply_config_change("siteDeleted", {"siteId": site_id})
    return SiteChangeOut(site=SiteOut(**site.to_dict()), reevaluation=ReevaluationOut(**result.to_dict()))
