"""
/groups — CRUD for site groups and their membership.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request

from ...api.schemas import GroupChangeOut, GroupOut, ReevaluationOut

router = APIRouter(prefix="/groups", tags=["groups"])


def _get_catalog(request: Request):
    return request.app.state.catalog


def _get_orchestrator(request: Request):
    return request.app.state.orchestrator


def _change(group, result) -> GroupChangeOut:
    return GroupChangeOut(group=GroupOut(**group.to_dict()), reevaluation=ReevaluationOut(**result.to_dict()))


@router.get("", response_model=list[GroupOut])
async def list_groups(catalog=Depends(_get_catalog)):
    return [GroupOut(**g.to_dict()) for g in await catalog.list_groups()]


@router.post("", response_model=GroupChangeOut, status_code=201)
async def add_group(
    payload: Dict[str, Any] = Body(...),
    catalog=Depends(_get_catalog),
    orchestrator=Depends(_get_orchestrator),
):
    group = await catalog.add_group(payload)
    return _change(group, await orchestrator.apply_config_change("groupAdded", group.to_dict()))


@router.patch("/{group_id}", response_model=GroupChangeOut)
async def update_group(
    group_id: str,
    updates: Dict[str, Any] = Body(...),
    catalog=Depends(_get_catalog),
    orchestrator=Depends(_get_orchestrator),
):
    group = await catalog.update_group(group_id, updates)
    return _change(group, await orchestrator.apply_config_change("groupUpdated", group.to_dict()))


@router.delete("/{group_id}", response_model=GroupChangeOut)
async def delete_group(
    group_id: str,
    catalog=Depends(_get_catalog),
    orchestrator=Depends(_get_orchestrator),
):
    """Remove a group; its sites stay and fall back to their own limits."""
    group = await catalog.delete_group(group_id)
    return _change(group, await orchestrator.apply_config_change("groupDeleted", {"groupId": group_id}))


# ── Membership ──────────────────────────────────────────────────────────────

@router.post("/{group_id}/sites/{site_id}", response_model=GroupChangeOut)
async def add_site_to_group(
    group_id: str,
    site_id: str,
    catalog=Depends(_get_catalog),
    orchestrator=Depends(_get_orchestrator),
):
    group = await catalog.add_site_to_group(group_id, site_id)
    result = await orchestrator.apply_config_change("groupUpdated", group.to_dict())
    return _change(group, result)


@router.delete("/{group_id}/sites/{site_id}", response_model=GroupChangeOut)
async def remove_site_from_group(
    group_id: str,
    site_id: str,
    catalog=Depends(_get_catalog),
    orchestrator=Depends(_get_orchestrator),
):
    group = await catalog.remove_site_from_group(group_id, site_id)
    result = await orchestrator.apply_config_change("groupUpdated", group.to_dict())
    return _change(group, result)
