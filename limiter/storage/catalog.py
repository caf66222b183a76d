"""
Site & Group Catalog — CRUD for the `sites` and `groups` documents.

Group membership is recorded on both sides (site.groupId and
group.siteIds); the catalog keeps them in step. There are no multi-key
transactions, so each mutation writes `groups` first and `sites` second,
each under its own document lock.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

from ..errors import NotFoundError, ValidationError
from ..models import Group, Site
from ..validation import (
    MAX_SITES,
    normalize_url_pattern,
    validate_flag,
    validate_id,
    validate_open_limit,
    validate_time_limit,
)
from . import keys
from .store import DocumentStore

log = logging.getLogger("limiter.catalog")

_SITE_FIELDS = {"urlPattern", "dailyLimitSeconds", "dailyOpenLimit", "isEnabled", "groupId"}
_GROUP_FIELDS = {"name", "color", "dailyLimitSeconds", "dailyOpenLimit", "isEnabled"}


class Catalog:

    def __init__(self, store: DocumentStore):
        self._store = store

    # ------------------------------------------------------------------
    # Sites
    # ------------------------------------------------------------------

    async def list_sites(self) -> List[Site]:
        raw = await self._store.get(keys.SITES, [])
        return [Site.from_dict(d) for d in raw if isinstance(d, dict) and d.get("id")]

    async def get_site(self, site_id: str) -> Optional[Site]:
        for site in await self.list_sites():
            if site.id == site_id:
                return site
        return None

    async def add_site(self, payload: Dict[str, Any]) -> Site:
        site = Site(
            id=str(uuid.uuid4()),
            url_pattern=normalize_url_pattern(payload.get("urlPattern")),
            is_enabled=validate_flag(payload["isEnabled"], "isEnabled")
            if "isEnabled" in payload else True,
        )
        if payload.get("dailyLimitSeconds") is not None:
            site.daily_limit_seconds = validate_time_limit(payload["dailyLimitSeconds"])
        if payload.get("dailyOpenLimit") is not None:
            site.daily_open_limit = validate_open_limit(payload["dailyOpenLimit"])
        if payload.get("groupId") is not None:
            site.group_id = validate_id(payload["groupId"], "groupId")

        if site.group_id is None and site.daily_limit_seconds is None and site.daily_open_limit is None:
            raise ValidationError(
                "A site needs a time limit or an open limit", field="dailyLimitSeconds"
            )

        if site.group_id is not None:
            await self._require_group(site.group_id)

        def _append(sites: List[dict]) -> List[dict]:
            if len(sites) >= MAX_SITES:
                raise ValidationError(f"Cannot add more than {MAX_SITES} sites")
            sites.append(site.to_dict())
            return sites

        await self._store.update(keys.SITES, _append, default=[])
        if site.group_id is not None:
            await self._attach(site.group_id, site.id)
        log.info(f"Added site {site.id} ({site.url_pattern})")
        return site

    async def update_site(self, site_id: str, updates: Dict[str, Any]) -> Site:
        if not isinstance(updates, dict) or not updates:
            raise ValidationError("Updates must be a non-empty object", field="updates")
        unknown = set(updates) - _SITE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown site fields: {sorted(unknown)}", field="updates")

        clean: Dict[str, Any] = {}
        if "urlPattern" in updates:
            clean["urlPattern"] = normalize_url_pattern(updates["urlPattern"])
        if "dailyLimitSeconds" in updates:
            v = updates["dailyLimitSeconds"]
            clean["dailyLimitSeconds"] = None if v is None else validate_time_limit(v)
        if "dailyOpenLimit" in updates:
            v = updates["dailyOpenLimit"]
            clean["dailyOpenLimit"] = None if v is None else validate_open_limit(v)
        if "isEnabled" in updates:
            clean["isEnabled"] = validate_flag(updates["isEnabled"], "isEnabled")
        if "groupId" in updates:
            v = updates["groupId"]
            clean["groupId"] = None if v is None else validate_id(v, "groupId")
            if clean["groupId"] is not None:
                await self._require_group(clean["groupId"])

        previous = await self.get_site(site_id)
        if previous is None:
            raise NotFoundError(f"Site {site_id!r} not found")

        updated = await self._write_site(site_id, clean)

        if "groupId" in clean and previous.group_id != updated.group_id:
            if previous.group_id:
                await self._detach(previous.group_id, site_id)
            if updated.group_id:
                await self._attach(updated.group_id, site_id)
        return updated

    async def delete_site(self, site_id: str) -> Site:
        removed: List[Site] = []

        def _drop(sites: List[dict]) -> List[dict]:
            kept = []
            for d in sites:
                if d.get("id") == site_id:
                    removed.append(Site.from_dict(d))
                else:
                    kept.append(d)
            if not removed:
                raise NotFoundError(f"Site {site_id!r} not found")
            return kept

        await self._store.update(keys.SITES, _drop, default=[])
        site = removed[0]
        if site.group_id:
            await self._detach(site.group_id, site_id, missing_ok=True)
        log.info(f"Deleted site {site_id} ({site.url_pattern}); usage history kept")
        return site

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    async def list_groups(self) -> List[Group]:
        raw = await self._store.get(keys.GROUPS, [])
        return [Group.from_dict(d) for d in raw if isinstance(d, dict) and d.get("id")]

    async def get_group(self, group_id: str) -> Optional[Group]:
        for group in await self.list_groups():
            if group.id == group_id:
                return group
        return None

    async def add_group(self, payload: Dict[str, Any]) -> Group:
        name = payload.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Group name must be a non-empty string", field="name")
        group = Group(
            id=str(uuid.uuid4()),
            name=name.strip(),
            daily_limit_seconds=validate_time_limit(payload.get("dailyLimitSeconds")),
            color=payload.get("color") or "#6366f1",
            is_enabled=validate_flag(payload["isEnabled"], "isEnabled")
            if "isEnabled" in payload else True,
        )
        if payload.get("dailyOpenLimit") is not None:
            group.daily_open_limit = validate_open_limit(payload["dailyOpenLimit"])

        def _append(groups: List[dict]) -> List[dict]:
            groups.append(group.to_dict())
            return groups

        await self._store.update(keys.GROUPS, _append, default=[])
        log.info(f"Added group {group.id} ({group.name})")
        return group

    async def update_group(self, group_id: str, updates: Dict[str, Any]) -> Group:
        if not isinstance(updates, dict) or not updates:
            raise ValidationError("Updates must be a non-empty object", field="updates")
        unknown = set(updates) - _GROUP_FIELDS
        if unknown:
            raise ValidationError(f"Unknown group fields: {sorted(unknown)}", field="updates")

        clean: Dict[str, Any] = {}
        if "name" in updates:
            name = updates["name"]
            if not isinstance(name, str) or not name.strip():
                raise ValidationError("Group name must be a non-empty string", field="name")
            clean["name"] = name.strip()
        if "color" in updates:
            if not isinstance(updates["color"], str) or not updates["color"]:
                raise ValidationError("Color must be a non-empty string", field="color")
            clean["color"] = updates["color"]
        if "dailyLimitSeconds" in updates:
            clean["dailyLimitSeconds"] = validate_time_limit(updates["dailyLimitSeconds"])
        if "dailyOpenLimit" in updates:
            v = updates["dailyOpenLimit"]
            clean["dailyOpenLimit"] = None if v is None else validate_open_limit(v)
        if "isEnabled" in updates:
            clean["isEnabled"] = validate_flag(updates["isEnabled"], "isEnabled")

        result: List[Group] = []

        def _merge(groups: List[dict]) -> List[dict]:
            for i, d in enumerate(groups):
                if d.get("id") == group_id:
                    merged = {**d, **clean}
                    if merged.get("dailyOpenLimit") is None:
                        merged.pop("dailyOpenLimit", None)
                    groups[i] = merged
                    result.append(Group.from_dict(merged))
                    return groups
            raise NotFoundError(f"Group {group_id!r} not found")

        await self._store.update(keys.GROUPS, _merge, default=[])
        return result[0]

    async def delete_group(self, group_id: str) -> Group:
        """Remove a group; its member sites become standalone."""
        removed: List[Group] = []

        def _drop(groups: List[dict]) -> List[dict]:
            kept = [d for d in groups if d.get("id") != group_id]
            if len(kept) == len(groups):
                raise NotFoundError(f"Group {group_id!r} not found")
            removed.extend(Group.from_dict(d) for d in groups if d.get("id") == group_id)
            return kept

        await self._store.update(keys.GROUPS, _drop, default=[])

        def _release(sites: List[dict]) -> List[dict]:
            for d in sites:
                if d.get("groupId") == group_id:
                    d.pop("groupId", None)
            return sites

        await self._store.update(keys.SITES, _release, default=[])
        log.info(f"Deleted group {group_id}; member sites are standalone again")
        return removed[0]

    async def add_site_to_group(self, group_id: str, site_id: str) -> Group:
        site = await self.get_site(site_id)
        if site is None:
            raise NotFoundError(f"Site {site_id!r} not found")
        await self._require_group(group_id)
        if site.group_id and site.group_id != group_id:
            await self._detach(site.group_id, site_id, missing_ok=True)
        group = await self._attach(group_id, site_id)
        await self._write_site(site_id, {"groupId": group_id})
        return group

    async def remove_site_from_group(self, group_id: str, site_id: str) -> Group:
        await self._require_group(group_id)
        site = await self.get_site(site_id)
        if site is not None and site.group_id == group_id:
            if site.daily_limit_seconds is None and site.daily_open_limit is None:
                raise ValidationError(
                    "A standalone site needs a time limit or an open limit",
                    field="dailyLimitSeconds",
                )
            # site first, so a failed write leaves membership intact
            await self._write_site(site_id, {"groupId": None})
        return await self._detach(group_id, site_id)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _require_group(self, group_id: str) -> Group:
        group = await self.get_group(group_id)
        if group is None:
            raise NotFoundError(f"Group {group_id!r} not found")
        return group

    async def _write_site(self, site_id: str, clean: Dict[str, Any]) -> Site:
        result: List[Site] = []

        def _merge(sites: List[dict]) -> List[dict]:
            for i, d in enumerate(sites):
                if d.get("id") == site_id:
                    merged = {**d, **clean}
                    for opt in ("dailyLimitSeconds", "dailyOpenLimit", "groupId"):
                        if merged.get(opt) is None:
                            merged.pop(opt, None)
                    if "groupId" not in merged and "dailyLimitSeconds" not in merged \
                            and "dailyOpenLimit" not in merged:
                        raise ValidationError(
                            "A standalone site needs a time limit or an open limit",
                            field="dailyLimitSeconds",
                        )
                    sites[i] = merged
                    result.append(Site.from_dict(merged))
                    return sites
            raise NotFoundError(f"Site {site_id!r} not found")

        await self._store.update(keys.SITES, _merge, default=[])
        return result[0]

    async def _attach(self, group_id: str, site_id: str) -> Group:
        result: List[Group] = []

        def _add(groups: List[dict]) -> List[dict]:
            for d in groups:
                if d.get("id") == group_id:
                    ids = d.setdefault("siteIds", [])
                    if site_id not in ids:
                        ids.append(site_id)
                    result.append(Group.from_dict(d))
                    return groups
            raise NotFoundError(f"Group {group_id!r} not found")

        await self._store.update(keys.GROUPS, _add, default=[])
        return result[0]

    async def _detach(self, group_id: str, site_id: str, missing_ok: bool = False) -> Optional[Group]:
        result: List[Group] = []

        def _remove(groups: List[dict]) -> List[dict]:
            for d in groups:
                if d.get("id") == group_id:
                    d["siteIds"] = [s for s in d.get("siteIds", []) if s != site_id]
                    result.append(Group.from_dict(d))
                    return groups
            if missing_ok:
                return groups
            raise NotFoundError(f"Group {group_id!r} not found")

        await self._store.update(keys.GROUPS, _remove, default=[])
        return result[0] if result else None
