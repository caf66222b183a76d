"""
Distraction Detector — answers "is this URL a configured site?" from an
in-memory snapshot of the `sites` and `groups` documents.

The snapshot is immutable and replaced wholesale by load(), so a reader
always sees either the old table or the new one, never a mix.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import FrozenSet, Optional, Tuple
from urllib.parse import urlsplit

from ..errors import LimiterError
from ..models import Group, Site
from ..storage import keys
from ..storage.store import DocumentStore

log = logging.getLogger("limiter.detector")


@dataclass(frozen=True)
class MatchResult:
    is_match: bool = False
    site_id: Optional[str] = None
    group_id: Optional[str] = None
    matching_pattern: Optional[str] = None
    is_enabled: Optional[bool] = None   # only reported by has_limits()

    def to_dict(self) -> dict:
        d = {
            "isMatch": self.is_match,
            "siteId": self.site_id,
            "groupId": self.group_id,
            "matchingPattern": self.matching_pattern,
        }
        if self.is_enabled is not None:
            d["isEnabled"] = self.is_enabled
        return d


NO_MATCH = MatchResult()


@dataclass(frozen=True)
class CatalogSnapshot:
    sites: Tuple[Site, ...] = ()
    groups: Tuple[Group, ...] = ()


def hostname_of(url: str) -> Optional[str]:
    """Hostname of an http(s) URL, or None for anything else."""
    if not isinstance(url, str) or not url.startswith(("http:", "https:")):
        return None
    try:
        return urlsplit(url).hostname
    except ValueError:
        return None


def find_site(hostname: str, sites, include_disabled: bool = False) -> Optional[Site]:
    """First site, in insertion order, whose pattern occurs in *hostname*."""
    for site in sites:
        if not include_disabled and not site.is_enabled:
            continue
        if site.url_pattern and site.url_pattern in hostname:
            return site
    return None


class DistractionDetector:

    _WATCHED: FrozenSet[str] = frozenset({keys.SITES, keys.GROUPS})

    def __init__(self, store: DocumentStore):
        self._store = store
        self._snapshot: Optional[CatalogSnapshot] = None
        self._subscribed = False

    @property
    def loaded(self) -> bool:
        return self._snapshot is not None

    @property
    def snapshot(self) -> CatalogSnapshot:
        return self._snapshot or CatalogSnapshot()

    async def load(self) -> CatalogSnapshot:
        """Reload sites and groups and swap in a fresh snapshot."""
        try:
            docs = await self._store.get_many([keys.SITES, keys.GROUPS])
            sites = tuple(
                Site.from_dict(d) for d in docs.get(keys.SITES) or []
                if isinstance(d, dict) and d.get("id")
            )
            groups = tuple(
                Group.from_dict(d) for d in docs.get(keys.GROUPS) or []
                if isinstance(d, dict) and d.get("id")
            )
            snapshot = CatalogSnapshot(sites=sites, groups=groups)
        except LimiterError as exc:
            log.error(f"Failed to load sites/groups, detector will match nothing: {exc}")
            snapshot = CatalogSnapshot()
        self._snapshot = snapshot
        log.debug(f"Detector cache reloaded: {len(snapshot.sites)} sites, {len(snapshot.groups)} groups")
        return snapshot

    async def start(self) -> None:
        """Initial load plus a store subscription that reloads on catalog changes."""
        await self.load()
        if not self._subscribed:
            self._store.subscribe(self._on_store_change)
            self._subscribed = True

    async def _on_store_change(self, changed: FrozenSet[str]) -> None:
        if changed & self._WATCHED:
            log.debug(f"Catalog keys changed ({sorted(changed & self._WATCHED)}); reloading")
            await self.load()

    def match(self, url: str) -> MatchResult:
        return self._lookup(url, include_disabled=False)

    def has_limits(self, url: str) -> MatchResult:
        """Like match() but also finds paused sites, reporting isEnabled."""
        return self._lookup(url, include_disabled=True)

    def _lookup(self, url: str, include_disabled: bool) -> MatchResult:
        snapshot = self._snapshot
        if snapshot is None:
            log.warning("Detector queried before load(); treating as no match")
            return NO_MATCH

        hostname = hostname_of(url)
        if not hostname:
            return NO_MATCH

        site = find_site(hostname, snapshot.sites, include_disabled=include_disabled)
        if site is None:
            return NO_MATCH
        return MatchResult(
            is_match=True,
            site_id=site.id,
            group_id=site.group_id,
            matching_pattern=site.url_pattern,
            is_enabled=site.is_enabled if include_disabled else None,
        )
