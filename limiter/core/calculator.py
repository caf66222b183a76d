"""
Limit Calculator — pure decision of whether a URL is over its daily limit.

Inputs are plain in-memory tables (sites, groups, today's usage and today's
extensions); nothing here touches the store, so the same decision is
reproducible from any snapshot. Any unexpected failure resolves to
"do not block".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Sequence

from ..models import Extension, Group, Site, UsageStat
from .detector import find_site, hostname_of

log = logging.getLogger("limiter.calculator")

LIMIT_BOTH = "both"
LIMIT_TIME = "time"
LIMIT_OPENS = "opens"


@dataclass(frozen=True)
class BlockDecision:
    should_block: bool = False
    site_id: Optional[str] = None
    reason: Optional[str] = None
    limit_type: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "shouldBlock": self.should_block,
            "siteId": self.site_id,
            "reason": self.reason,
            "limitType": self.limit_type,
        }


NOT_BLOCKED = BlockDecision()


@dataclass(frozen=True)
class EffectiveLimits:
    """Limits and usage that apply to one site today."""
    site: Site
    group: Optional[Group]
    base_time_limit: int          # seconds; 0 means no time limit
    base_open_limit: int          # 0 means no open limit
    time_limit: int               # base plus any extension
    open_limit: int
    usage: UsageStat              # cumulative (group aggregate when grouped)
    compared_usage: UsageStat     # what is held against the limits
    extension: Optional[Extension] = None

    @property
    def context_name(self) -> str:
        return f'group "{self.group.name}"' if self.group else "this site"

    @property
    def time_exceeded(self) -> bool:
        return self.base_time_limit > 0 and self.compared_usage.time_spent_seconds >= self.time_limit

    @property
    def opens_exceeded(self) -> bool:
        return self.base_open_limit > 0 and self.compared_usage.opens >= self.open_limit

    @property
    def remaining_seconds(self) -> Optional[int]:
        if self.base_time_limit <= 0:
            return None
        return max(0, self.time_limit - self.compared_usage.time_spent_seconds)

    @property
    def remaining_opens(self) -> Optional[int]:
        if self.base_open_limit <= 0:
            return None
        return max(0, self.open_limit - self.compared_usage.opens)

    def to_dict(self) -> dict:
        return {
            "siteId": self.site.id,
            "groupId": self.group.id if self.group else None,
            "groupName": self.group.name if self.group else None,
            "dailyLimitSeconds": self.base_time_limit or None,
            "dailyOpenLimit": self.base_open_limit or None,
            "effectiveLimitSeconds": self.time_limit or None,
            "effectiveOpenLimit": self.open_limit or None,
            "todaySeconds": self.usage.time_spent_seconds,
            "todayOpenCount": self.usage.opens,
            "remainingSeconds": self.remaining_seconds,
            "remainingOpens": self.remaining_opens,
            "extension": self.extension.to_dict() if self.extension else None,
        }


def aggregate_usage(sites: Iterable[Site], group_id: str, usage: Mapping[str, UsageStat]) -> UsageStat:
    """Sum of usage over every site currently assigned to *group_id*."""
    total = UsageStat()
    for site in sites:
        if site.group_id == group_id:
            total = total + usage.get(site.id, UsageStat())
    return total


def active_group(site: Site, groups: Iterable[Group]) -> Optional[Group]:
    """The site's group, if it exists and is enabled."""
    if not site.group_id:
        return None
    for group in groups:
        if group.id == site.group_id:
            return group if group.is_enabled else None
    return None


def resolve_limits(
    site: Site,
    sites: Sequence[Site],
    groups: Sequence[Group],
    usage: Mapping[str, UsageStat],
    extensions: Mapping[str, Extension],
) -> EffectiveLimits:
    group = active_group(site, groups)
    if group is not None:
        base_time = group.daily_limit_seconds or 0
        base_opens = group.daily_open_limit or 0
        current = aggregate_usage(sites, group.id, usage)
    else:
        base_time = site.daily_limit_seconds or 0
        base_opens = site.daily_open_limit or 0
        current = usage.get(site.id, UsageStat())

    # extensions are granted per site even when the site is grouped
    extension = extensions.get(site.id)
    time_limit, open_limit, compared = base_time, base_opens, current
    if extension is not None and (extension.extended_minutes > 0 or extension.extended_opens > 0):
        time_limit += extension.extended_minutes * 60
        open_limit += extension.extended_opens
        if extension.usage_at_extension_time is not None:
            compared = current.since(extension.usage_at_extension_time)
    else:
        extension = None

    return EffectiveLimits(
        site=site,
        group=group,
        base_time_limit=base_time,
        base_open_limit=base_opens,
        time_limit=time_limit,
        open_limit=open_limit,
        usage=current,
        compared_usage=compared,
        extension=extension,
    )


def _minutes(seconds: int) -> int:
    return int(seconds / 60 + 0.5)


def blocking_reason(limits: EffectiveLimits, time_exceeded: bool, opens_exceeded: bool) -> str:
    ctx = limits.context_name
    used, allowed = _minutes(limits.usage.time_spent_seconds), _minutes(limits.time_limit)
    if time_exceeded and opens_exceeded:
        return (
            f"You've exceeded both your time limit ({used}/{allowed} minutes) and open limit "
            f"({limits.usage.opens}/{limits.open_limit} opens) for {ctx} today."
        )
    if time_exceeded:
        return f"You've spent {used} minutes on {ctx} today, exceeding your {allowed} minute limit."
    if opens_exceeded:
        return (
            f"You've opened {ctx} {limits.usage.opens} times today, "
            f"exceeding your {limits.open_limit} open limit."
        )
    return f"Daily limit exceeded for {ctx}."


def decide(limits: EffectiveLimits) -> BlockDecision:
    time_exceeded = limits.time_exceeded
    opens_exceeded = limits.opens_exceeded
    if not (time_exceeded or opens_exceeded):
        return BlockDecision(should_block=False, site_id=limits.site.id)

    if time_exceeded and opens_exceeded:
        limit_type = LIMIT_BOTH
    elif time_exceeded:
        limit_type = LIMIT_TIME
    else:
        limit_type = LIMIT_OPENS
    return BlockDecision(
        should_block=True,
        site_id=limits.site.id,
        reason=blocking_reason(limits, time_exceeded, opens_exceeded),
        limit_type=limit_type,
    )


def evaluate(
    url: str,
    sites: Sequence[Site],
    groups: Sequence[Group],
    usage: Mapping[str, UsageStat],
    extensions: Mapping[str, Extension],
) -> BlockDecision:
    """Decide whether *url* is over today's limit. Never raises."""
    try:
        hostname = hostname_of(url)
        if not hostname:
            return NOT_BLOCKED
        site = find_site(hostname, sites)
        if site is None:
            return NOT_BLOCKED
        return decide(resolve_limits(site, sites, groups, usage, extensions))
    except Exception:
        log.exception(f"Limit evaluation failed for {url!r}; not blocking")
        return NOT_BLOCKED


def would_exceed_opens(
    url: str,
    sites: Sequence[Site],
    groups: Sequence[Group],
    usage: Mapping[str, UsageStat],
    extensions: Mapping[str, Extension],
) -> bool:
    """True when one more open of *url* would reach its open limit."""
    try:
        hostname = hostname_of(url)
        site = find_site(hostname, sites) if hostname else None
        if site is None:
            return False
        limits = resolve_limits(site, sites, groups, usage, extensions)
        return limits.base_open_limit > 0 and limits.compared_usage.opens + 1 > limits.open_limit
    except Exception:
        log.exception(f"Open-limit check failed for {url!r}")
        return False

