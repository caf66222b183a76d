"""
Badge text: remaining time and/or remaining opens for the site on a tab.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from .calculator import EffectiveLimits

BADGE_COLOR: Tuple[int, int, int, int] = (0, 122, 255, 255)


def format_remaining_time(seconds: int) -> str:
    """Largest whole unit only: '2h', '45m', '30s'."""
    if seconds <= 0:
        return "0s"
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h"
    if minutes > 0:
        return f"{minutes}m"
    return f"{secs}s"


def badge_text(limits: Optional[EffectiveLimits]) -> str:
    if limits is None or not limits.site.is_enabled:
        return ""
    parts: List[str] = []
    if limits.remaining_seconds is not None:
        parts.append(format_remaining_time(limits.remaining_seconds))
    if limits.remaining_opens is not None:
        parts.append(str(limits.remaining_opens))
    return "/".join(parts)
