"""
Storage key layout.

Static keys hold whole collections; date-partitioned keys hold one day of
usage or extensions and are pruned by the daily reset.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

SITES = "sites"
GROUPS = "groups"
TIMEOUT_NOTES = "timeoutNotes"
DISPLAY_PREFERENCES = "displayPreferences"
TRACKING_SESSION = "trackingSession"

USAGE_PREFIX = "usageStats-"
EXTENSIONS_PREFIX = "extensions-"
DATE_PARTITIONED_PREFIXES = (USAGE_PREFIX, EXTENSIONS_PREFIX)


def date_string(ts: float) -> str:
    """Local-timezone YYYY-MM-DD for a Unix timestamp."""
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d")


def usage_key(date: str) -> str:
    return f"{USAGE_PREFIX}{date}"


def extensions_key(date: str) -> str:
    return f"{EXTENSIONS_PREFIX}{date}"


def date_from_key(key: str) -> Optional[str]:
    """Return the embedded date of a partitioned key, or None for static keys."""
    for prefix in DATE_PARTITIONED_PREFIXES:
        if key.startswith(prefix):
            return key[len(prefix):]
    return None
