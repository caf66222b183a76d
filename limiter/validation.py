"""
Input validation for configuration writes. Every check raises
ValidationError before anything reaches the store.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, Optional

from .errors import ValidationError

MAX_SITES = 500
MAX_NOTES = 1000
MAX_URL_LENGTH = 2000
MAX_NOTE_LENGTH = 1000
MAX_DAILY_LIMIT_SECONDS = 86400   # 24 hours
MAX_DAILY_OPEN_LIMIT = 1000
MIN_EXCUSE_LENGTH = 35

_HOSTNAME_RE = re.compile(r"^[a-z0-9.-]*[a-z0-9]$")
_RESTRICTED = ("javascript:", "data:", "file:", "chrome:", "moz-extension:", "about:")


def normalize_url_pattern(raw: Any) -> str:
    """
    Reduce user input to a bare hostname fragment:
    'https://www.Example.com/feed' -> 'example.com'.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError("URL pattern must be a non-empty string", field="urlPattern")

    trimmed = raw.strip()
    if len(trimmed) > MAX_URL_LENGTH:
        raise ValidationError(
            f"URL pattern too long (max {MAX_URL_LENGTH} characters)", field="urlPattern"
        )

    lowered = trimmed.lower()
    if any(p in lowered for p in _RESTRICTED):
        raise ValidationError("URL pattern contains a restricted protocol", field="urlPattern")

    normalized = re.sub(r"^https?://", "", lowered)
    normalized = re.sub(r"^www\.", "", normalized)
    host = normalized.split("/")[0].split("?")[0].split("#")[0]
    host = host.split(":")[0]

    if not _HOSTNAME_RE.match(host):
        raise ValidationError(
            "Invalid URL format. Please enter a valid domain (e.g., example.com)",
            field="urlPattern",
        )
    return host


def validate_time_limit(value: Any, field: str = "dailyLimitSeconds") -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("Time limit must be a valid number", field=field)
    if value <= 0:
        raise ValidationError("Time limit must be greater than 0", field=field)
    if value > MAX_DAILY_LIMIT_SECONDS:
        raise ValidationError("Time limit cannot exceed 24 hours", field=field)
    return int(value)


def validate_open_limit(value: Any, field: str = "dailyOpenLimit") -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("Open limit must be a valid number", field=field)
    if value <= 0:
        raise ValidationError("Open limit must be greater than 0", field=field)
    if value > MAX_DAILY_OPEN_LIMIT:
        raise ValidationError(
            f"Open limit cannot exceed {MAX_DAILY_OPEN_LIMIT} opens per day", field=field
        )
    return int(value)


def validate_flag(value: Any, field: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean", field=field)
    return value


def validate_id(value: Any, field: str = "id") -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a non-empty string", field=field)
    return value.strip()


def validate_note_text(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Note text must be a non-empty string", field="text")
    text = value.strip()
    if len(text) > MAX_NOTE_LENGTH:
        raise ValidationError(
            f"Note too long (max {MAX_NOTE_LENGTH} characters)", field="text"
        )
    return text


def require_fields(payload: Optional[Dict[str, Any]], fields: Iterable[str]) -> None:
    if not isinstance(payload, dict):
        raise ValidationError("Payload must be an object")
    for name in fields:
        if payload.get(name) in (None, ""):
            raise ValidationError(f"Missing required field: {name}", field=name)


def validate_extension_request(minutes: Any, opens: Any, excuse: Any) -> tuple[int, int, str]:
    for name, value in (("extendedMinutes", minutes), ("extendedOpens", opens)):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(f"{name} must be a non-negative integer", field=name)
    if minutes <= 0 and opens <= 0:
        raise ValidationError("Must extend either time or opens", field="extendedMinutes")
    if not isinstance(excuse, str) or len(excuse.strip()) < MIN_EXCUSE_LENGTH:
        raise ValidationError(
            f"Excuse must be at least {MIN_EXCUSE_LENGTH} characters", field="excuse"
        )
    return minutes, opens, excuse.strip()
