"""Helpers for safe debug logging.

Calendar payloads routinely carry private free text (meeting titles,
locations, attendee lists).  This module renders payloads for log lines
with those fields replaced, so DEBUG/WARNING output only shows ids,
instants and flags.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "title",
        "description",
        "location",
        "attendees",
        "notes",
        "organizer",
        "email",
    }
)


def redact_for_log(value: Any, *, max_string: int = 200, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for log lines."""
    if _depth > 20:
        return "<max-depth>"

    if value is None:
        return None

    if isinstance(value, BaseModel):
        value = value.model_dump(by_alias=True)

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            if key.lower() in _SENSITIVE_VALUE_KEYS:
                redacted[key] = "<redacted>"
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    # Dates, enums and other leaf values print safely through str().
    return str(value)
