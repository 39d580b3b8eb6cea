"""Deterministic resync and change-detection rules.

This module intentionally contains *no* engine access or notification.
The store decides *when* to resync; these helpers decide *whether* the
mirror differs and *which* keys changed.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime
from typing import Any

from pyforcecal.models.event import CalendarEvent
from pyforcecal.models.state import STATE_KEYS, CalendarState


def events_match(mirror: Sequence[CalendarEvent], engine_events: Sequence[CalendarEvent]) -> bool:
    """Cheap identity-set comparison used by non-forced resyncs.

    Policy:
    - Different lengths never match.
    - Otherwise every engine id must already be present in the mirror.

    Content is deliberately not compared; an update keeps the id set
    intact, which is why updates must resync with ``force=True``.
    """
    if len(mirror) != len(engine_events):
        return False
    mirror_ids = {event.id for event in mirror}
    return all(event.id in mirror_ids for event in engine_events)


def should_resync(
    *,
    mirror: Sequence[CalendarEvent],
    engine_events: Sequence[CalendarEvent],
    force: bool,
) -> bool:
    return force or not events_match(mirror, engine_events)


def value_changed(old: Any, new: Any) -> bool:
    """Whether a state field changed between two snapshots.

    Containers and models are compared by identity: the store always
    builds a new object when it means to signal a change, and reuses the
    old one otherwise.  Scalars (strings, numbers, enums, dates) are
    compared by value.
    """
    if old is new:
        return False
    if isinstance(old, (bool, int, float, str, date, datetime)) and isinstance(
        new, (bool, int, float, str, date, datetime)
    ):
        return type(old) is not type(new) or old != new
    return True


def changed_keys(old: CalendarState, new: CalendarState, keys: Iterable[str] = STATE_KEYS) -> tuple[str, ...]:
    """Return the state keys whose value changed, in field order."""
    return tuple(key for key in keys if value_changed(getattr(old, key), getattr(new, key)))


def calendar_day(value: Any) -> date | None:
    """Reduce a date, datetime or ISO string to its calendar day."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value.strip()).date()
    raise TypeError(f"Cannot interpret {type(value).__name__} as a calendar day")


def same_day(a: Any, b: Any) -> bool:
    day_a = calendar_day(a)
    return day_a is not None and day_a == calendar_day(b)


def engine_config_updates(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Pick the configuration keys the engine must be told about."""
    return {key: changes[key] for key in ("weekStartsOn", "locale", "timeZone") if key in changes}
