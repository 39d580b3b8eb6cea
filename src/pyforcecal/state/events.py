"""Bus topic vocabulary and notification payloads.

Every notification the store publishes uses one of these topics and one
of these frozen payload models.  State-change payloads carry both the
previous and the next full snapshot so observers can diff without
querying the store again.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict

from pyforcecal.models.event import CalendarEvent
from pyforcecal.models.state import CalendarState, CalendarView

DayValue = datetime | date
"""A calendar day or instant as the engine reports it."""


class Topic(StrEnum):
    STATE_CHANGED = "state:changed"

    EVENT_ADD = "event:add"
    EVENT_UPDATE = "event:update"
    EVENT_REMOVE = "event:remove"
    EVENT_ADDED = "event:added"
    EVENT_UPDATED = "event:updated"
    EVENT_DELETED = "event:deleted"
    EVENT_ERROR = "event:error"
    EVENT_SELECTED = "event:selected"
    EVENT_DESELECTED = "event:deselected"

    DATE_CHANGED = "date:changed"
    DATE_SELECTED = "date:selected"
    DATE_DESELECTED = "date:deselected"

    VIEW_CHANGED = "view:changed"

    NAVIGATION_NEXT = "navigation:next"
    NAVIGATION_PREVIOUS = "navigation:previous"
    NAVIGATION_TODAY = "navigation:today"
    NAVIGATION_GOTO = "navigation:goto"

    ERROR = "error"


def state_key_topic(key: str) -> str:
    """Per-key topic, e.g. ``state:events:changed``."""
    return f"state:{key}:changed"


class _Notice(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)


class StateChange(_Notice):
    """Aggregate ``state:changed`` payload."""

    old_state: CalendarState
    new_state: CalendarState
    changed_keys: tuple[str, ...]


class StateKeyChange(_Notice):
    """``state:<key>:changed`` payload."""

    key: str
    old_value: Any = None
    new_value: Any = None
    state: CalendarState


class EventNotice(_Notice):
    """Payload for event add/update/remove/select topics.

    ``event`` is set for add, update and select; removal only knows the id.
    Deselection carries neither.
    """

    event: CalendarEvent | None = None
    event_id: str | None = None


class EventErrorNotice(_Notice):
    """``event:error`` payload: which action failed, with what input, and why."""

    action: str
    payload: Any = None
    error: Any = None


class DateNotice(_Notice):
    """Payload for ``date:*`` and ``navigation:*`` topics."""

    date: DayValue | None = None


class ViewNotice(_Notice):
    view: CalendarView


class ErrorNotice(_Notice):
    error: Any
