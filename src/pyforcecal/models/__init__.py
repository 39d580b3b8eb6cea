"""Data models for calendar state."""

from pyforcecal.models._base import CalendarInstant, ForceCalBaseModel, parse_instant
from pyforcecal.models.event import CalendarEvent
from pyforcecal.models.state import STATE_KEYS, CalendarState, CalendarView

__all__ = [
    "STATE_KEYS",
    "CalendarEvent",
    "CalendarInstant",
    "CalendarState",
    "CalendarView",
    "ForceCalBaseModel",
    "parse_instant",
]
