"""Capability contract the store requires from a calendar engine.

The engine is the authoritative owner of event storage, date arithmetic
and view-shape computation.  pyforcecal never subclasses it; a
:class:`~pyforcecal.state.store.StateStore` is handed one engine instance
and talks to it only through the methods below.

Mutations signal rejection either by returning a falsy value or by
raising; the store treats both the same way.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date, datetime
from typing import Any, Protocol, runtime_checkable

from pyforcecal.models.event import CalendarEvent


@runtime_checkable
class CalendarEngine(Protocol):
    # Event CRUD and queries
    def add_event(self, event: CalendarEvent | Mapping[str, Any]) -> CalendarEvent | None: ...

    def update_event(self, event_id: str, updates: Mapping[str, Any]) -> CalendarEvent | None: ...

    def remove_event(self, event_id: str) -> bool: ...

    def get_events(self) -> Sequence[CalendarEvent]: ...

    def get_events_for_date(self, day: date | datetime) -> Sequence[CalendarEvent]: ...

    def get_events_in_range(self, start: date | datetime, end: date | datetime) -> Sequence[CalendarEvent]: ...

    # Navigation state
    def get_view(self) -> str: ...

    def set_view(self, view: str) -> None: ...

    def get_current_date(self) -> datetime | date: ...

    def go_to_date(self, day: date | datetime) -> None: ...

    def next(self) -> None: ...

    def previous(self) -> None: ...

    def today(self) -> None: ...

    def get_view_data(self) -> Mapping[str, Any]:
        """Current view shape.

        One of: ``{"weeks": [{"days": [...]}, ...]}`` (month),
        ``{"days": [...]}`` (week or list), or ``{"date": ..., "hours": [...]}``
        (day).  Each day/hour entry may already carry ``events``.
        """
        ...

    # Configuration
    def set_week_starts_on(self, day: int) -> None: ...

    def set_locale(self, locale: str) -> None: ...

    def set_timezone(self, time_zone: str) -> None: ...
