"""High-level calendar facade.

Wires one :class:`EventBus`, one :class:`StateStore` and one
:class:`ReconciliationController` per calendar instance and forwards bus
traffic to an outward callback.

Usage::

    calendar = ForceCalendar(engine, presenter=presenter, renderer_factory=make_renderer)
    calendar.mount()
    calendar.add_event({"id": "1", "title": "Standup", "start": ..., "end": ...})
    calendar.destroy()
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel

from pyforcecal.bus import EventBus, HandlerErrorCallback
from pyforcecal.config import CalendarConfig
from pyforcecal.engine import CalendarEngine
from pyforcecal.models.event import CalendarEvent
from pyforcecal.models.state import CalendarView
from pyforcecal.reconcile import CalendarPresenter, ReconciliationController, RendererFactory
from pyforcecal.state.events import Topic
from pyforcecal.state.store import StateStore

_logger = logging.getLogger(__name__)

CalendarEventCallback = Callable[[str, dict[str, Any]], None]
"""Outward callback: ``callback(name, detail)``, e.g. ``("calendar-navigate", {...})``."""


def _detail(payload: Any) -> dict[str, Any]:
    if payload is None:
        return {}
    if isinstance(payload, Mapping):
        return dict(payload)
    if isinstance(payload, BaseModel):
        # Keep nested models (events, states) as objects rather than dumping them.
        return {name: getattr(payload, name) for name in type(payload).model_fields}
    return {"payload": payload}


class ForceCalendar:
    """One interactive calendar: state, notifications and view reconciliation.

    Parameters
    ----------
    engine : CalendarEngine
        Authoritative calendar engine.
    config : CalendarConfig or None
        Display configuration pushed into the engine at construction.
    presenter : CalendarPresenter
        Header/status surface driven by the controller.
    renderer_factory : RendererFactory
        Builds per-view renderers.
    on_calendar_event : callable or None
        Receives forwarded notifications (``calendar-navigate``,
        ``calendar-view-change``, ``calendar-event-<action>``,
        ``calendar-date-select``).
    on_handler_error : callable or None
        Diagnostic hook for bus handler failures.
    """

    def __init__(
        self,
        engine: CalendarEngine,
        *,
        presenter: CalendarPresenter,
        renderer_factory: RendererFactory,
        config: CalendarConfig | None = None,
        on_calendar_event: CalendarEventCallback | None = None,
        on_handler_error: HandlerErrorCallback | None = None,
    ) -> None:
        self._bus = EventBus(on_handler_error=on_handler_error)
        self._store = StateStore(engine, bus=self._bus, config=config)
        self._controller = ReconciliationController(self._store, presenter, renderer_factory)
        self._on_calendar_event = on_calendar_event
        self._unsubscribers: list[Callable[[], None]] = []
        self._setup_forwarding()

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def controller(self) -> ReconciliationController:
        return self._controller

    # ------------------------------------------------------------------
    # Outward notifications
    # ------------------------------------------------------------------

    def _setup_forwarding(self) -> None:
        on = self._bus.on
        self._unsubscribers = [
            on("navigation:*", self._forward_navigation),
            on(Topic.VIEW_CHANGED, self._forward_view_change),
            on("event:*", self._forward_event),
            on(Topic.DATE_SELECTED, self._forward_date_select),
        ]

    def _dispatch(self, name: str, detail: dict[str, Any]) -> None:
        if self._on_calendar_event is None:
            return
        try:
            self._on_calendar_event(name, detail)
        except Exception:
            _logger.exception("on_calendar_event callback failed for %s", name)

    def _forward_navigation(self, payload: Any, topic: str) -> None:
        self._dispatch("calendar-navigate", {"action": topic.split(":", 1)[1], **_detail(payload)})

    def _forward_view_change(self, payload: Any, topic: str) -> None:
        self._dispatch("calendar-view-change", _detail(payload))

    def _forward_event(self, payload: Any, topic: str) -> None:
        self._dispatch(f"calendar-event-{topic.split(':', 1)[1]}", _detail(payload))

    def _forward_date_select(self, payload: Any, topic: str) -> None:
        self._dispatch("calendar-date-select", _detail(payload))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def mount(self) -> None:
        """Present the current state and start reconciling changes."""
        self._controller.start()

    def destroy(self) -> None:
        self._controller.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._store.destroy()
        self._bus.clear()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add_event(self, event: CalendarEvent | Mapping[str, Any]) -> CalendarEvent | None:
        return self._store.add_event(event)

    def update_event(self, event_id: str, updates: Mapping[str, Any]) -> CalendarEvent | None:
        return self._store.update_event(event_id, updates)

    def delete_event(self, event_id: str) -> bool:
        return self._store.delete_event(event_id)

    def get_events(self) -> list[CalendarEvent]:
        return self._store.get_events()

    def set_view(self, view: CalendarView | str) -> None:
        self._store.set_view(view)

    def set_date(self, day: date | datetime | str) -> None:
        self._store.set_date(day)

    def next(self) -> None:
        self._store.next()

    def previous(self) -> None:
        self._store.previous()

    def today(self) -> None:
        self._store.today()

    async def settle(self) -> list[Any]:
        """Await the async handlers triggered by earlier calls."""
        return await self._store.settle()
