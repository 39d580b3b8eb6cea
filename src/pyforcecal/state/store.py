"""State store mirroring an authoritative calendar engine.

This is the only component allowed to change calendar state.  Every
mutation follows the same protocol:

1. delegate the authoritative change to the engine,
2. resync the mirrored state from the engine's current truth,
3. notify direct subscribers, then the event bus.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from types import MappingProxyType
from typing import Any

from pyforcecal._redact import redact_for_log
from pyforcecal.bus import EmitResult, EventBus
from pyforcecal.config import CalendarConfig
from pyforcecal.engine import CalendarEngine
from pyforcecal.exceptions import ForceCalConfigError, ForceCalEngineError, ForceCalStateError
from pyforcecal.models._base import parse_instant
from pyforcecal.models.event import CalendarEvent
from pyforcecal.models.state import STATE_KEYS, CalendarState, CalendarView
from pyforcecal.state.events import (
    DateNotice,
    ErrorNotice,
    EventErrorNotice,
    EventNotice,
    StateChange,
    StateKeyChange,
    Topic,
    ViewNotice,
    state_key_topic,
)
from pyforcecal.state.policy import calendar_day, changed_keys, engine_config_updates, same_day, should_resync

_logger = logging.getLogger(__name__)

StateCallback = Callable[[CalendarState, CalendarState], None]
"""Direct subscriber: called as ``callback(new_state, old_state)``."""


def _now() -> datetime:
    return datetime.now().astimezone()


def _coerce_day(value: date | datetime | str) -> date | datetime:
    if isinstance(value, str):
        return parse_instant(value)
    return value


@dataclass(slots=True, eq=False)
class _Subscriber:
    callback: StateCallback
    subscriber_id: str | None = None
    priority: int = 0


class StateStore:
    """Mirror of one engine's state with fine-grained change notifications.

    Parameters
    ----------
    engine : CalendarEngine
        The authoritative engine.  The store owns this reference
        exclusively until :meth:`destroy`.
    bus : EventBus or None
        Bus that receives outward notifications.  A private bus is
        created when omitted, so independent calendars never cross-talk.
    config : CalendarConfig or None
        Display configuration.  When given, its view, date, week start,
        locale and time zone are pushed into the engine first.
    clock : callable
        Returns the current instant; used by :meth:`is_today`.
    """

    def __init__(
        self,
        engine: CalendarEngine,
        *,
        bus: EventBus | None = None,
        config: CalendarConfig | None = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._engine: CalendarEngine | None = engine
        self._bus = bus if bus is not None else EventBus()
        self._clock = clock
        self._subscribers: list[_Subscriber] = []
        self._pending: list[EmitResult] = []

        config_mapping: dict[str, Any] = {}
        if config is not None:
            config_mapping = config.to_mapping()
            engine.set_view(config.view)
            if config.date is not None:
                engine.go_to_date(config.date)
            self._apply_engine_config(engine, config_mapping)

        self._state: CalendarState | None = CalendarState(
            view=CalendarView(engine.get_view()),
            current_date=engine.get_current_date(),
            config=config_mapping,
        )
        # Pick up events the engine was pre-loaded with.
        self._sync_events_from_engine(silent=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_engine(self) -> CalendarEngine:
        if self._engine is None:
            raise ForceCalStateError("State store has been destroyed")
        return self._engine

    def _require_state(self) -> CalendarState:
        if self._state is None:
            raise ForceCalStateError("State store has been destroyed")
        return self._state

    @staticmethod
    def _apply_engine_config(engine: CalendarEngine, changes: Mapping[str, Any]) -> None:
        updates = engine_config_updates(changes)
        if "weekStartsOn" in updates:
            engine.set_week_starts_on(updates["weekStartsOn"])
        if "locale" in updates:
            engine.set_locale(updates["locale"])
        if "timeZone" in updates:
            engine.set_timezone(updates["timeZone"])

    def _sync_events_from_engine(self, *, force: bool = False, silent: bool = False) -> list[CalendarEvent]:
        """Reconcile the mirrored events with the engine's collection.

        The cheap identity-set check is enough after add/delete, which
        always change the id set.  Updates keep the id set intact and
        must pass ``force=True`` or changed fields would be missed.
        """
        engine_events = list(self._require_engine().get_events() or ())
        if should_resync(mirror=self._require_state().events, engine_events=engine_events, force=force):
            self.set_state({"events": tuple(engine_events)}, silent=silent)
        return engine_events

    def _emit(self, topic: str, payload: Any) -> EmitResult:
        result = self._bus.emit(topic, payload)
        if result.pending:
            self._pending.append(result)
        return result

    def _reject(self, action: str, payload: Any, cause: BaseException | None = None) -> None:
        error = ForceCalEngineError(f"Engine rejected {action}", action=action, payload=payload)
        error.__cause__ = cause
        _logger.warning(
            "Engine rejected %s payload=%s cause=%r",
            action,
            redact_for_log(payload),
            cause,
        )
        self._emit(Topic.EVENT_ERROR, EventErrorNotice(action=action, payload=payload, error=error))

    # ------------------------------------------------------------------
    # State primitives
    # ------------------------------------------------------------------

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def state(self) -> CalendarState:
        """Current snapshot (the live immutable object, not a copy)."""
        return self._require_state()

    def get_state(self) -> CalendarState:
        """Return a defensive snapshot of the current state."""
        state = self._require_state()
        return state.model_copy(update={"config": dict(state.config)})

    @property
    def pending(self) -> int:
        """Handler awaitables from store notifications that have not settled."""
        self._pending = [result for result in self._pending if result.pending]
        return sum(result.pending for result in self._pending)

    async def settle(self) -> list[Any]:
        """Await every handler awaitable the store's notifications produced.

        Async bus handlers never block a mutation; they are collected here
        and run (or finish) when this is awaited.  Notifications emitted
        while settling are settled too.  Returns the successful results.
        """
        values: list[Any] = []
        while self._pending:
            batch, self._pending = self._pending, []
            for result in batch:
                values.extend(await result)
        return values

    def set_state(self, patch: Mapping[str, Any] | None = None, *, silent: bool = False, **changes: Any) -> CalendarState:
        """Replace the state with *patch* applied and notify observers.

        Unless *silent*, direct subscribers are called first, then one
        ``state:<key>:changed`` topic per changed key, then one aggregate
        ``state:changed`` topic.
        """
        old_state = self._require_state()
        updates = {**(patch or {}), **changes}
        unknown = set(updates) - set(STATE_KEYS)
        if unknown:
            raise ForceCalStateError(f"Unknown state keys: {sorted(unknown)}")
        if "events" in updates:
            updates["events"] = tuple(updates["events"])
        if "config" in updates:
            updates["config"] = MappingProxyType(dict(updates["config"]))

        new_state = old_state.model_copy(update=updates)
        self._state = new_state

        if not silent:
            self._notify_subscribers(old_state, new_state)
            self._emit_state_change(old_state, new_state)
        return new_state

    def _notify_subscribers(self, old_state: CalendarState, new_state: CalendarState) -> None:
        for sub in list(self._subscribers):
            try:
                sub.callback(new_state, old_state)
            except Exception:
                _logger.exception("Error in state subscriber %s", sub.subscriber_id or sub.callback)

    def _emit_state_change(self, old_state: CalendarState, new_state: CalendarState) -> None:
        keys = changed_keys(old_state, new_state)
        if not keys:
            return
        _logger.debug("state change keys=%s", keys)
        for key in keys:
            self._emit(
                state_key_topic(key),
                StateKeyChange(
                    key=key,
                    old_value=getattr(old_state, key),
                    new_value=getattr(new_state, key),
                    state=new_state,
                ),
            )
        self._emit(
            Topic.STATE_CHANGED,
            StateChange(old_state=old_state, new_state=new_state, changed_keys=keys),
        )

    # ------------------------------------------------------------------
    # Direct subscribers
    # ------------------------------------------------------------------

    def subscribe(
        self,
        callback: StateCallback,
        subscriber_id: str | None = None,
        *,
        priority: int = 0,
    ) -> Callable[[], None]:
        """Register *callback* for every non-silent state change.

        Higher *priority* subscribers run first; ties keep registration
        order.  Returns an unsubscribe function.
        """
        for existing in self._subscribers:
            if existing.callback == callback:
                if subscriber_id is not None:
                    existing.subscriber_id = subscriber_id
                break
        else:
            sub = _Subscriber(callback, subscriber_id, priority)
            index = len(self._subscribers)
            for i, other in enumerate(self._subscribers):
                if other.priority < priority:
                    index = i
                    break
            self._subscribers.insert(index, sub)

        def unsubscribe() -> None:
            self.unsubscribe(callback)

        return unsubscribe

    def unsubscribe(self, callback: StateCallback) -> None:
        self._subscribers = [sub for sub in self._subscribers if sub.callback != callback]

    def unsubscribe_by_id(self, subscriber_id: str) -> bool:
        """Remove the subscriber registered under *subscriber_id*."""
        remaining = [sub for sub in self._subscribers if sub.subscriber_id != subscriber_id]
        removed = len(remaining) != len(self._subscribers)
        self._subscribers = remaining
        return removed

    def get_subscriber_count(self) -> int:
        return len(self._subscribers)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def get_view(self) -> CalendarView:
        return self._require_state().view

    def set_view(self, view: CalendarView | str) -> None:
        try:
            target = CalendarView(view)
        except ValueError as exc:
            raise ForceCalConfigError(f"Unknown view {view!r}") from exc

        engine = self._require_engine()
        engine.set_view(target.value)
        resolved = CalendarView(engine.get_view())
        self.set_state({"view": resolved, "current_date": engine.get_current_date()})
        self._emit(Topic.VIEW_CHANGED, ViewNotice(view=resolved))

    def get_current_date(self) -> datetime | date:
        return self._require_state().current_date

    def _navigate(self, action: Callable[[], None], topic: Topic) -> None:
        action()
        current = self._require_engine().get_current_date()
        self.set_state({"current_date": current})
        self._emit(topic, DateNotice(date=current))

    def set_date(self, day: date | datetime | str) -> None:
        target = _coerce_day(day)
        self._navigate(lambda: self._require_engine().go_to_date(target), Topic.DATE_CHANGED)

    def go_to_date(self, day: date | datetime | str) -> None:
        target = _coerce_day(day)
        self._navigate(lambda: self._require_engine().go_to_date(target), Topic.NAVIGATION_GOTO)

    def next(self) -> None:
        self._navigate(self._require_engine().next, Topic.NAVIGATION_NEXT)

    def previous(self) -> None:
        self._navigate(self._require_engine().previous, Topic.NAVIGATION_PREVIOUS)

    def today(self) -> None:
        self._navigate(self._require_engine().today, Topic.NAVIGATION_TODAY)

    # ------------------------------------------------------------------
    # Event management
    # ------------------------------------------------------------------

    def add_event(self, event: CalendarEvent | Mapping[str, Any]) -> CalendarEvent | None:
        """Add *event* through the engine.

        Returns the engine's event (which may carry an engine-assigned
        id), or ``None`` after publishing ``event:error`` when the engine
        rejects it.
        """
        engine = self._require_engine()
        try:
            added = engine.add_event(event)
        except Exception as exc:
            self._reject("add", event, exc)
            return None
        if not added:
            self._reject("add", event)
            return None

        self._sync_events_from_engine()
        self._emit(Topic.EVENT_ADD, EventNotice(event=added, event_id=added.id))
        self._emit(Topic.EVENT_ADDED, EventNotice(event=added, event_id=added.id))
        return added

    def update_event(self, event_id: str, updates: Mapping[str, Any]) -> CalendarEvent | None:
        """Apply *updates* to the event *event_id* through the engine."""
        engine = self._require_engine()
        # Recover from any earlier divergence before touching the engine.
        self._sync_events_from_engine(silent=True)

        payload = {"id": event_id, "updates": dict(updates)}
        try:
            updated = engine.update_event(event_id, updates)
        except Exception as exc:
            self._reject("update", payload, exc)
            return None
        if not updated:
            self._reject("update", payload)
            return None

        self._sync_events_from_engine(force=True)
        self._emit(Topic.EVENT_UPDATE, EventNotice(event=updated, event_id=updated.id))
        self._emit(Topic.EVENT_UPDATED, EventNotice(event=updated, event_id=updated.id))
        return updated

    def delete_event(self, event_id: str) -> bool:
        """Remove the event *event_id* through the engine."""
        engine = self._require_engine()
        self._sync_events_from_engine(silent=True)

        payload = {"id": event_id}
        try:
            deleted = engine.remove_event(event_id)
        except Exception as exc:
            self._reject("delete", payload, exc)
            return False
        if not deleted:
            self._reject("delete", payload)
            return False

        self._sync_events_from_engine()
        self._emit(Topic.EVENT_REMOVE, EventNotice(event_id=event_id))
        self._emit(Topic.EVENT_DELETED, EventNotice(event_id=event_id))
        return True

    def get_events(self) -> list[CalendarEvent]:
        """Events as the engine currently holds them (source of truth)."""
        return list(self._require_engine().get_events() or ())

    def sync_events(self) -> list[CalendarEvent]:
        """Resync the mirror for callers that changed the engine directly."""
        return self._sync_events_from_engine()

    def get_events_for_date(self, day: date | datetime) -> list[CalendarEvent]:
        return list(self._require_engine().get_events_for_date(day) or ())

    def get_events_in_range(self, start: date | datetime, end: date | datetime) -> list[CalendarEvent]:
        return list(self._require_engine().get_events_in_range(start, end) or ())

    # ------------------------------------------------------------------
    # View data
    # ------------------------------------------------------------------

    def get_view_data(self) -> dict[str, Any]:
        """Engine view shape enriched with selection flags and events.

        The engine may cache and reuse the structure it returns, so every
        level touched here is shallow-copied instead of mutated.
        """
        view_data = self._require_engine().get_view_data()
        return self._enrich_view_data(view_data)

    def _enrich_day(self, day: Mapping[str, Any], selected: date | None) -> dict[str, Any]:
        events = day.get("events")
        return {
            **day,
            "isSelected": selected is not None and calendar_day(day.get("date")) == selected,
            "events": list(events) if events is not None else self.get_events_for_date(day["date"]),
        }

    def _enrich_view_data(self, view_data: Mapping[str, Any]) -> dict[str, Any]:
        enriched = dict(view_data)
        selected = calendar_day(self._require_state().selected_date)

        # Multi-week structure (month view)
        if enriched.get("weeks") is not None:
            enriched["weeks"] = [
                {**week, "days": [self._enrich_day(day, selected) for day in week.get("days", ())]}
                for week in enriched["weeks"]
            ]

        # Flat day sequence (week or list view)
        if enriched.get("days") is not None:
            enriched["days"] = [self._enrich_day(day, selected) for day in enriched["days"]]

        # Single day (day view)
        if enriched.get("date") is not None and "days" not in enriched and "weeks" not in enriched:
            enriched.update(self._enrich_day(enriched, selected))
            if enriched.get("hours") is not None:
                enriched["hours"] = [dict(hour) for hour in enriched["hours"]]

        return enriched

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_event(self, event: CalendarEvent) -> None:
        self.set_state({"selected_event": event})
        self._emit(Topic.EVENT_SELECTED, EventNotice(event=event, event_id=event.id))

    def select_event_by_id(self, event_id: str) -> bool:
        """Select the mirrored event with *event_id*; ``False`` if unknown."""
        for event in self._require_state().events:
            if event.id == event_id:
                self.select_event(event)
                return True
        return False

    def deselect_event(self) -> None:
        self.set_state({"selected_event": None})
        self._emit(Topic.EVENT_DESELECTED, EventNotice())

    def select_date(self, day: date | datetime | str) -> None:
        target = _coerce_day(day)
        self.set_state({"selected_date": target})
        self._emit(Topic.DATE_SELECTED, DateNotice(date=target))

    def deselect_date(self) -> None:
        self.set_state({"selected_date": None})
        self._emit(Topic.DATE_DESELECTED, DateNotice())

    # ------------------------------------------------------------------
    # Day predicates
    # ------------------------------------------------------------------

    def is_today(self, day: date | datetime) -> bool:
        return same_day(day, self._clock())

    def is_selected_date(self, day: date | datetime) -> bool:
        return same_day(day, self._require_state().selected_date)

    @staticmethod
    def is_weekend(day: date | datetime) -> bool:
        return day.weekday() >= 5

    # ------------------------------------------------------------------
    # Status and configuration
    # ------------------------------------------------------------------

    def set_loading(self, loading: bool) -> None:
        self.set_state({"loading": bool(loading)})

    def set_error(self, error: Any) -> None:
        self.set_state({"error": error})
        if error:
            self._emit(Topic.ERROR, ErrorNotice(error=error))

    def clear_error(self) -> None:
        self.set_state({"error": None})

    def update_config(self, changes: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        """Merge *changes* into ``state.config`` and forward engine settings."""
        merged_changes = {**(changes or {}), **kwargs}
        if "weekStartsOn" in merged_changes and not 0 <= int(merged_changes["weekStartsOn"]) <= 6:
            raise ForceCalConfigError(f"weekStartsOn must be between 0 and 6, got {merged_changes['weekStartsOn']}")
        state = self._require_state()
        self.set_state({"config": {**state.config, **merged_changes}})
        self._apply_engine_config(self._require_engine(), merged_changes)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def destroy(self) -> None:
        """Release subscribers and the engine; the store is unusable afterwards.

        Handler awaitables that were never settled are dropped with a warning.
        """
        for result in self._pending:
            result.discard()
        self._pending.clear()
        self._subscribers.clear()
        self._state = None
        self._engine = None

    @property
    def destroyed(self) -> bool:
        return self._engine is None

