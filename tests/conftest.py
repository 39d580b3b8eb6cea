from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

import pytest

from pyforcecal.models.event import CalendarEvent
from pyforcecal.models.state import CalendarState, CalendarView
from pyforcecal.state.policy import calendar_day
from pyforcecal.state.store import StateStore


@dataclass
class FakeEngine:
    """In-memory calendar engine with switchable rejection."""

    view: str = "month"
    current: date = date(2026, 1, 15)
    today_date: date = date(2026, 1, 1)
    events: dict[str, CalendarEvent] = field(default_factory=dict)
    reject_add: bool = False
    reject_update: bool = False
    reject_remove: bool = False
    raise_on_add: Exception | None = None
    week_starts_on: int = 0
    locale: str = "en-US"
    time_zone: str = "UTC"
    calls: dict[str, int] = field(default_factory=dict)
    _next_id: int = 0
    _view_cache: dict[tuple[str, date], dict[str, Any]] = field(default_factory=dict)

    def _record_call(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    # Event CRUD -----------------------------------------------------------

    def add_event(self, event: CalendarEvent | Mapping[str, Any]) -> CalendarEvent | None:
        self._record_call("add_event")
        if self.raise_on_add is not None:
            raise self.raise_on_add
        if self.reject_add:
            return None
        data = event.model_dump(by_alias=True) if isinstance(event, CalendarEvent) else dict(event)
        if not data.get("id"):
            self._next_id += 1
            data["id"] = f"evt-{self._next_id}"
        created = CalendarEvent.model_validate(data)
        self.events[created.id] = created
        return created

    def update_event(self, event_id: str, updates: Mapping[str, Any]) -> CalendarEvent | None:
        self._record_call("update_event")
        if self.reject_update or event_id not in self.events:
            return None
        updated = self.events[event_id].with_updates(updates)
        self.events[event_id] = updated
        return updated

    def remove_event(self, event_id: str) -> bool:
        self._record_call("remove_event")
        if self.reject_remove:
            return False
        return self.events.pop(event_id, None) is not None

    def get_events(self) -> list[CalendarEvent]:
        return list(self.events.values())

    def get_events_for_date(self, day: date | datetime) -> list[CalendarEvent]:
        target = calendar_day(day)
        return [event for event in self.events.values() if event.start.date() == target]

    def get_events_in_range(self, start: date | datetime, end: date | datetime) -> list[CalendarEvent]:
        first, last = calendar_day(start), calendar_day(end)
        return [event for event in self.events.values() if first <= event.start.date() <= last]

    # Navigation -----------------------------------------------------------

    def get_view(self) -> str:
        return self.view

    def set_view(self, view: str) -> None:
        if view not in ("month", "week", "day"):
            raise ValueError(f"unsupported view {view}")
        self.view = view

    def get_current_date(self) -> date:
        return self.current

    def go_to_date(self, day: date | datetime) -> None:
        self.current = calendar_day(day)

    def _step(self, direction: int) -> None:
        if self.view == "month":
            month_index = self.current.year * 12 + self.current.month - 1 + direction
            self.current = date(month_index // 12, month_index % 12 + 1, 1)
        elif self.view == "week":
            self.current += timedelta(days=7 * direction)
        else:
            self.current += timedelta(days=direction)

    def next(self) -> None:
        self._step(1)

    def previous(self) -> None:
        self._step(-1)

    def today(self) -> None:
        self.current = self.today_date

    def get_view_data(self) -> dict[str, Any]:
        # Cached like a real engine would, so callers must not mutate it.
        key = (self.view, self.current)
        if key not in self._view_cache:
            self._view_cache[key] = self._build_view_data()
        return self._view_cache[key]

    def _build_view_data(self) -> dict[str, Any]:
        if self.view == "day":
            return {"date": self.current, "hours": [{"hour": hour} for hour in range(24)]}
        if self.view == "week":
            offset = ((self.current.weekday() + 1) - self.week_starts_on) % 7
            start = self.current - timedelta(days=offset)
            return {"days": [{"date": start + timedelta(days=i)} for i in range(7)]}
        first = self.current.replace(day=1)
        offset = ((first.weekday() + 1) - self.week_starts_on) % 7
        start = first - timedelta(days=offset)
        return {
            "weeks": [
                {"days": [{"date": start + timedelta(days=w * 7 + d)} for d in range(7)]}
                for w in range(6)
            ]
        }

    # Configuration ----------------------------------------------------------

    def set_week_starts_on(self, day: int) -> None:
        self.week_starts_on = day

    def set_locale(self, locale: str) -> None:
        self.locale = locale

    def set_timezone(self, time_zone: str) -> None:
        self.time_zone = time_zone


@dataclass
class RecordingPresenter:
    calls: list[tuple[str, Any]] = field(default_factory=list)
    fail_on: set[str] = field(default_factory=set)

    def _record(self, name: str, value: Any) -> None:
        self.calls.append((name, value))
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")

    def rebuild(self, state: CalendarState) -> None:
        self._record("rebuild", state.view)

    def show_error(self, error: Any) -> None:
        self._record("show_error", error)

    def set_loading(self, loading: bool) -> None:
        self._record("set_loading", loading)

    def set_title(self, title: str) -> None:
        self._record("set_title", title)

    def set_active_view(self, view: CalendarView) -> None:
        self._record("set_active_view", view)

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    @property
    def titles(self) -> list[str]:
        return [value for name, value in self.calls if name == "set_title"]


@dataclass
class RecordingRenderer:
    view: CalendarView
    log: list[tuple[str, CalendarView]]

    def render(self) -> None:
        self.log.append(("render", self.view))

    def cleanup(self) -> None:
        self.log.append(("cleanup", self.view))


@dataclass
class RecordingRendererFactory:
    log: list[tuple[str, CalendarView]] = field(default_factory=list)
    created: list[RecordingRenderer] = field(default_factory=list)
    fail: bool = False

    def __call__(self, view: CalendarView, store: StateStore) -> RecordingRenderer:
        if self.fail:
            raise RuntimeError("no renderer")
        self.log.append(("create", view))
        renderer = RecordingRenderer(view, self.log)
        self.created.append(renderer)
        return renderer


def make_event(event_id: str, start: datetime, minutes: int = 60, **extra: Any) -> CalendarEvent:
    return CalendarEvent(id=event_id, start=start, end=start + timedelta(minutes=minutes), **extra)


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def store(engine: FakeEngine) -> StateStore:
    return StateStore(engine, clock=lambda: datetime(2026, 1, 1, 9, 0))


@pytest.fixture
def presenter() -> RecordingPresenter:
    return RecordingPresenter()


@pytest.fixture
def renderer_factory() -> RecordingRendererFactory:
    return RecordingRendererFactory()
