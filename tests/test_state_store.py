from __future__ import annotations

import asyncio
from datetime import date, datetime
from typing import Any

import pytest
from conftest import FakeEngine, make_event

from pyforcecal.config import CalendarConfig
from pyforcecal.exceptions import ForceCalConfigError, ForceCalEngineError, ForceCalStateError
from pyforcecal.models.state import CalendarState, CalendarView
from pyforcecal.state.events import EventErrorNotice, StateChange, StateKeyChange, Topic
from pyforcecal.state.store import StateStore


def _record_topics(store: StateStore) -> list[tuple[str, Any]]:
    log: list[tuple[str, Any]] = []
    store.bus.on("*", lambda payload, topic: log.append((str(topic), payload)))
    return log


def _event_payload(event_id: str = "", title: str = "Standup") -> dict[str, Any]:
    payload: dict[str, Any] = {
        "title": title,
        "start": "2026-01-15T09:00:00",
        "end": "2026-01-15T09:30:00",
    }
    if event_id:
        payload["id"] = event_id
    return payload


class TestConstruction:
    def test_initial_state_mirrors_engine(self, engine: FakeEngine) -> None:
        engine.events["pre"] = make_event("pre", datetime(2026, 1, 15, 8))
        store = StateStore(engine)

        assert store.state.view is CalendarView.MONTH
        assert store.state.current_date == date(2026, 1, 15)
        assert [e.id for e in store.state.events] == ["pre"]
        assert store.state.selected_event is None
        assert store.state.loading is False

    def test_config_is_pushed_into_engine(self, engine: FakeEngine) -> None:
        config = CalendarConfig(
            view="week",
            date=datetime(2026, 2, 10, 12),
            week_starts_on=1,
            locale="de-DE",
            time_zone="Europe/Berlin",
        )
        store = StateStore(engine, config=config)

        assert engine.view == "week"
        assert engine.current == date(2026, 2, 10)
        assert (engine.week_starts_on, engine.locale, engine.time_zone) == (1, "de-DE", "Europe/Berlin")
        assert store.state.view is CalendarView.WEEK
        assert store.state.config["weekStartsOn"] == 1
        assert store.state.config["height"] == "800px"


class TestEventMutations:
    def test_add_event_mirrors_engine_and_emits_in_order(self, store: StateStore, engine: FakeEngine) -> None:
        log = _record_topics(store)
        order: list[str] = []
        store.subscribe(lambda new, old: order.append("subscriber"))
        store.bus.on(Topic.STATE_CHANGED, lambda payload, topic: order.append("bus"))

        added = store.add_event(_event_payload())

        assert added is not None
        assert added.id == "evt-1"
        assert [e.id for e in store.state.events] == [e.id for e in engine.get_events()]
        assert [topic for topic, _ in log] == [
            "state:events:changed",
            "state:changed",
            "event:add",
            "event:added",
        ]
        assert log[-1][1].event_id == "evt-1"
        assert order == ["subscriber", "bus"]

    def test_rejected_add_emits_error_and_leaves_state(self, store: StateStore, engine: FakeEngine) -> None:
        engine.reject_add = True
        before = store.state
        log = _record_topics(store)

        assert store.add_event(_event_payload("x")) is None

        assert store.state is before
        assert [topic for topic, _ in log] == ["event:error"]
        notice = log[0][1]
        assert isinstance(notice, EventErrorNotice)
        assert notice.action == "add"
        assert isinstance(notice.error, ForceCalEngineError)
        assert notice.error.action == "add"

    def test_engine_exception_on_add_is_a_rejection(
        self, store: StateStore, engine: FakeEngine, caplog: pytest.LogCaptureFixture
    ) -> None:
        engine.raise_on_add = ValueError("bad payload")
        log = _record_topics(store)

        with caplog.at_level("WARNING", logger="pyforcecal.state.store"):
            assert store.add_event(_event_payload("x", title="Secret meeting")) is None

        error = log[0][1].error
        assert isinstance(error.__cause__, ValueError)
        assert "Secret meeting" not in caplog.text
        assert "<redacted>" in caplog.text

    def test_update_is_visible_through_forced_resync(self, store: StateStore) -> None:
        store.add_event(_event_payload("a", title="Before"))
        events_before = store.state.events
        log = _record_topics(store)

        updated = store.update_event("a", {"title": "After"})

        assert updated is not None
        assert store.state.events[0].title == "After"
        assert store.state.events is not events_before
        assert [topic for topic, _ in log] == [
            "state:events:changed",
            "state:changed",
            "event:update",
            "event:updated",
        ]

    def test_update_unknown_event_is_rejected(self, store: StateStore) -> None:
        log = _record_topics(store)

        assert store.update_event("missing", {"title": "x"}) is None

        notice = log[0][1]
        assert notice.action == "update"
        assert notice.payload == {"id": "missing", "updates": {"title": "x"}}

    def test_delete_event(self, store: StateStore) -> None:
        store.add_event(_event_payload("a"))
        log = _record_topics(store)

        assert store.delete_event("a") is True

        assert store.state.events == ()
        assert [topic for topic, _ in log][-2:] == ["event:remove", "event:deleted"]
        assert log[-1][1].event_id == "a"

    def test_rejected_delete_returns_false(self, store: StateStore, engine: FakeEngine) -> None:
        store.add_event(_event_payload("a"))
        engine.reject_remove = True
        log = _record_topics(store)

        assert store.delete_event("a") is False
        assert [e.id for e in store.state.events] == ["a"]
        assert log[0][1].payload == {"id": "a"}

    def test_mutations_recover_from_direct_engine_changes(self, store: StateStore, engine: FakeEngine) -> None:
        store.add_event(_event_payload("a"))
        engine.events["b"] = make_event("b", datetime(2026, 1, 16, 10))

        assert store.delete_event("a") is True

        assert [e.id for e in store.state.events] == ["b"]

    def test_sync_events_picks_up_direct_engine_changes(self, store: StateStore, engine: FakeEngine) -> None:
        engine.events["b"] = make_event("b", datetime(2026, 1, 16, 10))
        log = _record_topics(store)

        store.sync_events()
        store.sync_events()

        assert [e.id for e in store.state.events] == ["b"]
        assert [topic for topic, _ in log] == ["state:events:changed", "state:changed"]

    def test_event_queries_delegate_to_engine(self, store: StateStore) -> None:
        store.add_event(_event_payload("a"))
        store.add_event({"id": "b", "start": "2026-01-20T10:00:00"})

        assert [e.id for e in store.get_events()] == ["a", "b"]
        assert [e.id for e in store.get_events_for_date(date(2026, 1, 20))] == ["b"]
        assert [e.id for e in store.get_events_in_range(date(2026, 1, 1), date(2026, 1, 16))] == ["a"]


class TestNavigation:
    def test_set_view_updates_state_then_emits_view_changed(self, store: StateStore, engine: FakeEngine) -> None:
        log = _record_topics(store)

        store.set_view("week")

        assert engine.view == "week"
        assert store.get_view() is CalendarView.WEEK
        assert [topic for topic, _ in log] == ["state:view:changed", "state:changed", "view:changed"]
        assert log[-1][1].view is CalendarView.WEEK

    def test_set_view_rejects_unknown_view(self, store: StateStore) -> None:
        with pytest.raises(ForceCalConfigError):
            store.set_view("year")

    def test_next_previous_today(self, store: StateStore) -> None:
        log = _record_topics(store)

        store.next()
        assert store.get_current_date() == date(2026, 2, 1)
        store.previous()
        assert store.get_current_date() == date(2026, 1, 1)
        store.set_date("2026-03-10")
        assert store.get_current_date() == date(2026, 3, 10)
        store.today()
        assert store.get_current_date() == date(2026, 1, 1)

        topics = [topic for topic, _ in log if not topic.startswith("state:")]
        assert topics == ["navigation:next", "navigation:previous", "date:changed", "navigation:today"]

    def test_go_to_date_emits_goto(self, store: StateStore) -> None:
        log = _record_topics(store)

        store.go_to_date(date(2026, 5, 5))

        assert log[-1][0] == "navigation:goto"
        assert log[-1][1].date == date(2026, 5, 5)


class TestSelection:
    def test_selection_is_independent(self, store: StateStore) -> None:
        event = store.add_event(_event_payload("a"))
        assert event is not None

        store.select_event(event)
        store.select_date(date(2026, 1, 20))
        store.deselect_event()

        assert store.state.selected_event is None
        assert store.state.selected_date == date(2026, 1, 20)

        store.select_event(event)
        store.deselect_date()

        assert store.state.selected_event == event
        assert store.state.selected_date is None

    def test_select_event_by_id(self, store: StateStore) -> None:
        store.add_event(_event_payload("a"))
        log = _record_topics(store)

        assert store.select_event_by_id("a") is True
        assert store.select_event_by_id("zzz") is False
        assert log[-1][0] == "event:selected"

    def test_day_predicates(self, store: StateStore) -> None:
        store.select_date("2026-01-20")

        assert store.is_today(date(2026, 1, 1))
        assert not store.is_today(date(2026, 1, 2))
        assert store.is_selected_date(datetime(2026, 1, 20, 18, 30))
        assert not store.is_selected_date(date(2026, 1, 21))
        assert StateStore.is_weekend(date(2026, 1, 3))
        assert not StateStore.is_weekend(date(2026, 1, 5))


class TestViewData:
    def test_month_view_data_is_enriched_without_mutating_engine(
        self, store: StateStore, engine: FakeEngine
    ) -> None:
        store.add_event(_event_payload("a"))
        store.select_date(date(2026, 1, 15))
        cached = engine.get_view_data()

        data = store.get_view_data()

        days = [day for week in data["weeks"] for day in week["days"]]
        selected = [day for day in days if day["isSelected"]]
        assert [day["date"] for day in selected] == [date(2026, 1, 15)]
        assert [e.id for e in selected[0]["events"]] == ["a"]
        raw_day = cached["weeks"][0]["days"][0]
        assert "isSelected" not in raw_day
        assert "events" not in raw_day
        assert engine.get_view_data() is cached

    def test_week_view_data(self, store: StateStore) -> None:
        store.set_view("week")

        data = store.get_view_data()

        assert len(data["days"]) == 7
        assert data["days"][0]["date"] == date(2026, 1, 11)
        assert all(day["isSelected"] is False for day in data["days"])

    def test_day_view_data_copies_hours(self, store: StateStore, engine: FakeEngine) -> None:
        store.set_view("day")
        store.select_date(date(2026, 1, 15))
        cached = engine.get_view_data()

        data = store.get_view_data()

        assert data["isSelected"] is True
        assert data["events"] == []
        assert data["hours"] == cached["hours"]
        assert data["hours"][0] is not cached["hours"][0]
        assert "isSelected" not in cached


class TestStatePrimitives:
    def test_get_state_returns_defensive_copy(self, store: StateStore) -> None:
        snapshot = store.get_state()
        snapshot.config["locale"] = "fr-FR"

        assert "locale" not in store.state.config

    def test_set_state_rejects_unknown_keys(self, store: StateStore) -> None:
        with pytest.raises(ForceCalStateError):
            store.set_state({"nope": 1})

    def test_silent_set_state_notifies_nobody(self, store: StateStore) -> None:
        calls: list[Any] = []
        store.subscribe(lambda new, old: calls.append(new))
        log = _record_topics(store)

        store.set_state({"loading": True}, silent=True)

        assert store.state.loading is True
        assert calls == []
        assert log == []

    def test_per_key_and_aggregate_payloads(self, store: StateStore) -> None:
        old = store.state
        log = _record_topics(store)

        store.set_state(loading=True, error="offline")

        assert [topic for topic, _ in log] == ["state:loading:changed", "state:error:changed", "state:changed"]
        key_change = log[0][1]
        assert isinstance(key_change, StateKeyChange)
        assert (key_change.old_value, key_change.new_value) == (False, True)
        aggregate = log[-1][1]
        assert isinstance(aggregate, StateChange)
        assert aggregate.old_state is old
        assert aggregate.changed_keys == ("loading", "error")

    def test_unchanged_values_emit_no_topics(self, store: StateStore) -> None:
        store.set_loading(True)
        log = _record_topics(store)

        store.set_loading(True)

        assert log == []

    def test_error_helpers(self, store: StateStore) -> None:
        log = _record_topics(store)

        store.set_error("offline")
        store.clear_error()

        assert store.state.error is None
        assert "error" in [topic for topic, _ in log]

    def test_update_config_merges_and_reaches_engine(self, store: StateStore, engine: FakeEngine) -> None:
        store.update_config({"weekStartsOn": 1}, locale="sv-SE", height="600px")

        assert store.state.config == {"weekStartsOn": 1, "locale": "sv-SE", "height": "600px"}
        assert engine.week_starts_on == 1
        assert engine.locale == "sv-SE"

    def test_live_config_is_read_only(self, store: StateStore) -> None:
        store.update_config(locale="sv-SE")

        def tamper(new: CalendarState, old: CalendarState) -> None:
            new.config["locale"] = "fr-FR"  # type: ignore[index]

        store.subscribe(tamper)
        store.set_loading(True)

        assert store.state.config["locale"] == "sv-SE"
        with pytest.raises(TypeError):
            store.state.config["locale"] = "fr-FR"  # type: ignore[index]
        assert store.get_state().config == {"locale": "sv-SE"}

    def test_update_config_rejects_bad_week_start(self, store: StateStore) -> None:
        with pytest.raises(ForceCalConfigError):
            store.update_config(weekStartsOn=7)


class TestSubscribers:
    def test_priority_dedupe_and_removal(self, store: StateStore) -> None:
        order: list[str] = []

        def low(new: CalendarState, old: CalendarState) -> None:
            order.append("low")

        def high(new: CalendarState, old: CalendarState) -> None:
            order.append("high")

        store.subscribe(low, "low")
        store.subscribe(high, "high", priority=10)
        store.subscribe(low)

        store.set_loading(True)
        assert order == ["high", "low"]
        assert store.get_subscriber_count() == 2

        assert store.unsubscribe_by_id("high") is True
        assert store.unsubscribe_by_id("high") is False
        store.unsubscribe(low)
        assert store.get_subscriber_count() == 0

    def test_failing_subscriber_is_isolated(self, store: StateStore) -> None:
        seen: list[CalendarState] = []

        def broken(new: CalendarState, old: CalendarState) -> None:
            raise RuntimeError("subscriber broke")

        store.subscribe(broken, priority=1)
        unsubscribe = store.subscribe(lambda new, old: seen.append(new))

        store.set_loading(True)
        unsubscribe()
        store.set_loading(False)

        assert len(seen) == 1
        assert seen[0].loading is True


class TestLifecycle:
    def test_destroyed_store_raises(self, store: StateStore) -> None:
        store.destroy()

        assert store.destroyed
        with pytest.raises(ForceCalStateError):
            store.get_state()
        with pytest.raises(ForceCalStateError):
            store.add_event(_event_payload("a"))
        with pytest.raises(ForceCalStateError):
            store.next()


class TestMirrorConsistency:
    @pytest.mark.parametrize(
        "steps",
        [
            [("add", "a"), ("add", "b"), ("update", "a"), ("delete", "b"), ("add", "c")],
            [("add", "a"), ("delete", "a"), ("update", "a"), ("add", "a"), ("delete", "missing")],
            [("update", "ghost"), ("add", "x"), ("update", "x"), ("update", "x"), ("delete", "x"), ("delete", "x")],
        ],
    )
    def test_interleaved_mutations_keep_mirror_equal_to_engine(
        self, store: StateStore, engine: FakeEngine, steps: list[tuple[str, str]]
    ) -> None:
        for index, (action, event_id) in enumerate(steps):
            if action == "add":
                store.add_event(_event_payload(event_id))
            elif action == "update":
                store.update_event(event_id, {"title": f"Edited {index}"})
            else:
                store.delete_event(event_id)

            mirrored = {event.id: event.title for event in store.state.events}
            assert mirrored == {event.id: event.title for event in engine.get_events()}


class TestAsyncHandlers:
    def test_async_handler_without_loop_runs_on_settle(self, store: StateStore) -> None:
        ran: list[str] = []

        async def on_added(payload: Any, topic: str) -> str:
            ran.append(payload.event_id)
            return payload.event_id

        store.bus.on(Topic.EVENT_ADDED, on_added)
        store.add_event(_event_payload("a"))

        assert ran == []
        assert store.pending == 1

        assert asyncio.run(store.settle()) == ["a"]
        assert ran == ["a"]
        assert store.pending == 0

    @pytest.mark.asyncio
    async def test_async_handler_inside_loop_is_settled(self, store: StateStore) -> None:
        ran: list[str] = []

        async def on_added(payload: Any, topic: str) -> None:
            await asyncio.sleep(0)
            ran.append(payload.event_id)

        store.bus.on(Topic.EVENT_ADDED, on_added)
        store.add_event(_event_payload("a"))
        await store.settle()

        assert ran == ["a"]
        assert store.pending == 0

    def test_destroy_reports_unsettled_handlers(self, store: StateStore, caplog: pytest.LogCaptureFixture) -> None:
        ran: list[str] = []

        async def on_added(payload: Any, topic: str) -> None:
            ran.append(payload.event_id)

        store.bus.on(Topic.EVENT_ADDED, on_added)
        store.add_event(_event_payload("a"))

        with caplog.at_level("WARNING", logger="pyforcecal.bus"):
            store.destroy()

        assert ran == []
        assert "Dropping unsettled result" in caplog.text
