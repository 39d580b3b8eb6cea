"""Targeted view updates driven by state diffs.

For every state change the controller picks the cheapest sufficient
presentation update instead of rebuilding the whole view tree.  The
decision is a strict priority list, evaluated by :func:`plan_update`;
exactly one action runs per notification:

1. ``error`` changed          -> full rebuild (error panel or fresh view)
2. ``loading`` changed        -> toggle the loading indicator only
3. ``view`` changed           -> title, active button, swap renderer
4. ``current_date`` changed   -> title, repaint renderer content
5. ``events`` changed         -> repaint renderer content
6. anything else (selection)  -> nothing; renderers own highlighting

When several fields change in one transition only the highest-priority
branch fires.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta
from enum import StrEnum
from typing import Any, Protocol

from pyforcecal.models.state import CalendarState, CalendarView
from pyforcecal.state.policy import calendar_day, value_changed
from pyforcecal.state.store import StateStore

_logger = logging.getLogger(__name__)


class UpdateAction(StrEnum):
    FULL_REBUILD = "full_rebuild"
    TOGGLE_LOADING = "toggle_loading"
    SWAP_VIEW = "swap_view"
    NAVIGATE = "navigate"
    REPAINT = "repaint"
    NONE = "none"


class ViewRenderer(Protocol):
    """Paints one view type into its container."""

    def render(self) -> None: ...

    def cleanup(self) -> None:
        """Release listeners and other resources held by the renderer."""
        ...


RendererFactory = Callable[[CalendarView, StateStore], ViewRenderer]


class CalendarPresenter(Protocol):
    """Chrome around the active renderer (header, buttons, status panels)."""

    def rebuild(self, state: CalendarState) -> None: ...

    def show_error(self, error: Any) -> None: ...

    def set_loading(self, loading: bool) -> None: ...

    def set_title(self, title: str) -> None: ...

    def set_active_view(self, view: CalendarView) -> None: ...


def plan_update(old: CalendarState, new: CalendarState) -> UpdateAction:
    """Choose the single update action for a state transition."""
    if value_changed(old.error, new.error):
        return UpdateAction.FULL_REBUILD
    if value_changed(old.loading, new.loading):
        return UpdateAction.TOGGLE_LOADING
    if value_changed(old.view, new.view):
        return UpdateAction.SWAP_VIEW
    if value_changed(old.current_date, new.current_date):
        return UpdateAction.NAVIGATE
    if value_changed(old.events, new.events):
        return UpdateAction.REPAINT
    return UpdateAction.NONE


def format_title(day: date | datetime, view: CalendarView | str, week_starts_on: int = 0) -> str:
    """Header text for *view* anchored on *day* (English only)."""
    current = calendar_day(day)
    if current is None:
        return ""
    view = CalendarView(view)

    if view is CalendarView.WEEK:
        # weekday() counts from Monday; week_starts_on counts from Sunday.
        offset = ((current.weekday() + 1) - week_starts_on) % 7
        start = current - timedelta(days=offset)
        end = start + timedelta(days=6)
        if start.year == end.year:
            return f"{start:%b} {start.day} - {end:%b} {end.day}, {end.year}"
        return f"{start:%b} {start.day}, {start.year} - {end:%b} {end.day}, {end.year}"
    if view is CalendarView.DAY:
        return f"{current:%A}, {current:%B} {current.day}, {current.year}"
    return f"{current:%B} {current.year}"


class ReconciliationController:
    """Applies :func:`plan_update` decisions to a presenter and renderer.

    Parameters
    ----------
    store : StateStore
        Source of state changes.  The controller registers itself as a
        direct subscriber on :meth:`start`.
    presenter : CalendarPresenter
        Header/status surface.
    renderer_factory : RendererFactory
        Builds the renderer for a view type.
    """

    def __init__(
        self,
        store: StateStore,
        presenter: CalendarPresenter,
        renderer_factory: RendererFactory,
        *,
        subscriber_id: str = "reconciliation-controller",
    ) -> None:
        self._store = store
        self._presenter = presenter
        self._renderer_factory = renderer_factory
        self._subscriber_id = subscriber_id
        self._renderer: ViewRenderer | None = None
        self._active_view: CalendarView | None = None
        self._rendered = False
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def active_view(self) -> CalendarView | None:
        return self._active_view

    @property
    def renderer(self) -> ViewRenderer | None:
        return self._renderer

    @property
    def running(self) -> bool:
        return self._unsubscribe is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Subscribe to the store and present the current state."""
        if self._unsubscribe is not None:
            return
        self._unsubscribe = self._store.subscribe(self._on_state_change, self._subscriber_id)
        self._rebuild(self._store.state)

    def stop(self) -> None:
        """Unsubscribe and dispose the active renderer."""
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
        self._dispose_renderer()
        self._active_view = None

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _on_state_change(self, new_state: CalendarState, old_state: CalendarState) -> None:
        action = plan_update(old_state, new_state)
        _logger.debug("reconcile action=%s", action)
        self.apply(action, new_state)

    def apply(self, action: UpdateAction, state: CalendarState) -> None:
        """Run *action* against the presenter and renderer."""
        if action is UpdateAction.FULL_REBUILD:
            self._rebuild(state)
        elif action is UpdateAction.TOGGLE_LOADING:
            self._safe_call(self._presenter.set_loading, state.loading)
        elif action is UpdateAction.SWAP_VIEW:
            self._update_title(state)
            self._safe_call(self._presenter.set_active_view, state.view)
            self._mount_renderer(state.view)
        elif action is UpdateAction.NAVIGATE:
            self._update_title(state)
            self._repaint(state.view)
        elif action is UpdateAction.REPAINT:
            self._repaint(state.view)

    def _rebuild(self, state: CalendarState) -> None:
        if state.error:
            # The error panel replaces the whole view content.
            self._dispose_renderer()
            self._safe_call(self._presenter.show_error, state.error)
            return
        self._safe_call(self._presenter.rebuild, state)
        self._update_title(state)
        self._safe_call(self._presenter.set_active_view, state.view)
        # A rebuild wipes the container, so the renderer is always rebuilt too.
        self._mount_renderer(state.view, force=True)

    def _update_title(self, state: CalendarState) -> None:
        title = format_title(state.current_date, state.view, int(state.config.get("weekStartsOn", 0)))
        self._safe_call(self._presenter.set_title, title)

    # ------------------------------------------------------------------
    # Renderer management
    # ------------------------------------------------------------------

    def _mount_renderer(self, view: CalendarView, *, force: bool = False) -> None:
        if not force and self._renderer is not None and self._active_view == view and self._rendered:
            _logger.debug("renderer for %s already mounted, skipping", view)
            return

        self._dispose_renderer()
        try:
            renderer = self._renderer_factory(view, self._store)
        except Exception:
            _logger.exception("Failed to create renderer for %s", view)
            self._active_view = view
            return

        self._renderer = renderer
        self._active_view = view
        self._rendered = self._safe_call(renderer.render)

    def _repaint(self, view: CalendarView) -> None:
        if self._renderer is None or self._active_view != view:
            self._mount_renderer(view)
            return
        self._rendered = self._safe_call(self._renderer.render)

    def _dispose_renderer(self) -> None:
        renderer, self._renderer = self._renderer, None
        self._rendered = False
        if renderer is not None:
            self._safe_call(renderer.cleanup)

    @staticmethod
    def _safe_call(fn: Callable[..., Any], *args: Any) -> bool:
        try:
            fn(*args)
        except Exception:
            _logger.exception("Presentation call %s failed", getattr(fn, "__qualname__", fn))
            return False
        return True
