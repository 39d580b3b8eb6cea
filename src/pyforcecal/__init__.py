"""pyforcecal - Reactive state and view reconciliation for calendar widgets."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyforcecal")
except PackageNotFoundError:
    __version__ = "0+local"
from pyforcecal.bus import EmitResult, EventBus, Subscription
from pyforcecal.calendar import ForceCalendar
from pyforcecal.config import CalendarConfig
from pyforcecal.engine import CalendarEngine
from pyforcecal.exceptions import (
    ForceCalConfigError,
    ForceCalEngineError,
    ForceCalError,
    ForceCalStateError,
)
from pyforcecal.layout import OverlapLayoutEntry, compute_overlap_layout, partition_day_events
from pyforcecal.models import CalendarEvent, CalendarState, CalendarView
from pyforcecal.reconcile import (
    CalendarPresenter,
    ReconciliationController,
    UpdateAction,
    ViewRenderer,
    format_title,
    plan_update,
)
from pyforcecal.state.events import Topic
from pyforcecal.state.store import StateStore

__all__ = [
    "__version__",
    "CalendarConfig",
    "CalendarEngine",
    "CalendarEvent",
    "CalendarPresenter",
    "CalendarState",
    "CalendarView",
    "EmitResult",
    "EventBus",
    "ForceCalConfigError",
    "ForceCalEngineError",
    "ForceCalError",
    "ForceCalStateError",
    "ForceCalendar",
    "OverlapLayoutEntry",
    "ReconciliationController",
    "StateStore",
    "Subscription",
    "Topic",
    "UpdateAction",
    "ViewRenderer",
    "compute_overlap_layout",
    "format_title",
    "partition_day_events",
    "plan_update",
]
