"""Calendar state snapshot model."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from pyforcecal.models.event import CalendarEvent


class CalendarView(StrEnum):
    MONTH = "month"
    WEEK = "week"
    DAY = "day"


def _read_only(value: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(value))


ReadOnlyConfig = Annotated[Mapping[str, Any], AfterValidator(_read_only)]


class CalendarState(BaseModel):
    """Immutable snapshot of one calendar's mirrored state.

    The store replaces the whole snapshot on every transition (see
    :meth:`StateStore.set_state`); fields that did not change keep the
    very same objects, which is what change detection relies on.
    ``config`` is a read-only view; :meth:`StateStore.get_state` hands out
    a plain copy.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    view: CalendarView = CalendarView.MONTH
    current_date: datetime | date
    events: tuple[CalendarEvent, ...] = ()
    selected_event: CalendarEvent | None = None
    selected_date: datetime | date | None = None
    loading: bool = False
    error: Any = None
    config: ReadOnlyConfig = Field(default_factory=lambda: MappingProxyType({}))


STATE_KEYS: tuple[str, ...] = tuple(CalendarState.model_fields)
