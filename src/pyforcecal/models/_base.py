"""Base model and shared field types for calendar data.

Every calendar model inherits from :class:`ForceCalBaseModel` which
provides:

* ``alias_generator=to_camel`` so camelCase keys used by calendar
  engines (``allDay``, ``backgroundColor``) map onto snake_case fields.
* Frozen instances: the store hands the same objects to every observer,
  so nothing downstream may mutate them.

Instants are normalised through :data:`CalendarInstant`, which accepts
``datetime`` objects, bare ``date`` objects, ISO-8601 strings and epoch
numbers (seconds **or** milliseconds).
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def parse_instant(value: Any) -> Any:
    """Coerce an engine-supplied instant to a ``datetime``.

    ``date`` values become midnight of that day.  Numbers are epoch
    timestamps; values at or above the millisecond threshold are divided
    down first.  Anything else is handed to pydantic unchanged so it can
    raise a normal validation error.
    """
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        ts = float(value)
        if ts >= _MS_THRESHOLD:
            ts /= 1000.0
        return datetime.fromtimestamp(ts, tz=UTC)
    if isinstance(value, str):
        return datetime.fromisoformat(value.strip())
    return value


def align_awareness(value: datetime, reference: datetime) -> datetime:
    """Give *value* the tzinfo of *reference* when only one of them is aware.

    A naive instant paired with an aware one is read as wall-clock time in
    the aware one's zone, so the two can be subtracted and compared.
    """
    if (value.tzinfo is None) == (reference.tzinfo is None):
        return value
    return value.replace(tzinfo=reference.tzinfo)


CalendarInstant = Annotated[datetime, BeforeValidator(parse_instant)]
"""Annotated type that coerces dates, ISO strings and epoch numbers to datetimes."""


class ForceCalBaseModel(BaseModel):
    """Base for calendar models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )
