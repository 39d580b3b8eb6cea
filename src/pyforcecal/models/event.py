"""Calendar event model."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel

from pyforcecal.models._base import CalendarInstant, ForceCalBaseModel, align_awareness


class CalendarEvent(ForceCalBaseModel):
    """One event as owned by the calendar engine.

    The store only ever holds read-through copies of these; identity and
    content are decided by the engine.  Unknown keys (``description``,
    ``location``, engine bookkeeping) are kept as extra fields so a
    round trip through the store never drops data.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    id: str
    """Opaque identifier assigned by the caller or the engine."""
    title: str = ""
    start: CalendarInstant
    end: CalendarInstant
    """Exclusive end instant; defaults to ``start`` when missing."""
    all_day: bool = False
    background_color: str | None = None
    """Optional color token (e.g. ``"#2563eb"``)."""

    @model_validator(mode="before")
    @classmethod
    def _default_end(cls, values: Any) -> Any:
        if isinstance(values, Mapping) and values.get("end") is None and values.get("start") is not None:
            return {**values, "end": values["start"]}
        return values

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> str:
        if value is None:
            raise ValueError("id must be provided")
        event_id = str(value).strip()
        if not event_id:
            raise ValueError("id must be non-empty")
        return event_id

    @model_validator(mode="after")
    def _check_order(self) -> CalendarEvent:
        if align_awareness(self.end, self.start) < self.start:
            raise ValueError("end must not precede start")
        return self

    @property
    def duration_minutes(self) -> float:
        return (align_awareness(self.end, self.start) - self.start).total_seconds() / 60.0

    def with_updates(self, patch: Mapping[str, Any]) -> CalendarEvent:
        """Return a validated copy with *patch* applied.

        Patch keys may use either field names (``all_day``) or their
        camelCase aliases (``allDay``).
        """
        data = self.model_dump(by_alias=True)
        fields = type(self).model_fields
        for key, value in patch.items():
            field = fields.get(key)
            alias = field.alias if field is not None and field.alias else key
            data[alias] = value
        return type(self).model_validate(data)
