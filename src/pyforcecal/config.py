"""Calendar configuration for pyforcecal."""

from __future__ import annotations

import dataclasses
import os
from datetime import datetime
from typing import Any

from pyforcecal.exceptions import ForceCalConfigError

_VALID_VIEWS = frozenset({"month", "week", "day"})


def _env_int(name: str, value: str) -> int:
    try:
        return int(value.strip())
    except ValueError as exc:
        raise ForceCalConfigError(f"{name} must be an integer, got {value!r}") from exc


def _env_datetime(name: str, value: str) -> datetime:
    try:
        return datetime.fromisoformat(value.strip())
    except ValueError as exc:
        raise ForceCalConfigError(f"{name} must be an ISO-8601 date, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class CalendarConfig:
    """Display configuration for one calendar instance.

    Parameters
    ----------
    view : str
        Initial view, one of ``"month"``, ``"week"`` or ``"day"``.
    date : datetime or None
        Date the initial view is anchored on.  ``None`` keeps whatever
        the engine considers current.
    locale : str
        BCP 47 locale tag handed to the engine (e.g. ``"en-US"``).
    time_zone : str
        IANA time zone string handed to the engine.
    week_starts_on : int
        First day of the week, ``0`` (Sunday) through ``6`` (Saturday).
    height : str
        Visual height of the widget (CSS length, e.g. ``"800px"``).
    """

    view: str = "month"
    date: datetime | None = None
    locale: str = "en-US"
    time_zone: str = "UTC"
    week_starts_on: int = 0
    height: str = "800px"

    def __post_init__(self) -> None:
        if self.view not in _VALID_VIEWS:
            raise ForceCalConfigError(f"Unknown view {self.view!r}; expected one of {sorted(_VALID_VIEWS)}")
        if not 0 <= self.week_starts_on <= 6:
            raise ForceCalConfigError(f"week_starts_on must be between 0 and 6, got {self.week_starts_on}")

    def to_mapping(self) -> dict[str, Any]:
        """Return the ``config`` mapping mirrored into the calendar state."""
        return {
            "locale": self.locale,
            "timeZone": self.time_zone,
            "weekStartsOn": self.week_starts_on,
            "height": self.height,
        }

    @classmethod
    def from_env(cls, **overrides: Any) -> CalendarConfig:
        """Create configuration from ``FORCECAL_*`` environment variables.

        Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        CalendarConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "FORCECAL_VIEW": "view",
            "FORCECAL_LOCALE": "locale",
            "FORCECAL_TIME_ZONE": "time_zone",
            "FORCECAL_HEIGHT": "height",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val.strip()

        week_env = env.get("FORCECAL_WEEK_STARTS_ON")
        if week_env is not None and "week_starts_on" not in overrides:
            config_kwargs["week_starts_on"] = _env_int("FORCECAL_WEEK_STARTS_ON", week_env)

        date_env = env.get("FORCECAL_DATE")
        if date_env is not None and "date" not in overrides:
            config_kwargs["date"] = _env_datetime("FORCECAL_DATE", date_env)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
