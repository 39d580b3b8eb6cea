"""Custom exception hierarchy for pyforcecal."""

from __future__ import annotations

from typing import Any


class ForceCalError(Exception):
    """Base exception for all pyforcecal errors."""


class ForceCalConfigError(ForceCalError):
    """Invalid or missing configuration (bad view name, week start, env value)."""


class ForceCalStateError(ForceCalError):
    """The state store was used in a way its lifecycle does not allow.

    Raised for any call made after :meth:`StateStore.destroy`.
    """


class ForceCalEngineError(ForceCalError):
    """The calendar engine rejected a mutation.

    This is never raised out of the store's mutation API.  Instances are
    carried as the ``error`` field of ``event:error`` notifications so
    observers get the action and payload that failed.
    """

    def __init__(
        self,
        message: str,
        *,
        action: str = "",
        payload: Any = None,
    ) -> None:
        self.action = action
        self.payload = payload
        super().__init__(message)
