"""
Error taxonomy for the analytics engine.

  InsufficientDataError   A model or metric needs more data points than it
                          was given.  Local to the affected model: composite
                          calls (goal prediction, scenarios) record it as an
                          "unavailable" marker and continue.
  RefreshError            An aggregate view rebuild failed.  The whole
                          refresh is abandoned and the prior snapshot stays
                          servable.
  GoalExpiredError        A goal's target date has passed.  Reported on the
                          prediction by default; raised only in strict mode.
  DivisionDegenerateError A ratio with a (near-)zero denominator.  Raised by
                          ``utils.stats.ratio`` and always resolved by an
                          explicit per-metric policy before leaving the core.
  UnknownViewError        ``query()`` named a view that is not declared.
  InvalidFilterError      A ``ViewFilter`` field is not supported by the view.
  SnapshotUnavailableError Analytics requested before the first refresh.
"""

from __future__ import annotations

from typing import Optional


class LedgerForecasterError(Exception):
    """Base class for all engine errors."""


class InsufficientDataError(LedgerForecasterError):
    """Raised when a model or metric receives fewer points than it requires.

    Attributes:
        kind: Model or metric name, e.g. ``"linear"``.
        required: Minimum number of points needed.
        actual: Number of usable points supplied.
    """

    def __init__(self, kind: str, required: int, actual: int) -> None:
        self.kind = kind
        self.required = required
        self.actual = actual
        super().__init__(
            f"{kind} requires at least {required} data point(s), got {actual}."
        )


class RefreshError(LedgerForecasterError):
    """Raised when an aggregate refresh pass fails.

    Attributes:
        view_name: View being rebuilt when the failure happened, or ``None``
            for failures outside a single view (ledger read, snapshot write).
        cause: The underlying exception.
    """

    def __init__(self, view_name: Optional[str], cause: BaseException | str) -> None:
        self.view_name = view_name
        self.cause = cause
        where = f"view '{view_name}'" if view_name else "refresh"
        super().__init__(f"Refresh failed in {where}: {cause}")


class GoalExpiredError(LedgerForecasterError):
    """Raised (strict mode only) when a goal's target date is not in the future.

    Attributes:
        months_remaining: The computed (zero or negative) months remaining.
    """

    def __init__(self, months_remaining: int) -> None:
        self.months_remaining = months_remaining
        super().__init__(
            f"Goal target date has passed (months_remaining={months_remaining})."
        )


class DivisionDegenerateError(LedgerForecasterError, ZeroDivisionError):
    """Raised when a ratio's denominator is within epsilon of zero."""


class UnknownViewError(LedgerForecasterError, KeyError):
    """Raised when a query names an undeclared aggregate view."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Unknown view."


class InvalidFilterError(LedgerForecasterError, ValueError):
    """Raised when a filter uses a field the target view does not support."""


class SnapshotUnavailableError(LedgerForecasterError):
    """Raised when analytics are requested before any snapshot is published."""
