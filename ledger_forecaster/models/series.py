"""
Time-series inputs for the forecast model library.

``TimeSeriesPoint`` is one calendar month of ledger activity in a single
currency.  ``expenses`` keeps the ledger's sign convention (<= 0), so
``net = income + expenses``.

``CategorySeries`` is the monthly history of one category.  Both are
derived from a full aggregate refresh and never patched in place.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from ledger_forecaster.utils.time_utils import is_valid_period

_NET_TOLERANCE = 1e-6


def _check_period(v: str) -> str:
    if not is_valid_period(v):
        raise ValueError(f"period must be YYYY-MM, got '{v}'.")
    return v


class TimeSeriesPoint(BaseModel):
    """Monthly income/expense totals for one currency.

    Attributes:
        period: Calendar month key ``YYYY-MM``.
        income: Sum of positive amounts (>= 0).
        expenses: Sum of negative amounts (<= 0).
        net: ``income + expenses``.
        currency: 3-letter currency code.
    """

    model_config = ConfigDict(frozen=True)

    period: str
    income: float
    expenses: float
    net: float
    currency: str

    @field_validator("period")
    @classmethod
    def validate_period(cls, v: str) -> str:
        return _check_period(v)

    @model_validator(mode="after")
    def validate_amounts(self) -> "TimeSeriesPoint":
        if self.income < 0:
            raise ValueError(f"income must be >= 0, got {self.income}.")
        if self.expenses > 0:
            raise ValueError(f"expenses must be <= 0 (ledger sign), got {self.expenses}.")
        if not math.isclose(self.net, self.income + self.expenses, abs_tol=_NET_TOLERANCE):
            raise ValueError(
                f"net ({self.net}) must equal income + expenses "
                f"({self.income + self.expenses})."
            )
        return self

    @classmethod
    def from_amounts(
        cls, period: str, income: float, expenses: float, currency: str
    ) -> "TimeSeriesPoint":
        """Build a point, accepting expenses in either sign."""
        expenses = -abs(expenses)
        return cls(
            period=period,
            income=income,
            expenses=expenses,
            net=income + expenses,
            currency=currency,
        )


class CategoryPoint(BaseModel):
    """One month of a category's history."""

    model_config = ConfigDict(frozen=True)

    period: str
    total_amount: float
    transaction_count: int = 0

    @field_validator("period")
    @classmethod
    def validate_period(cls, v: str) -> str:
        return _check_period(v)


class CategorySeries(BaseModel):
    """Monthly totals for one category in one currency, ascending by period."""

    model_config = ConfigDict(frozen=True)

    category_id: int
    currency: str
    points: tuple[CategoryPoint, ...]

    @model_validator(mode="after")
    def validate_ordering(self) -> "CategorySeries":
        periods = [p.period for p in self.points]
        if periods != sorted(set(periods)):
            raise ValueError(
                f"CategorySeries {self.category_id} points must be strictly "
                "ascending by period with no duplicates."
            )
        return self

    @property
    def totals(self) -> list[float]:
        return [p.total_amount for p in self.points]


def validate_series(series: Sequence[TimeSeriesPoint]) -> None:
    """Check that a series is single-currency, ascending, and duplicate-free.

    Raises:
        ValueError: On mixed currencies, unsorted or duplicate periods.
    """
    currencies = {p.currency for p in series}
    if len(currencies) > 1:
        raise ValueError(f"Series mixes currencies: {sorted(currencies)}.")
    periods = [p.period for p in series]
    if len(set(periods)) != len(periods):
        raise ValueError("Series contains duplicate periods.")
    if periods != sorted(periods):
        raise ValueError("Series periods must be in ascending order.")
