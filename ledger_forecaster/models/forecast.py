"""
Fitted forecast models.

``ForecastModel`` is a tagged union on ``kind``:

  linear       LinearModel       OLS trend ``y = slope·i + intercept``.
  exponential  ExponentialModel  OLS on ``ln|expenses|``; forecasts are
                                 ``exp(slope·i + intercept)``.
  seasonal     SeasonalModel     Linear trend scaled by a 12-slot calendar
                                 month factor.
  category     CategoryModel     One linear trend (plus volatility) per
                                 category.

Every model is frozen: it is recomputed from a series, never patched.
Indices are positions in the fitted series (0..n-1); forecast step ``k``
(0-based) is evaluated at index ``n + k``.
"""

from __future__ import annotations

import math
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

ModelKind = Literal["linear", "exponential", "seasonal", "category"]
MODEL_KINDS: tuple[str, ...] = ("linear", "exponential", "seasonal", "category")


def _check_horizon(horizon: int) -> None:
    if horizon < 0:
        raise ValueError(f"horizon must be >= 0, got {horizon}.")


class LinearModel(BaseModel):
    """Ordinary least squares trend.

    Attributes:
        slope: Change per month.
        intercept: Fitted value at index 0.
        n_obs: Length of the fitted series.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["linear"] = "linear"
    slope: float
    intercept: float
    n_obs: int

    def value_at(self, index: float) -> float:
        return self.slope * index + self.intercept

    def forecast(self, horizon: int) -> list[float]:
        """Predictions for indices ``n .. n + horizon - 1``."""
        _check_horizon(horizon)
        return [self.value_at(self.n_obs + k) for k in range(horizon)]


class ExponentialModel(BaseModel):
    """Log-linear growth model fitted on absolute monthly expenses.

    Attributes:
        slope: OLS slope of ``ln|expenses|`` against index.
        intercept: OLS intercept on the log scale.
        growth_rate: ``e^slope - 1``, monthly growth as a fraction.
        base: ``e^intercept``, the fitted expense level at index 0.
        n_obs: Length of the fitted series (including excluded periods).
        excluded_indices: Indices left out of the fit because the period
            had zero expenses.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["exponential"] = "exponential"
    slope: float
    intercept: float
    growth_rate: float
    base: float
    n_obs: int
    excluded_indices: tuple[int, ...] = ()

    def forecast(self, horizon: int) -> list[float]:
        _check_horizon(horizon)
        return [
            math.exp(self.slope * (self.n_obs + k) + self.intercept)
            for k in range(horizon)
        ]


class SeasonalModel(BaseModel):
    """Linear trend multiplied by a calendar-month factor.

    Attributes:
        seasonal_factors: 12 factors indexed by calendar month - 1.  A factor
            is the mean residual ``net - trend`` of that month's historical
            occurrences, or 1.0 when the month never occurs.
        trend: Linear model on net cash flow.
        start_month: Calendar month (1–12) of the first fitted period.
        n_obs: Length of the fitted series.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["seasonal"] = "seasonal"
    seasonal_factors: tuple[float, ...]
    trend: LinearModel
    start_month: int = 1
    n_obs: int

    @field_validator("seasonal_factors")
    @classmethod
    def validate_factor_count(cls, v: tuple[float, ...]) -> tuple[float, ...]:
        if len(v) != 12:
            raise ValueError(f"seasonal_factors must have 12 entries, got {len(v)}.")
        return v

    @field_validator("start_month")
    @classmethod
    def validate_start_month(cls, v: int) -> int:
        if not 1 <= v <= 12:
            raise ValueError(f"start_month must be in [1, 12], got {v}.")
        return v

    def bucket(self, index: int) -> int:
        """Calendar-month slot (0–11) of a series index."""
        return (self.start_month - 1 + index) % 12

    def forecast(self, horizon: int) -> list[float]:
        _check_horizon(horizon)
        return [
            self.trend.value_at(self.n_obs + k) * self.seasonal_factors[self.bucket(self.n_obs + k)]
            for k in range(horizon)
        ]


class CategoryTrend(BaseModel):
    """Per-category linear trend with its volatility."""

    model_config = ConfigDict(frozen=True)

    trend: LinearModel
    volatility: float
    average: float
    n_obs: int


class CategoryModel(BaseModel):
    """Independent linear trends for each category.

    Attributes:
        per_category: Category id → fitted trend.
        skipped: Category ids left out for having fewer than 2 periods.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["category"] = "category"
    per_category: dict[int, CategoryTrend]
    skipped: tuple[int, ...] = ()

    def forecast_category(self, category_id: int, horizon: int) -> list[float]:
        return self.per_category[category_id].trend.forecast(horizon)

    def forecast(self, horizon: int) -> dict[int, list[float]]:
        """Combined map of category id → predictions."""
        _check_horizon(horizon)
        return {cid: ct.trend.forecast(horizon) for cid, ct in self.per_category.items()}


ForecastModel = Annotated[
    Union[LinearModel, ExponentialModel, SeasonalModel, CategoryModel],
    Field(discriminator="kind"),
]


class ForecastModelSet(BaseModel):
    """Every model fitted for one series, with unavailable ones explained.

    Attributes:
        currency: Currency of the source series.
        last_period: Final observed period, used to label forecast months.
        linear, exponential, seasonal, category: Fitted models or ``None``.
        income_trend: Linear trend on the income stream alone, the baseline
            for scenario income.  ``None`` when fewer than 2 months exist.
        unavailable: Model kind → reason it could not be fitted.
    """

    model_config = ConfigDict(frozen=True)

    currency: Optional[str] = None
    last_period: Optional[str] = None
    linear: Optional[LinearModel] = None
    exponential: Optional[ExponentialModel] = None
    seasonal: Optional[SeasonalModel] = None
    category: Optional[CategoryModel] = None
    income_trend: Optional[LinearModel] = None
    unavailable: dict[str, str] = {}

    def get(self, kind: str) -> Optional[BaseModel]:
        if kind not in MODEL_KINDS:
            raise ValueError(f"Unknown model kind '{kind}'. Must be one of {list(MODEL_KINDS)}.")
        return getattr(self, kind)

    @property
    def available_kinds(self) -> list[str]:
        return [k for k in MODEL_KINDS if getattr(self, k) is not None]
