"""
Forecast model fitting.

Each fitter is a pure function from a series to a frozen model object; the
model itself produces forecasts (see ``ledger_forecaster.models.forecast``).

  fit_linear / fit_linear_series  OLS trend on values / on monthly net.
  fit_exponential                 OLS on ln|expenses|.  Months whose expenses
                                  are within epsilon of zero have no
                                  logarithm: they are left out of the fit but
                                  keep their index, and are listed in
                                  ``excluded_indices``.
  fit_seasonal                    Linear trend on net plus a 12-slot factor
                                  table of mean residuals per calendar month.
  fit_category                    One linear trend per category.

Series from ``aggregation.series`` are gap-free, so index ``i`` is "i months
after the first period".  ``fit_seasonal`` does not rely on that: it places
each point by its calendar offset from the first period and buckets it by
its own calendar month.

``fit_all`` fits every model for one series and records the ones that could
not be fitted in ``ForecastModelSet.unavailable`` instead of raising.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping, Sequence
from typing import Optional, Union

from ledger_forecaster.errors import InsufficientDataError
from ledger_forecaster.forecasting.ols import ols
from ledger_forecaster.models.forecast import (
    MODEL_KINDS,
    CategoryModel,
    CategoryTrend,
    ExponentialModel,
    ForecastModelSet,
    LinearModel,
    SeasonalModel,
)
from ledger_forecaster.models.series import CategorySeries, TimeSeriesPoint, validate_series
from ledger_forecaster.utils.stats import EPSILON, mean, pstdev
from ledger_forecaster.utils.time_utils import months_between, period_month

logger = logging.getLogger(__name__)


def fit_linear(values: Sequence[float], kind: str = "linear") -> LinearModel:
    """Fit an OLS trend ``y(i) = slope·i + intercept`` on ``i = 0..n-1``.

    Raises:
        InsufficientDataError: If fewer than 2 values are given.
    """
    slope, intercept = ols(list(values), kind=kind)
    return LinearModel(slope=slope, intercept=intercept, n_obs=len(values))


def fit_linear_series(series: Sequence[TimeSeriesPoint]) -> LinearModel:
    """Linear trend on monthly net cash flow."""
    validate_series(series)
    return fit_linear([p.net for p in series])


def fit_exponential(series: Sequence[TimeSeriesPoint]) -> ExponentialModel:
    """Log-linear growth fitted on absolute monthly expenses.

    Returns:
        ``ExponentialModel`` with ``growth_rate = e^slope - 1`` and
        ``base = e^intercept``.

    Raises:
        InsufficientDataError: If fewer than 2 months have non-zero expenses.
    """
    validate_series(series)
    xs: list[float] = []
    ys: list[float] = []
    excluded: list[int] = []
    for i, point in enumerate(series):
        magnitude = abs(point.expenses)
        if magnitude < EPSILON:
            excluded.append(i)
            continue
        xs.append(float(i))
        ys.append(math.log(magnitude))

    if len(ys) < 2:
        raise InsufficientDataError("exponential", 2, len(ys))
    if excluded:
        logger.debug("Exponential fit excluded zero-expense indices %s.", excluded)

    slope, intercept = ols(ys, xs, kind="exponential")
    return ExponentialModel(
        slope=slope,
        intercept=intercept,
        growth_rate=math.exp(slope) - 1.0,
        base=math.exp(intercept),
        n_obs=len(series),
        excluded_indices=tuple(excluded),
    )


def fit_seasonal(series: Sequence[TimeSeriesPoint]) -> SeasonalModel:
    """Linear trend on net scaled by per-calendar-month factors.

    The factor for a calendar month is the mean of ``net(i) - trend(i)`` over
    the months of the series falling in that bucket; months never observed
    get 1.0.  ``i`` is the month offset from the first period, so a series
    with a missing month keeps later points on the right calendar slot and
    ``n_obs`` is the covered span.

    Raises:
        InsufficientDataError: If fewer than 2 points are given.
    """
    validate_series(series)
    if len(series) < 2:
        raise InsufficientDataError("seasonal", 2, len(series))
    net = [p.net for p in series]
    offsets = [float(months_between(series[0].period, p.period)) for p in series]
    span = int(offsets[-1]) + 1
    slope, intercept = ols(net, offsets, kind="seasonal")
    trend = LinearModel(slope=slope, intercept=intercept, n_obs=span)

    residuals: dict[int, list[float]] = {}
    for point, x in zip(series, offsets):
        bucket = period_month(point.period) - 1
        residuals.setdefault(bucket, []).append(point.net - trend.value_at(x))

    factors = tuple(mean(residuals[b]) if b in residuals else 1.0 for b in range(12))
    return SeasonalModel(
        seasonal_factors=factors,
        trend=trend,
        start_month=period_month(series[0].period),
        n_obs=span,
    )


def fit_category(category_series: Mapping[int, CategorySeries]) -> CategoryModel:
    """Independent linear trend, volatility and average per category.

    Categories with fewer than 2 points are skipped and listed in
    ``CategoryModel.skipped``.

    Raises:
        InsufficientDataError: If no category has at least 2 points.
    """
    per_category: dict[int, CategoryTrend] = {}
    skipped: list[int] = []
    for category_id in sorted(category_series):
        totals = category_series[category_id].totals
        if len(totals) < 2:
            skipped.append(category_id)
            continue
        per_category[category_id] = CategoryTrend(
            trend=fit_linear(totals, kind="category"),
            volatility=pstdev(totals),
            average=mean(totals),
            n_obs=len(totals),
        )

    if not per_category:
        longest = max((len(s.points) for s in category_series.values()), default=0)
        raise InsufficientDataError("category", 2, longest)
    return CategoryModel(per_category=per_category, skipped=tuple(skipped))


# ── Dispatch ──────────────────────────────────────────────────────────────────

SeriesFitter = Callable[[Sequence[TimeSeriesPoint]], Union[LinearModel, ExponentialModel, SeasonalModel]]

SERIES_FITTERS: dict[str, SeriesFitter] = {
    "linear": fit_linear_series,
    "exponential": fit_exponential,
    "seasonal": fit_seasonal,
}


def forecast(
    series: Sequence[TimeSeriesPoint],
    horizon: int,
    kind: str = "linear",
    category_series: Optional[Mapping[int, CategorySeries]] = None,
) -> Union[list[float], dict[int, list[float]]]:
    """Fit model ``kind`` and forecast ``horizon`` months ahead.

    Args:
        series: Monthly series, ascending.
        horizon: Months to forecast (>= 0).
        kind: ``"linear"``, ``"exponential"``, ``"seasonal"`` or ``"category"``.
        category_series: Required for ``kind="category"``.

    Returns:
        List of predictions, or a category id → predictions map for
        ``"category"``.

    Raises:
        ValueError: If ``horizon < 0``, ``kind`` is unknown, or category
            series are missing for ``"category"``.
        InsufficientDataError: If the series is too short for the model.
    """
    if horizon < 0:
        raise ValueError(f"horizon must be >= 0, got {horizon}.")
    if kind == "category":
        if category_series is None:
            raise ValueError("kind='category' requires category_series.")
        return fit_category(category_series).forecast(horizon)
    fitter = SERIES_FITTERS.get(kind)
    if fitter is None:
        raise ValueError(f"Unknown model kind '{kind}'. Must be one of {list(MODEL_KINDS)}.")
    return fitter(series).forecast(horizon)


def fit_all(
    series: Sequence[TimeSeriesPoint],
    category_series: Optional[Mapping[int, CategorySeries]] = None,
) -> ForecastModelSet:
    """Fit every model kind, recording insufficient-data failures.

    Args:
        series: Monthly series for one currency.
        category_series: Optional per-category history; when ``None`` the
            category model is reported unavailable.

    Returns:
        ``ForecastModelSet``; never raises ``InsufficientDataError``.
    """
    validate_series(series)
    fitted: dict[str, object] = {}
    unavailable: dict[str, str] = {}

    for kind, fitter in SERIES_FITTERS.items():
        try:
            fitted[kind] = fitter(series)
        except InsufficientDataError as exc:
            unavailable[kind] = str(exc)

    if category_series:
        try:
            fitted["category"] = fit_category(category_series)
        except InsufficientDataError as exc:
            unavailable["category"] = str(exc)
    else:
        unavailable["category"] = "No category history supplied."

    if len(series) >= 2:
        fitted["income_trend"] = fit_linear([p.income for p in series], kind="income")

    if unavailable:
        logger.info("Models unavailable: %s", ", ".join(sorted(unavailable)))

    return ForecastModelSet(
        currency=series[0].currency if series else None,
        last_period=series[-1].period if series else None,
        unavailable=unavailable,
        **fitted,
    )
