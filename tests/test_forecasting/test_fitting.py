"""
Tests for forecast model fitting.

Covers:
  - Linear: manual OLS fixture, constant series, forecast length, n < 2.
  - Exponential: exact growth recovery, zero-expense exclusion.
  - Seasonal: factor table, unobserved months, start month.
  - Category: per-category trends and skipped categories.
  - fit_all / forecast dispatch.
"""

from __future__ import annotations

import math

import pytest

from ledger_forecaster.errors import InsufficientDataError
from ledger_forecaster.forecasting.models import (
    fit_all,
    fit_category,
    fit_exponential,
    fit_linear,
    fit_linear_series,
    fit_seasonal,
    forecast,
)
from ledger_forecaster.models.series import CategoryPoint, CategorySeries, TimeSeriesPoint


# ── Helpers ───────────────────────────────────────────────────────────────────

def _category(category_id: int, totals: list[float]) -> CategorySeries:
    return CategorySeries(
        category_id=category_id,
        currency="USD",
        points=tuple(
            CategoryPoint(period=f"2024-{i + 1:02d}", total_amount=t) for i, t in enumerate(totals)
        ),
    )


# ── Linear ────────────────────────────────────────────────────────────────────


class TestLinear:
    def test_manual_ols_fixture(self):
        values = [3.0, 5.0, 4.0, 8.0, 10.0]
        model = fit_linear(values)
        n = len(values)
        x_mean = (n - 1) / 2
        y_mean = sum(values) / n
        slope = sum((i - x_mean) * (v - y_mean) for i, v in enumerate(values)) / sum(
            (i - x_mean) ** 2 for i in range(n)
        )
        intercept = y_mean - slope * x_mean

        assert model.slope == pytest.approx(slope, abs=1e-12)
        assert model.intercept == pytest.approx(intercept, abs=1e-12)
        assert model.forecast(1)[0] == pytest.approx(slope * n + intercept, abs=1e-12)

    def test_forecast_returns_exactly_k_values(self):
        model = fit_linear([1.0, 2.0, 4.0])
        for k in (0, 1, 5, 24):
            assert len(model.forecast(k)) == k

    def test_forecast_values(self):
        assert fit_linear([3.0, 5.0, 4.0, 8.0, 10.0]).forecast(3) == pytest.approx([11.1, 12.8, 14.5])

    def test_constant_series(self):
        model = fit_linear([5.0, 5.0, 5.0, 5.0])
        assert model.slope == 0.0
        assert model.forecast(2) == pytest.approx([5.0, 5.0])

    @pytest.mark.parametrize("values", [[], [42.0]])
    def test_fewer_than_two_points(self, values):
        with pytest.raises(InsufficientDataError):
            fit_linear(values)

    def test_series_fit_uses_net(self, reference_series):
        model = fit_linear_series(reference_series)
        assert model.n_obs == 6
        assert model.slope == pytest.approx(85.0 / 17.5)


# ── Exponential ───────────────────────────────────────────────────────────────


class TestExponential:
    def test_exact_growth(self, series_factory):
        series = series_factory([0.0, 0.0, 0.0], [100.0, 200.0, 400.0])
        model = fit_exponential(series)
        assert model.growth_rate == pytest.approx(1.0)
        assert model.base == pytest.approx(100.0)
        assert model.forecast(2) == pytest.approx([800.0, 1600.0])

    def test_zero_expense_months_excluded_but_keep_index(self, series_factory):
        series = series_factory([0.0] * 4, [100.0, 0.0, 400.0, 800.0])
        model = fit_exponential(series)
        assert model.excluded_indices == (1,)
        assert model.n_obs == 4
        assert model.slope == pytest.approx(math.log(2.0))
        assert model.forecast(1) == pytest.approx([1600.0])

    def test_forecasts_are_finite(self, reference_series):
        values = fit_exponential(reference_series).forecast(12)
        assert all(math.isfinite(v) and v > 0 for v in values)

    def test_one_non_zero_month_raises(self, series_factory):
        series = series_factory([10.0, 10.0, 10.0], [0.0, 50.0, 0.0])
        with pytest.raises(InsufficientDataError) as exc_info:
            fit_exponential(series)
        assert exc_info.value.actual == 1


# ── Seasonal ──────────────────────────────────────────────────────────────────


class TestSeasonal:
    def test_unobserved_months_default_to_one(self, reference_series):
        model = fit_seasonal(reference_series)
        assert model.start_month == 1
        assert model.seasonal_factors[6:] == (1.0,) * 6

    def test_observed_factor_is_mean_residual(self, reference_series):
        model = fit_seasonal(reference_series)
        trend = fit_linear_series(reference_series)
        for i, point in enumerate(reference_series):
            assert model.seasonal_factors[i] == pytest.approx(point.net - trend.value_at(i))

    def test_half_year_forecast_matches_trend(self, reference_series):
        seasonal = fit_seasonal(reference_series).forecast(6)
        linear = fit_linear_series(reference_series).forecast(6)
        assert seasonal == pytest.approx(linear)

    def test_repeated_month_averages_residuals(self, series_factory):
        incomes = [100.0 + i for i in range(13)]
        series = series_factory(incomes, [0.0] * 13)
        model = fit_seasonal(series)
        trend = model.trend
        expected = ((series[0].net - trend.value_at(0)) + (series[12].net - trend.value_at(12))) / 2
        assert model.seasonal_factors[0] == pytest.approx(expected)

    def test_start_month_from_first_period(self, series_factory):
        series = series_factory([1.0, 2.0, 3.0], [0.0, 0.0, 0.0], start="2024-11")
        model = fit_seasonal(series)
        assert model.start_month == 11
        assert model.bucket(2) == 0

    def test_single_point_raises(self, series_factory):
        with pytest.raises(InsufficientDataError):
            fit_seasonal(series_factory([1.0], [1.0]))

    def test_missing_month_keeps_calendar_slot(self):
        series = [
            TimeSeriesPoint.from_amounts("2024-01", 100.0, 0.0, "USD"),
            TimeSeriesPoint.from_amounts("2024-02", 110.0, 0.0, "USD"),
            TimeSeriesPoint.from_amounts("2024-06", 300.0, 0.0, "USD"),
        ]
        model = fit_seasonal(series)

        # x = 0, 1, 5 -> slope 590/14
        assert model.trend.slope == pytest.approx(590.0 / 14.0)
        assert model.n_obs == 6
        assert model.seasonal_factors[5] == pytest.approx(300.0 - model.trend.value_at(5))
        assert model.seasonal_factors[5] != 1.0
        assert model.seasonal_factors[2] == 1.0
        assert model.bucket(model.n_obs) == 6


# ── Category ──────────────────────────────────────────────────────────────────


class TestCategory:
    def test_per_category_trend(self):
        model = fit_category({5: _category(5, [-10.0, -20.0, -30.0])})
        trend = model.per_category[5]
        assert trend.trend.slope == pytest.approx(-10.0)
        assert trend.average == pytest.approx(-20.0)
        assert trend.volatility == pytest.approx(math.sqrt(200.0 / 3))
        assert model.forecast(1) == {5: pytest.approx([-40.0])}

    def test_short_category_skipped(self):
        model = fit_category({5: _category(5, [-10.0, -20.0]), 9: _category(9, [-1.0])})
        assert list(model.per_category) == [5]
        assert model.skipped == (9,)

    def test_no_usable_category_raises(self):
        with pytest.raises(InsufficientDataError):
            fit_category({9: _category(9, [-1.0])})


# ── Dispatch ──────────────────────────────────────────────────────────────────


class TestForecastDispatch:
    def test_linear(self, reference_series):
        assert len(forecast(reference_series, 4, "linear")) == 4

    def test_category_requires_series(self, reference_series):
        with pytest.raises(ValueError, match="category_series"):
            forecast(reference_series, 3, "category")

    def test_category(self, reference_series):
        result = forecast(reference_series, 2, "category", {5: _category(5, [-1.0, -2.0])})
        assert result == {5: pytest.approx([-3.0, -4.0])}

    def test_unknown_kind(self, reference_series):
        with pytest.raises(ValueError, match="Unknown model kind"):
            forecast(reference_series, 3, "arima")

    def test_negative_horizon(self, reference_series):
        with pytest.raises(ValueError, match="horizon"):
            forecast(reference_series, -1)


class TestFitAll:
    def test_all_models_fitted(self, reference_series):
        models = fit_all(reference_series, {5: _category(5, [-1.0, -2.0, -3.0])})
        assert models.available_kinds == ["linear", "exponential", "seasonal", "category"]
        assert models.unavailable == {}
        assert models.currency == "USD"
        assert models.last_period == "2024-06"

    def test_income_trend_fitted_on_income_stream(self, reference_series):
        models = fit_all(reference_series)
        assert models.income_trend.slope == pytest.approx(385.0 / 17.5)
        assert models.income_trend.n_obs == 6

    def test_short_series_records_unavailable(self, series_factory):
        models = fit_all(series_factory([100.0], [50.0]))
        assert models.available_kinds == []
        assert set(models.unavailable) == {"linear", "exponential", "seasonal", "category"}
        assert models.income_trend is None
        assert "at least 2" in models.unavailable["linear"]

    def test_empty_series(self):
        models = fit_all([])
        assert models.currency is None
        assert models.available_kinds == []
