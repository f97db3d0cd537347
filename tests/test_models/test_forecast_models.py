"""Tests for forecast, risk and insight model objects."""

from __future__ import annotations

import math
from datetime import datetime, timezone

import pytest
from pydantic import TypeAdapter, ValidationError

from ledger_forecaster.models.forecast import (
    CategoryModel,
    CategoryTrend,
    ExponentialModel,
    ForecastModel,
    ForecastModelSet,
    LinearModel,
    SeasonalModel,
)
from ledger_forecaster.models.insight import Section, StructuredInsightPayload
from ledger_forecaster.models.risk import RiskAssessment, RiskFactors, RiskProfile


class TestLinearModel:
    def test_forecast_starts_after_last_index(self):
        m = LinearModel(slope=2.0, intercept=1.0, n_obs=4)
        assert m.forecast(3) == [9.0, 11.0, 13.0]

    def test_zero_horizon(self):
        assert LinearModel(slope=2.0, intercept=1.0, n_obs=4).forecast(0) == []

    def test_negative_horizon_rejected(self):
        with pytest.raises(ValueError, match="horizon"):
            LinearModel(slope=1.0, intercept=0.0, n_obs=2).forecast(-1)


class TestExponentialModel:
    def test_forecast(self):
        m = ExponentialModel(
            slope=math.log(2.0), intercept=math.log(100.0),
            growth_rate=1.0, base=100.0, n_obs=3,
        )
        assert m.forecast(2) == pytest.approx([800.0, 1600.0])


class TestSeasonalModel:
    def _model(self, start_month: int = 1) -> SeasonalModel:
        factors = tuple(float(i + 1) for i in range(12))
        return SeasonalModel(
            seasonal_factors=factors,
            trend=LinearModel(slope=0.0, intercept=10.0, n_obs=3),
            start_month=start_month,
            n_obs=3,
        )

    def test_requires_twelve_factors(self):
        with pytest.raises(ValidationError, match="12 entries"):
            SeasonalModel(
                seasonal_factors=(1.0,) * 11,
                trend=LinearModel(slope=0.0, intercept=0.0, n_obs=2),
                n_obs=2,
            )

    def test_bucket_wraps_calendar(self):
        m = self._model(start_month=11)
        assert m.bucket(0) == 10
        assert m.bucket(2) == 0

    def test_forecast_applies_bucket_factor(self):
        # Start in January with 3 observations: next index falls in April.
        assert self._model().forecast(2) == pytest.approx([40.0, 50.0])


class TestCategoryModel:
    def test_forecast_per_category(self):
        trend = CategoryTrend(
            trend=LinearModel(slope=-1.0, intercept=-10.0, n_obs=2),
            volatility=0.5, average=-10.5, n_obs=2,
        )
        m = CategoryModel(per_category={7: trend})
        assert m.forecast(2) == {7: [-12.0, -13.0]}
        assert m.forecast_category(7, 1) == [-12.0]


class TestForecastModelUnion:
    def test_discriminated_on_kind(self):
        adapter = TypeAdapter(ForecastModel)
        model = adapter.validate_python({"kind": "linear", "slope": 1.0, "intercept": 0.0, "n_obs": 2})
        assert isinstance(model, LinearModel)


class TestForecastModelSet:
    def test_get_unknown_kind_raises(self):
        with pytest.raises(ValueError, match="Unknown model kind"):
            ForecastModelSet().get("arima")

    def test_available_kinds(self):
        s = ForecastModelSet(linear=LinearModel(slope=0.0, intercept=0.0, n_obs=2))
        assert s.available_kinds == ["linear"]
        assert s.get("exponential") is None


class TestRiskModels:
    def _assessment(self, score: float) -> RiskAssessment:
        return RiskAssessment(
            score=score, level="low",
            factors=RiskFactors(volatility=0.0, trend_strength=0.0, recent_change_pct=0.0),
        )

    def test_score_range_enforced(self):
        with pytest.raises(ValidationError, match="score"):
            self._assessment(101.0)

    def test_average_score(self):
        profile = RiskProfile(
            income_risk=self._assessment(10.0),
            expense_risk=self._assessment(20.0),
            savings_risk=self._assessment(60.0),
        )
        assert profile.average_score == pytest.approx(30.0)


class TestNarrativeInput:
    def test_copy_is_detached_from_payload(self):
        payload = StructuredInsightPayload(
            generated_at=datetime(2024, 7, 1, tzinfo=timezone.utc),
            aggregates=Section(available=True, data={"views": {"monthly_summary": [{"net": 1.0}]}}),
            forecasts=Section(available=False, reason="none"),
            risk=Section(available=False, reason="none"),
            goals=Section(available=False, reason="none"),
            scenarios=Section(available=False, reason="none"),
            recommendations=Section(available=False, reason="none"),
        )
        data = payload.to_narrative_input()
        data["aggregates"]["data"]["views"]["monthly_summary"][0]["net"] = 999.0
        assert payload.aggregates.data["views"]["monthly_summary"][0]["net"] == 1.0
