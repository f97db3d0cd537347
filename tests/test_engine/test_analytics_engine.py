"""
Tests for the AnalyticsEngine facade.

Covers:
  - Analytics before the first refresh raise SnapshotUnavailableError.
  - Series, forecasts, risk, goals and scenarios over the sample ledger.
  - insights() degrades per section instead of failing.
  - from_config() restores the last persisted snapshot.
"""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from ledger_forecaster.config import AppConfig, ForecastConfig, ScenarioConfig
from ledger_forecaster.engine import AnalyticsEngine
from ledger_forecaster.errors import InsufficientDataError, SnapshotUnavailableError
from ledger_forecaster.models.goal import Goal
from ledger_forecaster.models.views import ViewFilter

AS_OF_DATE = date(2024, 7, 1)


@pytest.fixture
def engine(refreshed_store) -> AnalyticsEngine:
    return AnalyticsEngine(refreshed_store)


def _goal(goal_id: int = 1, target: float = 5000.0, days: int = 90) -> Goal:
    return Goal(goal_id=goal_id, target_amount=target, current_amount=0.0,
                target_date=AS_OF_DATE + timedelta(days=days))


class TestBeforeRefresh:
    def test_analytics_need_a_snapshot(self, store):
        engine = AnalyticsEngine(store)
        with pytest.raises(SnapshotUnavailableError):
            engine.fit_models()
        with pytest.raises(SnapshotUnavailableError):
            engine.forecast()

    def test_query_is_empty(self, store):
        assert AnalyticsEngine(store).query("monthly_summary") == []

    def test_insights_all_unavailable(self, store):
        payload = AnalyticsEngine(store).insights([_goal()])
        for name in ("aggregates", "forecasts", "risk", "goals", "scenarios"):
            section = getattr(payload, name)
            assert not section.available
            assert "refresh" in section.reason
        assert payload.recommendations.available
        assert payload.recommendations.data == []


class TestSeriesAndForecasts:
    def test_currency_defaults_to_reporting_currency(self, engine):
        assert engine.resolve_currency(None) == "USD"
        assert engine.resolve_currency("eur") == "EUR"

    def test_series(self, engine):
        series = engine.series()
        assert [p.period for p in series] == [f"2024-0{m}" for m in range(1, 7)]
        assert series[4].expenses == pytest.approx(-2100.0)
        assert [p.net for p in engine.series("EUR")] == [-50.0]

    def test_category_series(self, engine):
        assert list(engine.category_series()) == [1, 3, 5]

    def test_forecast_default_horizon(self, engine):
        assert len(engine.forecast()) == 6

    def test_forecast_configured_horizon(self, refreshed_store):
        engine = AnalyticsEngine(refreshed_store, AppConfig(forecast=ForecastConfig(default_horizon_months=3)))
        assert len(engine.forecast("seasonal")) == 3

    def test_category_forecast(self, engine):
        result = engine.forecast("category", horizon=2)
        assert set(result) == {1, 3, 5}
        assert result[1] == pytest.approx([3000.0, 3000.0])
        assert result[3] == pytest.approx([-1200.0, -1200.0])

    def test_forecast_short_series(self, engine):
        with pytest.raises(InsufficientDataError):
            engine.forecast("linear", currency="EUR")

    def test_fit_models(self, engine):
        models = engine.fit_models()
        assert models.available_kinds == ["linear", "exponential", "seasonal", "category"]
        assert models.last_period == "2024-06"

    def test_query_delegates_to_store(self, engine):
        rows = engine.query("category_summary", ViewFilter(currency="EUR"))
        assert [r["category_id"] for r in rows] == [4]


class TestRiskGoalsScenarios:
    def test_risk_profile_has_category_risks(self, engine):
        profile = engine.assess_risk()
        assert set(profile.category_risks) == {1, 3, 5}
        assert profile.category_risks[1].score == 0.0
        assert profile.expense_risk.level == "high"

    def test_predict_goal(self, engine):
        prediction = engine.predict_goal(_goal(target=3000.0), as_of=AS_OF_DATE)
        assert prediction.months_remaining == 3
        assert prediction.status == "on_track"
        assert prediction.goal_id == 1

    def test_predict_goals_keeps_order(self, engine):
        predictions = engine.predict_goals(
            [_goal(1, 1_000_000.0), _goal(2, 100.0)], as_of=AS_OF_DATE,
        )
        assert [p.goal_id for p in predictions] == [1, 2]
        assert [p.status for p in predictions] == ["off_track", "on_track"]

    def test_scenarios_use_configured_horizon(self, refreshed_store):
        engine = AnalyticsEngine(refreshed_store, AppConfig(scenarios=ScenarioConfig(horizon_months=4)))
        scenarios = engine.generate_scenarios()
        assert scenarios.horizon_months == 4
        assert scenarios.realistic.predictions.periods[-1] == "2024-10"

    def test_scenarios_horizon_override(self, engine):
        assert len(engine.generate_scenarios(horizon=2).optimistic.predictions.income) == 2


class TestInsights:
    def test_full_payload(self, engine):
        payload = engine.insights([_goal()], as_of=AS_OF_DATE)
        assert payload.currency == "USD"
        assert all(
            getattr(payload, name).available
            for name in ("aggregates", "forecasts", "risk", "goals", "scenarios", "recommendations")
        )
        assert payload.goals.data[0]["goal_id"] == 1

    def test_single_month_currency_degrades(self, engine):
        payload = engine.insights([_goal()], as_of=AS_OF_DATE, currency="EUR")
        assert payload.aggregates.available
        assert payload.forecasts.available
        assert payload.forecasts.data["linear"] is None
        assert not payload.risk.available
        assert "at least 2" in payload.risk.reason
        assert payload.goals.reason == "Risk profile unavailable."
        assert payload.scenarios.reason == "Risk profile unavailable."
        assert payload.recommendations.data == []


class TestFromConfig:
    def test_restores_persisted_snapshot(self, app_config):
        first = AnalyticsEngine.from_config(app_config)
        assert first.store.snapshot() is None
        assert first.refresh().ok

        second = AnalyticsEngine.from_config(app_config)
        snapshot = second.store.snapshot()
        assert snapshot is not None
        assert snapshot.version == 1
        assert len(second.series()) == 6
