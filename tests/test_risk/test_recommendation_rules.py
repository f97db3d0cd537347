"""Tests for rule-based recommendations."""

from __future__ import annotations

import pytest

from ledger_forecaster.models.forecast import ExponentialModel, ForecastModelSet, LinearModel
from ledger_forecaster.models.goal import GoalPrediction
from ledger_forecaster.models.risk import RiskAssessment, RiskFactors, RiskProfile
from ledger_forecaster.risk.recommendations import (
    build_recommendations,
    goal_recommendations,
    overall_recommendations,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _assessment(level: str, score: float = 50.0) -> RiskAssessment:
    return RiskAssessment(
        score=score,
        level=level,
        factors=RiskFactors(volatility=0.0, trend_strength=0.0, recent_change_pct=0.0),
    )


def _risk(income: str = "low", expense: str = "low", savings: str = "low") -> RiskProfile:
    return RiskProfile(
        income_risk=_assessment(income),
        expense_risk=_assessment(expense),
        savings_risk=_assessment(savings),
    )


def _prediction(predicted: float, target: float = 1000.0, *, expired: bool = False,
                months: int = 4, goal_id: int = 7) -> GoalPrediction:
    return GoalPrediction(
        goal_id=goal_id,
        target_amount=target,
        predicted_amount=predicted,
        confidence=0.0 if expired else 50.0,
        months_remaining=0 if expired else months,
        monthly_required=None if expired else target / months,
        monthly_predicted=0.0,
        status="on_track" if predicted >= target else "off_track",
        expired=expired,
    )


def _models(slope: float, growth_rate: float) -> ForecastModelSet:
    return ForecastModelSet(
        linear=LinearModel(slope=slope, intercept=0.0, n_obs=6),
        exponential=ExponentialModel(
            slope=0.0, intercept=0.0, growth_rate=growth_rate, base=1.0, n_obs=6,
        ),
    )


def _codes(recs) -> list[str]:
    return [r.code for r in recs]


# ── Overall rules ─────────────────────────────────────────────────────────────


class TestOverall:
    def test_calm_profile_has_no_advice(self):
        assert overall_recommendations(_risk(), _models(10.0, 0.01)) == []

    def test_high_stream_risks(self):
        recs = overall_recommendations(_risk("high", "high", "high"), None)
        assert _codes(recs) == ["diversify_income", "tighten_budget", "build_emergency_fund"]
        assert all(r.severity == "warning" for r in recs)
        assert recs[0].params == {"score": 50.0}

    def test_medium_risk_not_flagged(self):
        assert overall_recommendations(_risk("medium", "medium", "medium"), None) == []

    def test_expenses_outpacing_income(self):
        recs = overall_recommendations(None, _models(0.01, 0.05))
        assert _codes(recs) == ["expenses_outpacing_income"]
        assert recs[0].params["expense_growth_rate"] == pytest.approx(0.05)

    def test_outpacing_needs_both_models(self):
        models = ForecastModelSet(linear=LinearModel(slope=-5.0, intercept=0.0, n_obs=6))
        assert overall_recommendations(None, models) == []

    def test_prioritize_goals(self):
        recs = overall_recommendations(None, None, [_prediction(500.0), _prediction(2000.0)])
        assert _codes(recs) == ["prioritize_goals"]
        assert recs[0].params["off_track_count"] == 1.0


# ── Per-goal rules ────────────────────────────────────────────────────────────


class TestGoalRules:
    def test_off_track_with_low_income_risk(self):
        recs = goal_recommendations(_prediction(600.0), _risk(income="low"))
        assert _codes(recs) == ["increase_monthly_savings", "increase_income"]
        assert recs[0].subject == "goal:7"
        assert recs[0].params["shortfall"] == pytest.approx(400.0)
        assert recs[0].params["monthly_shortfall"] == pytest.approx(100.0)

    def test_off_track_with_high_expense_risk(self):
        recs = goal_recommendations(_prediction(600.0), _risk(income="medium", expense="high"))
        assert _codes(recs) == ["increase_monthly_savings", "reduce_discretionary_spending"]

    def test_on_track(self):
        assert _codes(goal_recommendations(_prediction(1050.0), _risk())) == ["goal_on_track"]

    def test_large_surplus(self):
        recs = goal_recommendations(_prediction(1500.0), _risk())
        assert _codes(recs) == ["goal_on_track", "raise_goal_target"]
        assert recs[1].params["surplus"] == pytest.approx(500.0)

    def test_expired_goal_gets_nothing(self):
        assert goal_recommendations(_prediction(500.0, expired=True), _risk()) == []

    def test_without_risk_profile(self):
        assert _codes(goal_recommendations(_prediction(600.0), None)) == ["increase_monthly_savings"]


def test_build_orders_overall_before_goals():
    recs = build_recommendations(
        _risk(income="high"), None, [_prediction(600.0, goal_id=1), _prediction(1050.0, goal_id=2)],
    )
    assert _codes(recs) == [
        "diversify_income",
        "prioritize_goals",
        "increase_monthly_savings",
        "goal_on_track",
    ]
    assert [r.subject for r in recs[2:]] == ["goal:1", "goal:2"]
