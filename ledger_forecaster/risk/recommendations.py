"""
Rule-based recommendations.

Each rule yields a structured ``Recommendation`` (stable code + numbers).
Wording is left to the presentation layer or narrative generator.

Overall rules
-------------
diversify_income             income risk level is high
tighten_budget               expense risk level is high
build_emergency_fund         savings risk level is high
prioritize_goals             at least one goal is off track
expenses_outpacing_income    linear slope < exponential growth rate

Per-goal rules
--------------
increase_monthly_savings     goal off track; params carry the monthly shortfall
increase_income              goal off track and income risk is low
reduce_discretionary_spending goal off track and expense risk is high
goal_on_track                goal on track
raise_goal_target            goal on track and predicted > 110% of target
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Optional

from ledger_forecaster.models.forecast import ForecastModelSet
from ledger_forecaster.models.goal import GoalPrediction
from ledger_forecaster.models.insight import Recommendation
from ledger_forecaster.models.risk import RiskProfile

SURPLUS_RATIO = 1.1


def overall_recommendations(
    risk: Optional[RiskProfile],
    models: Optional[ForecastModelSet],
    goal_predictions: Sequence[GoalPrediction] = (),
) -> list[Recommendation]:
    recs: list[Recommendation] = []

    if risk is not None:
        if risk.income_risk.level == "high":
            recs.append(Recommendation(
                code="diversify_income", severity="warning", subject="income",
                params={"score": risk.income_risk.score},
            ))
        if risk.expense_risk.level == "high":
            recs.append(Recommendation(
                code="tighten_budget", severity="warning", subject="expenses",
                params={"score": risk.expense_risk.score},
            ))
        if risk.savings_risk.level == "high":
            recs.append(Recommendation(
                code="build_emergency_fund", severity="warning", subject="savings",
                params={"score": risk.savings_risk.score},
            ))

    off_track = [p for p in goal_predictions if p.status == "off_track"]
    if off_track:
        recs.append(Recommendation(
            code="prioritize_goals", severity="warning", subject="goals",
            params={"off_track_count": float(len(off_track))},
        ))

    if models is not None and models.linear is not None and models.exponential is not None:
        if models.linear.slope < models.exponential.growth_rate:
            recs.append(Recommendation(
                code="expenses_outpacing_income", severity="warning", subject="cash_flow",
                params={
                    "income_slope": models.linear.slope,
                    "expense_growth_rate": models.exponential.growth_rate,
                },
            ))
    return recs


def goal_recommendations(prediction: GoalPrediction, risk: Optional[RiskProfile]) -> list[Recommendation]:
    """Advice for one goal.  Expired goals get no advice."""
    if prediction.expired:
        return []
    subject = f"goal:{prediction.goal_id}" if prediction.goal_id is not None else "goal"
    recs: list[Recommendation] = []

    if prediction.status == "off_track":
        shortfall = prediction.target_amount - prediction.predicted_amount
        recs.append(Recommendation(
            code="increase_monthly_savings", severity="warning", subject=subject,
            params={
                "shortfall": shortfall,
                "monthly_shortfall": abs(shortfall / prediction.months_remaining),
            },
        ))
        if risk is not None and risk.income_risk.level == "low":
            recs.append(Recommendation(code="increase_income", subject=subject))
        if risk is not None and risk.expense_risk.level == "high":
            recs.append(Recommendation(
                code="reduce_discretionary_spending", severity="warning", subject=subject,
            ))
    else:
        recs.append(Recommendation(code="goal_on_track", subject=subject))
        if prediction.predicted_amount > prediction.target_amount * SURPLUS_RATIO:
            recs.append(Recommendation(
                code="raise_goal_target", subject=subject,
                params={"surplus": prediction.predicted_amount - prediction.target_amount},
            ))
    return recs


def build_recommendations(
    risk: Optional[RiskProfile],
    models: Optional[ForecastModelSet],
    goal_predictions: Sequence[GoalPrediction] = (),
) -> list[Recommendation]:
    """Overall rules followed by the per-goal rules of every prediction."""
    recs = overall_recommendations(risk, models, goal_predictions)
    for prediction in goal_predictions:
        recs.extend(goal_recommendations(prediction, risk))
    return recs
