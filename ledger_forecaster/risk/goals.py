"""
Goal achievement prediction.

``predict_goal`` combines the linear, exponential and seasonal forecasts over
the months left until a goal's target date:

  1. months_remaining = ceil(days_to_target / 30)
  2. each available model forecasts months_remaining steps
  3. the per-month values are combined with the model weight table
     (equal weights by default; unavailable models are dropped and the
     remaining weights re-normalised)
  4. predicted_amount = current_amount + Σ combined
  5. confidence = clamp(0, 100, 100 - (pvariance(all model values)·0.7
                                        + mean stream risk·0.3))

A goal whose target date is today or past is reported with ``expired=True``
and neutral amounts; pass ``strict=True`` to get ``GoalExpiredError``
instead.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date
from typing import Optional

from ledger_forecaster.errors import GoalExpiredError, InsufficientDataError
from ledger_forecaster.models.forecast import ForecastModelSet
from ledger_forecaster.models.goal import Goal, GoalPrediction
from ledger_forecaster.models.risk import RiskProfile
from ledger_forecaster.utils.stats import clamp, pvariance
from ledger_forecaster.utils.time_utils import months_until, utcnow

logger = logging.getLogger(__name__)

GOAL_MODEL_KINDS: tuple[str, ...] = ("linear", "exponential", "seasonal")
DEFAULT_MODEL_WEIGHTS: dict[str, float] = {"linear": 1.0, "exponential": 1.0, "seasonal": 1.0}

VARIANCE_WEIGHT = 0.7
RISK_WEIGHT = 0.3


def combine_forecasts(
    predictions: Mapping[str, list[float]],
    weights: Mapping[str, float],
) -> list[float]:
    """Weighted per-month average of model predictions.

    Args:
        predictions: Model kind → equal-length prediction lists.
        weights: Model kind → non-negative weight; kinds absent from
            ``predictions`` are ignored.

    Returns:
        Combined prediction per month.

    Raises:
        ValueError: If no predicted kind has a positive weight.
    """
    active = {k: weights.get(k, 0.0) for k in predictions if weights.get(k, 0.0) > 0}
    total_weight = sum(active.values())
    if total_weight <= 0:
        raise ValueError("No forecast model with a positive weight is available.")
    steps = len(next(iter(predictions.values())))
    return [
        sum(predictions[k][i] * w for k, w in active.items()) / total_weight
        for i in range(steps)
    ]


def goal_confidence(all_predictions: list[float], risk: RiskProfile) -> float:
    """Confidence in [0, 100] from model disagreement and stream risk."""
    variance = pvariance(all_predictions) if all_predictions else 0.0
    return clamp(100.0 - (variance * VARIANCE_WEIGHT + risk.average_score * RISK_WEIGHT), 0.0, 100.0)


def predict_goal(
    goal: Goal,
    models: ForecastModelSet,
    risk: RiskProfile,
    *,
    as_of: Optional[date] = None,
    weights: Optional[Mapping[str, float]] = None,
    days_per_month: int = 30,
    strict: bool = False,
) -> GoalPrediction:
    """Predict whether ``goal`` will be reached by its target date.

    Args:
        goal: The savings goal.
        models: Fitted models; missing ones are skipped.
        risk: Stream risk profile used for the confidence score.
        as_of: Reference date; defaults to today (UTC).
        weights: Model weight table; defaults to equal weights.
        days_per_month: Month length for ``months_remaining``.
        strict: Raise ``GoalExpiredError`` for an expired goal.

    Returns:
        ``GoalPrediction``.

    Raises:
        GoalExpiredError: If the goal has expired and ``strict`` is set.
        InsufficientDataError: If none of the weighted models is available.
    """
    as_of = as_of or utcnow().date()
    weights = dict(weights) if weights is not None else dict(DEFAULT_MODEL_WEIGHTS)
    months_remaining = months_until(goal.target_date, as_of, days_per_month)

    if months_remaining <= 0:
        if strict:
            raise GoalExpiredError(months_remaining)
        logger.warning(
            "Goal %s target date %s has passed (months_remaining=%d).",
            goal.goal_id if goal.goal_id is not None else goal.name, goal.target_date, months_remaining,
        )
        return GoalPrediction(
            goal_id=goal.goal_id,
            target_amount=goal.target_amount,
            predicted_amount=goal.current_amount,
            confidence=0.0,
            months_remaining=months_remaining,
            monthly_required=None,
            monthly_predicted=0.0,
            status="on_track" if goal.current_amount >= goal.target_amount else "off_track",
            expired=True,
        )

    predictions: dict[str, list[float]] = {}
    unavailable: dict[str, str] = {}
    for kind in GOAL_MODEL_KINDS:
        if weights.get(kind, 0.0) <= 0:
            continue
        model = models.get(kind)
        if model is None:
            unavailable[kind] = models.unavailable.get(kind, "Model not fitted.")
            continue
        predictions[kind] = model.forecast(months_remaining)

    if not predictions:
        logger.warning("Goal %s: no forecast model available.", goal.goal_id)
        raise InsufficientDataError("goal_prediction", 1, 0)

    combined = combine_forecasts(predictions, weights)
    total_predicted = sum(combined)
    predicted_amount = goal.current_amount + total_predicted
    all_values = [v for values in predictions.values() for v in values]

    return GoalPrediction(
        goal_id=goal.goal_id,
        target_amount=goal.target_amount,
        predicted_amount=predicted_amount,
        confidence=goal_confidence(all_values, risk),
        months_remaining=months_remaining,
        monthly_required=(goal.target_amount - goal.current_amount) / months_remaining,
        monthly_predicted=total_predicted / months_remaining,
        status="on_track" if predicted_amount >= goal.target_amount else "off_track",
        expired=False,
        models_used=tuple(predictions),
        unavailable_models=unavailable,
    )
