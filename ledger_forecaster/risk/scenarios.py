"""
Optimistic / realistic / pessimistic scenario projections.

Baseline streams:
  income   = linear trend of the income stream, floored at 0
  expenses = exponential model forecast (absolute expense level)

For a scenario factor ``f``::

    income[i]   = base_income[i]   · f
    expenses[i] = base_expenses[i] · (2 - f)
    savings[i]  = income[i] - expenses[i]

Risk factors scale the base stream scores: income risk by ``2 - f``, expense
and savings risk by ``f``.

A missing baseline model leaves its stream empty and names it in
``Scenario.unavailable``; savings need both streams.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Optional

from ledger_forecaster.errors import InsufficientDataError
from ledger_forecaster.models.forecast import ForecastModelSet
from ledger_forecaster.models.risk import RiskProfile
from ledger_forecaster.models.scenario import (
    SCENARIO_LABELS,
    Scenario,
    ScenarioPredictions,
    ScenarioRiskFactors,
    ScenarioSet,
)
from ledger_forecaster.utils.time_utils import future_periods

logger = logging.getLogger(__name__)

DEFAULT_FACTORS: dict[str, float] = {"optimistic": 1.2, "realistic": 1.0, "pessimistic": 0.8}


def inverse_factor(factor: float) -> float:
    return 2.0 - factor


def scale_income(value: float, factor: float) -> float:
    return value * factor


def scale_expense(value: float, factor: float) -> float:
    return value * inverse_factor(factor)


def _build_scenario(
    label: str,
    factor: float,
    base_income: Optional[list[float]],
    base_expenses: Optional[list[float]],
    periods: tuple[str, ...],
    risk: RiskProfile,
    unavailable: tuple[str, ...],
) -> Scenario:
    income = tuple(scale_income(v, factor) for v in base_income) if base_income is not None else ()
    expenses = tuple(scale_expense(v, factor) for v in base_expenses) if base_expenses is not None else ()
    savings = tuple(i - e for i, e in zip(income, expenses)) if income and expenses else ()
    return Scenario(
        label=label,
        factor=factor,
        predictions=ScenarioPredictions(
            periods=periods, income=income, expenses=expenses, savings=savings,
        ),
        risk_factors=ScenarioRiskFactors(
            income_risk=risk.income_risk.score * inverse_factor(factor),
            expense_risk=risk.expense_risk.score * factor,
            savings_risk=risk.savings_risk.score * factor,
        ),
        unavailable=unavailable,
    )


def generate_scenarios(
    models: ForecastModelSet,
    risk: RiskProfile,
    *,
    horizon: int = 12,
    factors: Optional[Mapping[str, float]] = None,
) -> ScenarioSet:
    """Project the three scenarios ``horizon`` months ahead.

    Args:
        models: Fitted models; ``income_trend`` drives income, exponential
            drives expenses.
        risk: Base stream risk scores.
        horizon: Months to project (>= 0).
        factors: Label → factor; defaults to 1.2 / 1.0 / 0.8.

    Returns:
        ``ScenarioSet``.

    Raises:
        ValueError: If ``horizon < 0`` or a scenario label is missing.
        InsufficientDataError: If neither baseline model is available.
    """
    if horizon < 0:
        raise ValueError(f"horizon must be >= 0, got {horizon}.")
    factors = dict(factors) if factors is not None else dict(DEFAULT_FACTORS)
    missing = [label for label in SCENARIO_LABELS if label not in factors]
    if missing:
        raise ValueError(f"Missing scenario factor(s): {missing}.")

    if models.income_trend is None and models.exponential is None:
        raise InsufficientDataError("scenarios", 2, 0)

    base_income = (
        [max(0.0, v) for v in models.income_trend.forecast(horizon)]
        if models.income_trend is not None else None
    )
    base_expenses = models.exponential.forecast(horizon) if models.exponential is not None else None

    unavailable: list[str] = []
    if base_income is None:
        unavailable.append("income")
    if base_expenses is None:
        unavailable.append("expenses")
    if unavailable:
        unavailable.append("savings")
        logger.info("Scenario streams unavailable: %s", ", ".join(unavailable))

    periods = tuple(future_periods(models.last_period, horizon)) if models.last_period else ()

    scenarios = {
        label: _build_scenario(
            label, factors[label], base_income, base_expenses, periods, risk, tuple(unavailable)
        )
        for label in SCENARIO_LABELS
    }
    return ScenarioSet(horizon_months=horizon, **scenarios)
