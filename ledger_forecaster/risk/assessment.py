"""
Risk scoring for numeric streams.

Score formula (weights and thresholds come from ``RiskConfig``)::

    volatility        = population stddev of the stream
    trend_strength    = |slope| of a linear fit on the stream
    recent_change_pct = (last - second_last) / |second_last| · 100
    score             = clamp(0, 100, volatility·0.4 + trend·30 + |change|·0.3)

Level is driven by volatility alone: above 20 is ``high``, above 10
``medium``, otherwise ``low``.

Zero policy for ``recent_change_pct``: a second-to-last value within epsilon
of zero yields 0.0 rather than an infinite change.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Optional

from ledger_forecaster.config import RiskConfig
from ledger_forecaster.errors import InsufficientDataError
from ledger_forecaster.forecasting.models import fit_linear
from ledger_forecaster.models.risk import RiskAssessment, RiskFactors, RiskLevel, RiskProfile
from ledger_forecaster.models.series import CategorySeries, TimeSeriesPoint
from ledger_forecaster.utils.stats import clamp, mean, pstdev, safe_ratio

logger = logging.getLogger(__name__)


def recent_change_pct(values: Sequence[float]) -> float:
    """Percent change of the last value against the one before it.

    Raises:
        InsufficientDataError: If fewer than 2 values are given.
    """
    if len(values) < 2:
        raise InsufficientDataError("recent_change", 2, len(values))
    last, second_last = values[-1], values[-2]
    return safe_ratio(last - second_last, abs(second_last), default=0.0) * 100.0


def risk_level(volatility: float, config: RiskConfig) -> RiskLevel:
    if volatility > config.volatility_high:
        return "high"
    if volatility > config.volatility_medium:
        return "medium"
    return "low"


def score_factors(factors: RiskFactors, config: Optional[RiskConfig] = None) -> RiskAssessment:
    """Turn raw factors into a scored, levelled assessment."""
    config = config or RiskConfig()
    raw = (
        factors.volatility * config.volatility_weight
        + factors.trend_strength * config.trend_weight
        + abs(factors.recent_change_pct) * config.change_weight
    )
    return RiskAssessment(
        score=clamp(raw, 0.0, 100.0),
        level=risk_level(factors.volatility, config),
        factors=factors,
    )


def assess_risk(values: Sequence[float], config: Optional[RiskConfig] = None) -> RiskAssessment:
    """Score the risk of one stream.

    Args:
        values: Stream values in time order.
        config: Weights and thresholds; defaults when ``None``.

    Returns:
        ``RiskAssessment`` with score in [0, 100].

    Raises:
        InsufficientDataError: If fewer than 2 values are given.
    """
    values = list(values)
    if len(values) < 2:
        raise InsufficientDataError("risk", 2, len(values))
    factors = RiskFactors(
        volatility=pstdev(values),
        trend_strength=abs(fit_linear(values, kind="risk").slope),
        recent_change_pct=recent_change_pct(values),
    )
    return score_factors(factors, config)


def assess_streams(series: Sequence[TimeSeriesPoint], config: Optional[RiskConfig] = None) -> RiskProfile:
    """Assess income, expenses (absolute) and savings (income - |expenses|).

    Raises:
        InsufficientDataError: If the series has fewer than 2 months.
    """
    income = [p.income for p in series]
    expenses = [abs(p.expenses) for p in series]
    savings = [i - e for i, e in zip(income, expenses)]
    return RiskProfile(
        income_risk=assess_risk(income, config),
        expense_risk=assess_risk(expenses, config),
        savings_risk=assess_risk(savings, config),
    )


def assess_category_risks(
    category_series: Mapping[int, CategorySeries],
    config: Optional[RiskConfig] = None,
) -> dict[int, RiskAssessment]:
    """Per-category risk from monthly totals.

    Recent change is not part of the category score (held at 0).  Categories
    with fewer than 2 periods are left out.
    """
    result: dict[int, RiskAssessment] = {}
    for category_id in sorted(category_series):
        totals = category_series[category_id].totals
        if len(totals) < 2:
            logger.debug("Category %d skipped for risk: %d period(s).", category_id, len(totals))
            continue
        factors = RiskFactors(
            volatility=pstdev(totals),
            trend_strength=abs(fit_linear(totals, kind="risk").slope),
            recent_change_pct=0.0,
            average=mean(totals),
        )
        result[category_id] = score_factors(factors, config)
    return result


def build_risk_profile(
    series: Sequence[TimeSeriesPoint],
    category_series: Optional[Mapping[int, CategorySeries]] = None,
    config: Optional[RiskConfig] = None,
) -> RiskProfile:
    """Stream risks plus per-category risks when history is supplied."""
    profile = assess_streams(series, config)
    if category_series:
        profile = profile.model_copy(
            update={"category_risks": assess_category_risks(category_series, config)}
        )
    return profile
