"""
Risk assessment outputs.

A ``RiskAssessment`` summarises one numeric stream (income, expenses,
savings, or a single category) as a 0–100 score plus the three raw factors
the score was computed from.  ``RiskProfile`` bundles the three ledger-wide
streams that goal confidence and scenario risk factors are derived from.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

RiskLevel = Literal["low", "medium", "high"]


class RiskFactors(BaseModel):
    """Raw inputs to the risk score.

    Attributes:
        volatility: Population standard deviation of the stream.
        trend_strength: Absolute linear slope of the stream.
        recent_change_pct: Last-vs-previous change in percent (0.0 when the
            previous value is zero).
        average: Mean of the stream (category risks only).
    """

    model_config = ConfigDict(frozen=True)

    volatility: float
    trend_strength: float
    recent_change_pct: float
    average: Optional[float] = None


class RiskAssessment(BaseModel):
    """Scored risk for one stream."""

    model_config = ConfigDict(frozen=True)

    score: float
    level: RiskLevel
    factors: RiskFactors

    @field_validator("score")
    @classmethod
    def validate_score_range(cls, v: float) -> float:
        if not 0.0 <= v <= 100.0:
            raise ValueError(f"score must be in [0, 100], got {v}.")
        return v


class RiskProfile(BaseModel):
    """Risk assessments for income, expenses and savings.

    ``category_risks`` is filled when category history is available.
    """

    model_config = ConfigDict(frozen=True)

    income_risk: RiskAssessment
    expense_risk: RiskAssessment
    savings_risk: RiskAssessment
    category_risks: dict[int, RiskAssessment] = {}

    @property
    def average_score(self) -> float:
        return (
            self.income_risk.score + self.expense_risk.score + self.savings_risk.score
        ) / 3
