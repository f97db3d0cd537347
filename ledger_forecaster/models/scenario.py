"""
Optimistic / realistic / pessimistic projections.

Each ``Scenario`` scales the baseline income forecast by its factor and the
baseline expense forecast by the inverse factor ``2 - factor``.  Savings are
recomputed from the two scaled streams.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

ScenarioLabel = Literal["optimistic", "realistic", "pessimistic"]
SCENARIO_LABELS: tuple[str, ...] = ("optimistic", "realistic", "pessimistic")


class ScenarioPredictions(BaseModel):
    """Per-month projected streams (empty when the stream is unavailable)."""

    model_config = ConfigDict(frozen=True)

    periods: tuple[str, ...] = ()
    income: tuple[float, ...] = ()
    expenses: tuple[float, ...] = ()
    savings: tuple[float, ...] = ()


class ScenarioRiskFactors(BaseModel):
    """Base risk scores scaled for the scenario."""

    model_config = ConfigDict(frozen=True)

    income_risk: float
    expense_risk: float
    savings_risk: float


class Scenario(BaseModel):
    """One scaled projection."""

    model_config = ConfigDict(frozen=True)

    label: ScenarioLabel
    factor: float
    predictions: ScenarioPredictions
    risk_factors: ScenarioRiskFactors
    unavailable: tuple[str, ...] = ()


class ScenarioSet(BaseModel):
    """The three scenarios over a shared horizon."""

    model_config = ConfigDict(frozen=True)

    horizon_months: int
    optimistic: Scenario
    realistic: Scenario
    pessimistic: Scenario

    def all(self) -> tuple[Scenario, Scenario, Scenario]:
        return (self.optimistic, self.realistic, self.pessimistic)
