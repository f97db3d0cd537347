"""
Visualisation descriptors for the insight payload.

Each builder returns chart- or table-ready data (labels + named series, or
headers + rows) and never decides how to draw it.  A builder whose input is
missing returns ``None`` / an empty tuple and the composer leaves it out.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Optional

from ledger_forecaster.models.goal import GoalPrediction
from ledger_forecaster.models.insight import (
    ChartDescriptor,
    ChartSeries,
    MetricDescriptor,
    TableDescriptor,
)
from ledger_forecaster.models.risk import RiskProfile
from ledger_forecaster.models.scenario import ScenarioSet


def income_expense_chart(monthly_rows: Sequence[Mapping[str, Any]]) -> Optional[ChartDescriptor]:
    if not monthly_rows:
        return None
    return ChartDescriptor(
        chart_id="monthly_income_expenses",
        chart_type="bar",
        title="Monthly income and expenses",
        labels=tuple(r["period"] for r in monthly_rows),
        series=(
            ChartSeries(name="income", values=tuple(r["income"] for r in monthly_rows)),
            ChartSeries(name="expenses", values=tuple(abs(r["expenses"]) for r in monthly_rows)),
        ),
    )


def net_cash_flow_chart(monthly_rows: Sequence[Mapping[str, Any]]) -> Optional[ChartDescriptor]:
    if not monthly_rows:
        return None
    return ChartDescriptor(
        chart_id="net_cash_flow",
        chart_type="line",
        title="Net cash flow",
        labels=tuple(r["period"] for r in monthly_rows),
        series=(ChartSeries(name="net", values=tuple(r["net"] for r in monthly_rows)),),
    )


def category_totals_chart(category_rows: Sequence[Mapping[str, Any]]) -> Optional[ChartDescriptor]:
    """Total amount per category across all periods."""
    if not category_rows:
        return None
    totals: dict[int, float] = {}
    for row in category_rows:
        totals[row["category_id"]] = totals.get(row["category_id"], 0.0) + row["total_amount"]
    ids = sorted(totals)
    return ChartDescriptor(
        chart_id="category_totals",
        chart_type="bar",
        title="Totals by category",
        labels=tuple(str(i) for i in ids),
        series=(ChartSeries(name="total_amount", values=tuple(totals[i] for i in ids)),),
    )


def scenario_savings_chart(scenarios: Optional[ScenarioSet]) -> Optional[ChartDescriptor]:
    if scenarios is None or not scenarios.realistic.predictions.savings:
        return None
    return ChartDescriptor(
        chart_id="scenario_savings",
        chart_type="line",
        title="Projected savings by scenario",
        labels=scenarios.realistic.predictions.periods
        or tuple(str(i + 1) for i in range(scenarios.horizon_months)),
        series=tuple(
            ChartSeries(name=s.label, values=s.predictions.savings) for s in scenarios.all()
        ),
    )


def goal_table(predictions: Sequence[GoalPrediction]) -> Optional[TableDescriptor]:
    if not predictions:
        return None
    return TableDescriptor(
        table_id="goal_predictions",
        title="Goal predictions",
        headers=("goal_id", "target_amount", "predicted_amount", "months_remaining",
                 "confidence", "status"),
        rows=tuple(
            (p.goal_id, p.target_amount, p.predicted_amount, p.months_remaining,
             p.confidence, p.status)
            for p in predictions
        ),
    )


def anomaly_table(anomaly_rows: Sequence[Mapping[str, Any]]) -> Optional[TableDescriptor]:
    if not anomaly_rows:
        return None
    headers = ("category_id", "period", "amount", "expected_amount", "deviation_pct")
    return TableDescriptor(
        table_id="category_anomalies",
        title="Category anomalies",
        headers=headers,
        rows=tuple(tuple(r[h] for h in headers) for r in anomaly_rows),
    )


def risk_metrics(risk: Optional[RiskProfile]) -> tuple[MetricDescriptor, ...]:
    if risk is None:
        return ()
    return (
        MetricDescriptor(label="income_risk", value=risk.income_risk.score, unit="score"),
        MetricDescriptor(label="expense_risk", value=risk.expense_risk.score, unit="score"),
        MetricDescriptor(label="savings_risk", value=risk.savings_risk.score, unit="score"),
        MetricDescriptor(label="average_risk", value=risk.average_score, unit="score"),
    )
