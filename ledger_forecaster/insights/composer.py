"""
Insight composer: assembles the structured payload for presentation.

The composer performs no analysis of its own.  It wraps each upstream result
in a ``Section`` envelope, converts it to JSON-safe data, and derives chart
and table descriptors from it.  A ``None`` input becomes an unavailable
section carrying a reason, so every payload has the same shape.

``render_narrative`` hands a detached copy of the payload to an external
``NarrativeGenerator`` (e.g. an LLM client).  Generator failures are logged
and reported as ``None``; they never propagate into the engine.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, Optional, Protocol

from ledger_forecaster.aggregation.snapshot import ViewSnapshot
from ledger_forecaster.insights import charts
from ledger_forecaster.models.forecast import ForecastModelSet
from ledger_forecaster.models.goal import GoalPrediction
from ledger_forecaster.models.insight import (
    Recommendation,
    Section,
    StructuredInsightPayload,
    Visualizations,
)
from ledger_forecaster.models.risk import RiskProfile
from ledger_forecaster.models.scenario import ScenarioSet
from ledger_forecaster.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

SECTION_NAMES: tuple[str, ...] = (
    "aggregates", "forecasts", "risk", "goals", "scenarios", "recommendations",
)

# Views copied into the aggregates section.
AGGREGATE_SECTION_VIEWS: tuple[str, ...] = (
    "monthly_summary",
    "category_summary",
    "category_anomalies",
    "category_correlations",
    "category_comparison",
)


class NarrativeGenerator(Protocol):
    """External text generator consuming the narrative input dict."""

    def generate(self, payload: dict[str, Any]) -> str:
        ...


def _unavailable(name: str, reasons: Mapping[str, str]) -> Section:
    return Section(available=False, reason=reasons.get(name, f"No {name} data was provided."))


def _view_rows(snapshot: ViewSnapshot, name: str, currency: Optional[str]) -> list[dict[str, Any]]:
    if name not in snapshot.views:
        return []
    rows = snapshot.views[name].rows
    if currency is not None:
        rows = tuple(r for r in rows if r.get("currency", currency) == currency)
    return [dict(r) for r in rows]


def compose(
    aggregates: Optional[ViewSnapshot],
    forecasts: Optional[ForecastModelSet],
    risk: Optional[RiskProfile],
    goals: Optional[Sequence[GoalPrediction]],
    scenarios: Optional[ScenarioSet],
    recommendations: Optional[Sequence[Recommendation]] = None,
    *,
    reasons: Optional[Mapping[str, str]] = None,
    currency: Optional[str] = None,
    generated_at: Optional[datetime] = None,
) -> StructuredInsightPayload:
    """Build a ``StructuredInsightPayload`` from upstream results.

    Args:
        aggregates: Current view snapshot.
        forecasts: Fitted model set.
        risk: Stream risk profile.
        goals: Goal predictions.
        scenarios: Scenario projections.
        recommendations: Triggered recommendation rules.
        reasons: Section name → why the input is missing.
        currency: Restrict aggregate rows to this currency.
        generated_at: Payload timestamp; defaults to now (UTC).

    Returns:
        Payload with all six sections present.
    """
    reasons = reasons or {}

    monthly_rows: list[dict[str, Any]] = []
    category_rows: list[dict[str, Any]] = []
    anomaly_rows: list[dict[str, Any]] = []
    if aggregates is not None:
        views = {name: _view_rows(aggregates, name, currency) for name in AGGREGATE_SECTION_VIEWS}
        monthly_rows = views["monthly_summary"]
        category_rows = views["category_summary"]
        anomaly_rows = views["category_anomalies"]
        aggregates_section = Section(
            available=True,
            data={
                "version": aggregates.version,
                "refreshed_at": aggregates.refreshed_at.isoformat(),
                "views": views,
            },
        )
    else:
        aggregates_section = _unavailable("aggregates", reasons)

    forecasts_section = (
        Section(available=True, data=forecasts.model_dump(mode="json"))
        if forecasts is not None else _unavailable("forecasts", reasons)
    )
    risk_section = (
        Section(available=True, data=risk.model_dump(mode="json"))
        if risk is not None else _unavailable("risk", reasons)
    )
    goals_section = (
        Section(available=True, data=[g.model_dump(mode="json") for g in goals])
        if goals is not None else _unavailable("goals", reasons)
    )
    scenarios_section = (
        Section(available=True, data=scenarios.model_dump(mode="json"))
        if scenarios is not None else _unavailable("scenarios", reasons)
    )
    recommendations_section = (
        Section(available=True, data=[r.model_dump(mode="json") for r in recommendations])
        if recommendations is not None else _unavailable("recommendations", reasons)
    )

    chart_list = [
        charts.income_expense_chart(monthly_rows),
        charts.net_cash_flow_chart(monthly_rows),
        charts.category_totals_chart(category_rows),
        charts.scenario_savings_chart(scenarios),
    ]
    table_list = [
        charts.goal_table(goals or ()),
        charts.anomaly_table(anomaly_rows),
    ]
    visualizations = Visualizations(
        charts=tuple(c for c in chart_list if c is not None),
        tables=tuple(t for t in table_list if t is not None),
        metrics=charts.risk_metrics(risk),
    )

    payload = StructuredInsightPayload(
        generated_at=generated_at or utcnow(),
        currency=currency or (forecasts.currency if forecasts is not None else None),
        aggregates=aggregates_section,
        forecasts=forecasts_section,
        risk=risk_section,
        goals=goals_section,
        scenarios=scenarios_section,
        recommendations=recommendations_section,
        visualizations=visualizations,
    )
    missing = [name for name in SECTION_NAMES if not getattr(payload, name).available]
    if missing:
        logger.info("Insight payload composed with unavailable sections: %s", ", ".join(missing))
    return payload


def render_narrative(payload: StructuredInsightPayload, generator: NarrativeGenerator) -> Optional[str]:
    """Ask ``generator`` for narrative text about ``payload``.

    Returns:
        The generated text, or ``None`` if the generator failed.
    """
    try:
        return generator.generate(payload.to_narrative_input())
    except Exception:
        logger.exception("Narrative generator %s failed.", type(generator).__name__)
        return None
