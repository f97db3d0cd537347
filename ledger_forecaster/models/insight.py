"""
Structured insight payload handed to the presentation layer and to the
external narrative generator.

Every upstream section is wrapped in a ``Section`` envelope.  A section whose
input was missing is still present with ``available=False`` and a
``reason``, so consumers never have to distinguish "absent key" from
"no data".

``Recommendation`` is a structured rule outcome (code + parameters).  Turning
it into prose is the narrative generator's job.
"""

from __future__ import annotations

import copy
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict

ChartType = Literal["line", "bar", "pie"]
Severity = Literal["info", "warning"]


class Section(BaseModel):
    """Availability envelope for one payload section."""

    model_config = ConfigDict(frozen=True)

    available: bool
    reason: Optional[str] = None
    data: Any = None


class ChartSeries(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    values: tuple[Optional[float], ...]


class ChartDescriptor(BaseModel):
    """Chart-ready data: one x axis, one or more named series."""

    model_config = ConfigDict(frozen=True)

    chart_id: str
    chart_type: ChartType
    title: str
    labels: tuple[str, ...]
    series: tuple[ChartSeries, ...]


class TableDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    table_id: str
    title: str
    headers: tuple[str, ...]
    rows: tuple[tuple[Any, ...], ...]


class MetricDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    value: Optional[float]
    unit: Optional[str] = None


class Visualizations(BaseModel):
    model_config = ConfigDict(frozen=True)

    charts: tuple[ChartDescriptor, ...] = ()
    tables: tuple[TableDescriptor, ...] = ()
    metrics: tuple[MetricDescriptor, ...] = ()


class Recommendation(BaseModel):
    """A triggered advice rule.

    Attributes:
        code: Stable rule identifier, e.g. ``"reduce_discretionary_spending"``.
        severity: ``"info"`` or ``"warning"``.
        subject: What the rule is about (``"income"``, ``"goal:3"`` …).
        params: Numbers backing the rule (shortfall, growth rates …).
    """

    model_config = ConfigDict(frozen=True)

    code: str
    severity: Severity = "info"
    subject: str
    params: dict[str, float] = {}


class StructuredInsightPayload(BaseModel):
    """Everything the engine knows, shaped for presentation."""

    model_config = ConfigDict(frozen=True)

    generated_at: datetime
    currency: Optional[str] = None
    aggregates: Section
    forecasts: Section
    risk: Section
    goals: Section
    scenarios: Section
    recommendations: Section
    visualizations: Visualizations = Visualizations()

    def to_narrative_input(self) -> dict[str, Any]:
        """Deep JSON-safe copy for external consumers.

        The returned dict shares no objects with the payload, so a consumer
        mutating it cannot reach engine state.
        """
        return copy.deepcopy(self.model_dump(mode="json"))
