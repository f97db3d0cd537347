"""
Analytics engine facade.

``AnalyticsEngine`` wires the four core components together for callers (the
CLI, the pipeline stages, an embedding application):

    ledger ─► AggregationStore ─► series ─► forecast models
                                         ─► risk profile ─► goals / scenarios
                                                          ─► insight payload

Every analytics call reads the store's current snapshot once and works from
that single version.  Forecast, risk and scenario computations are pure and
stateless; only the store keeps state.

``insights()`` degrades section by section: a component that raises
``InsufficientDataError`` yields an unavailable section with the error as
its reason instead of failing the whole payload.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from typing import Any, Optional, Union

from ledger_forecaster.aggregation.series import category_series, monthly_series
from ledger_forecaster.aggregation.snapshot import ViewSnapshot
from ledger_forecaster.aggregation.store import AggregationStore
from ledger_forecaster.config import AppConfig
from ledger_forecaster.errors import InsufficientDataError, SnapshotUnavailableError
from ledger_forecaster.forecasting.models import fit_all
from ledger_forecaster.forecasting.models import forecast as run_forecast
from ledger_forecaster.insights.composer import compose
from ledger_forecaster.models.forecast import ForecastModelSet
from ledger_forecaster.models.goal import Goal, GoalPrediction
from ledger_forecaster.models.insight import StructuredInsightPayload
from ledger_forecaster.models.meta import RefreshReport
from ledger_forecaster.models.risk import RiskProfile
from ledger_forecaster.models.scenario import ScenarioSet
from ledger_forecaster.models.series import CategorySeries, TimeSeriesPoint
from ledger_forecaster.models.views import ViewFilter
from ledger_forecaster.risk.assessment import build_risk_profile
from ledger_forecaster.risk.goals import predict_goal
from ledger_forecaster.risk.recommendations import build_recommendations
from ledger_forecaster.risk.scenarios import generate_scenarios

logger = logging.getLogger(__name__)


class AnalyticsEngine:
    """Caller-facing entry point to the analytics core.

    Args:
        store: Aggregation store serving snapshots.
        config: Application config; defaults when ``None``.
    """

    def __init__(self, store: AggregationStore, config: Optional[AppConfig] = None) -> None:
        self.store = store
        self.config = config or AppConfig()

    @classmethod
    def from_config(cls, config: AppConfig, db_path: Optional[str] = None) -> "AnalyticsEngine":
        """Engine over the SQLite ledger, restoring the last persisted snapshot."""
        from ledger_forecaster.db.repositories.ledger_repo import DatabaseLedgerAccessor
        from ledger_forecaster.db.repositories.view_repo import DatabaseViewSink

        db = config.database
        path = db_path or db.db_path
        sink = (
            DatabaseViewSink(path, db.wal_mode, db.busy_timeout_ms)
            if config.aggregation.persist_views else None
        )
        store = AggregationStore(
            ledger=DatabaseLedgerAccessor(path, db.wal_mode, db.busy_timeout_ms),
            config=config.aggregation,
            sink=sink,
        )
        store.restore()
        return cls(store, config)

    # ── Aggregation ───────────────────────────────────────────────────────────

    def refresh(self, as_of: Optional[datetime] = None) -> RefreshReport:
        return self.store.refresh(as_of)

    def query(self, view_name: str, view_filter: Optional[ViewFilter] = None) -> list[Mapping[str, Any]]:
        return self.store.query(view_name, view_filter)

    def _snapshot(self) -> ViewSnapshot:
        snapshot = self.store.snapshot()
        if snapshot is None:
            raise SnapshotUnavailableError("No aggregate snapshot yet. Run refresh first.")
        return snapshot

    def resolve_currency(self, currency: Optional[str]) -> str:
        """``currency`` upper-cased, or the configured reporting currency."""
        return (currency or self.config.ledger.reporting_currency).upper()

    def series(
        self, currency: Optional[str] = None, snapshot: Optional[ViewSnapshot] = None
    ) -> list[TimeSeriesPoint]:
        return monthly_series(snapshot or self._snapshot(), self.resolve_currency(currency))

    def category_series(
        self, currency: Optional[str] = None, snapshot: Optional[ViewSnapshot] = None
    ) -> dict[int, CategorySeries]:
        return category_series(snapshot or self._snapshot(), self.resolve_currency(currency))

    # ── Forecasting and risk ──────────────────────────────────────────────────

    def _inputs(self, currency: Optional[str]) -> tuple[list[TimeSeriesPoint], dict[int, CategorySeries]]:
        snapshot = self._snapshot()
        return self.series(currency, snapshot), self.category_series(currency, snapshot)

    def fit_models(self, currency: Optional[str] = None) -> ForecastModelSet:
        return fit_all(*self._inputs(currency))

    def forecast(
        self,
        kind: str = "linear",
        horizon: Optional[int] = None,
        currency: Optional[str] = None,
    ) -> Union[list[float], dict[int, list[float]]]:
        """Forecast ``horizon`` months with one model kind.

        Raises:
            InsufficientDataError: If the model could not be fitted.
            ValueError: If ``horizon < 0`` or ``kind`` is unknown.
        """
        horizon = self.config.forecast.default_horizon_months if horizon is None else horizon
        snapshot = self._snapshot()
        categories = self.category_series(currency, snapshot) if kind == "category" else None
        return run_forecast(self.series(currency, snapshot), horizon, kind, categories)

    def assess_risk(self, currency: Optional[str] = None) -> RiskProfile:
        series, categories = self._inputs(currency)
        return build_risk_profile(series, categories, self.config.risk)

    def predict_goal(
        self,
        goal: Goal,
        *,
        as_of: Optional[date] = None,
        currency: Optional[str] = None,
        strict: bool = False,
    ) -> GoalPrediction:
        return self.predict_goals([goal], as_of=as_of, currency=currency, strict=strict)[0]

    def predict_goals(
        self,
        goals: Sequence[Goal],
        *,
        as_of: Optional[date] = None,
        currency: Optional[str] = None,
        strict: bool = False,
    ) -> list[GoalPrediction]:
        series, categories = self._inputs(currency)
        models = fit_all(series, categories)
        risk = build_risk_profile(series, categories, self.config.risk)
        return [
            predict_goal(
                goal, models, risk,
                as_of=as_of,
                weights=self.config.goals.model_weights,
                days_per_month=self.config.goals.days_per_month,
                strict=strict,
            )
            for goal in goals
        ]

    def generate_scenarios(
        self, currency: Optional[str] = None, horizon: Optional[int] = None
    ) -> ScenarioSet:
        cfg = self.config.scenarios
        series, categories = self._inputs(currency)
        return generate_scenarios(
            fit_all(series, categories),
            build_risk_profile(series, categories, self.config.risk),
            horizon=cfg.horizon_months if horizon is None else horizon,
            factors=cfg.factors,
        )

    # ── Insights ──────────────────────────────────────────────────────────────

    def insights(
        self,
        goals: Sequence[Goal] = (),
        *,
        as_of: Optional[date] = None,
        currency: Optional[str] = None,
    ) -> StructuredInsightPayload:
        """Compose the full insight payload from one snapshot.

        Sections whose inputs are insufficient are marked unavailable.
        """
        currency = self.resolve_currency(currency)
        snapshot = self.store.snapshot()
        reasons: dict[str, str] = {}
        models: Optional[ForecastModelSet] = None
        risk: Optional[RiskProfile] = None
        predictions: Optional[list[GoalPrediction]] = None
        scenarios: Optional[ScenarioSet] = None

        if snapshot is None:
            reason = "No aggregate snapshot yet. Run refresh first."
            reasons = {name: reason for name in ("aggregates", "forecasts", "risk", "goals", "scenarios")}
        else:
            series = monthly_series(snapshot, currency)
            categories = category_series(snapshot, currency)
            models = fit_all(series, categories)
            try:
                risk = build_risk_profile(series, categories, self.config.risk)
            except InsufficientDataError as exc:
                reasons["risk"] = str(exc)

            if risk is None:
                reasons["goals"] = "Risk profile unavailable."
            else:
                try:
                    predictions = [
                        predict_goal(
                            goal, models, risk,
                            as_of=as_of,
                            weights=self.config.goals.model_weights,
                            days_per_month=self.config.goals.days_per_month,
                        )
                        for goal in goals
                    ]
                except InsufficientDataError as exc:
                    reasons["goals"] = str(exc)

                try:
                    scenarios = generate_scenarios(
                        models, risk,
                        horizon=self.config.scenarios.horizon_months,
                        factors=self.config.scenarios.factors,
                    )
                except InsufficientDataError as exc:
                    reasons["scenarios"] = str(exc)
            if "scenarios" not in reasons and scenarios is None:
                reasons["scenarios"] = "Risk profile unavailable."

        recommendations = build_recommendations(risk, models, predictions or ())
        return compose(
            snapshot, models, risk, predictions, scenarios, recommendations,
            reasons=reasons, currency=currency,
        )
