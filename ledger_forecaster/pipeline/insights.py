"""
InsightStage: compose the structured insight payload and write it to disk.

Flow
----
  1. Load every goal from ``financial_goals`` (unless goals are passed in).
  2. Refresh first when the store has no snapshot yet.
  3. ``AnalyticsEngine.insights()`` builds the payload; sections without
     enough data are marked unavailable rather than failing the stage.
  4. ``reporting.export.write_payload()`` writes the JSON document and one
     flat table per section to ``config.export.output_dir``.

Returns the number of available payload sections.
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Optional, Sequence

from ledger_forecaster.insights.composer import SECTION_NAMES
from ledger_forecaster.models.goal import Goal
from ledger_forecaster.models.insight import StructuredInsightPayload
from ledger_forecaster.models.meta import RunMetadata
from ledger_forecaster.pipeline.base import PipelineStage

logger = logging.getLogger(__name__)


class InsightStage(PipelineStage):
    """Build and export the insight payload."""

    stage_name = "insights"

    last_payload: Optional[StructuredInsightPayload] = None
    written_paths: tuple[Path, ...] = ()

    def _execute(
        self,
        run: RunMetadata,
        goals: Optional[Sequence[Goal]] = None,
        as_of: Optional[date] = None,
        currency: Optional[str] = None,
        output_dir: Optional[str] = None,
        fmt: str = "csv",
        **kwargs,
    ) -> int:
        """Compose the payload and export it.

        Args:
            run:        In-progress RunMetadata (mutable).
            goals:      Goals to predict; defaults to every stored goal.
            as_of:      Reference date for goal predictions.
            currency:   Reporting currency override.
            output_dir: Export directory; defaults to ``config.export.output_dir``.
            fmt:        Section table format, ``csv`` or ``parquet``.
        """
        from ledger_forecaster.reporting.export import write_payload

        if goals is None:
            goals = self._load_goals()

        if self.engine.store.snapshot() is None:
            logger.info("No snapshot yet; refreshing before composing insights.")
            self.engine.refresh()

        payload = self.engine.insights(goals, as_of=as_of, currency=currency)
        self.last_payload = payload

        out_dir = Path(output_dir or self.config.export.output_dir)
        stem = f"insights_{payload.currency or 'all'}_{payload.generated_at:%Y%m%d_%H%M%S}"
        self.written_paths = tuple(write_payload(payload, out_dir, stem=stem, fmt=fmt))
        logger.info("Wrote %d insight files to %s", len(self.written_paths), out_dir)

        return sum(1 for name in SECTION_NAMES if getattr(payload, name).available)

    def _load_goals(self) -> list[Goal]:
        from ledger_forecaster.db.connection import get_connection
        from ledger_forecaster.db.repositories.goal_repo import GoalRepository

        with get_connection(
            self.db_path,
            wal_mode=self.config.database.wal_mode,
            busy_timeout_ms=self.config.database.busy_timeout_ms,
        ) as conn:
            return GoalRepository(conn).list_goals()
