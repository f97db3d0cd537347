"""
RefreshStage: rebuild every aggregate view and publish a new snapshot.

A failed refresh leaves the previously published snapshot in place; the
stage turns the failed ``RefreshReport`` into a ``RefreshError`` so the
run is recorded as ``failed`` in ``run_metadata``.

Returns the total number of view rows in the published snapshot.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ledger_forecaster.models.meta import RefreshReport, RunMetadata
from ledger_forecaster.pipeline.base import PipelineStage

logger = logging.getLogger(__name__)


class RefreshStage(PipelineStage):
    """Refresh the aggregation store from the ledger."""

    stage_name = "refresh"

    last_report: Optional[RefreshReport] = None

    def _execute(self, run: RunMetadata, as_of: Optional[datetime] = None, **kwargs) -> int:
        report = self.engine.refresh(as_of)
        self.last_report = report
        report.raise_for_status()
        for name, count in report.view_row_counts.items():
            logger.debug("  %-24s %6d rows", name, count)
        return report.total_rows
