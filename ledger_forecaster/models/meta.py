"""
Run metadata and refresh reports: the audit trail.

``RunMetadata`` is the pipeline execution audit log.  Every pipeline run
records a complete ``config_snapshot`` (full AppConfig as a dict) so any
run can be reproduced by restoring that config and re-running.

``RunMetadata`` is the **only** Pydantic model in the system that is NOT
frozen; its ``status``, ``rows_processed``, ``error_message``, and
``finished_at`` fields are updated as the pipeline stage executes.

``RefreshReport`` is what ``AggregationStore.refresh()`` returns: either a
success with per-view row counts, or a failure naming the view that broke
and confirming the previous snapshot was retained.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from ledger_forecaster.errors import RefreshError

VALID_PIPELINE_STAGES = frozenset({"refresh", "insights"})
VALID_RUN_STATUSES = frozenset({"started", "success", "failed", "skipped"})


class RunMetadata(BaseModel):
    """Pipeline execution audit record.

    Attributes:
        run_id: Auto-assigned DB PK; ``None`` before insertion.
        run_slug: UUID4 string uniquely identifying this run.
        pipeline_stage: Which stage produced this run record.
        status: Current execution status.
        currency: Reporting currency processed in this run, if any.
        config_snapshot: Full ``AppConfig.model_dump()`` at run start time.
        rows_processed: Count of records produced.
        error_message: Error description if ``status == "failed"``.
        started_at: UTC datetime when the run began.
        finished_at: UTC datetime when the run completed or failed.
    """

    model_config = ConfigDict(frozen=False)

    run_id: Optional[int] = None
    run_slug: str
    pipeline_stage: str
    status: str = "started"
    currency: Optional[str] = None
    config_snapshot: dict[str, Any]
    rows_processed: int = 0
    error_message: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None

    @field_validator("pipeline_stage")
    @classmethod
    def validate_pipeline_stage(cls, v: str) -> str:
        if v not in VALID_PIPELINE_STAGES:
            raise ValueError(
                f"Unknown pipeline_stage '{v}'. Must be one of {sorted(VALID_PIPELINE_STAGES)}."
            )
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in VALID_RUN_STATUSES:
            raise ValueError(
                f"Unknown status '{v}'. Must be one of {sorted(VALID_RUN_STATUSES)}."
            )
        return v


class RefreshReport(BaseModel):
    """Outcome of one aggregate refresh pass.

    Attributes:
        status: ``"success"`` or ``"failed"``.
        version: Snapshot version now being served.  Unchanged on failure.
        attempted_version: Version the pass tried to publish.
        as_of: Timestamp stamped on every refreshed view.
        view_row_counts: View name → row count (success only).
        failed_view: View whose rebuild raised, or ``None``.
        error: Error message on failure.
        previous_version_retained: True when the pass failed and readers
            still see the prior snapshot.
        duration_ms: Wall-clock duration of the pass.
    """

    model_config = ConfigDict(frozen=True)

    status: Literal["success", "failed"]
    version: int
    attempted_version: int
    as_of: datetime
    view_row_counts: dict[str, int] = {}
    failed_view: Optional[str] = None
    error: Optional[str] = None
    previous_version_retained: bool = False
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @property
    def total_rows(self) -> int:
        return sum(self.view_row_counts.values())

    def raise_for_status(self) -> None:
        """Raise ``RefreshError`` if this report records a failure."""
        if not self.ok:
            raise RefreshError(self.failed_view, self.error or "unknown error")
