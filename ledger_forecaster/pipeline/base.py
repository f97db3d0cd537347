"""
Abstract base class for pipeline stages.

Every stage follows the same contract:
  1. Receive ``AppConfig`` at construction.
  2. ``run(**kwargs)`` is the sole public API.
  3. ``run()`` creates a ``RunMetadata`` record, calls ``_execute()``,
     and persists the run record with its final status.
  4. ``_execute()`` is the stage-specific implementation.

Stages never swallow exceptions: a failing ``_execute()`` is recorded as
``status='failed'`` in ``run_metadata`` and then re-raised.

Usage::

    class MyStage(PipelineStage):
        stage_name = "refresh"

        def _execute(self, run: RunMetadata, **kwargs) -> int:
            return 42

    stage = MyStage(config=app_config)
    run = stage.run()
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional
from uuid import uuid4

from ledger_forecaster.config import AppConfig
from ledger_forecaster.models.meta import RunMetadata
from ledger_forecaster.utils.time_utils import utcnow

if TYPE_CHECKING:
    from ledger_forecaster.engine import AnalyticsEngine

logger = logging.getLogger(__name__)


class PipelineStage(ABC):
    """Abstract base for all pipeline stages.

    Attributes:
        stage_name: Identifier matching a valid ``RunMetadata.pipeline_stage``.
        config: The application configuration for this run.
        db_path: SQLite database path (defaults to ``config.database.db_path``).
        engine: Analytics engine; built lazily from the config when not given.
    """

    stage_name: str

    def __init__(
        self,
        config: AppConfig,
        db_path: Optional[str] = None,
        engine: Optional["AnalyticsEngine"] = None,
    ) -> None:
        self.config = config
        self.db_path = db_path or config.database.db_path
        self._engine = engine

    @property
    def engine(self) -> "AnalyticsEngine":
        if self._engine is None:
            from ledger_forecaster.engine import AnalyticsEngine

            self._engine = AnalyticsEngine.from_config(self.config, self.db_path)
        return self._engine

    def run(self, **kwargs) -> RunMetadata:
        """Execute this stage and return the finalized run record.

        Raises:
            Exception: Re-raises any exception from ``_execute()`` after
                recording ``status='failed'``.
        """
        run = RunMetadata(
            run_slug=str(uuid4()),
            pipeline_stage=self.stage_name,
            currency=kwargs.get("currency") or self.config.ledger.reporting_currency,
            config_snapshot=self.config.model_dump(),
            started_at=utcnow(),
        )
        logger.info("Stage [%s] starting | run_slug=%s", self.stage_name, run.run_slug)

        try:
            rows = self._execute(run=run, **kwargs)
            run.status = "success"
            run.rows_processed = rows
            run.finished_at = utcnow()
            logger.info(
                "Stage [%s] completed | rows=%d | run_slug=%s",
                self.stage_name, rows, run.run_slug,
            )
        except Exception as exc:
            run.status = "failed"
            run.error_message = str(exc)
            run.finished_at = utcnow()
            logger.error(
                "Stage [%s] FAILED: %s | run_slug=%s", self.stage_name, exc, run.run_slug
            )
            self._persist_run(run)
            raise

        self._persist_run(run)
        return run

    @abstractmethod
    def _execute(self, run: RunMetadata, **kwargs) -> int:
        """Stage-specific implementation; returns the count of rows produced."""
        ...

    def _persist_run(self, run: RunMetadata) -> None:
        """Insert or update ``run`` in ``run_metadata``.

        Persistence errors are logged, not raised, so they never mask the
        original stage error.
        """
        try:
            from ledger_forecaster.db.connection import get_connection
            from ledger_forecaster.db.repositories.run_repo import RunMetadataRepository

            with get_connection(
                self.db_path,
                wal_mode=self.config.database.wal_mode,
                busy_timeout_ms=self.config.database.busy_timeout_ms,
            ) as conn:
                repo = RunMetadataRepository(conn)
                if run.run_id is None:
                    run.run_id = repo.insert_run(run)
                else:
                    repo.update_run(run)
        except Exception as exc:
            logger.error("Failed to persist RunMetadata for run_slug=%s: %s", run.run_slug, exc)
