"""
Aggregation store: owner of the current aggregate view snapshot.

The store holds exactly one piece of shared mutable state: a reference to
the current ``ViewSnapshot``.

Writers (``refresh``, ``restore``) serialise on a single ``threading.Lock``.
A refresh reads the ledger once, builds every view in registry order into a
new snapshot, persists it through the optional ``ViewSink`` (one database
transaction), and only then swaps the reference.  Any failure leaves the
previous snapshot in place and is reported on the returned
``RefreshReport``; a refresh never publishes a partially rebuilt set of
views.

Readers (``query``, ``snapshot``) take no lock.  They read the reference
once per call, so every row returned by one ``query`` comes from a single
version even if a refresh completes concurrently.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, Optional, Protocol

from ledger_forecaster.aggregation.snapshot import AggregateView, ViewSnapshot, freeze_rows
from ledger_forecaster.aggregation.views import VIEW_REGISTRY, BuildContext, ViewSpec, apply_filter
from ledger_forecaster.config import AggregationConfig
from ledger_forecaster.errors import UnknownViewError
from ledger_forecaster.models.ledger import Category, Transaction, TransactionCriteria
from ledger_forecaster.models.meta import RefreshReport
from ledger_forecaster.models.views import ViewFilter
from ledger_forecaster.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class LedgerAccessor(Protocol):
    """Read-only access to the external ledger store."""

    def fetch_transactions(self, criteria: Optional[TransactionCriteria] = None) -> list[Transaction]:
        ...

    def fetch_categories(self) -> list[Category]:
        ...


class ViewSink(Protocol):
    """Durable storage for published snapshots."""

    def write_snapshot(self, snapshot: ViewSnapshot) -> None:
        ...

    def read_snapshot(self) -> Optional[ViewSnapshot]:
        ...


class AggregationStore:
    """Builds, publishes and serves aggregate view snapshots.

    Args:
        ledger: Source of transactions and categories.
        config: Aggregation thresholds; defaults when ``None``.
        sink: Optional durable store written before each swap.
        registry: Views to build, in build order.  Defaults to
            ``VIEW_REGISTRY``.
    """

    def __init__(
        self,
        ledger: LedgerAccessor,
        config: Optional[AggregationConfig] = None,
        sink: Optional[ViewSink] = None,
        registry: Optional[Sequence[ViewSpec]] = None,
    ) -> None:
        self._ledger = ledger
        self._config = config or AggregationConfig()
        self._sink = sink
        self._registry: tuple[ViewSpec, ...] = tuple(registry if registry is not None else VIEW_REGISTRY)
        self._specs: dict[str, ViewSpec] = {spec.name: spec for spec in self._registry}
        if len(self._specs) != len(self._registry):
            raise ValueError("View registry contains duplicate view names.")
        self._write_lock = threading.Lock()
        self._snapshot: Optional[ViewSnapshot] = None

    @property
    def view_names(self) -> list[str]:
        return [spec.name for spec in self._registry]

    # ── Writers ───────────────────────────────────────────────────────────────

    def refresh(self, as_of: Optional[datetime] = None) -> RefreshReport:
        """Rebuild every view and publish the result as a new snapshot.

        Args:
            as_of: Timestamp stamped on every view; defaults to now (UTC).

        Returns:
            ``RefreshReport``.  On failure ``status == "failed"``, the report
            names the failing view and the previous snapshot keeps serving.
        """
        with self._write_lock:
            started = time.perf_counter()
            as_of = as_of or utcnow()
            previous = self._snapshot
            previous_version = previous.version if previous else 0
            version = previous_version + 1
            current_view: Optional[str] = None

            logger.info("Refresh v%d started (%d views).", version, len(self._registry))
            try:
                transactions = self._ledger.fetch_transactions(TransactionCriteria())
                categories = self._ledger.fetch_categories()

                ctx = BuildContext(transactions=transactions, categories=categories, config=self._config)
                views: dict[str, AggregateView] = {}
                for spec in self._registry:
                    current_view = spec.name
                    rows = spec.builder(ctx)
                    ctx.built[spec.name] = rows
                    views[spec.name] = AggregateView(
                        name=spec.name,
                        version=version,
                        last_updated=as_of,
                        columns=spec.columns,
                        rows=freeze_rows(rows, spec.columns),
                    )
                current_view = None

                snapshot = ViewSnapshot(version=version, refreshed_at=as_of, views=views)
                if self._sink is not None:
                    self._sink.write_snapshot(snapshot)
            except Exception as exc:
                duration_ms = (time.perf_counter() - started) * 1000
                logger.error(
                    "Refresh v%d FAILED in %s: %s (still serving v%d).",
                    version, current_view or "refresh", exc, previous_version,
                )
                return RefreshReport(
                    status="failed",
                    version=previous_version,
                    attempted_version=version,
                    as_of=as_of,
                    failed_view=current_view,
                    error=f"{type(exc).__name__}: {exc}",
                    previous_version_retained=True,
                    duration_ms=duration_ms,
                )

            self._snapshot = snapshot
            duration_ms = (time.perf_counter() - started) * 1000
            counts = snapshot.row_counts()
            logger.info(
                "Refresh v%d complete: %d rows across %d views in %.1f ms.",
                version, sum(counts.values()), len(counts), duration_ms,
            )
            return RefreshReport(
                status="success",
                version=version,
                attempted_version=version,
                as_of=as_of,
                view_row_counts=counts,
                duration_ms=duration_ms,
            )

    def restore(self) -> bool:
        """Load the sink's last persisted snapshot as the current snapshot.

        A no-op when there is no sink, nothing persisted, or the store already
        serves a newer version.

        Returns:
            True if a snapshot was restored.
        """
        if self._sink is None:
            return False
        with self._write_lock:
            persisted = self._sink.read_snapshot()
            if persisted is None:
                logger.info("No persisted snapshot to restore.")
                return False
            if self._snapshot is not None and self._snapshot.version >= persisted.version:
                return False
            self._snapshot = persisted
            logger.info("Restored snapshot v%d from %s.", persisted.version, persisted.refreshed_at)
            return True

    # ── Readers ───────────────────────────────────────────────────────────────

    def snapshot(self) -> Optional[ViewSnapshot]:
        """Current snapshot, or ``None`` before the first successful refresh."""
        return self._snapshot

    def query(self, view_name: str, view_filter: Optional[ViewFilter] = None) -> list[Mapping[str, Any]]:
        """Read rows of one view from the current snapshot.

        Args:
            view_name: Registered view name.
            view_filter: Optional filter; fields must be supported by the view.

        Returns:
            Read-only rows in the view's declared order.  Empty before the
            first refresh.

        Raises:
            UnknownViewError: If ``view_name`` is not registered.
            InvalidFilterError: If the filter uses an unsupported field.
        """
        spec = self._specs.get(view_name)
        if spec is None:
            raise UnknownViewError(
                f"Unknown view '{view_name}'. Known views: {self.view_names}."
            )
        snapshot = self._snapshot
        rows: Sequence[Mapping[str, Any]] = ()
        if snapshot is not None and view_name in snapshot.views:
            rows = snapshot.views[view_name].rows
        return apply_filter(spec, rows, view_filter or ViewFilter())
