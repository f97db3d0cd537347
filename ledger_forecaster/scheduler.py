"""Background scheduler for periodic aggregate refreshes.

No external scheduler library is required; uses stdlib ``threading`` and
``signal`` only.

Typical usage via the CLI::

    lfc start-scheduler --interval 3600

Or import directly::

    from ledger_forecaster.scheduler import RefreshScheduler
    scheduler = RefreshScheduler(store, interval_seconds=3600)
    scheduler.start()      # returns immediately; refreshes on a daemon thread
    ...
    scheduler.stop()

Each tick calls ``store.refresh()``.  A failed refresh (or an unexpected
exception) is logged and the loop keeps going; the store keeps serving its
previous snapshot.  ``stop()`` is cooperative: it sets an event the loop
waits on, so the thread exits at the next wake-up without interrupting a
refresh in progress.
"""

from __future__ import annotations

import logging
import platform
import signal
import threading
from typing import Callable, Optional

from ledger_forecaster.aggregation.store import AggregationStore
from ledger_forecaster.models.meta import RefreshReport

log = logging.getLogger(__name__)


class RefreshScheduler:
    """Runs ``store.refresh()`` every ``interval_seconds`` on a daemon thread.

    Parameters
    ----------
    store:
        The aggregation store to refresh.
    interval_seconds:
        Seconds between the end of one refresh and the start of the next.
    run_immediately:
        When *True* (default) the first refresh runs as soon as the
        scheduler starts; otherwise it waits one interval.
    on_report:
        Optional callback receiving every ``RefreshReport``.
    """

    def __init__(
        self,
        store: AggregationStore,
        interval_seconds: float = 3600,
        run_immediately: bool = True,
        on_report: Optional[Callable[[RefreshReport], None]] = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}.")
        self.store = store
        self.interval_seconds = interval_seconds
        self.run_immediately = run_immediately
        self.on_report = on_report
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.runs = 0
        self.failures = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ── Jobs ──────────────────────────────────────────────────────────────────

    def run_once(self) -> Optional[RefreshReport]:
        """Execute one refresh, logging instead of raising on failure."""
        try:
            report = self.store.refresh()
        except Exception as exc:
            self.failures += 1
            log.error("Scheduled refresh raised: %s", exc, exc_info=True)
            return None

        self.runs += 1
        if report.ok:
            log.info("Scheduled refresh v%d ok (%d rows).", report.version, report.total_rows)
        else:
            self.failures += 1
            log.warning(
                "Scheduled refresh failed in %s: %s", report.failed_view or "refresh", report.error
            )
        if self.on_report is not None:
            try:
                self.on_report(report)
            except Exception as exc:
                log.error("on_report callback failed: %s", exc, exc_info=True)
        return report

    # ── Main loop ─────────────────────────────────────────────────────────────

    def _loop(self) -> None:
        log.info("Refresh scheduler started. interval=%ss", self.interval_seconds)
        if self.run_immediately and not self._stop_event.is_set():
            self.run_once()
        while not self._stop_event.wait(self.interval_seconds):
            self.run_once()
        log.info("Refresh scheduler stopped.")

    def start(self) -> None:
        """Start the background thread.  No-op if already running."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="refresh-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the loop to exit and wait for the thread to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def run_forever(self) -> None:
        """Start and block until Ctrl-C (or SIGTERM on Linux/macOS)."""

        def _shutdown(signum, frame):  # noqa: ANN001
            log.info("Signal %d received; stopping scheduler.", signum)
            self._stop_event.set()

        signal.signal(signal.SIGINT, _shutdown)
        if platform.system() != "Windows":
            signal.signal(signal.SIGTERM, _shutdown)

        self.start()
        while self.is_running:
            self._thread.join(timeout=1.0)
