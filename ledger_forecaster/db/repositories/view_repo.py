"""
Repository for persisted aggregate view snapshots.

Each view ``<name>`` is stored in the ``mv_<name>`` table, which always holds
exactly the rows of the latest successful refresh.  ``view_versions`` gets
one row per (version, view) for every snapshot written.

``DatabaseViewSink`` writes a whole snapshot inside a single
``get_connection()`` block, i.e. one SQLite transaction: either every view
table is replaced or none is.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Optional

from ledger_forecaster.aggregation.snapshot import AggregateView, ViewSnapshot, freeze_rows
from ledger_forecaster.db.connection import get_connection
from ledger_forecaster.db.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[a-z_][a-z0-9_]*$")


def view_table(view_name: str) -> str:
    """Table name backing ``view_name``.

    Raises:
        ValueError: If ``view_name`` is not a plain lowercase identifier.
    """
    if not _IDENTIFIER_RE.match(view_name):
        raise ValueError(f"Invalid view name '{view_name}'.")
    return f"mv_{view_name}"


class ViewRepository(BaseRepository):
    """Read/write access to ``mv_*`` tables and ``view_versions``."""

    def table_exists(self, table: str) -> bool:
        return self.scalar(
            "SELECT 1 FROM sqlite_master WHERE type='table' AND name = ?;", (table,)
        ) is not None

    def write_snapshot(self, snapshot: ViewSnapshot) -> int:
        """Replace every view table with ``snapshot``'s rows.

        Does not commit; the caller's connection scope owns the transaction.

        Returns:
            Total rows written across all views.

        Raises:
            ValueError: If a view has no backing table.
        """
        total = 0
        for view in snapshot.views.values():
            table = view_table(view.name)
            if not self.table_exists(table):
                raise ValueError(f"No table '{table}' for view '{view.name}'. Run init-db.")
            cols = ", ".join(view.columns)
            marks = ", ".join("?" for _ in view.columns)
            self.execute(f"DELETE FROM {table};")
            if view.rows:
                self.executemany(
                    f"INSERT INTO {table} ({cols}) VALUES ({marks});",
                    [tuple(row[c] for c in view.columns) for row in view.rows],
                )
            self.execute(
                """
                INSERT OR REPLACE INTO view_versions (version, view_name, refreshed_at, row_count)
                VALUES (?, ?, ?, ?);
                """,
                (snapshot.version, view.name, snapshot.refreshed_at.isoformat(), view.row_count),
            )
            total += view.row_count
        return total

    def latest_version(self) -> Optional[int]:
        version = self.scalar("SELECT MAX(version) FROM view_versions;")
        return None if version is None else int(version)

    def read_snapshot(self) -> Optional[ViewSnapshot]:
        """Load the most recently written snapshot, or ``None`` if none exists."""
        version = self.latest_version()
        if version is None:
            return None

        entries = self.fetchall(
            "SELECT view_name, refreshed_at FROM view_versions WHERE version = ? ORDER BY rowid;",
            (version,),
        )
        if not entries:
            return None

        refreshed_at = datetime.fromisoformat(entries[0]["refreshed_at"])
        views: dict[str, AggregateView] = {}
        for entry in entries:
            name = entry["view_name"]
            cursor = self.execute(f"SELECT * FROM {view_table(name)} ORDER BY rowid;")
            columns = tuple(d[0] for d in cursor.description)
            rows = cursor.fetchall()
            views[name] = AggregateView(
                name=name,
                version=version,
                last_updated=refreshed_at,
                columns=columns,
                rows=freeze_rows((dict(r) for r in rows), columns),
            )

        return ViewSnapshot(version=version, refreshed_at=refreshed_at, views=views)

    def version_history(self, limit: int = 20) -> list[dict]:
        """Recent snapshot versions with their total row counts, newest first."""
        rows = self.fetchall(
            """
            SELECT version, MIN(refreshed_at) AS refreshed_at,
                   COUNT(*) AS view_count, SUM(row_count) AS total_rows
            FROM view_versions
            GROUP BY version
            ORDER BY version DESC LIMIT ?;
            """,
            (limit,),
        )
        return [dict(r) for r in rows]


class DatabaseViewSink:
    """View sink persisting snapshots to SQLite, one transaction per snapshot."""

    def __init__(self, db_path: str, wal_mode: bool = True, busy_timeout_ms: int = 5000) -> None:
        self.db_path = db_path
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms

    def write_snapshot(self, snapshot: ViewSnapshot) -> None:
        with get_connection(self.db_path, self.wal_mode, self.busy_timeout_ms) as conn:
            total = ViewRepository(conn).write_snapshot(snapshot)
        logger.debug("Persisted snapshot v%d (%d rows).", snapshot.version, total)

    def read_snapshot(self) -> Optional[ViewSnapshot]:
        with get_connection(self.db_path, self.wal_mode, self.busy_timeout_ms) as conn:
            return ViewRepository(conn).read_snapshot()
