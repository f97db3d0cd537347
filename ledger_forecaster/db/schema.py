"""
SQLite schema DDL: all CREATE TABLE and CREATE INDEX statements.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is **idempotent**:
safe to call on an already-initialized database (e.g. after restart or in tests).

Table creation order respects foreign key dependencies:
  1. categories          (self-referencing parent_id)
  2. transactions        (→ categories)
  3. financial_goals     (no FKs)
  4. run_metadata        (no FKs)
  5. view_versions       (no FKs)
  6. mv_*                (one table per aggregate view; fully rewritten on
                          every successful refresh)

The ``mv_*`` tables hold only the current snapshot.  ``view_versions`` keeps
one row per (version, view) so the history of refreshes is auditable and the
latest version can be restored at start-up.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── Ledger tables ──────────────────────────────────────────────────────────────

_DDL_CATEGORIES = """
CREATE TABLE IF NOT EXISTS categories (
    category_id INTEGER PRIMARY KEY,
    name        TEXT    NOT NULL,
    parent_id   INTEGER REFERENCES categories(category_id),
    kind        TEXT    NOT NULL DEFAULT 'expense',
    created_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_TRANSACTIONS = """
CREATE TABLE IF NOT EXISTS transactions (
    transaction_id INTEGER PRIMARY KEY AUTOINCREMENT,
    txn_date       TEXT    NOT NULL,
    amount         REAL    NOT NULL,
    currency       TEXT    NOT NULL,
    category_id    INTEGER REFERENCES categories(category_id),
    description    TEXT,
    created_at     TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_TRANSACTIONS_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_txn_date
    ON transactions(txn_date);
CREATE INDEX IF NOT EXISTS idx_txn_category_date
    ON transactions(category_id, txn_date);
"""

_DDL_FINANCIAL_GOALS = """
CREATE TABLE IF NOT EXISTS financial_goals (
    goal_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    name           TEXT,
    target_amount  REAL    NOT NULL,
    current_amount REAL    NOT NULL DEFAULT 0,
    target_date    TEXT    NOT NULL,
    created_at     TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

# ── Audit tables ───────────────────────────────────────────────────────────────

_DDL_RUN_METADATA = """
CREATE TABLE IF NOT EXISTS run_metadata (
    run_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    run_slug        TEXT    NOT NULL UNIQUE,
    pipeline_stage  TEXT    NOT NULL,
    status          TEXT    NOT NULL DEFAULT 'started',
    currency        TEXT,
    config_snapshot TEXT    NOT NULL,
    rows_processed  INTEGER NOT NULL DEFAULT 0,
    error_message   TEXT,
    started_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    finished_at     TEXT
);
"""

_DDL_VIEW_VERSIONS = """
CREATE TABLE IF NOT EXISTS view_versions (
    version      INTEGER NOT NULL,
    view_name    TEXT    NOT NULL,
    refreshed_at TEXT    NOT NULL,
    row_count    INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (version, view_name)
);
"""

# ── Aggregate view tables ──────────────────────────────────────────────────────

_DDL_MV_MONTHLY_SUMMARY = """
CREATE TABLE IF NOT EXISTS mv_monthly_summary (
    period            TEXT    NOT NULL,
    currency          TEXT    NOT NULL,
    income            REAL    NOT NULL,
    expenses          REAL    NOT NULL,
    net               REAL    NOT NULL,
    transaction_count INTEGER NOT NULL
);
"""

_DDL_MV_CATEGORY_SUMMARY = """
CREATE TABLE IF NOT EXISTS mv_category_summary (
    category_id       INTEGER NOT NULL,
    period            TEXT    NOT NULL,
    currency          TEXT    NOT NULL,
    total_amount      REAL    NOT NULL,
    transaction_count INTEGER NOT NULL,
    average_amount    REAL    NOT NULL,
    min_amount        REAL    NOT NULL,
    max_amount        REAL    NOT NULL
);
"""

_DDL_MV_SUBCATEGORY_SUMMARY = """
CREATE TABLE IF NOT EXISTS mv_subcategory_summary (
    parent_category_id INTEGER NOT NULL,
    subcategory_id     INTEGER NOT NULL,
    period             TEXT    NOT NULL,
    currency           TEXT    NOT NULL,
    total_amount       REAL    NOT NULL,
    transaction_count  INTEGER NOT NULL
);
"""

_DDL_MV_CATEGORY_HIERARCHY = """
CREATE TABLE IF NOT EXISTS mv_category_hierarchy (
    ancestor_id   INTEGER NOT NULL,
    descendant_id INTEGER NOT NULL,
    depth         INTEGER NOT NULL,
    path          TEXT    NOT NULL
);
"""

_DDL_MV_CATEGORY_ANOMALIES = """
CREATE TABLE IF NOT EXISTS mv_category_anomalies (
    category_id     INTEGER NOT NULL,
    period          TEXT    NOT NULL,
    currency        TEXT    NOT NULL,
    amount          REAL    NOT NULL,
    expected_amount REAL    NOT NULL,
    std_amount      REAL    NOT NULL,
    deviation_pct   REAL
);
"""

_DDL_MV_CATEGORY_CORRELATIONS = """
CREATE TABLE IF NOT EXISTS mv_category_correlations (
    category1_id    INTEGER NOT NULL,
    category2_id    INTEGER NOT NULL,
    currency        TEXT    NOT NULL,
    correlation     REAL,
    overlap_periods INTEGER NOT NULL
);
"""

# ── Ordered list of all DDL to apply ──────────────────────────────────────────

_ALL_DDL: list[str] = [
    _DDL_CATEGORIES,
    _DDL_TRANSACTIONS,
    _DDL_TRANSACTIONS_INDEXES,
    _DDL_FINANCIAL_GOALS,
    _DDL_RUN_METADATA,
    _DDL_VIEW_VERSIONS,
    _DDL_MV_MONTHLY_SUMMARY,
    _DDL_MV_CATEGORY_SUMMARY,
    _DDL_MV_SUBCATEGORY_SUMMARY,
    _DDL_MV_CATEGORY_HIERARCHY,
    _DDL_MV_CATEGORY_ANOMALIES,
    _DDL_MV_CATEGORY_CORRELATIONS,
]

# Table names for introspection / tests
ALL_TABLE_NAMES = [
    "categories",
    "transactions",
    "financial_goals",
    "run_metadata",
    "view_versions",
    "mv_monthly_summary",
    "mv_category_summary",
    "mv_subcategory_summary",
    "mv_category_hierarchy",
    "mv_category_anomalies",
    "mv_category_correlations",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply all DDL statements to ``conn``.

    Idempotent; safe to call on an already-initialized database.

    Args:
        conn: An open ``sqlite3.Connection`` (FK enforcement should be ON).
    """
    logger.debug("Applying schema to database...")

    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)

    conn.commit()
    logger.info("Schema applied: %d tables, indexes created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return the table names present in the database, sorted."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]


def get_existing_indexes(conn: sqlite3.Connection) -> list[str]:
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='index' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
