"""
Repository for the ledger tables (``categories``, ``transactions``).

``LedgerRepository`` works on a caller-managed connection, like every other
repository.  ``DatabaseLedgerAccessor`` wraps it behind the two-method
Ledger Accessor contract the aggregation store consumes, opening its own
short-lived connection per call.

Filters arrive as a validated ``TransactionCriteria``; the WHERE clause is
assembled only from its enumerated fields, every value bound as a
parameter.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Any, Optional

from ledger_forecaster.db.connection import get_connection
from ledger_forecaster.db.repositories.base import BaseRepository
from ledger_forecaster.models.ledger import Category, Transaction, TransactionCriteria

logger = logging.getLogger(__name__)


class LedgerRepository(BaseRepository):
    """Read/write access to ``categories`` and ``transactions``."""

    # ── Categories ─────────────────────────────────────────────────────────────

    def upsert_category(self, category: Category) -> int:
        """Insert or replace a category keyed by ``category_id``.

        Returns:
            The ``category_id``.
        """
        self.execute(
            """
            INSERT INTO categories (category_id, name, parent_id, kind)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(category_id) DO UPDATE SET
                name      = excluded.name,
                parent_id = excluded.parent_id,
                kind      = excluded.kind;
            """,
            (category.category_id, category.name, category.parent_id, category.kind),
        )
        return category.category_id

    def upsert_categories(self, categories: list[Category]) -> int:
        """Upsert many categories, parents first so FK checks pass.

        Returns:
            Number of categories written.
        """
        for category in _parents_first(categories):
            self.upsert_category(category)
        return len(categories)

    def fetch_categories(self) -> list[Category]:
        rows = self.fetchall("SELECT * FROM categories ORDER BY category_id;")
        return [_row_to_category(r) for r in rows]

    # ── Transactions ───────────────────────────────────────────────────────────

    def insert_transaction(self, txn: Transaction) -> int:
        """Insert a transaction and return its ``transaction_id``."""
        return self.insert(
            """
            INSERT INTO transactions (txn_date, amount, currency, category_id, description)
            VALUES (?, ?, ?, ?, ?);
            """,
            (
                txn.txn_date.isoformat(),
                txn.amount,
                txn.currency,
                txn.category_id,
                txn.description,
            ),
        )

    def insert_transactions(self, txns: list[Transaction]) -> int:
        """Bulk insert transactions.

        Returns:
            Number of rows inserted.
        """
        if not txns:
            return 0
        self.executemany(
            """
            INSERT INTO transactions (txn_date, amount, currency, category_id, description)
            VALUES (?, ?, ?, ?, ?);
            """,
            [
                (t.txn_date.isoformat(), t.amount, t.currency, t.category_id, t.description)
                for t in txns
            ],
        )
        return len(txns)

    def fetch_transactions(self, criteria: Optional[TransactionCriteria] = None) -> list[Transaction]:
        """Fetch transactions matching ``criteria``, oldest first.

        Args:
            criteria: Validated filter; ``None`` reads the whole ledger.

        Returns:
            List of ``Transaction`` ordered by date then id.
        """
        where, params = _criteria_clause(criteria or TransactionCriteria())
        rows = self.fetchall(
            f"SELECT * FROM transactions {where} ORDER BY txn_date, transaction_id;",
            tuple(params),
        )
        return [_row_to_transaction(r) for r in rows]

    def count_transactions(self, criteria: Optional[TransactionCriteria] = None) -> int:
        where, params = _criteria_clause(criteria or TransactionCriteria())
        return int(self.scalar(f"SELECT COUNT(*) FROM transactions {where};", tuple(params), default=0))


class DatabaseLedgerAccessor:
    """Ledger Accessor backed by the SQLite ledger tables.

    Each call opens its own connection, so the accessor can be shared with
    the background refresh thread.
    """

    def __init__(self, db_path: str, wal_mode: bool = True, busy_timeout_ms: int = 5000) -> None:
        self.db_path = db_path
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms

    def fetch_transactions(self, criteria: Optional[TransactionCriteria] = None) -> list[Transaction]:
        with get_connection(self.db_path, self.wal_mode, self.busy_timeout_ms) as conn:
            return LedgerRepository(conn).fetch_transactions(criteria)

    def fetch_categories(self) -> list[Category]:
        with get_connection(self.db_path, self.wal_mode, self.busy_timeout_ms) as conn:
            return LedgerRepository(conn).fetch_categories()


# ── Private helpers ────────────────────────────────────────────────────────────

def _criteria_clause(criteria: TransactionCriteria) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if criteria.start_date is not None:
        clauses.append("txn_date >= ?")
        params.append(criteria.start_date.isoformat())
    if criteria.end_date is not None:
        clauses.append("txn_date <= ?")
        params.append(criteria.end_date.isoformat())
    if criteria.currency is not None:
        clauses.append("currency = ?")
        params.append(criteria.currency)
    if criteria.category_id is not None:
        clauses.append("category_id = ?")
        params.append(criteria.category_id)
    where = ("WHERE " + " AND ".join(clauses)) if clauses else ""
    return where, params


def _parents_first(categories: list[Category]) -> list[Category]:
    """Order categories so every parent precedes its children.

    Categories whose parent is not in the batch are treated as roots (the
    parent may already exist in the database).
    """
    by_id = {c.category_id: c for c in categories}
    ordered: list[Category] = []
    placed: set[int] = set()

    def place(cat: Category, trail: set[int]) -> None:
        if cat.category_id in placed:
            return
        if cat.category_id in trail:
            raise ValueError(f"Category parent cycle involving id {cat.category_id}.")
        parent = by_id.get(cat.parent_id) if cat.parent_id is not None else None
        if parent is not None:
            place(parent, trail | {cat.category_id})
        ordered.append(cat)
        placed.add(cat.category_id)

    for cat in categories:
        place(cat, set())
    return ordered


def _row_to_category(row: sqlite3.Row) -> Category:
    return Category(
        category_id=row["category_id"],
        name=row["name"],
        parent_id=row["parent_id"],
        kind=row["kind"],
    )


def _row_to_transaction(row: sqlite3.Row) -> Transaction:
    return Transaction(
        transaction_id=row["transaction_id"],
        txn_date=date.fromisoformat(row["txn_date"]),
        amount=float(row["amount"]),
        currency=row["currency"],
        category_id=row["category_id"],
        description=row["description"],
    )
