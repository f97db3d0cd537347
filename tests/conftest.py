"""
Shared pytest fixtures for the Ledger Forecaster test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the full
    schema and migrations applied.  Created anew for each test.
  - ``sample_categories`` / ``sample_transactions``: a six-month household
    ledger (January to June 2024) with a two-level category tree, one
    grocery spike in May, one uncategorised bonus and one EUR purchase.
  - ``ledger`` / ``store`` / ``refreshed_store``: an in-memory Ledger
    Accessor over the sample ledger and aggregation stores built on it.
  - ``ledger_db`` / ``app_config``: a file-backed database loaded with the
    sample ledger and an ``AppConfig`` pointing at it.
  - ``series_factory``: builds monthly ``TimeSeriesPoint`` lists.
"""

from __future__ import annotations

import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest

from ledger_forecaster.aggregation.store import AggregationStore
from ledger_forecaster.config import AppConfig, DatabaseConfig, ExportConfig, LoggingConfig
from ledger_forecaster.db.connection import get_connection
from ledger_forecaster.db.migrations import initialize_database
from ledger_forecaster.db.repositories.ledger_repo import LedgerRepository
from ledger_forecaster.models.ledger import Category, Transaction, TransactionCriteria
from ledger_forecaster.models.series import TimeSeriesPoint
from ledger_forecaster.utils.time_utils import add_months

AS_OF = datetime(2024, 7, 1, 12, 0, 0, tzinfo=timezone.utc)

# Monthly grocery totals, January to June; May is the spike.
GROCERIES = [-300.0, -320.0, -310.0, -305.0, -900.0, -315.0]

# Six-month reference series used for risk and goal regression tests.
REFERENCE_INCOME = [1000.0, 1000.0, 1020.0, 1050.0, 1080.0, 1100.0]
REFERENCE_EXPENSES = [800.0, 850.0, 860.0, 870.0, 880.0, 900.0]


class InMemoryLedger:
    """Ledger Accessor over plain lists."""

    def __init__(self, transactions: list[Transaction], categories: list[Category]) -> None:
        self.transactions = list(transactions)
        self.categories = list(categories)
        self.calls = 0

    def fetch_transactions(self, criteria: Optional[TransactionCriteria] = None) -> list[Transaction]:
        self.calls += 1
        c = criteria or TransactionCriteria()
        return [
            t for t in self.transactions
            if (c.start_date is None or t.txn_date >= c.start_date)
            and (c.end_date is None or t.txn_date <= c.end_date)
            and (c.currency is None or t.currency == c.currency)
            and (c.category_id is None or t.category_id == c.category_id)
        ]

    def fetch_categories(self) -> list[Category]:
        return list(self.categories)


# ── Database fixture ──────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with schema and migrations.

    Foreign key enforcement is ON.  Connection is closed after the test.
    """
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    initialize_database(conn)
    yield conn
    conn.close()


# ── Sample ledger ─────────────────────────────────────────────────────────────

@pytest.fixture
def sample_categories() -> list[Category]:
    return [
        Category(category_id=1, name="Salary", kind="income"),
        Category(category_id=2, name="Housing"),
        Category(category_id=3, name="Rent", parent_id=2),
        Category(category_id=4, name="Food"),
        Category(category_id=5, name="Groceries", parent_id=4),
    ]


@pytest.fixture
def sample_transactions() -> list[Transaction]:
    txns: list[Transaction] = []
    for month, groceries in enumerate(GROCERIES, start=1):
        txns.append(Transaction(txn_date=date(2024, month, 1), amount=3000.0, currency="USD", category_id=1))
        txns.append(Transaction(txn_date=date(2024, month, 3), amount=-1200.0, currency="USD", category_id=3))
        txns.append(Transaction(txn_date=date(2024, month, 15), amount=groceries, currency="USD", category_id=5))
    txns.append(Transaction(txn_date=date(2024, 2, 20), amount=100.0, currency="USD", description="Bonus"))
    txns.append(Transaction(txn_date=date(2024, 3, 10), amount=-50.0, currency="EUR", category_id=4))
    return txns


@pytest.fixture
def ledger(sample_transactions, sample_categories) -> InMemoryLedger:
    return InMemoryLedger(sample_transactions, sample_categories)


@pytest.fixture
def store(ledger) -> AggregationStore:
    return AggregationStore(ledger)


@pytest.fixture
def refreshed_store(store) -> AggregationStore:
    report = store.refresh(AS_OF)
    assert report.ok
    return store


# ── File-backed database + config ─────────────────────────────────────────────

@pytest.fixture
def ledger_db(tmp_path: Path, sample_transactions, sample_categories) -> str:
    """Path of a SQLite file holding the sample ledger."""
    path = str(tmp_path / "ledger.db")
    with get_connection(path) as conn:
        initialize_database(conn)
        repo = LedgerRepository(conn)
        repo.upsert_categories(sample_categories)
        repo.insert_transactions(sample_transactions)
    return path


@pytest.fixture
def app_config(tmp_path: Path, ledger_db: str) -> AppConfig:
    return AppConfig(
        database=DatabaseConfig(db_path=ledger_db),
        export=ExportConfig(output_dir=str(tmp_path / "outputs")),
        logging=LoggingConfig(log_file=""),
    )


# ── Series factory ────────────────────────────────────────────────────────────

@pytest.fixture
def series_factory() -> Callable[..., list[TimeSeriesPoint]]:
    """Return ``make(incomes, expenses, start="2024-01", currency="USD")``.

    Expenses may be given as positive magnitudes.
    """

    def make(
        incomes: list[float],
        expenses: list[float],
        start: str = "2024-01",
        currency: str = "USD",
    ) -> list[TimeSeriesPoint]:
        return [
            TimeSeriesPoint.from_amounts(add_months(start, i), inc, exp, currency)
            for i, (inc, exp) in enumerate(zip(incomes, expenses))
        ]

    return make


@pytest.fixture
def reference_series(series_factory) -> list[TimeSeriesPoint]:
    return series_factory(REFERENCE_INCOME, REFERENCE_EXPENSES)
