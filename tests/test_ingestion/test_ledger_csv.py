"""
Tests for the ledger CSV parsers.

Covers:
  - Happy paths for transactions, categories and goals.
  - Optional cells become None; defaults are applied.
  - Every row is validated before anything is returned.
  - Missing columns, missing files and header-only files.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from ledger_forecaster.ingestion.ledger_csv import (
    parse_category_csv,
    parse_goal_csv,
    parse_transaction_csv,
)


def _csv(tmp_path: Path, text: str, name: str = "data.csv") -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


class TestTransactions:
    def test_parses_rows(self, tmp_path):
        path = _csv(tmp_path, (
            "txn_date,amount,currency,category_id,description\n"
            "2024-01-01,3000,usd,1,Salary\n"
            "2024-01-15,\"-1,250.50\",USD,,\n"
        ))
        txns = parse_transaction_csv(path)
        assert len(txns) == 2
        assert txns[0].txn_date == date(2024, 1, 1)
        assert txns[0].currency == "USD"
        assert txns[0].category_id == 1
        assert txns[1].amount == pytest.approx(-1250.5)
        assert txns[1].category_id is None
        assert txns[1].description is None

    def test_bad_rows_reported_together(self, tmp_path):
        path = _csv(tmp_path, (
            "txn_date,amount,currency\n"
            "2024-13-01,10,USD\n"
            "2024-01-02,ten,USD\n"
            "2024-01-03,5,USD\n"
        ))
        with pytest.raises(ValueError) as exc_info:
            parse_transaction_csv(path)
        message = str(exc_info.value)
        assert "2 row(s) failed validation" in message
        assert "Row 2" in message and "Row 3" in message

    def test_non_finite_amount(self, tmp_path):
        path = _csv(tmp_path, "txn_date,amount,currency\n2024-01-01,inf,USD\n")
        with pytest.raises(ValueError, match="Non-finite"):
            parse_transaction_csv(path)

    def test_missing_required_column(self, tmp_path):
        path = _csv(tmp_path, "txn_date,amount\n2024-01-01,10\n")
        with pytest.raises(ValueError, match="currency"):
            parse_transaction_csv(path)

    def test_header_only(self, tmp_path):
        assert parse_transaction_csv(_csv(tmp_path, "txn_date,amount,currency\n")) == []

    def test_empty_file(self, tmp_path):
        with pytest.raises(ValueError, match="no header"):
            parse_transaction_csv(_csv(tmp_path, ""))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            parse_transaction_csv(tmp_path / "missing.csv")


class TestCategories:
    def test_parses_tree(self, tmp_path):
        path = _csv(tmp_path, (
            "category_id,name,parent_id,kind\n"
            "4,Food,,\n"
            "5,Groceries,4,expense\n"
            "1,Salary,,income\n"
        ))
        cats = parse_category_csv(path)
        assert [c.category_id for c in cats] == [4, 5, 1]
        assert cats[0].kind == "expense"
        assert cats[1].parent_id == 4
        assert cats[2].kind == "income"

    def test_duplicate_ids(self, tmp_path):
        path = _csv(tmp_path, "category_id,name\n1,A\n1,B\n")
        with pytest.raises(ValueError, match="Duplicate category_id 1"):
            parse_category_csv(path)

    def test_blank_name(self, tmp_path):
        path = _csv(tmp_path, "category_id,name\n1, \n")
        with pytest.raises(ValueError, match="name"):
            parse_category_csv(path)


class TestGoals:
    def test_parses_goals(self, tmp_path):
        path = _csv(tmp_path, (
            "name,target_amount,current_amount,target_date\n"
            "Holiday,3000,250,2024-12-01\n"
            "Car,12000,,2025-06-30\n"
        ))
        goals = parse_goal_csv(path)
        assert goals[0].name == "Holiday"
        assert goals[0].current_amount == 250.0
        assert goals[1].current_amount == 0.0
        assert goals[1].target_date == date(2025, 6, 30)

    def test_non_positive_target(self, tmp_path):
        path = _csv(tmp_path, "target_amount,target_date\n0,2024-12-01\n")
        with pytest.raises(ValueError, match="target_amount"):
            parse_goal_csv(path)
