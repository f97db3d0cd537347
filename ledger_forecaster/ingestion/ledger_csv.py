"""
CSV import parsers for ledger transactions, categories and savings goals.

Format: comma delimited, UTF-8, with a header row.

Transactions
  Required: txn_date, amount, currency
  Optional: transaction_id, category_id, description

Categories
  Required: category_id, name
  Optional: parent_id, kind (income / expense / transfer, default expense)

Goals
  Required: target_amount, target_date
  Optional: goal_id, name, current_amount (default 0)

Dates are ``YYYY-MM-DD``.  Amounts are signed decimals: income positive,
expenses negative.  Empty optional cells become ``None``.

Every parser validates all rows before returning any.  If a single row
fails, one ``ValueError`` lists the first 10 failures and nothing is
imported.
"""

from __future__ import annotations

import csv
import logging
import math
from datetime import date
from pathlib import Path
from typing import Callable, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from ledger_forecaster.models.goal import Goal
from ledger_forecaster.models.ledger import Category, Transaction

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

TRANSACTION_COLUMNS = frozenset({"txn_date", "amount", "currency"})
CATEGORY_COLUMNS = frozenset({"category_id", "name"})
GOAL_COLUMNS = frozenset({"target_amount", "target_date"})

MAX_ERRORS_SHOWN = 10


def parse_transaction_csv(path: Path) -> list[Transaction]:
    """Parse a CSV file of ledger transactions.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If required columns are missing or any row fails validation.
    """
    return _parse_csv(path, TRANSACTION_COLUMNS, _row_to_transaction, "transactions")


def parse_category_csv(path: Path) -> list[Category]:
    """Parse a CSV file of ledger categories.

    Duplicate ``category_id`` values are rejected as row errors.
    """
    categories = _parse_csv(path, CATEGORY_COLUMNS, _row_to_category, "categories")
    seen: dict[int, int] = {}
    errors: list[tuple[int, str]] = []
    for i, cat in enumerate(categories):
        if cat.category_id in seen:
            errors.append((i + 2, f"Duplicate category_id {cat.category_id} (first on row {seen[cat.category_id]})."))
        else:
            seen[cat.category_id] = i + 2
    if errors:
        raise ValueError(_error_report(errors, path))
    return categories


def parse_goal_csv(path: Path) -> list[Goal]:
    """Parse a CSV file of savings goals."""
    return _parse_csv(path, GOAL_COLUMNS, _row_to_goal, "goals")


# ── Private helpers ────────────────────────────────────────────────────────────

def _parse_csv(
    path: Path,
    required: frozenset[str],
    convert: Callable[[dict[str, str]], T],
    label: str,
) -> list[T]:
    if not path.exists():
        raise FileNotFoundError(f"CSV file not found: {path}")

    with open(path, encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)

        if reader.fieldnames is None:
            raise ValueError(f"CSV file is empty or has no header row: {path}")

        actual_cols = {c.strip() for c in reader.fieldnames}
        missing = required - actual_cols
        if missing:
            raise ValueError(
                f"CSV missing required columns: {sorted(missing)}\n"
                f"Found columns: {sorted(actual_cols)}"
            )

        rows = [{(k or "").strip(): v for k, v in row.items()} for row in reader]

    if not rows:
        logger.warning("CSV is empty (header only): %s", path)
        return []

    records: list[T] = []
    errors: list[tuple[int, str]] = []
    for i, row in enumerate(rows):
        line_no = i + 2  # 1-based, skip header row
        try:
            records.append(convert(row))
        except (ValueError, ValidationError) as exc:
            errors.append((line_no, str(exc)))

    if errors:
        raise ValueError(_error_report(errors, path))

    logger.info("Parsed %d %s from %s", len(records), label, path.name)
    return records


def _error_report(errors: list[tuple[int, str]], path: Path) -> str:
    detail = "\n".join(f"  Row {ln}: {msg}" for ln, msg in errors[:MAX_ERRORS_SHOWN])
    suffix = (
        f"\n  … and {len(errors) - MAX_ERRORS_SHOWN} more"
        if len(errors) > MAX_ERRORS_SHOWN else ""
    )
    return f"{len(errors)} row(s) failed validation in {path.name}:\n{detail}{suffix}"


def _row_to_transaction(row: dict[str, str]) -> Transaction:
    return Transaction(
        transaction_id=_parse_int(row, "transaction_id"),
        txn_date=_parse_date(row, "txn_date", required=True),
        amount=_parse_float(row, "amount", required=True),
        currency=_req(row, "currency"),
        category_id=_parse_int(row, "category_id"),
        description=_opt(row, "description"),
    )


def _row_to_category(row: dict[str, str]) -> Category:
    return Category(
        category_id=_parse_int(row, "category_id", required=True),
        name=_req(row, "name"),
        parent_id=_parse_int(row, "parent_id"),
        kind=_opt(row, "kind") or "expense",
    )


def _row_to_goal(row: dict[str, str]) -> Goal:
    current = _parse_float(row, "current_amount")
    return Goal(
        goal_id=_parse_int(row, "goal_id"),
        name=_opt(row, "name"),
        target_amount=_parse_float(row, "target_amount", required=True),
        current_amount=0.0 if current is None else current,
        target_date=_parse_date(row, "target_date", required=True),
    )


def _req(row: dict[str, str], key: str) -> str:
    """Return a required string field, stripped; raise if empty."""
    v = (row.get(key) or "").strip()
    if not v:
        raise ValueError(f"Required field '{key}' is empty.")
    return v


def _opt(row: dict[str, str], key: str) -> Optional[str]:
    """Return an optional string field, or None if absent/empty."""
    v = (row.get(key) or "").strip()
    return v if v else None


def _parse_date(row: dict[str, str], key: str, required: bool = False) -> Optional[date]:
    """Parse an ISO date string (YYYY-MM-DD) from a CSV row field."""
    v = _opt(row, key)
    if v is None:
        if required:
            raise ValueError(f"Required date field '{key}' is empty.")
        return None
    try:
        return date.fromisoformat(v)
    except ValueError:
        raise ValueError(f"Invalid date for '{key}': '{v}'. Expected YYYY-MM-DD format.")


def _parse_float(row: dict[str, str], key: str, required: bool = False) -> Optional[float]:
    v = _opt(row, key)
    if v is None:
        if required:
            raise ValueError(f"Required numeric field '{key}' is empty.")
        return None
    try:
        value = float(v.replace(",", ""))
    except ValueError:
        raise ValueError(f"Invalid number for '{key}': '{v}'.")
    if not math.isfinite(value):
        raise ValueError(f"Non-finite number for '{key}': '{v}'.")
    return value


def _parse_int(row: dict[str, str], key: str, required: bool = False) -> Optional[int]:
    v = _opt(row, key)
    if v is None:
        if required:
            raise ValueError(f"Required integer field '{key}' is empty.")
        return None
    try:
        return int(v)
    except ValueError:
        raise ValueError(f"Invalid integer for '{key}': '{v}'.")
