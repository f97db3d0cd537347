"""
Series extraction from an aggregate snapshot.

These functions are the hand-off between the aggregation store and the
forecast model library: they read ``monthly_summary`` and
``category_summary`` rows for one currency and return validated series,
ascending by period.

The forecast models treat position ``i`` as "i months after the first
period", so every month between the first and last observed period gets a
point.  A month with no ledger activity becomes a zero point.
"""

from __future__ import annotations

from collections import defaultdict

from ledger_forecaster.aggregation.snapshot import ViewSnapshot
from ledger_forecaster.models.series import (
    CategoryPoint,
    CategorySeries,
    TimeSeriesPoint,
    validate_series,
)
from ledger_forecaster.utils.time_utils import period_range


def monthly_series(snapshot: ViewSnapshot, currency: str) -> list[TimeSeriesPoint]:
    """Monthly income/expenses/net for ``currency``.

    Args:
        snapshot: Snapshot to read.
        currency: 3-letter currency code.

    Returns:
        Ascending, gap-free list of ``TimeSeriesPoint``; empty if the
        currency has no rows.
    """
    currency = currency.upper()
    by_period = {
        row["period"]: TimeSeriesPoint(
            period=row["period"],
            income=row["income"],
            expenses=row["expenses"],
            net=row["net"],
            currency=row["currency"],
        )
        for row in snapshot.get("monthly_summary").rows
        if row["currency"] == currency
    }
    if not by_period:
        return []
    points = [
        by_period.get(period) or TimeSeriesPoint.from_amounts(period, 0.0, 0.0, currency)
        for period in period_range(min(by_period), max(by_period))
    ]
    validate_series(points)
    return points


def category_series(snapshot: ViewSnapshot, currency: str) -> dict[int, CategorySeries]:
    """Per-category monthly totals for ``currency``, keyed by category id.

    Each category's series spans its own first to last active month; months
    in between without transactions carry a zero total.
    """
    currency = currency.upper()
    grouped: dict[int, dict[str, CategoryPoint]] = defaultdict(dict)
    for row in snapshot.get("category_summary").rows:
        if row["currency"] != currency:
            continue
        grouped[row["category_id"]][row["period"]] = CategoryPoint(
            period=row["period"],
            total_amount=row["total_amount"],
            transaction_count=row["transaction_count"],
        )
    return {
        cid: CategorySeries(
            category_id=cid,
            currency=currency,
            points=tuple(
                by_period.get(period) or CategoryPoint(period=period, total_amount=0.0)
                for period in period_range(min(by_period), max(by_period))
            ),
        )
        for cid, by_period in sorted(grouped.items())
    }
