"""
Aggregate view registry and builders.

This module is the single source of truth for every aggregate view the store
maintains.  Each ``ViewSpec`` names its columns (in output order), the
``ViewFilter`` fields it supports, and a builder that turns the ledger read
for one refresh pass into plain row dicts.

Views are built in registry order.  A builder receives a ``BuildContext``
holding the ledger rows plus every view already built in the same pass, so
derived views (anomalies, correlations, comparison) read
``category_summary`` instead of re-scanning the ledger.

Views
-----
monthly_summary        Income / expenses / net per (currency, period).
category_summary       Totals and amount stats per (category, currency, period).
subcategory_summary    Roll-up of each child category under its parent.
category_hierarchy     Transitive closure of the parent relation.
category_anomalies     Periods deviating more than k·σ from the category mean.
category_correlations  Pearson r of monthly totals for every category pair.
category_comparison    Month-over-month change per category.
category_patterns      Totals per (category, currency, day of week).
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

from ledger_forecaster.config import AggregationConfig
from ledger_forecaster.errors import InvalidFilterError
from ledger_forecaster.models.ledger import Category, Transaction
from ledger_forecaster.models.views import ViewFilter
from ledger_forecaster.utils.stats import mean, pearson, pstdev, safe_ratio
from ledger_forecaster.utils.time_utils import period_key

logger = logging.getLogger(__name__)

RowDict = dict[str, Any]


@dataclass
class BuildContext:
    """Inputs for one refresh pass.

    Attributes:
        transactions: Every ledger row read for this pass.
        categories: Every category read for this pass.
        config: Aggregation thresholds.
        built: View name → rows of views already built in this pass.
    """

    transactions: Sequence[Transaction]
    categories: Sequence[Category]
    config: AggregationConfig = field(default_factory=AggregationConfig)
    built: dict[str, list[RowDict]] = field(default_factory=dict)

    def view(self, name: str) -> list[RowDict]:
        """Rows of a view built earlier in this pass."""
        if name not in self.built:
            raise RuntimeError(f"View '{name}' has not been built yet in this refresh pass.")
        return self.built[name]


ViewBuilder = Callable[[BuildContext], list[RowDict]]


@dataclass(frozen=True)
class ViewSpec:
    """Declaration of a single aggregate view.

    Attributes:
        name: View name; persisted to the ``mv_<name>`` table.
        columns: Output columns in order.
        builder: Function producing the view's rows.
        filters: ``ViewFilter`` field → row column(s) it tests.  A filter on
            several columns matches when any of them matches.
        description: Human-readable summary.
    """

    name: str
    columns: tuple[str, ...]
    builder: ViewBuilder
    filters: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    description: str = ""


# ── Builders ──────────────────────────────────────────────────────────────────


def build_monthly_summary(ctx: BuildContext) -> list[RowDict]:
    buckets: dict[tuple[str, str], RowDict] = {}
    for txn in ctx.transactions:
        key = (txn.currency, period_key(txn.txn_date))
        row = buckets.get(key)
        if row is None:
            row = buckets[key] = {
                "period": key[1], "currency": key[0],
                "income": 0.0, "expenses": 0.0, "net": 0.0, "transaction_count": 0,
            }
        if txn.amount > 0:
            row["income"] += txn.amount
        elif txn.amount < 0:
            row["expenses"] += txn.amount
        row["transaction_count"] += 1

    for row in buckets.values():
        row["net"] = row["income"] + row["expenses"]
    return [buckets[k] for k in sorted(buckets)]


def build_category_summary(ctx: BuildContext) -> list[RowDict]:
    amounts: dict[tuple[int, str, str], list[float]] = defaultdict(list)
    for txn in ctx.transactions:
        if txn.category_id is None:
            continue
        amounts[(txn.category_id, txn.currency, period_key(txn.txn_date))].append(txn.amount)

    rows: list[RowDict] = []
    for (category_id, currency, period) in sorted(amounts):
        values = amounts[(category_id, currency, period)]
        total = sum(values)
        rows.append({
            "category_id": category_id,
            "period": period,
            "currency": currency,
            "total_amount": total,
            "transaction_count": len(values),
            "average_amount": total / len(values),
            "min_amount": min(values),
            "max_amount": max(values),
        })
    return rows


def build_subcategory_summary(ctx: BuildContext) -> list[RowDict]:
    """Attribute each child category's monthly totals to its parent.

    Only categories with a parent produce rows.
    """
    parent_of = {c.category_id: c.parent_id for c in ctx.categories}
    rows: list[RowDict] = []
    for row in ctx.view("category_summary"):
        parent_id = parent_of.get(row["category_id"])
        if parent_id is None:
            continue
        rows.append({
            "parent_category_id": parent_id,
            "subcategory_id": row["category_id"],
            "period": row["period"],
            "currency": row["currency"],
            "total_amount": row["total_amount"],
            "transaction_count": row["transaction_count"],
        })
    rows.sort(key=lambda r: (r["parent_category_id"], r["subcategory_id"], r["currency"], r["period"]))
    return rows


def build_category_hierarchy(ctx: BuildContext) -> list[RowDict]:
    """Transitive closure of the category parent relation.

    Every category yields a depth-0 row for itself and one row per ancestor.
    ``path`` lists the ids from the ancestor down to the descendant.  A parent
    id that names no known category ends the chain.

    Raises:
        ValueError: If the parent relation contains a cycle.
    """
    parent_of = {c.category_id: c.parent_id for c in ctx.categories}
    rows: list[RowDict] = []
    for category_id in sorted(parent_of):
        chain = [category_id]
        seen = {category_id}
        current = parent_of[category_id]
        while current is not None and current in parent_of:
            if current in seen:
                raise ValueError(f"Category parent cycle detected at category {current}.")
            chain.append(current)
            seen.add(current)
            current = parent_of[current]

        # chain = [self, parent, grandparent, ...]
        for depth, ancestor_id in enumerate(chain):
            path = reversed(chain[: depth + 1])
            rows.append({
                "ancestor_id": ancestor_id,
                "descendant_id": category_id,
                "depth": depth,
                "path": ",".join(str(i) for i in path),
            })
    rows.sort(key=lambda r: (r["ancestor_id"], r["depth"], r["descendant_id"]))
    return rows


def _history_by_category(rows: list[RowDict]) -> dict[tuple[int, str], list[RowDict]]:
    """Group category_summary rows by (category, currency), periods ascending."""
    history: dict[tuple[int, str], list[RowDict]] = defaultdict(list)
    for row in rows:
        history[(row["category_id"], row["currency"])].append(row)
    for periods in history.values():
        periods.sort(key=lambda r: r["period"])
    return history


def build_category_anomalies(ctx: BuildContext) -> list[RowDict]:
    """Flag periods where ``|amount - mean| > k·σ`` over the category history.

    Categories with fewer than ``anomaly_min_periods`` periods are skipped.
    ``deviation_pct`` is ``None`` when the mean is within epsilon of zero.
    """
    k = ctx.config.anomaly_std_multiplier
    min_periods = ctx.config.anomaly_min_periods
    rows: list[RowDict] = []
    for (category_id, currency), periods in sorted(_history_by_category(ctx.view("category_summary")).items()):
        if len(periods) < min_periods:
            continue
        totals = [p["total_amount"] for p in periods]
        mu = mean(totals)
        sigma = pstdev(totals)
        for p in periods:
            amount = p["total_amount"]
            if abs(amount - mu) > k * sigma:
                deviation = safe_ratio(amount - mu, abs(mu), default=None)
                rows.append({
                    "category_id": category_id,
                    "period": p["period"],
                    "currency": currency,
                    "amount": amount,
                    "expected_amount": mu,
                    "std_amount": sigma,
                    "deviation_pct": None if deviation is None else deviation * 100.0,
                })
    return rows


def build_category_correlations(ctx: BuildContext) -> list[RowDict]:
    """Pearson correlation of monthly totals for every category pair.

    Pairs are emitted once with ``category1_id < category2_id`` when they share
    at least ``correlation_min_overlap`` periods in the same currency.
    ``correlation`` is ``None`` when either side is constant.
    """
    min_overlap = ctx.config.correlation_min_overlap
    by_currency: dict[str, dict[int, dict[str, float]]] = defaultdict(dict)
    for (category_id, currency), periods in _history_by_category(ctx.view("category_summary")).items():
        by_currency[currency][category_id] = {p["period"]: p["total_amount"] for p in periods}

    rows: list[RowDict] = []
    for currency in sorted(by_currency):
        series = by_currency[currency]
        ids = sorted(series)
        for i, c1 in enumerate(ids):
            for c2 in ids[i + 1:]:
                overlap = sorted(set(series[c1]) & set(series[c2]))
                if len(overlap) < min_overlap:
                    continue
                r = pearson([series[c1][p] for p in overlap], [series[c2][p] for p in overlap])
                rows.append({
                    "category1_id": c1,
                    "category2_id": c2,
                    "currency": currency,
                    "correlation": r,
                    "overlap_periods": len(overlap),
                })
    return rows


def build_category_comparison(ctx: BuildContext) -> list[RowDict]:
    """Change of each category total against its previous recorded period."""
    rows: list[RowDict] = []
    for (category_id, currency), periods in sorted(_history_by_category(ctx.view("category_summary")).items()):
        for previous, current in zip(periods, periods[1:]):
            prev_amount = previous["total_amount"]
            change = safe_ratio(current["total_amount"] - prev_amount, abs(prev_amount), default=None)
            rows.append({
                "category_id": category_id,
                "period": current["period"],
                "currency": currency,
                "current_amount": current["total_amount"],
                "previous_amount": prev_amount,
                "change_pct": None if change is None else change * 100.0,
            })
    return rows


def build_category_patterns(ctx: BuildContext) -> list[RowDict]:
    """Category totals per day of week.

    ``day_of_week`` counts from Sunday = 0 to Saturday = 6.  ``share_pct`` is the
    bucket's part of the category's total in that currency, or ``None`` when
    that total is within epsilon of zero.
    """
    buckets: dict[tuple[int, str, int], list[float]] = defaultdict(list)
    for txn in ctx.transactions:
        if txn.category_id is None:
            continue
        buckets[(txn.category_id, txn.currency, txn.txn_date.isoweekday() % 7)].append(txn.amount)

    category_totals: dict[tuple[int, str], float] = defaultdict(float)
    for (category_id, currency, _), amounts in buckets.items():
        category_totals[(category_id, currency)] += sum(amounts)

    rows: list[RowDict] = []
    for (category_id, currency, day) in sorted(buckets):
        total = sum(buckets[(category_id, currency, day)])
        share = safe_ratio(total, category_totals[(category_id, currency)], default=None)
        rows.append({
            "category_id": category_id,
            "currency": currency,
            "day_of_week": day,
            "total_amount": total,
            "transaction_count": len(buckets[(category_id, currency, day)]),
            "share_pct": None if share is None else share * 100.0,
        })
    return rows


# ── Registry ──────────────────────────────────────────────────────────────────
# Order here is build order: derived views must follow category_summary.

_PERIOD = ("period",)
_CURRENCY = ("currency",)

VIEW_REGISTRY: list[ViewSpec] = [
    ViewSpec(
        "monthly_summary",
        ("period", "currency", "income", "expenses", "net", "transaction_count"),
        build_monthly_summary,
        {"currency": _CURRENCY, "period_start": _PERIOD, "period_end": _PERIOD},
        "Monthly income, expenses and net cash flow per currency.",
    ),
    ViewSpec(
        "category_summary",
        ("category_id", "period", "currency", "total_amount", "transaction_count",
         "average_amount", "min_amount", "max_amount"),
        build_category_summary,
        {"currency": _CURRENCY, "category_id": ("category_id",),
         "period_start": _PERIOD, "period_end": _PERIOD},
        "Monthly totals and amount statistics per category.",
    ),
    ViewSpec(
        "subcategory_summary",
        ("parent_category_id", "subcategory_id", "period", "currency",
         "total_amount", "transaction_count"),
        build_subcategory_summary,
        {"currency": _CURRENCY, "category_id": ("subcategory_id",),
         "parent_category_id": ("parent_category_id",),
         "period_start": _PERIOD, "period_end": _PERIOD},
        "Child category totals rolled up under their parent.",
    ),
    ViewSpec(
        "category_hierarchy",
        ("ancestor_id", "descendant_id", "depth", "path"),
        build_category_hierarchy,
        {"category_id": ("descendant_id",), "parent_category_id": ("ancestor_id",)},
        "Transitive closure of the category tree.",
    ),
    ViewSpec(
        "category_anomalies",
        ("category_id", "period", "currency", "amount", "expected_amount",
         "std_amount", "deviation_pct"),
        build_category_anomalies,
        {"currency": _CURRENCY, "category_id": ("category_id",),
         "period_start": _PERIOD, "period_end": _PERIOD},
        "Category months deviating from the category's historical mean.",
    ),
    ViewSpec(
        "category_correlations",
        ("category1_id", "category2_id", "currency", "correlation", "overlap_periods"),
        build_category_correlations,
        {"currency": _CURRENCY, "category_id": ("category1_id", "category2_id"),
         "min_abs_correlation": ("correlation",)},
        "Pearson correlation of monthly totals between category pairs.",
    ),
    ViewSpec(
        "category_comparison",
        ("category_id", "period", "currency", "current_amount", "previous_amount", "change_pct"),
        build_category_comparison,
        {"currency": _CURRENCY, "category_id": ("category_id",),
         "period_start": _PERIOD, "period_end": _PERIOD},
        "Month-over-month change per category.",
    ),
    ViewSpec(
        "category_patterns",
        ("category_id", "currency", "day_of_week", "total_amount", "transaction_count", "share_pct"),
        build_category_patterns,
        {"currency": _CURRENCY, "category_id": ("category_id",)},
        "Category totals by day of week.",
    ),
]


def view_names(registry: Optional[Sequence[ViewSpec]] = None) -> list[str]:
    return [spec.name for spec in (registry if registry is not None else VIEW_REGISTRY)]


# ── Filtering ─────────────────────────────────────────────────────────────────


def check_filter(spec: ViewSpec, view_filter: ViewFilter) -> None:
    """Raise ``InvalidFilterError`` if ``view_filter`` uses an unsupported field."""
    unsupported = view_filter.active_fields() - set(spec.filters)
    if unsupported:
        raise InvalidFilterError(
            f"View '{spec.name}' does not support filter field(s) {sorted(unsupported)}. "
            f"Supported: {sorted(spec.filters) + ['limit']}."
        )


def apply_filter(spec: ViewSpec, rows: Sequence[Mapping[str, Any]], view_filter: ViewFilter) -> list[Mapping[str, Any]]:
    """Return the rows of ``spec``'s view that satisfy ``view_filter``.

    Row order is preserved; ``limit`` is applied last.

    Raises:
        InvalidFilterError: If the filter uses a field the view does not support.
    """
    check_filter(spec, view_filter)
    tests: list[Callable[[Mapping[str, Any]], bool]] = []

    def equals(columns: tuple[str, ...], value: Any) -> Callable[[Mapping[str, Any]], bool]:
        return lambda row: any(row[c] == value for c in columns)

    f = view_filter
    if f.currency is not None:
        tests.append(equals(spec.filters["currency"], f.currency))
    if f.category_id is not None:
        tests.append(equals(spec.filters["category_id"], f.category_id))
    if f.parent_category_id is not None:
        tests.append(equals(spec.filters["parent_category_id"], f.parent_category_id))
    if f.period_start is not None:
        cols = spec.filters["period_start"]
        tests.append(lambda row: any(row[c] >= f.period_start for c in cols))
    if f.period_end is not None:
        cols_end = spec.filters["period_end"]
        tests.append(lambda row: any(row[c] <= f.period_end for c in cols_end))
    if f.min_abs_correlation is not None:
        cols_r = spec.filters["min_abs_correlation"]
        tests.append(lambda row: any(
            row[c] is not None and abs(row[c]) >= f.min_abs_correlation for c in cols_r
        ))

    result = [row for row in rows if all(t(row) for t in tests)]
    if f.limit is not None:
        result = result[: f.limit]
    return result
