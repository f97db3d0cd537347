"""
Tests for the aggregate view builders and view filtering.

Covers:
  - Row contents of each of the eight views on the six-month sample ledger.
  - Anomaly minimum-period rule and the zero-mean / zero-previous policies.
  - Correlation pairs, overlap threshold and undefined correlations.
  - Hierarchy closure and cycle detection.
  - ``apply_filter`` field support and limits.
"""

from __future__ import annotations

from datetime import date

import pytest

from ledger_forecaster.aggregation.views import (
    VIEW_REGISTRY,
    BuildContext,
    apply_filter,
    build_category_anomalies,
    build_category_comparison,
    build_category_correlations,
    build_category_hierarchy,
    build_category_patterns,
    build_category_summary,
    build_monthly_summary,
    build_subcategory_summary,
    view_names,
)
from ledger_forecaster.config import AggregationConfig
from ledger_forecaster.errors import InvalidFilterError
from ledger_forecaster.models.ledger import Category, Transaction
from ledger_forecaster.models.views import ViewFilter


# ── Helpers ───────────────────────────────────────────────────────────────────

def _ctx(transactions, categories=(), config=None) -> BuildContext:
    ctx = BuildContext(
        transactions=list(transactions),
        categories=list(categories),
        config=config or AggregationConfig(),
    )
    ctx.built["category_summary"] = build_category_summary(ctx)
    return ctx


def _monthly(category_id: int, amounts: list[float], currency: str = "USD") -> list[Transaction]:
    """One transaction per month starting January 2024."""
    return [
        Transaction(txn_date=date(2024, i + 1, 10), amount=a, currency=currency, category_id=category_id)
        for i, a in enumerate(amounts)
    ]


def _spec(name: str):
    return next(s for s in VIEW_REGISTRY if s.name == name)


@pytest.fixture
def sample_ctx(sample_transactions, sample_categories) -> BuildContext:
    return _ctx(sample_transactions, sample_categories)


# ── Registry ──────────────────────────────────────────────────────────────────


def test_registry_order():
    assert view_names() == [
        "monthly_summary",
        "category_summary",
        "subcategory_summary",
        "category_hierarchy",
        "category_anomalies",
        "category_correlations",
        "category_comparison",
        "category_patterns",
    ]


def test_derived_view_before_its_source_raises():
    ctx = BuildContext(transactions=[], categories=[])
    with pytest.raises(RuntimeError, match="not been built"):
        build_category_anomalies(ctx)


# ── monthly_summary ───────────────────────────────────────────────────────────


class TestMonthlySummary:
    def test_one_row_per_currency_period(self, sample_ctx):
        rows = build_monthly_summary(sample_ctx)
        assert len(rows) == 7
        assert [(r["currency"], r["period"]) for r in rows][:2] == [("EUR", "2024-03"), ("USD", "2024-01")]

    def test_income_expenses_net(self, sample_ctx):
        rows = {(r["currency"], r["period"]): r for r in build_monthly_summary(sample_ctx)}
        feb = rows[("USD", "2024-02")]
        assert feb["income"] == pytest.approx(3100.0)
        assert feb["expenses"] == pytest.approx(-1520.0)
        assert feb["net"] == pytest.approx(1580.0)
        assert feb["transaction_count"] == 4

    def test_currencies_never_mixed(self, sample_ctx):
        rows = {(r["currency"], r["period"]): r for r in build_monthly_summary(sample_ctx)}
        eur = rows[("EUR", "2024-03")]
        assert eur["income"] == 0.0
        assert eur["expenses"] == pytest.approx(-50.0)
        assert rows[("USD", "2024-03")]["expenses"] == pytest.approx(-1510.0)

    def test_empty_ledger(self):
        assert build_monthly_summary(BuildContext(transactions=[], categories=[])) == []


# ── category_summary / subcategory_summary ────────────────────────────────────


class TestCategorySummary:
    def test_uncategorised_rows_skipped(self, sample_ctx):
        rows = sample_ctx.view("category_summary")
        assert len(rows) == 19
        assert all(r["category_id"] is not None for r in rows)

    def test_amount_statistics(self):
        txns = [
            Transaction(txn_date=date(2024, 1, 2), amount=-10.0, currency="USD", category_id=4),
            Transaction(txn_date=date(2024, 1, 20), amount=-30.0, currency="USD", category_id=4),
        ]
        (row,) = build_category_summary(BuildContext(transactions=txns, categories=[]))
        assert row["total_amount"] == pytest.approx(-40.0)
        assert row["transaction_count"] == 2
        assert row["average_amount"] == pytest.approx(-20.0)
        assert row["min_amount"] == pytest.approx(-30.0)
        assert row["max_amount"] == pytest.approx(-10.0)


class TestSubcategorySummary:
    def test_children_rolled_under_parent(self, sample_ctx):
        rows = build_subcategory_summary(sample_ctx)
        assert len(rows) == 12
        assert {(r["parent_category_id"], r["subcategory_id"]) for r in rows} == {(2, 3), (4, 5)}

    def test_top_level_categories_produce_no_rows(self, sample_ctx):
        rows = build_subcategory_summary(sample_ctx)
        assert all(r["subcategory_id"] not in (1, 2, 4) for r in rows)


# ── category_hierarchy ────────────────────────────────────────────────────────


class TestCategoryHierarchy:
    def test_closure(self, sample_ctx):
        rows = build_category_hierarchy(sample_ctx)
        assert len(rows) == 7
        pairs = {(r["ancestor_id"], r["descendant_id"]): r for r in rows}
        assert pairs[(5, 5)]["depth"] == 0
        assert pairs[(4, 5)]["depth"] == 1
        assert pairs[(4, 5)]["path"] == "4,5"

    def test_three_levels(self):
        cats = [
            Category(category_id=1, name="Living"),
            Category(category_id=2, name="Food", parent_id=1),
            Category(category_id=3, name="Groceries", parent_id=2),
        ]
        rows = build_category_hierarchy(BuildContext(transactions=[], categories=cats))
        top = [r for r in rows if r["ancestor_id"] == 1]
        assert [(r["descendant_id"], r["depth"]) for r in top] == [(1, 0), (2, 1), (3, 2)]
        assert next(r for r in top if r["descendant_id"] == 3)["path"] == "1,2,3"

    def test_unknown_parent_ends_chain(self):
        cats = [Category(category_id=7, name="Orphan", parent_id=99)]
        rows = build_category_hierarchy(BuildContext(transactions=[], categories=cats))
        assert rows == [{"ancestor_id": 7, "descendant_id": 7, "depth": 0, "path": "7"}]

    def test_cycle_raises(self):
        cats = [
            Category(category_id=1, name="A", parent_id=2),
            Category(category_id=2, name="B", parent_id=1),
        ]
        with pytest.raises(ValueError, match="cycle"):
            build_category_hierarchy(BuildContext(transactions=[], categories=cats))


# ── category_anomalies ────────────────────────────────────────────────────────


class TestCategoryAnomalies:
    def test_grocery_spike_flagged(self, sample_ctx):
        rows = build_category_anomalies(sample_ctx)
        assert len(rows) == 1
        row = rows[0]
        assert (row["category_id"], row["period"], row["currency"]) == (5, "2024-05", "USD")
        assert row["amount"] == pytest.approx(-900.0)
        assert row["expected_amount"] == pytest.approx(-2450.0 / 6)
        assert row["deviation_pct"] == pytest.approx(-120.408, abs=1e-3)

    def test_constant_category_has_no_anomalies(self, sample_ctx):
        rows = build_category_anomalies(sample_ctx)
        assert all(r["category_id"] not in (1, 3) for r in rows)

    def test_two_periods_produce_no_row(self):
        ctx = _ctx(_monthly(9, [-10.0, -1000.0]))
        assert build_category_anomalies(ctx) == []

    def test_min_periods_configurable(self):
        amounts = [-10.0, -10.0, -10.0, -10.0, -10.0, -500.0]
        assert len(build_category_anomalies(_ctx(_monthly(9, amounts)))) == 1
        strict = AggregationConfig(anomaly_min_periods=7)
        assert build_category_anomalies(_ctx(_monthly(9, amounts), config=strict)) == []

    def test_zero_mean_gives_no_deviation_pct(self):
        amounts = [10.0, -10.0, 10.0, -10.0, 10.0, -10.0, 10.0, -10.0, 0.0, 0.0]
        config = AggregationConfig(anomaly_std_multiplier=0.5)
        rows = build_category_anomalies(_ctx(_monthly(9, amounts), config=config))
        assert rows
        assert all(r["deviation_pct"] is None for r in rows)


# ── category_correlations ─────────────────────────────────────────────────────


class TestCategoryCorrelations:
    def test_pairs_emitted_once(self):
        txns = _monthly(10, [-100.0, -200.0, -300.0]) + _monthly(11, [-10.0, -20.0, -30.0]) \
            + _monthly(12, [-30.0, -20.0, -10.0])
        rows = build_category_correlations(_ctx(txns))
        pairs = {(r["category1_id"], r["category2_id"]): r for r in rows}
        assert set(pairs) == {(10, 11), (10, 12), (11, 12)}
        assert pairs[(10, 11)]["correlation"] == pytest.approx(1.0)
        assert pairs[(10, 12)]["correlation"] == pytest.approx(-1.0)
        assert pairs[(10, 11)]["overlap_periods"] == 3

    def test_constant_side_is_none(self, sample_ctx):
        rows = build_category_correlations(sample_ctx)
        assert len(rows) == 3
        assert all(r["correlation"] is None for r in rows)

    def test_currencies_not_paired(self):
        txns = _monthly(10, [-1.0, -2.0, -3.0], "USD") + _monthly(11, [-1.0, -2.0, -3.0], "EUR")
        assert build_category_correlations(_ctx(txns)) == []

    def test_insufficient_overlap_skipped(self):
        txns = _monthly(10, [-1.0, -2.0, -3.0]) + [
            Transaction(txn_date=date(2024, 3, 1), amount=-5.0, currency="USD", category_id=11),
        ]
        assert build_category_correlations(_ctx(txns)) == []


# ── category_comparison ───────────────────────────────────────────────────────


class TestCategoryComparison:
    def test_first_period_has_no_row(self, sample_ctx):
        rows = build_category_comparison(sample_ctx)
        assert len(rows) == 15
        assert all(r["period"] != "2024-01" for r in rows)

    def test_change_pct(self, sample_ctx):
        rows = build_category_comparison(sample_ctx)
        may = next(r for r in rows if r["category_id"] == 5 and r["period"] == "2024-05")
        assert may["previous_amount"] == pytest.approx(-305.0)
        assert may["change_pct"] == pytest.approx(-595.0 / 305.0 * 100.0)

    def test_zero_previous_gives_none(self):
        txns = _monthly(9, [5.0, -5.0, 20.0])
        # January nets to zero by adding an offsetting row.
        txns.append(Transaction(txn_date=date(2024, 1, 11), amount=-5.0, currency="USD", category_id=9))
        rows = build_category_comparison(_ctx(txns))
        feb = next(r for r in rows if r["period"] == "2024-02")
        assert feb["previous_amount"] == 0.0
        assert feb["change_pct"] is None


# ── category_patterns ─────────────────────────────────────────────────────────


class TestCategoryPatterns:
    def test_rows_per_category_and_weekday(self, sample_ctx):
        rows = build_category_patterns(sample_ctx)
        assert len(rows) == 16
        groceries = [(r["day_of_week"], r["total_amount"]) for r in rows if r["category_id"] == 5]
        # 2024-01-15 and 2024-04-15 are Mondays
        assert groceries == [(1, -605.0), (3, -900.0), (4, -320.0), (5, -310.0), (6, -315.0)]

    def test_share_of_category_total(self, sample_ctx):
        rows = build_category_patterns(sample_ctx)
        monday = next(r for r in rows if r["category_id"] == 5 and r["day_of_week"] == 1)
        assert monday["transaction_count"] == 2
        assert monday["share_pct"] == pytest.approx(605.0 / 2450.0 * 100.0)
        assert sum(r["share_pct"] for r in rows if r["category_id"] == 5) == pytest.approx(100.0)

    def test_sunday_is_zero_and_currencies_separate(self, sample_ctx):
        rows = build_category_patterns(sample_ctx)
        eur = [r for r in rows if r["currency"] == "EUR"]
        assert [(r["category_id"], r["day_of_week"], r["share_pct"]) for r in eur] == [(4, 0, 100.0)]

    def test_zero_category_total_gives_none(self):
        txns = [
            Transaction(txn_date=date(2024, 1, 1), amount=5.0, currency="USD", category_id=9),
            Transaction(txn_date=date(2024, 1, 2), amount=-5.0, currency="USD", category_id=9),
        ]
        rows = build_category_patterns(_ctx(txns))
        assert [r["day_of_week"] for r in rows] == [1, 2]
        assert all(r["share_pct"] is None for r in rows)

    def test_period_filter_not_supported(self, sample_ctx):
        rows = build_category_patterns(sample_ctx)
        with pytest.raises(InvalidFilterError):
            apply_filter(_spec("category_patterns"), rows, ViewFilter(period_start="2024-01"))


# ── apply_filter ──────────────────────────────────────────────────────────────


class TestApplyFilter:
    def test_currency_and_period_range(self, sample_ctx):
        rows = build_monthly_summary(sample_ctx)
        f = ViewFilter(currency="USD", period_start="2024-03", period_end="2024-04")
        result = apply_filter(_spec("monthly_summary"), rows, f)
        assert [r["period"] for r in result] == ["2024-03", "2024-04"]

    def test_limit_applied_last(self, sample_ctx):
        rows = build_monthly_summary(sample_ctx)
        result = apply_filter(_spec("monthly_summary"), rows, ViewFilter(currency="USD", limit=2))
        assert [r["period"] for r in result] == ["2024-01", "2024-02"]

    def test_category_filter_matches_either_side_of_pair(self):
        txns = _monthly(10, [-1.0, -2.0, -3.0]) + _monthly(11, [-1.0, -2.0, -4.0]) \
            + _monthly(12, [-3.0, -1.0, -2.0])
        rows = build_category_correlations(_ctx(txns))
        result = apply_filter(_spec("category_correlations"), rows, ViewFilter(category_id=11))
        assert {(r["category1_id"], r["category2_id"]) for r in result} == {(10, 11), (11, 12)}

    def test_min_abs_correlation_drops_undefined(self, sample_ctx):
        rows = build_category_correlations(sample_ctx)
        result = apply_filter(_spec("category_correlations"), rows, ViewFilter(min_abs_correlation=0.0))
        assert result == []

    def test_unsupported_field_raises(self):
        with pytest.raises(InvalidFilterError, match="currency"):
            apply_filter(_spec("category_hierarchy"), [], ViewFilter(currency="USD"))

    def test_parent_filter_on_subcategory_summary(self, sample_ctx):
        rows = build_subcategory_summary(sample_ctx)
        result = apply_filter(_spec("subcategory_summary"), rows, ViewFilter(parent_category_id=4))
        assert len(result) == 6
        assert {r["subcategory_id"] for r in result} == {5}
