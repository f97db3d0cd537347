"""Tests for series extraction from aggregate snapshots."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ledger_forecaster.aggregation.series import category_series, monthly_series
from ledger_forecaster.aggregation.store import AggregationStore

AS_OF = datetime(2024, 7, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestMonthlySeries:
    def test_usd_series(self, refreshed_store):
        series = monthly_series(refreshed_store.snapshot(), "usd")
        assert [p.period for p in series] == [
            "2024-01", "2024-02", "2024-03", "2024-04", "2024-05", "2024-06",
        ]
        assert series[4].expenses == pytest.approx(-2100.0)
        assert series[4].net == pytest.approx(900.0)
        assert all(p.currency == "USD" for p in series)

    def test_eur_series_is_separate(self, refreshed_store):
        series = monthly_series(refreshed_store.snapshot(), "EUR")
        assert len(series) == 1
        assert series[0].income == 0.0

    def test_unknown_currency_is_empty(self, refreshed_store):
        assert monthly_series(refreshed_store.snapshot(), "GBP") == []


class TestCategorySeries:
    def test_keys_and_order(self, refreshed_store):
        by_cat = category_series(refreshed_store.snapshot(), "USD")
        assert list(by_cat) == [1, 3, 5]
        assert by_cat[5].totals == [-300.0, -320.0, -310.0, -305.0, -900.0, -315.0]

    def test_eur_categories(self, refreshed_store):
        by_cat = category_series(refreshed_store.snapshot(), "EUR")
        assert list(by_cat) == [4]
        assert by_cat[4].points[0].transaction_count == 1


class TestMonthsWithoutActivity:
    @pytest.fixture
    def gap_snapshot(self, ledger):
        ledger.transactions = [
            t for t in ledger.transactions
            if not (t.txn_date.month == 3 and t.currency == "USD")
        ]
        store = AggregationStore(ledger)
        store.refresh(AS_OF).raise_for_status()
        return store.snapshot()

    def test_monthly_series_fills_missing_month(self, gap_snapshot):
        series = monthly_series(gap_snapshot, "USD")
        assert [p.period for p in series] == [
            "2024-01", "2024-02", "2024-03", "2024-04", "2024-05", "2024-06",
        ]
        march = series[2]
        assert (march.income, march.expenses, march.net) == (0.0, 0.0, 0.0)
        assert series[3].income == pytest.approx(3000.0)

    def test_category_series_fills_missing_month(self, gap_snapshot):
        by_cat = category_series(gap_snapshot, "USD")
        assert by_cat[5].totals == [-300.0, -320.0, 0.0, -305.0, -900.0, -315.0]
        assert by_cat[5].points[2].transaction_count == 0
        assert [p.period for p in by_cat[1].points][2] == "2024-03"

    def test_category_span_is_per_category(self, refreshed_store):
        by_cat = category_series(refreshed_store.snapshot(), "EUR")
        assert [p.period for p in by_cat[4].points] == ["2024-03"]
