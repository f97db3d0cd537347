"""Tests for ledger_forecaster.forecasting.ols."""

from __future__ import annotations

import pytest

from ledger_forecaster.errors import InsufficientDataError
from ledger_forecaster.forecasting.ols import ols


def test_known_fixture():
    slope, intercept = ols([3.0, 5.0, 4.0, 8.0, 10.0])
    assert slope == pytest.approx(1.7)
    assert intercept == pytest.approx(2.6)


def test_explicit_positions():
    slope, intercept = ols([1.0, 5.0], xs=[0.0, 2.0])
    assert slope == pytest.approx(2.0)
    assert intercept == pytest.approx(1.0)


def test_constant_series_has_zero_slope():
    slope, intercept = ols([5.0, 5.0, 5.0, 5.0])
    assert slope == 0.0
    assert intercept == pytest.approx(5.0)


def test_single_point_raises():
    with pytest.raises(InsufficientDataError) as exc_info:
        ols([1.0], kind="seasonal")
    assert exc_info.value.kind == "seasonal"
    assert exc_info.value.actual == 1


def test_length_mismatch():
    with pytest.raises(ValueError, match="Length mismatch"):
        ols([1.0, 2.0], xs=[0.0])


def test_identical_positions():
    with pytest.raises(ValueError, match="distinct"):
        ols([1.0, 2.0], xs=[3.0, 3.0])
