"""
Small numeric helpers shared by the aggregation, forecasting and risk code.

All functions operate on plain Python floats (64-bit) and never return NaN
or Infinity.  Degenerate inputs are handled explicitly:

  mean / pstdev / pvariance  Empty input → ``InsufficientDataError``.
  ratio                      Denominator within ``EPSILON`` of zero →
                             ``DivisionDegenerateError``.
  safe_ratio                 Same guard, returns ``default`` instead.
  pearson                    Fewer than 2 pairs, or zero variance on either
                             side → ``None`` (correlation undefined).
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from ledger_forecaster.errors import DivisionDegenerateError, InsufficientDataError

EPSILON = 1e-9


def mean(values: Sequence[float]) -> float:
    if not values:
        raise InsufficientDataError("mean", 1, 0)
    return sum(values) / len(values)


def pvariance(values: Sequence[float]) -> float:
    """Population variance (divides by n)."""
    mu = mean(values)
    return max(0.0, sum((v - mu) ** 2 for v in values) / len(values))


def pstdev(values: Sequence[float]) -> float:
    """Population standard deviation, the engine's definition of volatility."""
    return math.sqrt(pvariance(values))


def ratio(numerator: float, denominator: float) -> float:
    """Return ``numerator / denominator``.

    Raises:
        DivisionDegenerateError: If ``|denominator| < EPSILON``.
    """
    if abs(denominator) < EPSILON:
        raise DivisionDegenerateError(
            f"Denominator {denominator!r} is too close to zero."
        )
    return numerator / denominator


def safe_ratio(numerator: float, denominator: float, default: float | None = 0.0) -> float | None:
    """``ratio()`` with ``default`` substituted for a degenerate denominator."""
    try:
        return ratio(numerator, denominator)
    except DivisionDegenerateError:
        return default


def pearson(xs: Sequence[float], ys: Sequence[float]) -> float | None:
    """Pearson correlation coefficient of two equal-length sequences.

    Returns:
        r in [-1, 1], or ``None`` when fewer than 2 pairs are given or
        either sequence is constant.
    """
    if len(xs) != len(ys):
        raise ValueError(f"Length mismatch: {len(xs)} vs {len(ys)}.")
    n = len(xs)
    if n < 2:
        return None
    mx = sum(xs) / n
    my = sum(ys) / n
    sxy = sum((x - mx) * (y - my) for x, y in zip(xs, ys))
    sxx = sum((x - mx) ** 2 for x in xs)
    syy = sum((y - my) ** 2 for y in ys)
    if sxx < EPSILON or syy < EPSILON:
        return None
    r = sxy / math.sqrt(sxx * syy)
    return max(-1.0, min(1.0, r))


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
