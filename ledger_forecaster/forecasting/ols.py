"""
Ordinary least squares on an implicit 0..n-1 index.

    slope     = Σ(x − x̄)(y − ȳ) / Σ(x − x̄)²
    intercept = ȳ − slope·x̄

``x`` defaults to ``range(len(y))``; the exponential fit passes explicit
indices so excluded periods keep their position on the time axis.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Optional

from ledger_forecaster.errors import InsufficientDataError


def ols(
    ys: Sequence[float],
    xs: Optional[Sequence[float]] = None,
    kind: str = "linear",
) -> tuple[float, float]:
    """Fit ``y = slope·x + intercept``.

    Args:
        ys: Observed values.
        xs: Explicit x positions; defaults to ``0..n-1``.
        kind: Model name used in the ``InsufficientDataError`` message.

    Returns:
        ``(slope, intercept)``.

    Raises:
        InsufficientDataError: If fewer than 2 points are given.
        ValueError: If ``xs`` and ``ys`` differ in length, or every x is equal.
    """
    if xs is None:
        xs = range(len(ys))
    if len(xs) != len(ys):
        raise ValueError(f"Length mismatch: {len(xs)} x values vs {len(ys)} y values.")
    n = len(ys)
    if n < 2:
        raise InsufficientDataError(kind, 2, n)

    x_mean = sum(xs) / n
    y_mean = sum(ys) / n
    sxy = sum((x - x_mean) * (y - y_mean) for x, y in zip(xs, ys))
    sxx = sum((x - x_mean) ** 2 for x in xs)
    if sxx == 0:
        raise ValueError("OLS requires at least two distinct x positions.")
    slope = sxy / sxx
    return slope, y_mean - slope * x_mean
