"""
Calendar-month utilities for period-keyed ledger aggregation.

Key concepts:
  - Period keys: every aggregate row is bucketed by calendar year-month,
    written ``"YYYY-MM"``.  String order equals chronological order.
  - Month arithmetic: forecasts step one calendar month at a time, so
    helpers here add months and enumerate future period keys.
  - Months remaining: goal predictions count 30-day blocks until a target
    date (see ``months_until``).
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone

_PERIOD_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def period_key(d: date | datetime) -> str:
    """Return the ``YYYY-MM`` bucket for a transaction date."""
    return f"{d.year:04d}-{d.month:02d}"


def parse_period(period: str) -> tuple[int, int]:
    """Split a ``YYYY-MM`` key into ``(year, month)``.

    Raises:
        ValueError: If ``period`` is not a valid ``YYYY-MM`` key.
    """
    match = _PERIOD_RE.match(period)
    if match is None:
        raise ValueError(f"Invalid period '{period}'. Expected format YYYY-MM.")
    return int(match.group(1)), int(match.group(2))


def is_valid_period(period: str) -> bool:
    return _PERIOD_RE.match(period) is not None


def period_month(period: str) -> int:
    """Calendar month number (1–12) of a period key."""
    return parse_period(period)[1]


def add_months(period: str, months: int) -> str:
    """Shift a period key by ``months`` calendar months (may be negative)."""
    year, month = parse_period(period)
    index = year * 12 + (month - 1) + months
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def months_between(start: str, end: str) -> int:
    """Calendar months from ``start`` to ``end`` (negative if ``end`` is earlier)."""
    start_year, start_month = parse_period(start)
    end_year, end_month = parse_period(end)
    return (end_year - start_year) * 12 + (end_month - start_month)


def period_range(first: str, last: str) -> list[str]:
    """Every period key from ``first`` to ``last`` inclusive."""
    return [add_months(first, k) for k in range(months_between(first, last) + 1)]


def future_periods(last_period: str, horizon: int) -> list[str]:
    """Period keys for the ``horizon`` months following ``last_period``.

    Args:
        last_period: Final observed period, e.g. ``"2024-06"``.
        horizon: Number of future months.

    Returns:
        ``["2024-07", "2024-08", ...]`` with ``horizon`` entries.
    """
    return [add_months(last_period, k + 1) for k in range(horizon)]


def months_until(target: date, as_of: date, days_per_month: int = 30) -> int:
    """Number of ``days_per_month``-day blocks from ``as_of`` to ``target``.

    Rounded up, so any remaining partial month counts as a full month.
    Zero or negative when ``target`` is today or already in the past.

    Args:
        target: Target calendar date.
        as_of: Reference date.
        days_per_month: Month length used for the division (default 30).

    Returns:
        ``ceil((target - as_of).days / days_per_month)``
    """
    return math.ceil((target - as_of).days / days_per_month)
