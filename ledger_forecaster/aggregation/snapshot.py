"""
Immutable aggregate view snapshots.

A ``ViewSnapshot`` is the unit the store publishes: one version number, one
refresh timestamp, and every declared view built in that pass.  Readers hold
a reference to a snapshot and never observe it change; a refresh builds a
brand-new snapshot and swaps the store's reference.

Rows are ``MappingProxyType`` wrappers so a caller cannot mutate the data
other readers see.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any

from ledger_forecaster.errors import UnknownViewError

Row = Mapping[str, Any]


def freeze_rows(rows: Iterable[Mapping[str, Any]], columns: tuple[str, ...]) -> tuple[Row, ...]:
    """Copy rows into read-only mappings restricted to ``columns``, in order."""
    return tuple(MappingProxyType({c: row[c] for c in columns}) for row in rows)


@dataclass(frozen=True)
class AggregateView:
    """One named view as of one refresh pass.

    Attributes:
        name: Registry name, e.g. ``"monthly_summary"``.
        version: Snapshot version that produced the view.
        last_updated: Timestamp of the producing refresh pass.
        columns: Column names in declared order.
        rows: Read-only rows in the view's declared sort order.
    """

    name: str
    version: int
    last_updated: datetime
    columns: tuple[str, ...]
    rows: tuple[Row, ...]

    @property
    def row_count(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class ViewSnapshot:
    """Every aggregate view from a single refresh pass."""

    version: int
    refreshed_at: datetime
    views: Mapping[str, AggregateView]

    def __post_init__(self) -> None:
        # Freeze the container too; the dataclass is already frozen.
        object.__setattr__(self, "views", MappingProxyType(dict(self.views)))

    def get(self, name: str) -> AggregateView:
        try:
            return self.views[name]
        except KeyError:
            raise UnknownViewError(f"Unknown view '{name}'.") from None

    @property
    def view_names(self) -> list[str]:
        return list(self.views)

    def row_counts(self) -> dict[str, int]:
        return {name: view.row_count for name, view in self.views.items()}
