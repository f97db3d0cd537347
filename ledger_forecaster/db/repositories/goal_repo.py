"""
Repository for ``financial_goals``.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Optional

from ledger_forecaster.db.repositories.base import BaseRepository
from ledger_forecaster.models.goal import Goal

logger = logging.getLogger(__name__)


class GoalRepository(BaseRepository):
    """Read/write access to ``financial_goals``."""

    def insert_goal(self, goal: Goal) -> int:
        """Insert a goal and return its ``goal_id``."""
        return self.insert(
            """
            INSERT INTO financial_goals (name, target_amount, current_amount, target_date)
            VALUES (?, ?, ?, ?);
            """,
            (goal.name, goal.target_amount, goal.current_amount, goal.target_date.isoformat()),
        )

    def update_progress(self, goal_id: int, current_amount: float) -> None:
        if current_amount < 0:
            raise ValueError(f"current_amount must be non-negative, got {current_amount}.")
        self.execute(
            "UPDATE financial_goals SET current_amount = ? WHERE goal_id = ?;",
            (current_amount, goal_id),
        )

    def get_goal(self, goal_id: int) -> Optional[Goal]:
        row = self.fetchone("SELECT * FROM financial_goals WHERE goal_id = ?;", (goal_id,))
        return _row_to_goal(row) if row else None

    def list_goals(self) -> list[Goal]:
        """Return every goal ordered by target date."""
        rows = self.fetchall("SELECT * FROM financial_goals ORDER BY target_date, goal_id;")
        return [_row_to_goal(r) for r in rows]


def _row_to_goal(row: sqlite3.Row) -> Goal:
    return Goal(
        goal_id=row["goal_id"],
        name=row["name"],
        target_amount=float(row["target_amount"]),
        current_amount=float(row["current_amount"]),
        target_date=date.fromisoformat(row["target_date"]),
    )
