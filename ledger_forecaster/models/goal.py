"""
Savings goals and their predicted outcome.

``Goal`` comes from the external goal store.  ``GoalPrediction`` is derived
on demand and never persisted by the engine.

Expired goals (target date today or earlier) still yield a prediction:
``expired`` is True, ``months_remaining`` is zero or negative, and the
amount fields fall back to ``current_amount`` so callers can detect the
condition without catching an exception.
"""

from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

GoalStatus = Literal["on_track", "off_track"]


class Goal(BaseModel):
    """A savings target.

    Attributes:
        goal_id: Goal store PK, if any.
        name: Display name.
        target_amount: Amount to reach (> 0).
        current_amount: Amount already saved (>= 0).
        target_date: Date by which ``target_amount`` should be reached.
    """

    model_config = ConfigDict(frozen=True)

    goal_id: Optional[int] = None
    name: Optional[str] = None
    target_amount: float
    current_amount: float = 0.0
    target_date: date

    @field_validator("target_amount")
    @classmethod
    def validate_target(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"target_amount must be positive, got {v}.")
        return v

    @field_validator("current_amount")
    @classmethod
    def validate_current(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"current_amount must be non-negative, got {v}.")
        return v


class GoalPrediction(BaseModel):
    """Predicted outcome of a goal.

    Attributes:
        goal_id: Echo of ``Goal.goal_id``.
        predicted_amount: ``current_amount`` plus the combined forecast sum.
        confidence: 0–100; lower when models disagree or risk is high.
        months_remaining: 30-day blocks until the target date.
        monthly_required: Amount needed per month to hit the target, or
            ``None`` for an expired goal.
        monthly_predicted: Combined forecast sum per remaining month.
        status: ``"on_track"`` iff ``predicted_amount >= target_amount``.
        expired: True when ``months_remaining <= 0``.
        models_used: Model kinds that contributed to the combined forecast.
        unavailable_models: Model kind → reason it was left out.
    """

    model_config = ConfigDict(frozen=True)

    goal_id: Optional[int] = None
    target_amount: float
    predicted_amount: float
    confidence: float
    months_remaining: int
    monthly_required: Optional[float] = None
    monthly_predicted: float
    status: GoalStatus
    expired: bool = False
    models_used: tuple[str, ...] = ()
    unavailable_models: dict[str, str] = {}

    @model_validator(mode="after")
    def validate_status_consistency(self) -> "GoalPrediction":
        expected = "on_track" if self.predicted_amount >= self.target_amount else "off_track"
        if self.status != expected:
            raise ValueError(
                f"status '{self.status}' contradicts predicted_amount "
                f"{self.predicted_amount} vs target {self.target_amount}."
            )
        if not 0.0 <= self.confidence <= 100.0:
            raise ValueError(f"confidence must be in [0, 100], got {self.confidence}.")
        return self
