"""
Query filter for aggregate views.

``ViewFilter`` enumerates every filter a caller may apply to a view read.
Fields left as ``None`` do not restrict.  Each view declares which fields it
supports; using any other field raises ``InvalidFilterError`` at query time
instead of silently returning unfiltered rows.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from ledger_forecaster.utils.time_utils import is_valid_period


class ViewFilter(BaseModel):
    """Validated aggregate view filter.

    Attributes:
        currency: Rows in this currency only.
        category_id: Rows about this category.
        parent_category_id: Rows under this parent category.
        period_start: Inclusive lower ``YYYY-MM`` bound.
        period_end: Inclusive upper ``YYYY-MM`` bound.
        min_abs_correlation: Keep correlations with ``|r|`` at least this.
        limit: Maximum rows returned (applied last).
    """

    model_config = ConfigDict(frozen=True)

    currency: Optional[str] = None
    category_id: Optional[int] = None
    parent_category_id: Optional[int] = None
    period_start: Optional[str] = None
    period_end: Optional[str] = None
    min_abs_correlation: Optional[float] = None
    limit: Optional[int] = None

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().upper()
        if len(v) != 3 or not v.isalpha():
            raise ValueError(f"currency must be a 3-letter code, got '{v}'.")
        return v

    @field_validator("period_start", "period_end")
    @classmethod
    def validate_period(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not is_valid_period(v):
            raise ValueError(f"period must be YYYY-MM, got '{v}'.")
        return v

    @field_validator("min_abs_correlation")
    @classmethod
    def validate_correlation(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not 0.0 <= v <= 1.0:
            raise ValueError(f"min_abs_correlation must be in [0, 1], got {v}.")
        return v

    @field_validator("limit")
    @classmethod
    def validate_limit(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError(f"limit must be >= 0, got {v}.")
        return v

    @model_validator(mode="after")
    def validate_period_range(self) -> "ViewFilter":
        if self.period_start and self.period_end and self.period_start > self.period_end:
            raise ValueError(
                f"period_start ({self.period_start}) must be <= period_end ({self.period_end})."
            )
        return self

    def active_fields(self) -> set[str]:
        """Names of the restricting fields that are set (``limit`` excluded)."""
        return {
            name for name, value in self.model_dump().items()
            if value is not None and name != "limit"
        }
