"""
Ledger domain models consumed from the external ledger store.

``Transaction`` is one dated, signed monetary row: positive amounts are
income, negative amounts are expenses.  ``Category`` carries the optional
``parent_id`` that drives sub-category roll-ups and the hierarchy closure.

``TransactionCriteria`` is the validated filter handed to the Ledger
Accessor.  It replaces ad hoc optional filters concatenated into SQL: every
field is enumerated, optional, and checked before any query is built.

All models are frozen; the engine never writes back to the ledger.
"""

from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

CategoryKind = Literal["income", "expense", "transfer"]


def _normalize_currency(v: str) -> str:
    v = v.strip().upper()
    if len(v) != 3 or not v.isalpha():
        raise ValueError(f"currency must be a 3-letter ISO code, got '{v}'.")
    return v


class Category(BaseModel):
    """A ledger category, optionally nested under a parent category.

    Attributes:
        category_id: Ledger primary key.
        name: Display name.
        parent_id: Parent category id, or ``None`` for a top-level category.
        kind: ``"income"``, ``"expense"`` or ``"transfer"``.
    """

    model_config = ConfigDict(frozen=True)

    category_id: int
    name: str
    parent_id: Optional[int] = None
    kind: CategoryKind = "expense"

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Category name must not be empty.")
        return v.strip()

    @model_validator(mode="after")
    def validate_not_self_parent(self) -> "Category":
        if self.parent_id is not None and self.parent_id == self.category_id:
            raise ValueError(f"Category {self.category_id} cannot be its own parent.")
        return self


class Transaction(BaseModel):
    """A single ledger transaction.

    Attributes:
        transaction_id: Ledger PK; ``None`` before insertion.
        txn_date: Calendar date the transaction was booked.
        amount: Signed amount in ``currency`` (income > 0, expense < 0).
        currency: 3-letter ISO code; no conversion is ever applied.
        category_id: Category FK, or ``None`` for uncategorised rows.
        description: Free-text memo.
    """

    model_config = ConfigDict(frozen=True)

    transaction_id: Optional[int] = None
    txn_date: date
    amount: float
    currency: str
    category_id: Optional[int] = None
    description: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return _normalize_currency(v)


class TransactionCriteria(BaseModel):
    """Validated ledger read filter.

    Every field is optional; ``None`` means "no restriction".

    Attributes:
        start_date: Inclusive lower bound on ``txn_date``.
        end_date: Inclusive upper bound on ``txn_date``.
        currency: Restrict to one currency.
        category_id: Restrict to one category.
    """

    model_config = ConfigDict(frozen=True)

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    currency: Optional[str] = None
    category_id: Optional[int] = None

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _normalize_currency(v)

    @model_validator(mode="after")
    def validate_date_range(self) -> "TransactionCriteria":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError(
                f"start_date ({self.start_date}) must be <= end_date ({self.end_date})."
            )
        return self
