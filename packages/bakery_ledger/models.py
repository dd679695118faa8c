"""Data models and type aliases for ``bakery_ledger``.

The domain has a single entity, :class:`Transaction`: a sale or an expense
logged against a timestamp. Records are immutable once created; the only
mutation the store supports is deletion.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, field_validator

from .ranges import as_datetime, parse_iso, to_iso

# ---------------------------------------------------------------------------
# Transaction types
# ---------------------------------------------------------------------------

type TransactionType = Literal["sale", "expense"]

SALE: TransactionType = "sale"
EXPENSE: TransactionType = "expense"
TRANSACTION_TYPES: tuple[TransactionType, ...] = (SALE, EXPENSE)

# Substituted at creation time when the caller leaves the description blank.
DEFAULT_DESCRIPTIONS: dict[str, str] = {SALE: "Sale", EXPENSE: "Expense"}


# ---------------------------------------------------------------------------
# Core record
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Transaction:
    """A stored sale or expense.

    ``amount`` is whatever the store holds. Writers always store a finite
    number, but older rows written by other clients may not; aggregation goes
    through :func:`bakery_ledger.stats.coerce_amount` rather than trusting it.
    ``date`` drives range filtering and ordering; ``created_at`` is audit-only.
    """

    id: str
    type: str
    amount: float
    description: str
    date: str
    created_at: str

    @property
    def when(self) -> datetime:
        return parse_iso(self.date)

    def restore_payload(self) -> dict[str, Any]:
        """Field set minus ``id``, used to recreate the record after an undo."""
        return {
            "type": self.type,
            "amount": self.amount,
            "description": self.description,
            "date": self.date,
            "created_at": self.created_at,
        }

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> Transaction:
        return cls(
            id=str(doc_id),
            type=str(data.get("type") or ""),
            amount=data.get("amount"),  # type: ignore[arg-type]
            description=str(data.get("description") or ""),
            date=str(data.get("date") or ""),
            created_at=str(data.get("created_at") or ""),
        )


class NewTransaction(BaseModel):
    """Validated input for ``add_transaction``.

    Amounts arrive from forms as strings as often as numbers; pydantic's lax
    mode coerces numeric strings and rejects anything else.
    """

    model_config = ConfigDict(extra="forbid")

    type: Literal["sale", "expense"]
    amount: float
    description: str = ""
    date: datetime | None = None

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        try:
            return as_datetime(v)
        except TypeError:
            # Not date-like; let the field validator report it.
            return v

    @field_validator("amount")
    @classmethod
    def _finite_non_negative(cls, v: float) -> float:
        if not math.isfinite(v) or v < 0:
            raise ValueError("amount must be a finite, non-negative number")
        return v

    def to_document(self, *, now: datetime | None = None) -> dict[str, Any]:
        """Build the stored field set, applying creation-time defaults."""
        now = now or datetime.now()
        description = self.description.strip() or DEFAULT_DESCRIPTIONS[self.type]
        return {
            "type": self.type,
            "amount": self.amount,
            "description": description,
            "date": to_iso(self.date if self.date is not None else now),
            "created_at": to_iso(now),
        }


# ---------------------------------------------------------------------------
# Derived values
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FinancialStats:
    """Totals over a window, tagged with the window they were computed for.

    Callers that may have moved on to a different window compare
    ``(start, end)`` against their current one before applying the result.
    """

    total_sales: float
    total_expense: float
    net_profit: float
    start: datetime
    end: datetime


class Totals(NamedTuple):
    sales: float
    expense: float
    net: float


class TopItem(NamedTuple):
    name: str
    value: float


class HourBucket(NamedTuple):
    hour: int
    label: str
    sales: float


@dataclass(slots=True)
class ChartPoint:
    """One x-axis point of the sales-vs-expense time series."""

    name: str
    sales: float = 0.0
    expense: float = 0.0


@dataclass(slots=True)
class DateBucket:
    """Transactions grouped by day, ISO week or month (data management view)."""

    key: str
    label: str
    start: datetime
    end: datetime
    count: int = 0
    sales: float = 0.0
    expense: float = 0.0


__all__ = [
    "TransactionType",
    "SALE",
    "EXPENSE",
    "TRANSACTION_TYPES",
    "DEFAULT_DESCRIPTIONS",
    "Transaction",
    "NewTransaction",
    "FinancialStats",
    "Totals",
    "TopItem",
    "HourBucket",
    "ChartPoint",
    "DateBucket",
]
