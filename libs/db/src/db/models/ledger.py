from __future__ import annotations

from sqlalchemy import (
    CheckConstraint,
    Index,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Core: transactions
# ---------------------------


class LedgerTransaction(Base):
    """One sale or expense entry.

    A single flat collection; there are no derived tables. Rows are never
    updated after insert, only deleted.
    """

    __tablename__ = "transactions"

    # Opaque identifier assigned by the store (uuid4 hex), never reused.
    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    # Floats on the Python side; SQLite has no native decimal type.
    amount: Mapped[float | None] = mapped_column(Numeric(14, 2, asdecimal=False), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # ISO-8601 strings with millisecond precision. Range filters compare these
    # lexicographically, so every writer must emit the same canonical format
    # (see ``bakery_ledger.ranges.to_iso``).
    date: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[str] = mapped_column(String(32), nullable=False)

    __table_args__ = (
        CheckConstraint("type in ('sale','expense')", name="ck_transactions_type"),
        Index("ix_transactions_date", "date"),
    )


# Name of the composite index that filtered aggregates depend on. It is
# created by a separate migration (0002) rather than declared on the model so
# that a database can exist before the index finishes provisioning.
TYPE_DATE_INDEX = "ix_transactions_type_date"


__all__ = [
    "Base",
    "LedgerTransaction",
    "TYPE_DATE_INDEX",
]
