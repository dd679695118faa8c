# ruff: noqa: I001
"""Composite (type, date) index for filtered aggregates.

Kept as its own revision: on large tables the build can take a while, and the
application treats its absence as a transient provisioning state (aggregate
queries fall back to a client-side sum until it exists).

Revision ID: 0002_tx_type_date_index
Revises: 0001_ledger_core
Create Date: 2026-10-19
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0002_tx_type_date_index"
down_revision: str | None = "0001_ledger_core"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_index(
        "ix_transactions_type_date",
        "transactions",
        ["type", "date"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_transactions_type_date", table_name="transactions")
