"""Shared SQLAlchemy models registry for the ledger database.

Currently includes the transaction log used by ``bakery_ledger``.
"""

from .ledger import TYPE_DATE_INDEX, Base, LedgerTransaction

__all__ = [
    "Base",
    "LedgerTransaction",
    "TYPE_DATE_INDEX",
]
