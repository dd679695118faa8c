"""Public interface for the ``bakery_ledger`` package.

Symbol re-exports only. The coordinator is the entry point for hosts; stores,
models and pure derivation helpers are exported alongside it.
"""

from .coordinator import CoordinatorState, RangeQueryCoordinator
from .models import (
    EXPENSE,
    SALE,
    FinancialStats,
    NewTransaction,
    Transaction,
)
from .notifications import Notification, NotificationAction, NotificationSink
from .ranges import EPOCH, ViewRange, normalize_range, quick_range
from .sql_store import SqlTransactionStore
from .stats import compute_financial_stats
from .store import (
    MAX_BATCH_SIZE,
    MissingIndexError,
    StoreError,
    TransactionFilter,
    TransactionStore,
)

__all__ = [
    # Coordinator
    "RangeQueryCoordinator",
    "CoordinatorState",
    # Stores
    "TransactionStore",
    "SqlTransactionStore",
    "TransactionFilter",
    "StoreError",
    "MissingIndexError",
    "MAX_BATCH_SIZE",
    # Models / types
    "SALE",
    "EXPENSE",
    "Transaction",
    "NewTransaction",
    "FinancialStats",
    "Notification",
    "NotificationAction",
    "NotificationSink",
    # Windows and aggregates
    "EPOCH",
    "ViewRange",
    "normalize_range",
    "quick_range",
    "compute_financial_stats",
]
