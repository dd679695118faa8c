"""The transaction store interface the coordinator is written against.

The concrete store is injected at construction time. Production code uses
:class:`bakery_ledger.sql_store.SqlTransactionStore`; tests use an in-memory
fake that controls when snapshots are delivered.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

from .models import Transaction

# Hard ceiling on deletions committed in one batch.
MAX_BATCH_SIZE = 500

T = TypeVar("T")

type SnapshotCallback = Callable[[list[Transaction]], None]
type ErrorCallback = Callable[[Exception], None]


class StoreError(RuntimeError):
    """A store read or write failed."""


class MissingIndexError(StoreError):
    """The query needs an index that does not exist yet (precondition not met).

    Treated as a transient provisioning state: composite indexes can still be
    building the first time a window is queried.
    """

    code = "failed-precondition"


def is_provisioning_error(exc: BaseException) -> bool:
    """Return True for missing-index / failed-precondition failures.

    Errors raised by foreign clients are recognised by a ``code`` attribute
    of ``"failed-precondition"``.
    """

    if isinstance(exc, MissingIndexError):
        return True
    code = getattr(exc, "code", None)
    return isinstance(code, str) and code.replace("_", "-").lower() == "failed-precondition"


@dataclass(frozen=True, slots=True)
class TransactionFilter:
    """Query shape understood by every store.

    ``start_iso``/``end_iso`` are inclusive bounds on ``date``. Either may be
    omitted; a filter with neither matches every date. ``descending`` orders
    results newest-first by ``date``.
    """

    type: str | None = None
    start_iso: str | None = None
    end_iso: str | None = None
    descending: bool = True

    @property
    def has_date_range(self) -> bool:
        return self.start_iso is not None or self.end_iso is not None

    def matches(self, doc: Mapping[str, Any]) -> bool:
        if self.type is not None and doc.get("type") != self.type:
            return False
        when = str(doc.get("date") or "")
        if self.start_iso is not None and when < self.start_iso:
            return False
        if self.end_iso is not None and when > self.end_iso:
            return False
        return True


class Subscription(Protocol):
    """Handle for a live query.

    Once ``unsubscribe()`` returns, the store delivers no further callbacks
    for this handle, including snapshots that were already computed.
    """

    @property
    def active(self) -> bool: ...

    def unsubscribe(self) -> None: ...


class TransactionStore(Protocol):
    def subscribe(
        self,
        flt: TransactionFilter,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription: ...

    def get(self, transaction_id: str) -> Transaction | None: ...

    def insert(self, doc: Mapping[str, Any]) -> str: ...

    def delete_by_id(self, transaction_id: str) -> None: ...

    def delete_matching(self, flt: TransactionFilter) -> int: ...

    def delete_all(self) -> int: ...

    def aggregate_sum(self, flt: TransactionFilter, field: str = "amount") -> float | None: ...

    def fetch(self, flt: TransactionFilter) -> list[Transaction]: ...


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most ``size`` items."""

    if size < 1:
        raise ValueError("size must be a positive integer")
    for i in range(0, len(items), size):
        yield items[i : i + size]


__all__ = [
    "MAX_BATCH_SIZE",
    "SnapshotCallback",
    "ErrorCallback",
    "StoreError",
    "MissingIndexError",
    "is_provisioning_error",
    "TransactionFilter",
    "Subscription",
    "TransactionStore",
    "chunked",
]
