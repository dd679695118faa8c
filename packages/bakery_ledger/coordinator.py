"""RangeQueryCoordinator: the visible date window and its live query.

Several views (dashboard, reports, analytics, export) share one coordinator.
Each of them calls :meth:`RangeQueryCoordinator.set_view_date_range` whenever
it re-renders, so the call has to be cheap and idempotent: an unchanged
window (compared by instant after day-normalization) does nothing at all.

Subscription exclusivity
------------------------
At most one live subscription exists. Changing the window bumps a generation
counter, releases the old subscription, then opens the new one, all under one
lock. Callbacks carry the generation they were opened with; anything arriving
for an older generation is dropped, so a late snapshot for a previous window
can never overwrite the current list.

State
-----
``IDLE`` until a window is set, ``LOADING`` while the first snapshot for a
window is pending, ``READY`` once it arrived, ``ERROR`` after a subscription
failure the user was told about. The ``loading`` flag is cleared by any
snapshot or error. Missing-index errors are only logged; the state stays
``LOADING`` and the last good data stays visible until a snapshot arrives.
"""

from __future__ import annotations

import enum
import threading
from collections.abc import Callable
from datetime import datetime
from functools import partial
from typing import Any

from .logging_setup import get_logger
from .models import FinancialStats, NewTransaction, Transaction
from .notifications import (
    LoggingNotificationSink,
    Notification,
    NotificationAction,
    NotificationSink,
)
from .ranges import DateLike, ViewRange, current_month, normalize_range, to_iso
from .stats import compute_financial_stats
from .store import (
    StoreError,
    Subscription,
    TransactionFilter,
    TransactionStore,
    is_provisioning_error,
)

logger = get_logger("bakery_ledger.coordinator")


class CoordinatorState(enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class RangeQueryCoordinator:
    def __init__(
        self,
        store: TransactionStore,
        *,
        notifier: NotificationSink | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._notifier: NotificationSink = notifier or LoggingNotificationSink()
        self._clock = clock or datetime.now
        self._lock = threading.RLock()

        self._transactions: tuple[Transaction, ...] = ()
        self._state = CoordinatorState.IDLE
        self._loading = False
        self._range: ViewRange | None = None
        self._subscription: Subscription | None = None
        self._generation = 0
        self._last_error: Exception | None = None

    # ---- Read-only view state ----------------------------------------------------

    @property
    def transactions(self) -> tuple[Transaction, ...]:
        """Current snapshot, newest-first by ``date``."""
        return self._transactions

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def current_range(self) -> ViewRange | None:
        return self._range

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    def __enter__(self) -> RangeQueryCoordinator:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ---- Window management -------------------------------------------------------

    def start(self, now: datetime | None = None) -> None:
        """Initialise the window to the current calendar month."""
        rng = current_month(now or self._clock())
        self.set_view_date_range(rng.start, rng.end)

    def set_view_date_range(self, start: DateLike, end: DateLike) -> bool:
        """Scope the live query to ``[start, end]`` after day-normalization.

        Returns False when the normalized window equals the active one (no
        resubscription, no loading flicker), True when a new subscription was
        opened.
        """

        rng = normalize_range(start, end)
        with self._lock:
            if self._range == rng and self._subscription is not None:
                return False

            self._generation += 1
            generation = self._generation
            self._range = rng
            self._state = CoordinatorState.LOADING
            self._loading = True

            previous, self._subscription = self._subscription, None
            if previous is not None:
                previous.unsubscribe()

            flt = TransactionFilter(start_iso=rng.start_iso, end_iso=rng.end_iso, descending=True)
            logger.debug("subscribing %s..%s (gen %d)", flt.start_iso, flt.end_iso, generation)
            try:
                subscription = self._store.subscribe(
                    flt,
                    partial(self._on_snapshot, generation),
                    partial(self._on_error, generation),
                )
            except Exception as e:  # noqa: BLE001
                self._on_error(generation, e)
                return True

            if generation == self._generation:
                self._subscription = subscription
            else:
                # A callback re-entered and moved the window on; this one is stale.
                subscription.unsubscribe()
        return True

    def _on_snapshot(self, generation: int, docs: list[Transaction]) -> None:
        with self._lock:
            if generation != self._generation:
                logger.debug("dropping snapshot from stale generation %d", generation)
                return
            self._transactions = tuple(docs)
            self._state = CoordinatorState.READY
            self._loading = False
            self._last_error = None

    def _on_error(self, generation: int, exc: Exception) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._loading = False
            if is_provisioning_error(exc):
                logger.warning("live query waiting for index provisioning: %s", exc)
                return
            self._state = CoordinatorState.ERROR
            self._last_error = exc
        logger.error("live query failed: %s", exc)
        self._notify("Failed to sync data.", "error")

    def close(self) -> None:
        """Release the subscription and forget the window (sign-out/unmount)."""
        with self._lock:
            self._generation += 1
            subscription, self._subscription = self._subscription, None
            self._range = None
            self._transactions = ()
            self._state = CoordinatorState.IDLE
            self._loading = False
            if subscription is not None:
                subscription.unsubscribe()

    # ---- Writes ------------------------------------------------------------------

    def _notify(
        self, message: str, level: Any = "info", action: NotificationAction | None = None
    ) -> None:
        self._notifier.notify(Notification(message=message, level=level, action=action))

    def _insert(self, doc: dict[str, Any]) -> str | None:
        try:
            new_id = self._store.insert(doc)
        except Exception:  # noqa: BLE001
            logger.error("failed to add transaction", exc_info=True)
            self._notify("Failed to add transaction. Check connection.", "error")
            return None
        logger.debug("added %s transaction %s", doc.get("type"), new_id)
        return new_id

    def add_transaction(
        self,
        type: str,
        amount: Any,
        description: str | None = None,
        date: DateLike | None = None,
    ) -> str | None:
        """Validate and store a new sale or expense; return its id.

        Invalid input raises :class:`pydantic.ValidationError`. Store failures
        are reported through the notifier and return ``None``.
        """

        payload = NewTransaction(
            type=type,  # type: ignore[arg-type]
            amount=amount,
            description=description or "",
            date=date,  # type: ignore[arg-type]
        )
        return self._insert(payload.to_document(now=self._clock()))

    def restore_transaction(self, payload: dict[str, Any]) -> str | None:
        """Undo-by-recreate: insert ``payload`` as a new record with a new id."""
        doc = dict(payload)
        doc.pop("id", None)
        doc.setdefault("created_at", to_iso(self._clock()))
        return self._insert(doc)

    def _lookup(self, transaction_id: str) -> Transaction | None:
        """The record as currently loaded, else a single read from the store."""
        with self._lock:
            target = next((t for t in self._transactions if t.id == transaction_id), None)
        if target is not None:
            return target
        try:
            return self._store.get(transaction_id)
        except Exception:  # noqa: BLE001
            logger.warning("could not read %s before deleting; no undo", transaction_id)
            return None

    def delete_transaction(self, transaction_id: str) -> bool:
        """Delete one record and offer UNDO carrying its fields (minus ``id``)."""
        target = self._lookup(transaction_id)

        try:
            self._store.delete_by_id(transaction_id)
        except Exception:  # noqa: BLE001
            logger.error("failed to delete transaction %s", transaction_id, exc_info=True)
            self._notify("Failed to delete transaction.", "error")
            return False

        if target is not None:
            restore = partial(self.restore_transaction, target.restore_payload())
            undo = NotificationAction("UNDO", restore)
            self._notify("Transaction deleted.", "info", undo)
        else:
            self._notify("Transaction deleted.", "info")
        return True

    def _bulk_delete(self, flt: TransactionFilter | None, what: str) -> int:
        """Run a chunked delete; ``flt=None`` wipes the whole log via ``delete_all``."""
        try:
            if flt is None:
                count = self._store.delete_all()
            else:
                count = self._store.delete_matching(flt)
        except Exception as e:
            logger.error("failed to delete %s", what, exc_info=True)
            self._notify(f"Failed to delete {what}.", "error")
            if isinstance(e, StoreError):
                raise
            raise StoreError(f"failed to delete {what}: {e}") from e
        logger.info("deleted %d transaction(s) (%s)", count, what)
        return count

    def delete_transactions_by_date_range(self, start: DateLike, end: DateLike) -> int:
        """Permanently delete every transaction dated within ``[start, end]``.

        Bounds are used as given (not day-normalized). Deletion is chunked and
        not atomic across chunks.
        """
        flt = TransactionFilter(start_iso=to_iso(start), end_iso=to_iso(end))
        return self._bulk_delete(flt, f"transactions {flt.start_iso}..{flt.end_iso}")

    def clear_all_transactions(self) -> int:
        return self._bulk_delete(None, "all transactions")

    # ---- Aggregates --------------------------------------------------------------

    def get_financial_stats(self, start: DateLike, end: DateLike) -> FinancialStats | None:
        """Totals over ``[start, end]``; ``None`` means unavailable, not zero.

        Independent of the live subscription. Concurrent calls are neither
        coalesced nor ordered; use :meth:`is_current` to drop late results.
        """
        return compute_financial_stats(self._store, start, end)

    def is_current(self, stats: FinancialStats | None) -> bool:
        """True when ``stats`` was computed for the active window."""
        if stats is None or self._range is None:
            return False
        return self._range == ViewRange(start=stats.start, end=stats.end)


__all__ = ["CoordinatorState", "RangeQueryCoordinator"]
