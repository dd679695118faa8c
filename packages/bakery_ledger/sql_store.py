# ruff: noqa: I001
"""SQLAlchemy-backed :class:`~bakery_ledger.store.TransactionStore`.

Reads and writes go through ``db.client.session_scope`` against the flat
``transactions`` table owned by ``libs/db``.

Live queries
------------
A relational database does not push changes, so the store does it itself:
listeners are registered in-process, each receives its first snapshot
synchronously from ``subscribe()``, and every committed write re-runs the
query of every active listener and pushes the full result. Snapshots are
complete replacements, never diffs.

Bulk deletes
------------
``delete_matching``/``delete_all`` delete in sequential batches of at most
``MAX_BATCH_SIZE`` ids, one committed transaction per batch. A failure part
way through leaves the earlier batches deleted.
"""

from __future__ import annotations

import os
import threading
import uuid
from collections.abc import Mapping
from typing import Any

import sqlalchemy as sa
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from db.client import get_engine, session_scope
from db.models.ledger import TYPE_DATE_INDEX, LedgerTransaction

from .logging_setup import get_logger
from .models import Transaction
from .store import (
    MAX_BATCH_SIZE,
    ErrorCallback,
    MissingIndexError,
    SnapshotCallback,
    StoreError,
    TransactionFilter,
    chunked,
)

_BATCH_SIZE_ENV = "BAKERY_LEDGER_DELETE_BATCH_SIZE"

logger = get_logger("bakery_ledger.sql_store")


def _resolve_batch_size(explicit: int | None = None) -> int:
    """Resolve the delete batch size.

    Honors ``BAKERY_LEDGER_DELETE_BATCH_SIZE`` when no explicit value is given,
    never exceeds ``MAX_BATCH_SIZE`` and never drops below 1.
    """

    raw: Any = explicit if explicit is not None else os.getenv(_BATCH_SIZE_ENV)
    try:
        size = int(raw) if raw not in (None, "") else MAX_BATCH_SIZE
    except (TypeError, ValueError):
        size = MAX_BATCH_SIZE
    return max(1, min(size, MAX_BATCH_SIZE))


def _row_to_transaction(row: LedgerTransaction) -> Transaction:
    return Transaction(
        id=row.id,
        type=row.type,
        amount=row.amount,  # type: ignore[arg-type]
        description=row.description or "",
        date=row.date,
        created_at=row.created_at,
    )


class _Listener:
    """Subscription handle returned by :meth:`SqlTransactionStore.subscribe`."""

    __slots__ = ("flt", "on_snapshot", "on_error", "_active", "_store")

    def __init__(
        self,
        store: SqlTransactionStore,
        flt: TransactionFilter,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> None:
        self._store = store
        self.flt = flt
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        self._store._remove_listener(self)


class SqlTransactionStore:
    def __init__(self, *, database_url: str | None = None, batch_size: int | None = None) -> None:
        self._database_url = database_url
        self._batch_size = _resolve_batch_size(batch_size)
        self._listeners: list[_Listener] = []
        self._lock = threading.RLock()
        # Only a positive answer is cached: the index may finish building later.
        self._type_date_index_ready = False

    @property
    def batch_size(self) -> int:
        return self._batch_size

    # ---- Queries ---------------------------------------------------------------

    def _where(self, stmt: Any, flt: TransactionFilter) -> Any:
        if flt.type is not None:
            stmt = stmt.where(LedgerTransaction.type == flt.type)
        if flt.start_iso is not None:
            stmt = stmt.where(LedgerTransaction.date >= flt.start_iso)
        if flt.end_iso is not None:
            stmt = stmt.where(LedgerTransaction.date <= flt.end_iso)
        return stmt

    def _query(self, flt: TransactionFilter) -> list[Transaction]:
        order = LedgerTransaction.date.desc() if flt.descending else LedgerTransaction.date.asc()
        stmt = self._where(select(LedgerTransaction), flt).order_by(order, LedgerTransaction.id)
        with session_scope(database_url=self._database_url) as session:
            rows = session.execute(stmt).scalars().all()
            return [_row_to_transaction(r) for r in rows]

    def fetch(self, flt: TransactionFilter) -> list[Transaction]:
        try:
            return self._query(flt)
        except SQLAlchemyError as e:
            raise StoreError(f"fetch failed: {e}") from e

    def get(self, transaction_id: str) -> Transaction | None:
        try:
            with session_scope(database_url=self._database_url) as session:
                row = session.get(LedgerTransaction, transaction_id)
                return None if row is None else _row_to_transaction(row)
        except SQLAlchemyError as e:
            raise StoreError(f"get failed: {e}") from e

    def _has_type_date_index(self) -> bool:
        if self._type_date_index_ready:
            return True
        engine = get_engine(database_url=self._database_url)
        indexes = sa.inspect(engine).get_indexes(LedgerTransaction.__tablename__)
        names = {ix.get("name") for ix in indexes}
        self._type_date_index_ready = TYPE_DATE_INDEX in names
        return self._type_date_index_ready

    def aggregate_sum(self, flt: TransactionFilter, field: str = "amount") -> float | None:
        """Server-side ``SUM(field)`` over the filter; ``None`` when nothing matched.

        Combining a ``type`` equality with a ``date`` range needs the composite
        ``(type, date)`` index. Until migration 0002 has created it this raises
        :class:`MissingIndexError` instead of scanning.
        """

        if field != "amount":
            raise ValueError(f"unsupported aggregate field: {field!r}")
        try:
            if flt.type is not None and flt.has_date_range and not self._has_type_date_index():
                raise MissingIndexError(
                    f"query on type and date requires index {TYPE_DATE_INDEX!r}, "
                    "which does not exist yet"
                )
            stmt = self._where(select(func.sum(LedgerTransaction.amount)), flt)
            with session_scope(database_url=self._database_url) as session:
                total = session.execute(stmt).scalar_one()
        except SQLAlchemyError as e:
            raise StoreError(f"aggregate failed: {e}") from e
        return None if total is None else float(total)

    # ---- Live subscriptions ----------------------------------------------------

    def subscribe(
        self,
        flt: TransactionFilter,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> _Listener:
        listener = _Listener(self, flt, on_snapshot, on_error)
        with self._lock:
            self._listeners.append(listener)
        logger.debug("subscribed start=%s end=%s", flt.start_iso, flt.end_iso)
        self._deliver(listener)
        return listener

    def _remove_listener(self, listener: _Listener) -> None:
        with self._lock:
            listener._active = False
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _deliver(self, listener: _Listener) -> None:
        if not listener.active:
            return
        try:
            docs = self._query(listener.flt)
        except SQLAlchemyError as e:
            if listener.active:
                listener.on_error(StoreError(f"snapshot query failed: {e}"))
            return
        # Re-check: the listener may have been released while the query ran.
        if listener.active:
            listener.on_snapshot(docs)

    def _notify_listeners(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            self._deliver(listener)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    # ---- Writes ----------------------------------------------------------------

    def insert(self, doc: Mapping[str, Any]) -> str:
        transaction_id = uuid.uuid4().hex
        try:
            with session_scope(database_url=self._database_url) as session:
                session.add(
                    LedgerTransaction(
                        id=transaction_id,
                        type=doc["type"],
                        amount=doc.get("amount"),
                        description=doc.get("description") or "",
                        date=doc["date"],
                        created_at=doc["created_at"],
                    )
                )
        except SQLAlchemyError as e:
            raise StoreError(f"insert failed: {e}") from e
        self._notify_listeners()
        return transaction_id

    def delete_by_id(self, transaction_id: str) -> None:
        try:
            with session_scope(database_url=self._database_url) as session:
                session.execute(
                    delete(LedgerTransaction)
                    .where(LedgerTransaction.id == transaction_id)
                    .execution_options(synchronize_session=False)
                )
        except SQLAlchemyError as e:
            raise StoreError(f"delete failed: {e}") from e
        self._notify_listeners()

    def _matching_ids(self, flt: TransactionFilter) -> list[str]:
        stmt = self._where(select(LedgerTransaction.id), flt)
        with session_scope(database_url=self._database_url) as session:
            return list(session.execute(stmt).scalars().all())

    def _delete_batch(self, ids: list[str]) -> int:
        """Delete one batch of ids in its own committed transaction."""
        with session_scope(database_url=self._database_url) as session:
            result = session.execute(
                delete(LedgerTransaction)
                .where(LedgerTransaction.id.in_(ids))
                .execution_options(synchronize_session=False)
            )
            return int(result.rowcount or 0)

    def delete_matching(self, flt: TransactionFilter) -> int:
        deleted = 0
        try:
            ids = self._matching_ids(flt)
            for n, batch in enumerate(chunked(ids, self._batch_size), start=1):
                deleted += self._delete_batch(list(batch))
                logger.debug("bulk delete batch %d committed (%d rows)", n, len(batch))
        except SQLAlchemyError as e:
            raise StoreError(f"bulk delete failed after {deleted} rows: {e}") from e
        finally:
            if deleted:
                self._notify_listeners()
        return deleted

    def delete_all(self) -> int:
        return self.delete_matching(TransactionFilter())


__all__ = ["SqlTransactionStore"]
