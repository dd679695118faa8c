"""Aggregate-only totals over a date window.

``compute_financial_stats`` answers "how much did we sell / spend between A
and B" without streaming every document into memory:

1. A start on the ``EPOCH`` day (or at the epoch instant, for offset-aware
   values) means all time. The date predicate is dropped and only the
   ``type`` equality remains, so no composite ``(type, date)`` index is
   needed.
2. Otherwise each of the sale and expense queries also carries the window.
3. Both ``SUM(amount)`` aggregates run in parallel.
4. If aggregation fails (typically a missing index), the matching documents
   are fetched and summed client-side; non-numeric amounts count as 0.
5. If the fallback fails too, the result is ``None``: "unknown", which callers
   must not render as zero.

Missing sums (no matching rows) are 0, never ``None``. The call does not touch
the coordinator's live subscription.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from typing import Any, TypeVar

from .logging_setup import get_logger
from .models import EXPENSE, SALE, FinancialStats, Transaction
from .ranges import DateLike, is_all_time, normalize_range
from .store import TransactionFilter, TransactionStore

R = TypeVar("R")

logger = get_logger("bakery_ledger.stats")


def coerce_amount(value: Any) -> float:
    """Return ``value`` as a finite float, or 0.0 when it is not numeric.

    Numeric strings are accepted; booleans, NaN and infinities are not.
    """

    if isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float | Decimal):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


def sum_amounts(transactions: Iterable[Transaction]) -> float:
    return sum((coerce_amount(t.amount) for t in transactions), 0.0)


def build_stats_filters(
    start: DateLike, end: DateLike
) -> tuple[TransactionFilter, TransactionFilter]:
    """Return the ``(sale, expense)`` filters for a window.

    The window is day-normalized first; an all-time start (``EPOCH``, or the
    epoch instant in any zone) omits the date predicate entirely.
    """

    rng = normalize_range(start, end)
    if is_all_time(start):
        return TransactionFilter(type=SALE), TransactionFilter(type=EXPENSE)
    return (
        TransactionFilter(type=SALE, start_iso=rng.start_iso, end_iso=rng.end_iso),
        TransactionFilter(type=EXPENSE, start_iso=rng.start_iso, end_iso=rng.end_iso),
    )


def _run_pair(
    fn: Callable[[TransactionFilter], R], queries: Sequence[TransactionFilter]
) -> list[R]:
    with ThreadPoolExecutor(max_workers=len(queries), thread_name_prefix="ledger-stats") as ex:
        futures = [ex.submit(fn, q) for q in queries]
        return [f.result() for f in futures]


def compute_financial_stats(
    store: TransactionStore, start: DateLike, end: DateLike
) -> FinancialStats | None:
    rng = normalize_range(start, end)
    queries = build_stats_filters(start, end)

    try:
        sales_raw, expense_raw = _run_pair(lambda q: store.aggregate_sum(q, "amount"), queries)
        total_sales = coerce_amount(sales_raw)
        total_expense = coerce_amount(expense_raw)
    except Exception as agg_err:  # noqa: BLE001
        logger.warning("aggregate totals unavailable (%s); summing documents instead", agg_err)
        try:
            total_sales, total_expense = _run_pair(lambda q: sum_amounts(store.fetch(q)), queries)
        except Exception:  # noqa: BLE001
            logger.error(
                "financial stats unavailable for %s..%s", rng.start_iso, rng.end_iso, exc_info=True
            )
            return None

    return FinancialStats(
        total_sales=total_sales,
        total_expense=total_expense,
        net_profit=total_sales - total_expense,
        start=rng.start,
        end=rng.end,
    )


__all__ = [
    "coerce_amount",
    "sum_amounts",
    "build_stats_filters",
    "compute_financial_stats",
]
