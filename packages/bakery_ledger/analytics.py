"""Pure derivations over an already-loaded transaction list.

Nothing here performs I/O. Inputs are the coordinator's current snapshot
(newest-first by ``date``); amounts go through ``coerce_amount`` so a
malformed stored value contributes 0 instead of raising. Rows whose ``date``
cannot be parsed are skipped.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import datetime
from typing import Literal

from .models import (
    EXPENSE,
    SALE,
    ChartPoint,
    DateBucket,
    HourBucket,
    TopItem,
    Totals,
    Transaction,
)
from .ranges import (
    DateLike,
    as_datetime,
    end_of_day,
    end_of_month,
    end_of_week,
    parse_iso,
    start_of_day,
    start_of_month,
    start_of_week,
)
from .stats import coerce_amount

type BucketMode = Literal["day", "week", "month"]

BUCKET_MODES: tuple[str, ...] = ("day", "week", "month")
UNKNOWN_DESCRIPTION = "Unknown"


def _dated(transactions: Iterable[Transaction]) -> Iterator[tuple[Transaction, datetime]]:
    for t in transactions:
        try:
            yield t, parse_iso(t.date)
        except ValueError:
            continue


# ---- Filters ---------------------------------------------------------------------


def filter_by_interval(
    transactions: Iterable[Transaction], start: DateLike, end: DateLike
) -> list[Transaction]:
    """Transactions dated within ``[start, end]`` (inclusive), order preserved."""
    lo, hi = as_datetime(start), as_datetime(end)
    return [t for t, when in _dated(transactions) if lo <= when <= hi]


def filter_by_day(transactions: Iterable[Transaction], day: DateLike) -> list[Transaction]:
    return filter_by_interval(transactions, start_of_day(day), end_of_day(day))


def filter_by_week(transactions: Iterable[Transaction], ref: DateLike) -> list[Transaction]:
    """Transactions in the Monday-to-Sunday week containing ``ref``."""
    return filter_by_interval(transactions, start_of_week(ref), end_of_week(ref))


def filter_by_month(transactions: Iterable[Transaction], ref: DateLike) -> list[Transaction]:
    return filter_by_interval(transactions, start_of_month(ref), end_of_month(ref))


# ---- Totals and series -------------------------------------------------------------


def summarize(transactions: Iterable[Transaction]) -> Totals:
    sales = expense = 0.0
    for t in transactions:
        if t.type == SALE:
            sales += coerce_amount(t.amount)
        elif t.type == EXPENSE:
            expense += coerce_amount(t.amount)
    return Totals(sales=sales, expense=expense, net=sales - expense)


def chart_series(
    transactions: Iterable[Transaction], key_format: str = "%d/%m"
) -> list[ChartPoint]:
    """Sales/expense per formatted date key, oldest point first.

    Points are created in order of first occurrence in the (newest-first)
    input, then the list is reversed for left-to-right chronological charts.
    """

    points: dict[str, ChartPoint] = {}
    for t, when in _dated(transactions):
        key = when.strftime(key_format)
        point = points.get(key)
        if point is None:
            point = points[key] = ChartPoint(name=key)
        if t.type == SALE:
            point.sales += coerce_amount(t.amount)
        elif t.type == EXPENSE:
            point.expense += coerce_amount(t.amount)
    return list(reversed(points.values()))


def top_n(transactions: Iterable[Transaction], type: str, n: int = 5) -> list[TopItem]:
    """Largest description groups of one transaction type by summed amount.

    Descriptions are trimmed; blank ones share a single ``"Unknown"`` group.
    Ties keep first-seen order.
    """

    totals: dict[str, float] = {}
    for t in transactions:
        if t.type != type:
            continue
        name = (t.description or "").strip() or UNKNOWN_DESCRIPTION
        totals[name] = totals.get(name, 0.0) + coerce_amount(t.amount)
    ranked = sorted(totals.items(), key=lambda kv: kv[1], reverse=True)
    return [TopItem(name=name, value=value) for name, value in ranked[: max(n, 0)]]


def _hour_label(hour: int) -> str:
    return f"{hour % 12 or 12}{'AM' if hour < 12 else 'PM'}"


def peak_hours(transactions: Iterable[Transaction]) -> list[HourBucket]:
    """Sale totals by hour of day; hours without sales are omitted."""
    sales = [0.0] * 24
    for t, when in _dated(transactions):
        if t.type == SALE:
            sales[when.hour] += coerce_amount(t.amount)
    return [HourBucket(hour=h, label=_hour_label(h), sales=v) for h, v in enumerate(sales) if v > 0]


# ---- Period buckets ----------------------------------------------------------------


def _bucket_for(when: datetime, mode: str) -> DateBucket:
    if mode == "day":
        return DateBucket(
            key=when.strftime("%Y-%m-%d"),
            label=f"{when:%B} {when.day}, {when.year}",
            start=start_of_day(when),
            end=end_of_day(when),
        )
    if mode == "week":
        start, end = start_of_week(when), end_of_week(when)
        iso_year, iso_week, _ = when.isocalendar()
        return DateBucket(
            key=f"{iso_year}-W{iso_week:02d}",
            label=f"Week {iso_week} ({start:%b} {start.day} - {end:%b} {end.day})",
            start=start,
            end=end,
        )
    if mode == "month":
        return DateBucket(
            key=when.strftime("%Y-%m"),
            label=when.strftime("%B %Y"),
            start=start_of_month(when),
            end=end_of_month(when),
        )
    raise ValueError(f"unknown bucket mode {mode!r}; expected one of {BUCKET_MODES}")


def bucket_groups(transactions: Iterable[Transaction], mode: BucketMode) -> list[DateBucket]:
    """Group by day, ISO week or month with counts and totals, newest bucket first."""
    if mode not in BUCKET_MODES:
        raise ValueError(f"unknown bucket mode {mode!r}; expected one of {BUCKET_MODES}")
    buckets: dict[str, DateBucket] = {}
    for t, when in _dated(transactions):
        fresh = _bucket_for(when, mode)
        bucket = buckets.setdefault(fresh.key, fresh)
        bucket.count += 1
        if t.type == SALE:
            bucket.sales += coerce_amount(t.amount)
        elif t.type == EXPENSE:
            bucket.expense += coerce_amount(t.amount)
    return sorted(buckets.values(), key=lambda b: b.start, reverse=True)


__all__ = [
    "BucketMode",
    "BUCKET_MODES",
    "UNKNOWN_DESCRIPTION",
    "filter_by_interval",
    "filter_by_day",
    "filter_by_week",
    "filter_by_month",
    "summarize",
    "chart_series",
    "top_n",
    "peak_hours",
    "bucket_groups",
]
