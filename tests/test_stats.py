from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from bakery_ledger.ranges import EPOCH
from bakery_ledger.stats import (
    build_stats_filters,
    coerce_amount,
    compute_financial_stats,
)
from bakery_ledger.store import MissingIndexError, StoreError, TransactionFilter

from tests.helpers.fake_store import FakeStore

MARCH_5 = datetime(2024, 3, 5, 15, 30)


def _store_with_mixed_amounts() -> FakeStore:
    store = FakeStore()
    store.seed(type="sale", amount=100, date="2024-03-05T09:00:00.000")
    store.seed(type="sale", amount="bad", date="2024-03-05T10:00:00.000")
    store.seed(type="expense", amount=30, date="2024-03-05T11:00:00.000")
    return store


@pytest.mark.parametrize(
    "value, expected",
    [
        (12, 12.0),
        (12.5, 12.5),
        (Decimal("3.10"), 3.1),
        (" 7.25 ", 7.25),
        ("bad", 0.0),
        (None, 0.0),
        (True, 0.0),
        (math.nan, 0.0),
        (math.inf, 0.0),
        ([1], 0.0),
    ],
)
def test_coerce_amount(value, expected):
    assert coerce_amount(value) == expected


def test_all_time_filters_carry_no_date_predicate():
    sale, expense = build_stats_filters(EPOCH, MARCH_5)
    assert sale == TransactionFilter(type="sale")
    assert expense == TransactionFilter(type="expense")
    assert not sale.has_date_range and not expense.has_date_range


@pytest.mark.parametrize(
    "start",
    [
        datetime(1970, 1, 1, tzinfo=timezone.utc),
        datetime(1969, 12, 31, 19, tzinfo=timezone(timedelta(hours=-5))),
        "1970-01-01T00:00:00Z",
    ],
)
def test_epoch_instant_in_any_zone_means_all_time(start):
    sale, expense = build_stats_filters(start, MARCH_5)
    assert not sale.has_date_range and not expense.has_date_range


def test_windowed_filters_are_day_normalized():
    sale, expense = build_stats_filters(MARCH_5, MARCH_5)
    assert (sale.type, expense.type) == ("sale", "expense")
    for flt in (sale, expense):
        assert flt.start_iso == "2024-03-05T00:00:00.000"
        assert flt.end_iso == "2024-03-05T23:59:59.999"


def test_stats_use_server_side_sums():
    store = FakeStore()
    store.seed(type="sale", amount=40, date="2024-03-05T09:00:00.000")
    store.seed(type="sale", amount=60, date="2024-03-05T18:00:00.000")
    store.seed(type="expense", amount=25, date="2024-03-05T07:00:00.000")
    store.seed(type="sale", amount=999, date="2024-03-06T07:00:00.000")

    stats = compute_financial_stats(store, MARCH_5, MARCH_5)

    assert stats is not None
    assert (stats.total_sales, stats.total_expense, stats.net_profit) == (100, 25, 75)
    assert (stats.start, stats.end) == (
        datetime(2024, 3, 5),
        datetime(2024, 3, 5, 23, 59, 59, 999000),
    )
    assert len(store.aggregate_calls) == 2
    assert store.fetch_calls == []


def test_empty_window_is_zero_not_unknown():
    stats = compute_financial_stats(FakeStore(), MARCH_5, MARCH_5)
    assert stats is not None
    assert (stats.total_sales, stats.total_expense, stats.net_profit) == (0, 0, 0)


def test_all_time_stats_query_without_dates():
    store = FakeStore()
    store.seed(type="sale", amount=5, date="1999-01-01T00:00:00.000")
    store.seed(type="sale", amount=7, date="2024-03-05T10:00:00.000")

    stats = compute_financial_stats(store, EPOCH, MARCH_5)

    assert stats is not None and stats.total_sales == 12
    assert len(store.aggregate_calls) == 2
    assert all(not flt.has_date_range for flt in store.aggregate_calls)


def test_fallback_sums_documents_when_aggregation_fails():
    store = _store_with_mixed_amounts()
    store.aggregate_error = MissingIndexError("needs index")

    stats = compute_financial_stats(store, MARCH_5, MARCH_5)

    assert stats is not None
    assert stats.total_sales == 100
    assert stats.total_expense == 30
    assert stats.net_profit == 70
    assert {f.type for f in store.fetch_calls} == {"sale", "expense"}


def test_stats_unavailable_when_fallback_fails_too(caplog):
    store = _store_with_mixed_amounts()
    store.aggregate_error = MissingIndexError("needs index")
    store.fetch_error = StoreError("offline")

    with caplog.at_level("WARNING", logger="bakery_ledger"):
        assert compute_financial_stats(store, MARCH_5, MARCH_5) is None

    assert "summing documents instead" in caplog.text
    assert "financial stats unavailable" in caplog.text
