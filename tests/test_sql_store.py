from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy.exc import OperationalError

from bakery_ledger.coordinator import CoordinatorState, RangeQueryCoordinator
from bakery_ledger.sql_store import SqlTransactionStore
from bakery_ledger.stats import compute_financial_stats
from bakery_ledger.store import MAX_BATCH_SIZE, MissingIndexError, StoreError, TransactionFilter

from tests.helpers.db import bootstrap_sqlite_db, seed_rows
from tests.helpers.fake_store import RecordingSink

MARCH = TransactionFilter(start_iso="2024-03-01T00:00:00.000", end_iso="2024-03-31T23:59:59.999")


def _doc(type: str, amount, date: str, description: str = "") -> dict:
    return {
        "type": type,
        "amount": amount,
        "description": description,
        "date": date,
        "created_at": date,
    }


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    return bootstrap_sqlite_db(tmp_path / "ledger.db")


@pytest.fixture()
def store(db_url: str) -> SqlTransactionStore:
    return SqlTransactionStore(database_url=db_url)


def test_fetch_filters_and_orders_newest_first(store):
    store.insert(_doc("sale", 5, "2024-03-02T10:00:00.000"))
    store.insert(_doc("sale", 7, "2024-03-20T10:00:00.000"))
    store.insert(_doc("expense", 3, "2024-03-10T10:00:00.000"))
    store.insert(_doc("sale", 9, "2024-04-01T00:00:00.000"))

    rows = store.fetch(MARCH)
    assert [t.date[:10] for t in rows] == ["2024-03-20", "2024-03-10", "2024-03-02"]

    sales = store.fetch(TransactionFilter(type="sale", start_iso=MARCH.start_iso))
    assert sorted(t.amount for t in sales) == [5, 7, 9]


def test_window_end_is_inclusive_to_the_millisecond(store):
    store.insert(_doc("sale", 1, "2024-03-31T23:59:59.999"))
    store.insert(_doc("sale", 1, "2024-04-01T00:00:00.000"))
    assert len(store.fetch(MARCH)) == 1


def test_get_reads_one_record_by_id(store):
    doc_id = store.insert(_doc("expense", 8, "2023-11-02T07:00:00.000", "Flour"))

    found = store.get(doc_id)

    assert found is not None
    assert (found.id, found.type, found.description) == (doc_id, "expense", "Flour")
    assert store.get("no-such-id") is None


def test_subscribe_delivers_first_snapshot_and_every_write(store):
    snapshots: list[list] = []
    errors: list[Exception] = []

    sub = store.subscribe(MARCH, snapshots.append, errors.append)
    assert snapshots == [[]]

    new_id = store.insert(_doc("sale", 4, "2024-03-05T10:00:00.000"))
    store.insert(_doc("sale", 4, "2023-03-05T10:00:00.000"))
    assert [t.id for t in snapshots[1]] == [new_id]
    assert len(snapshots) == 3  # full result is pushed even when it did not change

    sub.unsubscribe()
    store.delete_by_id(new_id)
    assert len(snapshots) == 3
    assert sub.active is False
    assert store.listener_count == 0
    assert errors == []


def test_aggregate_sum_with_index(store):
    store.insert(_doc("sale", 10.25, "2024-03-05T10:00:00.000"))
    store.insert(_doc("sale", 4.75, "2024-03-06T10:00:00.000"))
    store.insert(_doc("expense", 2, "2024-03-06T10:00:00.000"))

    flt = TransactionFilter(type="sale", start_iso=MARCH.start_iso, end_iso=MARCH.end_iso)
    assert store.aggregate_sum(flt) == 15.0
    assert store.aggregate_sum(TransactionFilter(type="expense")) == 2.0
    assert store.aggregate_sum(TransactionFilter(type="sale", end_iso="2000-01-01")) is None
    with pytest.raises(ValueError):
        store.aggregate_sum(flt, "description")


def test_typed_range_aggregate_needs_composite_index(tmp_path):
    url = bootstrap_sqlite_db(tmp_path / "no_index.db", with_type_date_index=False)
    store = SqlTransactionStore(database_url=url)
    store.insert(_doc("sale", 100, "2024-03-05T09:00:00.000"))
    store.insert(_doc("expense", 30, "2024-03-05T11:00:00.000"))

    windowed = TransactionFilter(type="sale", start_iso=MARCH.start_iso, end_iso=MARCH.end_iso)
    with pytest.raises(MissingIndexError) as info:
        store.aggregate_sum(windowed)
    assert info.value.code == "failed-precondition"

    # Type-only (all time) aggregates and plain fetches work without it.
    assert store.aggregate_sum(TransactionFilter(type="sale")) == 100.0
    stats = compute_financial_stats(store, datetime(2024, 3, 5), datetime(2024, 3, 5))
    assert stats is not None
    assert (stats.total_sales, stats.total_expense, stats.net_profit) == (100, 30, 70)


def test_bulk_delete_commits_in_batches(store, db_url, monkeypatch):
    base = datetime(2024, 1, 1)
    seed_rows(
        database_url=db_url,
        rows=(
            _doc("sale", 1, (base + timedelta(minutes=i)).isoformat(timespec="milliseconds"))
            for i in range(1200)
        ),
    )
    batches: list[int] = []
    real_delete_batch = store._delete_batch

    def spy(ids):
        batches.append(len(ids))
        return real_delete_batch(ids)

    monkeypatch.setattr(store, "_delete_batch", spy)

    assert store.delete_all() == 1200
    assert batches == [MAX_BATCH_SIZE, MAX_BATCH_SIZE, 200]
    assert store.fetch(TransactionFilter()) == []


def test_bulk_delete_failure_keeps_committed_batches(db_url, monkeypatch):
    store = SqlTransactionStore(database_url=db_url, batch_size=2)
    for day in range(1, 6):
        store.insert(_doc("sale", day, f"2024-03-0{day}T10:00:00.000"))

    snapshots: list[list] = []
    store.subscribe(MARCH, snapshots.append, lambda exc: None)
    real_delete_batch = store._delete_batch
    calls = {"n": 0}

    def flaky(ids):
        calls["n"] += 1
        if calls["n"] == 2:
            raise OperationalError("DELETE", {}, Exception("database is locked"))
        return real_delete_batch(ids)

    monkeypatch.setattr(store, "_delete_batch", flaky)

    with pytest.raises(StoreError, match="after 2 rows"):
        store.delete_matching(MARCH)

    assert len(store.fetch(MARCH)) == 3
    # Listeners still see the partial deletion.
    assert len(snapshots[-1]) == 3


def test_batch_size_comes_from_env_and_is_capped(db_url, monkeypatch):
    monkeypatch.setenv("BAKERY_LEDGER_DELETE_BATCH_SIZE", "50")
    assert SqlTransactionStore(database_url=db_url).batch_size == 50
    monkeypatch.setenv("BAKERY_LEDGER_DELETE_BATCH_SIZE", "5000")
    assert SqlTransactionStore(database_url=db_url).batch_size == MAX_BATCH_SIZE
    monkeypatch.setenv("BAKERY_LEDGER_DELETE_BATCH_SIZE", "lots")
    assert SqlTransactionStore(database_url=db_url).batch_size == MAX_BATCH_SIZE
    assert SqlTransactionStore(database_url=db_url, batch_size=0).batch_size == 1


def test_coordinator_end_to_end(store):
    sink = RecordingSink()
    coordinator = RangeQueryCoordinator(store, notifier=sink, clock=lambda: datetime(2024, 3, 5))

    with coordinator:
        coordinator.start()
        assert coordinator.state is CoordinatorState.READY
        assert coordinator.transactions == ()

        sale_id = coordinator.add_transaction("sale", 25, "Baguette", "2024-03-05T08:30")
        coordinator.add_transaction("expense", 10, "", "2024-03-04T07:00")
        assert [t.description for t in coordinator.transactions] == ["Baguette", "Expense"]

        coordinator.delete_transaction(sale_id)
        assert sale_id not in {t.id for t in coordinator.transactions}
        restored_id = sink.last.action()

        assert restored_id != sale_id
        assert [t.id for t in coordinator.transactions][0] == restored_id
        assert coordinator.transactions[0].date == "2024-03-05T08:30:00.000"

        stats = coordinator.get_financial_stats("2024-03-01", "2024-03-31")
        assert stats is not None and stats.net_profit == 15
        assert coordinator.is_current(stats)

    assert store.listener_count == 0
