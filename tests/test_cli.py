from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from bakery_ledger.cli import app
from bakery_ledger.sql_store import SqlTransactionStore
from bakery_ledger.store import TransactionFilter

from tests.helpers.db import bootstrap_sqlite_db, seed_rows

runner = CliRunner()


def _row(id: str, type: str, amount: float, description: str, date: str) -> dict:
    return {"id": id, "type": type, "amount": amount, "description": description, "date": date}


ROWS = [
    _row("bread1", "sale", 50, "Bread", "2024-03-05T09:00:00.000"),
    _row("bread2", "sale", 30, "Bread", "2024-03-05T09:30:00.000"),
    _row("flour1", "expense", 20, "Flour", "2024-03-04T07:00:00.000"),
]


@pytest.fixture(autouse=True)
def _chdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    # Keep a developer's ./.env out of the picture.
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    url = bootstrap_sqlite_db(tmp_path / "ledger.db")
    seed_rows(database_url=url, rows=ROWS)
    return url


def _run(db_url: str, *args: str, input: str | None = None):
    return runner.invoke(app, [*args, "--database-url", db_url], input=input)


def _remaining(db_url: str) -> list[str]:
    return sorted(t.id for t in SqlTransactionStore(database_url=db_url).fetch(TransactionFilter()))


def test_init_db_creates_schema(tmp_path):
    url = f"sqlite+pysqlite:///{tmp_path / 'fresh.db'}"
    result = _run(url, "init-db")
    assert result.exit_code == 0, result.output
    assert "Database initialised." in result.output

    added = _run(url, "add", "--amount", "4.5", "--description", "Croissant")
    assert added.exit_code == 0, added.output
    assert len(_remaining(url)) == 1


def test_add_rejects_invalid_amount(db_url):
    result = _run(db_url, "add", "--type", "expense", "--amount=-3")
    assert result.exit_code == 1
    assert "Error: invalid transaction" in result.output
    assert len(_remaining(db_url)) == 3


def test_add_rejects_unknown_type(db_url):
    result = _run(db_url, "add", "--type", "refund", "--amount", "3")
    assert result.exit_code == 1
    assert "Error: --type must be one of: sale, expense" in result.output


def test_list_custom_window(db_url):
    result = _run(db_url, "list", "--start", "2024-03-05", "--end", "2024-03-05")
    assert result.exit_code == 0, result.output
    lines = [ln for ln in result.output.splitlines() if "\t" in ln]
    assert [ln.split("\t")[0] for ln in lines] == ["bread2", "bread1"]


def test_list_requires_both_bounds(db_url):
    result = _run(db_url, "list", "--start", "2024-03-05")
    assert result.exit_code == 1
    assert "both --start and --end" in result.output


def test_stats_all_time(db_url):
    result = _run(db_url, "stats", "--range", "all")
    assert result.exit_code == 0, result.output
    assert "Sales: 80.00" in result.output
    assert "Expenses: 20.00" in result.output
    assert "Net profit: 60.00" in result.output


def test_stats_unavailable_is_an_error(tmp_path):
    # No schema: both the aggregate and the fallback fail.
    url = f"sqlite+pysqlite:///{tmp_path / 'empty.db'}"
    result = _run(url, "stats")
    assert result.exit_code == 1
    assert "Error: stats unavailable" in result.output


def test_missing_database_url_is_reported():
    result = runner.invoke(app, ["stats"])
    assert result.exit_code == 1
    assert "DATABASE_URL is not set" in result.output


def test_delete_then_undo_restores_under_new_id(db_url):
    result = _run(db_url, "delete", "bread1", input="y\n")
    assert result.exit_code == 0, result.output
    assert "Transaction deleted." in result.output
    assert "Restored as" in result.output

    remaining = _remaining(db_url)
    assert "bread1" not in remaining
    assert len(remaining) == 3


def test_delete_without_undo(db_url):
    result = _run(db_url, "delete", "bread1", "--no-undo-prompt")
    assert result.exit_code == 0, result.output
    assert _remaining(db_url) == ["bread2", "flour1"]


def test_delete_range_covers_whole_days(db_url):
    result = _run(db_url, "delete-range", "--start", "2024-03-05", "--end", "2024-03-05", "--yes")
    assert result.exit_code == 0, result.output
    assert "Deleted 2 transaction(s)." in result.output
    assert _remaining(db_url) == ["flour1"]


def test_clear_asks_for_confirmation(db_url):
    declined = _run(db_url, "clear", input="n\n")
    assert declined.exit_code == 1
    assert len(_remaining(db_url)) == 3

    confirmed = _run(db_url, "clear", input="y\n")
    assert confirmed.exit_code == 0, confirmed.output
    assert "Deleted 3 transaction(s)." in confirmed.output
    assert _remaining(db_url) == []


def test_report_monthly(db_url):
    result = _run(db_url, "report", "--view", "monthly", "--date", "2024-03-20")
    assert result.exit_code == 0, result.output
    assert "Monthly report (01/03/2024 - 31/03/2024)" in result.output
    assert "Net: 60.00" in result.output
    assert "04/03\tsales=0.00\texpense=20.00" in result.output


def test_top_items(db_url):
    result = _run(db_url, "top", "--start", "2024-03-01", "--end", "2024-03-31")
    assert result.exit_code == 0, result.output
    assert "Bread\t80.00" in result.output


def test_groups_by_month(db_url):
    result = _run(db_url, "groups", "--mode", "month", "--range", "all")
    assert result.exit_code == 0, result.output
    assert "2024-03\tMarch 2024\t3 transaction(s)" in result.output


def test_peak_hours(db_url):
    result = _run(db_url, "peak-hours", "--range", "all")
    assert result.exit_code == 0, result.output
    assert "9AM\t80.00" in result.output


def test_export_writes_csv(db_url, tmp_path):
    target = tmp_path / "march.csv"
    result = _run(
        db_url, "export", "--start", "2024-03-01", "--end", "2024-03-31", "--output", str(target)
    )
    assert result.exit_code == 0, result.output
    assert "Exported 3 transaction(s)" in result.output
    lines = target.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "Date,Description,Type,Amount"
    assert lines[1].startswith("05/03/2024 09:30,Bread,sale,30")


def test_export_writes_pdf_report(db_url, tmp_path):
    target = tmp_path / "march.pdf"
    result = _run(
        db_url,
        "export",
        "--start",
        "2024-03-01",
        "--end",
        "2024-03-31",
        "--format",
        "pdf",
        "--output",
        str(target),
    )
    assert result.exit_code == 0, result.output
    assert "Exported 3 transaction(s)" in result.output
    assert target.read_bytes().startswith(b"%PDF")


def test_export_rejects_unknown_format(db_url):
    result = _run(db_url, "export", "--range", "month", "--format", "xlsx")
    assert result.exit_code == 1
    assert "--format must be one of: csv, pdf" in result.output


def test_export_of_all_time_is_rejected(db_url):
    result = _run(db_url, "export", "--range", "all")
    assert result.exit_code == 1
    assert "exporting 'all' is disabled" in result.output
