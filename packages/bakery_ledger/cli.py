# ruff: noqa: I001
"""CLI for the ``bakery_ledger`` package.

A Typer console interface over :class:`~bakery_ledger.coordinator.RangeQueryCoordinator`
backed by the SQL store. Environment variables (notably ``DATABASE_URL``) are
loaded from a local ``.env`` using ``python-dotenv`` before any command runs;
``--database-url`` overrides the environment.

Window options
--------------
Commands that read a window accept either ``--range NAME`` (``today``,
``yesterday``, ``week``, ``month``, ``last-3-months``, ``this-year``,
``last-7-days``, ``last-30-days``, ``all``) or an explicit ``--start``/``--end``
pair of ISO dates. Windows are always widened to whole days.

Errors are written to stderr as ``Error: ...`` with exit status 1.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import NoReturn

import typer
from dotenv import load_dotenv

from .logging_setup import configure_logging
from .models import SALE, TRANSACTION_TYPES
from .notifications import Notification
from .ranges import QUICK_RANGES, end_of_day, parse_iso, quick_range, start_of_day


# ---- Small module-level helpers used by CLI commands -------------------------


class _EchoSink:
    """Print notifications; remember the last one so UNDO can be offered."""

    def __init__(self) -> None:
        self.last: Notification | None = None

    def notify(self, notification: Notification) -> None:
        self.last = notification
        typer.echo(notification.message, err=notification.level == "error")


def _fail(message: str) -> NoReturn:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


def _open_ledger(database_url: str | None):
    """Build a SQL-backed coordinator; exits with a clear error when the DB is unset."""

    # Local imports keep `--help` fast and free of DB side effects
    from .coordinator import RangeQueryCoordinator
    from .sql_store import SqlTransactionStore

    try:
        from db.client import get_engine

        get_engine(database_url=database_url)
    except Exception as e:
        _fail(f"cannot open database: {e}")
    sink = _EchoSink()
    store = SqlTransactionStore(database_url=database_url)
    return RangeQueryCoordinator(store, notifier=sink), sink


def _resolve_window(
    range_name: str | None,
    start: str | None,
    end: str | None,
    *,
    default: str,
) -> tuple[datetime, datetime, str]:
    """Return ``(start, end, label)`` from either a named range or explicit dates."""

    if start or end:
        if not (start and end):
            _fail("both --start and --end are required for a custom range")
        try:
            lo, hi = parse_iso(start), parse_iso(end)
        except ValueError as e:
            _fail(f"invalid date: {e}")
        if lo > hi:
            _fail("start date cannot be after end date")
        return lo, hi, "custom"

    name = range_name or default
    try:
        lo, hi = quick_range(name)
    except ValueError as e:
        _fail(str(e))
    return lo, hi, name


def _money(value: float) -> str:
    return f"{value:,.2f}"


def _print_rows(rows) -> None:
    for t in rows:
        typer.echo(f"{t.id}\t{t.date}\t{t.type}\t{t.amount}\t{t.description}")


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Log bakery sales and expenses, report on date windows, and manage the "
        "transaction log. Loads DATABASE_URL from a local .env before running."
    ),
)

_RANGE_HELP = "Named window: " + ", ".join(QUICK_RANGES)


@app.callback(invoke_without_command=True)
def _root(
    ctx: typer.Context,
    log_level: str | None = typer.Option(
        None, help="Logging level (falls back to BAKERY_LEDGER_LOG_LEVEL, then INFO)."
    ),
    log_sql: bool | None = typer.Option(
        None,
        "--log-sql/--no-log-sql",
        help="Echo SQL statements (falls back to BAKERY_LEDGER_LOG_SQL).",
    ),
) -> None:
    """Root command: load ``.env`` and configure logging once."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level, log_sql=log_sql)

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


@app.command("init-db")
def init_db_cmd(
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    type_date_index: bool = typer.Option(
        True, help="Also create the composite (type, date) index used by filtered totals."
    ),
) -> None:
    """Create the transactions table (use Alembic for managed databases)."""

    from db.client import get_engine
    from db.schema import create_schema

    try:
        create_schema(get_engine(database_url=database_url), with_type_date_index=type_date_index)
    except Exception as e:
        _fail(f"schema creation failed: {e}")
    typer.echo("Database initialised.")


@app.command("add")
def add_cmd(
    type: str = typer.Option(SALE, "--type", help="sale or expense"),
    amount: str = typer.Option(..., help="Non-negative amount."),
    description: str = typer.Option("", help="Label; defaults to Sale/Expense when blank."),
    date: str | None = typer.Option(None, help="ISO timestamp; defaults to now."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Log a sale or an expense."""

    from pydantic import ValidationError

    if type not in TRANSACTION_TYPES:
        _fail(f"--type must be one of: {', '.join(TRANSACTION_TYPES)}")

    coordinator, _sink = _open_ledger(database_url)
    with coordinator:
        try:
            new_id = coordinator.add_transaction(type, amount, description, date)
        except ValidationError as e:
            _fail(f"invalid transaction: {e.errors()[0]['msg']}")
    if new_id is None:
        raise typer.Exit(1)
    typer.echo(new_id)


@app.command("list")
def list_cmd(
    range_name: str | None = typer.Option(None, "--range", help=_RANGE_HELP),
    start: str | None = typer.Option(None, help="Custom window start (ISO date)."),
    end: str | None = typer.Option(None, help="Custom window end (ISO date)."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Print transactions in the window, newest first."""

    lo, hi, _label = _resolve_window(range_name, start, end, default="month")
    coordinator, _sink = _open_ledger(database_url)
    with coordinator:
        coordinator.set_view_date_range(lo, hi)
        rows = coordinator.transactions
        if not rows:
            typer.echo("No transactions in this window.")
        _print_rows(rows)


@app.command("delete")
def delete_cmd(
    transaction_id: str = typer.Argument(..., help="Id of the transaction to delete."),
    undo_prompt: bool = typer.Option(True, help="Offer to undo right after deleting."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Delete one transaction, with an optional UNDO (recreates it under a new id)."""

    coordinator, sink = _open_ledger(database_url)
    with coordinator:
        # No window needed: the record is read by id before it is deleted.
        if not coordinator.delete_transaction(transaction_id):
            raise typer.Exit(1)
        note = sink.last
        if undo_prompt and note is not None and note.action is not None:
            if typer.confirm(f"{note.action.label}?", default=False):
                restored = note.action()
                if restored is None:
                    raise typer.Exit(1)
                typer.echo(f"Restored as {restored}")


@app.command("delete-range")
def delete_range_cmd(
    start: str = typer.Option(..., help="First day to delete (ISO date)."),
    end: str = typer.Option(..., help="Last day to delete (ISO date)."),
    yes: bool = typer.Option(False, "--yes", help="Do not ask for confirmation."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Permanently delete every transaction dated within the given days."""

    lo, hi, _label = _resolve_window(None, start, end, default="month")
    lo, hi = start_of_day(lo), end_of_day(hi)
    if not yes:
        typer.confirm(
            f"Delete all transactions from {lo:%Y-%m-%d} to {hi:%Y-%m-%d}? This cannot be undone.",
            abort=True,
        )
    coordinator, _sink = _open_ledger(database_url)
    with coordinator:
        try:
            count = coordinator.delete_transactions_by_date_range(lo, hi)
        except Exception as e:
            _fail(str(e))
    typer.echo(f"Deleted {count} transaction(s).")


@app.command("clear")
def clear_cmd(
    yes: bool = typer.Option(False, "--yes", help="Do not ask for confirmation."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Wipe the entire transaction log."""

    if not yes:
        typer.confirm("DANGER: delete every transaction? This cannot be undone.", abort=True)
    coordinator, _sink = _open_ledger(database_url)
    with coordinator:
        try:
            count = coordinator.clear_all_transactions()
        except Exception as e:
            _fail(str(e))
    typer.echo(f"Deleted {count} transaction(s).")


@app.command("stats")
def stats_cmd(
    range_name: str | None = typer.Option(None, "--range", help=_RANGE_HELP),
    start: str | None = typer.Option(None, help="Custom window start (ISO date)."),
    end: str | None = typer.Option(None, help="Custom window end (ISO date)."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Total sales, expenses and net profit without loading every transaction."""

    lo, hi, label = _resolve_window(range_name, start, end, default="all")
    coordinator, _sink = _open_ledger(database_url)
    with coordinator:
        stats = coordinator.get_financial_stats(lo, hi)
    if stats is None:
        # Unknown is not zero: report it as unavailable.
        _fail("stats unavailable, try again later")
    typer.echo(f"Window: {label}")
    typer.echo(f"Sales: {_money(stats.total_sales)}")
    typer.echo(f"Expenses: {_money(stats.total_expense)}")
    typer.echo(f"Net profit: {_money(stats.net_profit)}")


@app.command("report")
def report_cmd(
    view: str = typer.Option("weekly", help="daily, weekly or monthly"),
    date: str | None = typer.Option(None, help="Reference day (ISO date); defaults to today."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Daily, weekly (Monday start) or monthly report with totals and a per-day series."""

    from . import analytics
    from .ranges import end_of_month, end_of_week, start_of_month, start_of_week

    try:
        ref = parse_iso(date) if date else datetime.now()
    except ValueError as e:
        _fail(f"invalid date: {e}")

    windows = {
        "daily": (start_of_day, end_of_day, analytics.filter_by_day),
        "weekly": (start_of_week, end_of_week, analytics.filter_by_week),
        "monthly": (start_of_month, end_of_month, analytics.filter_by_month),
    }
    if view not in windows:
        _fail("--view must be one of: daily, weekly, monthly")
    lo_fn, hi_fn, filter_fn = windows[view]

    coordinator, _sink = _open_ledger(database_url)
    with coordinator:
        coordinator.set_view_date_range(lo_fn(ref), hi_fn(ref))
        rows = filter_fn(coordinator.transactions, ref)

    typer.echo(f"{view.capitalize()} report ({lo_fn(ref):%d/%m/%Y} - {hi_fn(ref):%d/%m/%Y})")
    _print_rows(rows)
    totals = analytics.summarize(rows)
    typer.echo(f"Sales: {_money(totals.sales)}")
    typer.echo(f"Expenses: {_money(totals.expense)}")
    typer.echo(f"Net: {_money(totals.net)}")
    for point in analytics.chart_series(rows):
        typer.echo(f"{point.name}\tsales={_money(point.sales)}\texpense={_money(point.expense)}")


@app.command("top")
def top_cmd(
    type: str = typer.Option(SALE, "--type", help="sale or expense"),
    limit: int = typer.Option(5, min=1, help="Number of items to show."),
    range_name: str | None = typer.Option(None, "--range", help=_RANGE_HELP),
    start: str | None = typer.Option(None, help="Custom window start (ISO date)."),
    end: str | None = typer.Option(None, help="Custom window end (ISO date)."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Top items by total amount, grouped by description."""

    from .analytics import top_n

    if type not in TRANSACTION_TYPES:
        _fail(f"--type must be one of: {', '.join(TRANSACTION_TYPES)}")
    lo, hi, _label = _resolve_window(range_name, start, end, default="last-7-days")
    coordinator, _sink = _open_ledger(database_url)
    with coordinator:
        coordinator.set_view_date_range(lo, hi)
        items = top_n(coordinator.transactions, type, limit)
    if not items:
        typer.echo("Nothing to rank in this window.")
    for item in items:
        typer.echo(f"{item.name}\t{_money(item.value)}")


@app.command("groups")
def groups_cmd(
    mode: str = typer.Option("day", help="day, week or month"),
    range_name: str | None = typer.Option(None, "--range", help=_RANGE_HELP),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Transaction counts per day, ISO week or month (for picking what to delete)."""

    from .analytics import BUCKET_MODES, bucket_groups

    if mode not in BUCKET_MODES:
        _fail(f"--mode must be one of: {', '.join(BUCKET_MODES)}")
    lo, hi, _label = _resolve_window(range_name, None, None, default="month")
    coordinator, _sink = _open_ledger(database_url)
    with coordinator:
        coordinator.set_view_date_range(lo, hi)
        buckets = bucket_groups(coordinator.transactions, mode)  # type: ignore[arg-type]
    if not buckets:
        typer.echo("No transactions in this window.")
    for b in buckets:
        typer.echo(
            f"{b.key}\t{b.label}\t{b.count} transaction(s)\t"
            f"sales={_money(b.sales)}\texpense={_money(b.expense)}"
        )


@app.command("peak-hours")
def peak_hours_cmd(
    range_name: str | None = typer.Option(None, "--range", help=_RANGE_HELP),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Sales by hour of day."""

    from .analytics import peak_hours

    lo, hi, _label = _resolve_window(range_name, None, None, default="last-7-days")
    coordinator, _sink = _open_ledger(database_url)
    with coordinator:
        coordinator.set_view_date_range(lo, hi)
        hours = peak_hours(coordinator.transactions)
    for h in hours:
        typer.echo(f"{h.label}\t{_money(h.sales)}")


@app.command("export")
def export_cmd(
    range_name: str | None = typer.Option(None, "--range", help=_RANGE_HELP),
    start: str | None = typer.Option(None, help="Custom window start (ISO date)."),
    end: str | None = typer.Option(None, help="Custom window end (ISO date)."),
    fmt: str = typer.Option("csv", "--format", help="csv or pdf"),
    output: Path | None = typer.Option(
        None, help="Destination file (defaults to export_<range>_<today>.<format>)."
    ),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Export a window as CSV or as a PDF report (Date, Description, Type, Amount)."""

    from .export import EXPORT_FORMATS, export_filename, write_csv, write_pdf

    fmt = fmt.strip().lower()
    if fmt not in EXPORT_FORMATS:
        _fail(f"--format must be one of: {', '.join(EXPORT_FORMATS)}")
    if (range_name or "").strip().lower() == "all":
        _fail("exporting 'all' is disabled; pick a year (--range this-year) or a custom range")
    lo, hi, label = _resolve_window(range_name, start, end, default="month")
    coordinator, _sink = _open_ledger(database_url)
    with coordinator:
        coordinator.set_view_date_range(lo, hi)
        rows = coordinator.transactions
    if not rows:
        _fail("no transactions in this window")

    target = output or Path(export_filename(label, fmt=fmt))  # type: ignore[arg-type]
    try:
        if fmt == "pdf":
            count = write_pdf(rows, target, range_name=None if label == "custom" else label)
        else:
            with target.open("w", encoding="utf-8", newline="") as f:
                count = write_csv(rows, f)
    except OSError as e:
        _fail(f"cannot write {target}: {e}")
    typer.echo(f"Exported {count} transaction(s) to {target}")


if __name__ == "__main__":  # pragma: no cover
    app()
