"""CSV and PDF export of a transaction window.

Both formats share the same four columns (Date, Description, Type, Amount)
and keep the order they are given (newest first for coordinator snapshots).
The PDF is a printable report: a title naming the range, a "Generated on"
line and a grid table with the type uppercased and amounts prefixed by the
currency code.
"""

from __future__ import annotations

import csv
from collections.abc import Iterable
from datetime import date, datetime
from pathlib import Path
from typing import Literal, TextIO

from fpdf import FPDF
from fpdf.fonts import FontFace

from .models import Transaction
from .ranges import parse_iso
from .stats import coerce_amount

type ExportFormat = Literal["csv", "pdf"]

EXPORT_FORMATS: tuple[str, ...] = ("csv", "pdf")
CSV_HEADER = ("Date", "Description", "Type", "Amount")
CURRENCY = "INR"

# Heading fill of the PDF table (brand green).
_PDF_HEADING_FILL = (46, 125, 50)


def _format_when(value: str) -> str:
    try:
        return f"{parse_iso(value):%d/%m/%Y %H:%M}"
    except ValueError:
        return value


def write_csv(transactions: Iterable[Transaction], stream: TextIO) -> int:
    """Write ``transactions`` (in the given order) as CSV; return the row count.

    Dates render as ``dd/mm/yyyy HH:MM``; amounts are written as stored.
    """

    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    rows = 0
    for t in transactions:
        writer.writerow((_format_when(t.date), t.description, t.type, t.amount))
        rows += 1
    return rows


def pdf_title(range_name: str | None) -> str:
    return f"Export Report: {range_name.upper() if range_name else 'Custom Range'}"


def pdf_table_rows(transactions: Iterable[Transaction]) -> list[tuple[str, str, str, str]]:
    """Header plus one display row per transaction, as printed in the PDF table."""
    rows: list[tuple[str, str, str, str]] = [CSV_HEADER]
    for t in transactions:
        rows.append(
            (
                _format_when(t.date),
                t.description,
                t.type.upper(),
                f"{CURRENCY} {coerce_amount(t.amount):.2f}",
            )
        )
    return rows


def _latin1(text: str) -> str:
    # Core PDF fonts only cover Latin-1.
    return text.encode("latin-1", "replace").decode("latin-1")


def write_pdf(
    transactions: Iterable[Transaction],
    target: str | Path,
    *,
    range_name: str | None = None,
    generated_at: datetime | None = None,
) -> int:
    """Render the report to ``target``; return the number of transaction rows."""

    generated_at = generated_at or datetime.now()
    rows = pdf_table_rows(transactions)

    pdf = FPDF()
    pdf.add_page()
    pdf.set_font("Helvetica", size=14)
    pdf.cell(0, 8, _latin1(pdf_title(range_name)), new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", size=10)
    pdf.cell(0, 6, f"Generated on: {generated_at:%d/%m/%Y %H:%M}", new_x="LMARGIN", new_y="NEXT")
    pdf.ln(2)

    heading = FontFace(emphasis="BOLD", color=(255, 255, 255), fill_color=_PDF_HEADING_FILL)
    with pdf.table(headings_style=heading) as table:
        for values in rows:
            row = table.row()
            for value in values:
                row.cell(_latin1(value))

    pdf.output(str(target))
    return len(rows) - 1


def export_filename(
    range_name: str | None,
    today: date | datetime | None = None,
    fmt: ExportFormat = "csv",
) -> str:
    today = today or datetime.now()
    return f"export_{range_name or 'custom'}_{today:%Y-%m-%d}.{fmt}"


__all__ = [
    "ExportFormat",
    "EXPORT_FORMATS",
    "CSV_HEADER",
    "CURRENCY",
    "write_csv",
    "pdf_title",
    "pdf_table_rows",
    "write_pdf",
    "export_filename",
]
