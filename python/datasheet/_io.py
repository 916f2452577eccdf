"""Import and export: CSV text and .xlsx workbooks.

Exports always write display values, so formulas are materialized to what
the sheet shows.  Imports bring raw text back in, formulas included.
"""

from __future__ import annotations

import csv
import io
import logging
import math
import os
from typing import Any

import openpyxl
from openpyxl.styles import Font

from datasheet._sheet import MAX_COLUMNS, MAX_ROWS, DataSheet
from datasheet.calc._arith import format_number
from datasheet.calc._functions import to_number

logger = logging.getLogger(__name__)


def _normalize(rows: list[list[str]]) -> list[list[str]]:
    """Pad ragged rows to the widest one, trimming to the sheet limits."""
    if len(rows) > MAX_ROWS:
        logger.warning("Import truncated from %d to %d rows", len(rows), MAX_ROWS)
        rows = rows[:MAX_ROWS]
    width = min(max((len(r) for r in rows), default=1), MAX_COLUMNS)
    if width == 0:
        width = 1
    return [r[:width] + [""] * (width - len(r[:width])) for r in rows]


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def parse_csv(text: str) -> DataSheet:
    """Build a sheet from CSV text; empty lines are skipped."""
    rows = [row for row in csv.reader(io.StringIO(text)) if row]
    if not rows:
        raise ValueError("CSV contains no rows")
    return DataSheet(rows=_normalize(rows))


def read_csv(path: str | os.PathLike[str], encoding: str = "utf-8") -> DataSheet:
    """Load a CSV file into a new sheet."""
    with open(path, newline="", encoding=encoding) as f:
        sheet = parse_csv(f.read())
    logger.info("Imported %dx%d sheet from %s", sheet.n_cols, sheet.n_rows, path)
    return sheet


def to_csv(sheet: DataSheet) -> str:
    """CSV text of the sheet's display values."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\r\n")
    writer.writerows(sheet.iter_display())
    return buf.getvalue()


def write_csv(sheet: DataSheet, path: str | os.PathLike[str], encoding: str = "utf-8") -> None:
    """Write the sheet's display values to a CSV file."""
    with open(path, "w", newline="", encoding=encoding) as f:
        f.write(to_csv(sheet))
    logger.info("Exported %dx%d sheet to %s", sheet.n_cols, sheet.n_rows, path)


# ---------------------------------------------------------------------------
# xlsx (openpyxl)
# ---------------------------------------------------------------------------


def _excel_value(text: str) -> Any:
    """Numbers in canonical form go out as numbers; everything else as text."""
    num = to_number(text)
    if text and math.isfinite(num) and format_number(num) == text:
        return int(num) if num.is_integer() else num
    return text


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return format_number(value)
    return str(value)


def save_xlsx(sheet: DataSheet, path: str | os.PathLike[str], title: str = "Sheet") -> None:
    """Write display values to a single-sheet workbook; header rows in bold."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = title
    header_rows = set(sheet.header_rows)
    bold = Font(bold=True)
    for r, values in enumerate(sheet.iter_display()):
        for c, text in enumerate(values):
            if text == "":
                continue
            cell = ws.cell(row=r + 1, column=c + 1, value=_excel_value(text))
            if isinstance(cell.value, str) and cell.value.startswith("="):
                # display text, not a formula
                cell.data_type = "s"
            if r in header_rows:
                cell.font = bold
    wb.save(path)
    logger.info("Exported %dx%d sheet to %s", sheet.n_cols, sheet.n_rows, path)


def load_xlsx(path: str | os.PathLike[str]) -> DataSheet:
    """Load the active worksheet of an .xlsx file; formulas keep their ``=`` text."""
    wb = openpyxl.load_workbook(path)
    try:
        ws = wb.active
        rows = [[_cell_text(v) for v in row] for row in ws.iter_rows(values_only=True)]
    finally:
        wb.close()
    if not rows:
        rows = [[""]]
    sheet = DataSheet(rows=_normalize(rows))
    logger.info("Imported %dx%d sheet from %s", sheet.n_cols, sheet.n_rows, path)
    return sheet
