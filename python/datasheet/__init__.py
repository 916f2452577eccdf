"""datasheet: a spreadsheet-style data grid with a small formula engine.

Usage::

    from datasheet import DataSheet, load_sheet

    sheet = DataSheet.empty(cols=3, rows=10)
    sheet["A1"] = "5"
    sheet["A2"] = "7"
    sheet["A3"] = "=SUM(A1:A2)"
    print(sheet.display(2, 0))   # "12"

    sheet = load_sheet("data.csv")
"""

import os

from datasheet._io import load_xlsx, parse_csv, read_csv, save_xlsx, to_csv, write_csv
from datasheet._sheet import (
    DEFAULT_COLUMNS,
    DEFAULT_ROWS,
    MAX_COLUMNS,
    MAX_ROWS,
    ColumnDef,
    DataSheet,
    resolve_cell_display,
)
from datasheet._utils import (
    Bounds,
    Coordinate,
    column_index,
    column_letter,
    parse_range,
    parse_ref,
    rowcol_to_a1,
)
from datasheet.calc import SortSpec, evaluate_formula

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "Bounds",
    "ColumnDef",
    "Coordinate",
    "DEFAULT_COLUMNS",
    "DEFAULT_ROWS",
    "DataSheet",
    "MAX_COLUMNS",
    "MAX_ROWS",
    "SortSpec",
    "column_index",
    "column_letter",
    "evaluate_formula",
    "load_sheet",
    "load_xlsx",
    "parse_csv",
    "parse_range",
    "parse_ref",
    "read_csv",
    "resolve_cell_display",
    "rowcol_to_a1",
    "save_xlsx",
    "to_csv",
    "write_csv",
]


def load_sheet(filename: str | os.PathLike[str]) -> DataSheet:
    """Open a .csv or .xlsx file as a DataSheet, chosen by extension."""
    ext = os.path.splitext(os.fspath(filename))[1].lower()
    if ext == ".csv":
        return read_csv(filename)
    if ext in (".xlsx", ".xlsm"):
        return load_xlsx(filename)
    raise ValueError(f"Unsupported file type: {ext or filename!r}")
