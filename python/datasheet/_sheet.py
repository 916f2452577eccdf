"""DataSheet: the grid store, raw cell text plus column/row metadata.

Every change to cell content replaces the row data and bumps ``version``;
the sheet's :class:`EvaluationCache` compares versions on each read, so a
display value computed before an edit is never served after it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from datasheet._utils import Bounds, Coordinate, column_letter, parse_ref
from datasheet.calc._cache import EvaluationCache
from datasheet.calc._protocol import SortSpec
from datasheet.calc._views import clear_range, fill_down, fill_range, visible_row_indices

logger = logging.getLogger(__name__)

DEFAULT_COLUMNS = 6
DEFAULT_ROWS = 20
MAX_COLUMNS = 702  # A..ZZ
MAX_ROWS = 10_000
COLUMN_TYPES = ("text", "number")


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


@dataclass
class ColumnDef:
    """Column header letter and a type hint (not used by the evaluator)."""

    name: str
    type: str = "text"

    def __post_init__(self) -> None:
        if self.type not in COLUMN_TYPES:
            raise ValueError(f"Unknown column type: {self.type!r}")


def _lettered(types: Sequence[str]) -> list[ColumnDef]:
    return [ColumnDef(column_letter(i), t) for i, t in enumerate(types)]


class DataSheet:
    """A rectangular grid of cell strings with formulas, filters and sorting.

    Usage::

        sheet = DataSheet.empty(cols=3, rows=5)
        sheet["A1"] = "2"
        sheet["A2"] = "=A1*10"
        sheet.display(1, 0)   # "20"
    """

    __slots__ = (
        "_columns", "_rows", "_version", "_cache",
        "_filters", "_sort", "_header_rows",
        "_frozen_rows", "_frozen_cols",
        "column_widths", "row_heights",
    )

    def __init__(
        self,
        columns: Sequence[ColumnDef] | None = None,
        rows: Sequence[Sequence[str]] | None = None,
    ) -> None:
        grid = [list(r) for r in rows] if rows is not None else [[""]]
        if columns is None:
            width = max((len(r) for r in grid), default=1)
            columns = _lettered(["text"] * width)
        if not columns or not grid:
            raise ValueError("A sheet needs at least one row and one column")
        for i, row in enumerate(grid):
            if len(row) != len(columns):
                raise ValueError(
                    f"Row {i} has {len(row)} cells, expected {len(columns)}"
                )
        self._columns: list[ColumnDef] = list(columns)
        self._rows: list[list[str]] = grid
        self._version = 0
        self._cache = EvaluationCache()
        self._filters: dict[int, str] = {}
        self._sort: SortSpec | None = None
        self._header_rows: set[int] = set()
        self._frozen_rows = 0
        self._frozen_cols = 0
        # Pixel sizes keyed by index; stored and persisted, never interpreted.
        self.column_widths: dict[int, int] = {}
        self.row_heights: dict[int, int] = {}

    @classmethod
    def empty(cls, cols: int = DEFAULT_COLUMNS, rows: int = DEFAULT_ROWS) -> DataSheet:
        """A blank sheet, clamped to 1..702 columns and 1..10000 rows."""
        n_cols = _clamp(cols, 1, MAX_COLUMNS)
        n_rows = _clamp(rows, 1, MAX_ROWS)
        if (n_cols, n_rows) != (cols, rows):
            logger.debug("Clamped sheet size %dx%d to %dx%d", cols, rows, n_cols, n_rows)
        return cls(
            columns=_lettered(["text"] * n_cols),
            rows=[[""] * n_cols for _ in range(n_rows)],
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def columns(self) -> tuple[ColumnDef, ...]:
        return tuple(self._columns)

    @property
    def rows(self) -> Sequence[Sequence[str]]:
        """Raw cell text.  Treat as read-only; edit through the sheet."""
        return self._rows

    @property
    def n_rows(self) -> int:
        return len(self._rows)

    @property
    def n_cols(self) -> int:
        return len(self._columns)

    @property
    def version(self) -> int:
        """Bumped on every change to row data."""
        return self._version

    @property
    def cache(self) -> EvaluationCache:
        return self._cache

    @property
    def filters(self) -> dict[int, str]:
        return dict(self._filters)

    @property
    def sort(self) -> SortSpec | None:
        return self._sort

    @property
    def header_rows(self) -> list[int]:
        return sorted(self._header_rows)

    @property
    def frozen_rows(self) -> int:
        return self._frozen_rows

    @property
    def frozen_cols(self) -> int:
        return self._frozen_cols

    # ------------------------------------------------------------------
    # Cell access
    # ------------------------------------------------------------------

    def _commit(self, rows: list[list[str]]) -> None:
        self._rows = rows
        self._version += 1

    def _check(self, row: int, col: int) -> None:
        if not (0 <= row < self.n_rows and 0 <= col < self.n_cols):
            raise IndexError(
                f"Cell ({row}, {col}) outside {self.n_rows}x{self.n_cols} sheet"
            )

    @staticmethod
    def _a1(key: str) -> Coordinate:
        coord = parse_ref(key)
        if coord is None:
            raise KeyError(f"Invalid cell reference: {key!r}")
        return coord

    def get(self, row: int, col: int) -> str:
        """Raw text of a cell; ``""`` outside the grid."""
        if 0 <= row < self.n_rows and 0 <= col < self.n_cols:
            return self._rows[row][col]
        return ""

    def set(self, row: int, col: int, value: str) -> None:
        """Replace the raw text of one cell."""
        self._check(row, col)
        rows = list(self._rows)
        rows[row] = list(rows[row])
        rows[row][col] = value
        self._commit(rows)

    def __getitem__(self, key: str) -> str:
        """``sheet['A1']`` -> raw text."""
        coord = self._a1(key)
        return self.get(coord.row, coord.col)

    def __setitem__(self, key: str, value: str) -> None:
        """``sheet['A1'] = '=B1*2'``."""
        coord = self._a1(key)
        self.set(coord.row, coord.col, value)

    def display(self, row: int, col: int) -> str:
        """What the cell shows: literal text or the evaluated formula."""
        return self._cache.resolve(self._rows, self._version, Coordinate(row, col))

    def iter_display(self) -> Iterator[list[str]]:
        """Display values, one list per row."""
        for r in range(self.n_rows):
            yield [self.display(r, c) for c in range(self.n_cols)]

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def resize(self, cols: int, rows: int) -> None:
        """Grow or shrink the grid, keeping overlapping content.

        Filters, sort, header rows and pixel sizes outside the new shape are
        dropped; frozen counts are clamped.
        """
        n_cols = _clamp(cols, 1, MAX_COLUMNS)
        n_rows = _clamp(rows, 1, MAX_ROWS)
        grid = [[self.get(r, c) for c in range(n_cols)] for r in range(n_rows)]
        types = [c.type for c in self._columns[:n_cols]]
        types += ["text"] * (n_cols - len(types))
        self._columns = _lettered(types)
        self._commit(grid)
        self._filters = {c: t for c, t in self._filters.items() if c < n_cols}
        if self._sort is not None and self._sort.col >= n_cols:
            self._sort = None
        self._header_rows = {r for r in self._header_rows if r < n_rows}
        self.column_widths = {c: w for c, w in self.column_widths.items() if c < n_cols}
        self.row_heights = {r: h for r, h in self.row_heights.items() if r < n_rows}
        self._frozen_rows = min(self._frozen_rows, max(n_rows - 1, 0))
        self._frozen_cols = min(self._frozen_cols, max(n_cols - 1, 0))

    def insert_row(self, at: int | None = None) -> None:
        """Insert a blank row before *at* (default: append)."""
        index = self.n_rows if at is None else _clamp(at, 0, self.n_rows)
        rows = [list(r) for r in self._rows]
        rows.insert(index, [""] * self.n_cols)
        self._header_rows = {r + 1 if r >= index else r for r in self._header_rows}
        self._commit(rows)

    def delete_row(self, index: int) -> None:
        """Remove a row; the last remaining row cannot be deleted."""
        if self.n_rows <= 1:
            return
        if not 0 <= index < self.n_rows:
            raise IndexError(f"Row {index} out of range")
        rows = [list(r) for i, r in enumerate(self._rows) if i != index]
        self._header_rows = {
            r - 1 if r > index else r for r in self._header_rows if r != index
        }
        self._commit(rows)

    def insert_column(self, at: int | None = None) -> None:
        """Insert a blank text column before *at* (default: append)."""
        index = self.n_cols if at is None else _clamp(at, 0, self.n_cols)
        types = [c.type for c in self._columns]
        types.insert(index, "text")
        self._columns = _lettered(types)
        rows = [list(r) for r in self._rows]
        for row in rows:
            row.insert(index, "")
        self._filters = {c + 1 if c >= index else c: t for c, t in self._filters.items()}
        if self._sort is not None and self._sort.col >= index:
            self._sort = SortSpec(self._sort.col + 1, self._sort.direction)
        self._commit(rows)

    def delete_column(self, index: int) -> None:
        """Remove a column; the last remaining column cannot be deleted."""
        if self.n_cols <= 1:
            return
        if not 0 <= index < self.n_cols:
            raise IndexError(f"Column {index} out of range")
        types = [c.type for i, c in enumerate(self._columns) if i != index]
        self._columns = _lettered(types)
        rows = [[v for i, v in enumerate(r) if i != index] for r in self._rows]
        self._filters = {
            c - 1 if c > index else c: t for c, t in self._filters.items() if c != index
        }
        if self._sort is not None:
            if self._sort.col == index:
                self._sort = None
            elif self._sort.col > index:
                self._sort = SortSpec(self._sort.col - 1, self._sort.direction)
        self._commit(rows)

    # ------------------------------------------------------------------
    # Range editing
    # ------------------------------------------------------------------

    def clear(self, bounds: Bounds) -> None:
        """Blank every cell in *bounds*."""
        self._commit(clear_range(self._rows, bounds))

    def fill(self, source: Bounds, target: Coordinate) -> Bounds:
        """Drag-fill *source* out to *target*; returns the covered selection."""
        result = fill_range(self._rows, source, target)
        if result.expanded:
            self._commit(result.rows)
        return result.bounds

    def fill_down(self, bounds: Bounds) -> None:
        """Copy the top-left cell of *bounds* over the rest of it."""
        self._commit(fill_down(self._rows, bounds))

    def paste(self, anchor: Coordinate, text: str) -> Bounds:
        """Paste a tab/newline separated block with its top-left at *anchor*.

        The grid grows (up to the size limits) to fit the block.  Returns
        the bounds of the pasted cells.
        """
        self._check(anchor.row, anchor.col)
        lines = text.replace("\r\n", "\n").split("\n")
        if len(lines) > 1 and lines[-1] == "":
            lines.pop()
        block = [line.split("\t") for line in lines]
        width = max(len(b) for b in block)

        n_rows = min(max(self.n_rows, anchor.row + len(block)), MAX_ROWS)
        n_cols = min(max(self.n_cols, anchor.col + width), MAX_COLUMNS)
        if n_cols > self.n_cols:
            types = [c.type for c in self._columns]
            self._columns = _lettered(types + ["text"] * (n_cols - len(types)))
        rows = [list(r) + [""] * (n_cols - len(r)) for r in self._rows]
        rows += [[""] * n_cols for _ in range(n_rows - len(rows))]

        for dr, values in enumerate(block):
            for dc, value in enumerate(values):
                r, c = anchor.row + dr, anchor.col + dc
                if r < n_rows and c < n_cols:
                    rows[r][c] = value
        self._commit(rows)
        return Bounds(
            top=anchor.row,
            bottom=min(anchor.row + len(block), n_rows) - 1,
            left=anchor.col,
            right=min(anchor.col + width, n_cols) - 1,
        )

    def copy(self, bounds: Bounds) -> str:
        """Display values of *bounds* as a tab/newline separated block."""
        return "\n".join(
            "\t".join(self.display(r, c) for c in range(bounds.left, bounds.right + 1))
            for r in range(bounds.top, bounds.bottom + 1)
        )

    # ------------------------------------------------------------------
    # View state (does not touch row data)
    # ------------------------------------------------------------------

    def set_filter(self, col: int, text: str) -> None:
        """Filter *col* by substring; blank text removes the filter."""
        if not 0 <= col < self.n_cols:
            raise IndexError(f"Column {col} out of range")
        if text.strip():
            self._filters[col] = text
        else:
            self._filters.pop(col, None)

    def clear_filters(self) -> None:
        self._filters = {}

    def set_sort(self, sort: SortSpec | None) -> None:
        if sort is not None and sort.col >= self.n_cols:
            raise IndexError(f"Column {sort.col} out of range")
        self._sort = sort

    def toggle_sort(self, col: int) -> SortSpec | None:
        """Cycle *col* through ascending, descending and unsorted."""
        current = self._sort
        if current is None or current.col != col:
            self.set_sort(SortSpec(col, "asc"))
        elif current.direction == "asc":
            self.set_sort(SortSpec(col, "desc"))
        else:
            self.set_sort(None)
        return self._sort

    def toggle_header_row(self, row: int) -> None:
        if not 0 <= row < self.n_rows:
            raise IndexError(f"Row {row} out of range")
        self._header_rows ^= {row}

    def set_frozen_rows(self, count: int) -> None:
        self._frozen_rows = _clamp(count, 0, max(self.n_rows - 1, 0))

    def set_frozen_cols(self, count: int) -> None:
        self._frozen_cols = _clamp(count, 0, max(self.n_cols - 1, 0))

    def visible_rows(self) -> list[int]:
        """Row indices after filtering and sorting on display values."""
        return visible_row_indices(self._rows, self._filters, self._sort, self.display)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        """Materialized table: column names, display rows and header rows."""
        return {
            "columns": [c.name for c in self._columns],
            "rows": list(self.iter_display()),
            "headerRows": self.header_rows,
        }

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready payload of the whole sheet (raw text, not display)."""
        payload: dict[str, Any] = {
            "columns": [{"name": c.name, "type": c.type} for c in self._columns],
            "rows": [list(r) for r in self._rows],
            "frozenRows": self._frozen_rows,
            "frozenCols": self._frozen_cols,
            "filters": {str(c): t for c, t in sorted(self._filters.items())},
            "sort": (
                {"col": self._sort.col, "direction": self._sort.direction}
                if self._sort is not None else None
            ),
        }
        if self.column_widths:
            payload["columnWidths"] = {str(k): v for k, v in self.column_widths.items()}
        if self.row_heights:
            payload["rowHeights"] = {str(k): v for k, v in self.row_heights.items()}
        if self._header_rows:
            payload["headerRows"] = self.header_rows
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> DataSheet:
        """Rebuild a sheet from :meth:`to_dict` output (or the same JSON shape)."""
        try:
            columns = [
                ColumnDef(str(c["name"]), str(c.get("type", "text")))
                for c in payload["columns"]
            ]
            rows = [[str(v) for v in r] for r in payload["rows"]]
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed sheet payload: {e}") from e
        sheet = cls(columns=columns, rows=rows)

        for key, text in (payload.get("filters") or {}).items():
            if str(text).strip() and int(key) < sheet.n_cols:
                sheet._filters[int(key)] = str(text)
        sort = payload.get("sort")
        if sort and int(sort["col"]) < sheet.n_cols:
            sheet.set_sort(SortSpec(int(sort["col"]), str(sort.get("direction", "asc"))))
        for r in payload.get("headerRows") or []:
            if 0 <= int(r) < sheet.n_rows:
                sheet._header_rows.add(int(r))
        sheet.column_widths = {int(k): v for k, v in (payload.get("columnWidths") or {}).items()}
        sheet.row_heights = {int(k): v for k, v in (payload.get("rowHeights") or {}).items()}
        sheet.set_frozen_rows(int(payload.get("frozenRows") or 0))
        sheet.set_frozen_cols(int(payload.get("frozenCols") or 0))
        return sheet


def resolve_cell_display(sheet: DataSheet, coord: Coordinate) -> str:
    """Cache-backed display value of *coord*."""
    return sheet.display(coord.row, coord.col)
