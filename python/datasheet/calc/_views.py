"""Views derived from evaluated values: filtering, sorting and drag-fill."""

from __future__ import annotations

import functools
import math
import re
import unicodedata
from collections.abc import Callable, Mapping, Sequence

from datasheet._utils import Bounds, Coordinate
from datasheet.calc._functions import to_number
from datasheet.calc._protocol import FillResult, SortSpec

DisplayFn = Callable[[int, int], str]

_DIGITS_RE = re.compile(r"(\d+)")


# ---------------------------------------------------------------------------
# Filtering & sorting
# ---------------------------------------------------------------------------


def _active_filters(filters: Mapping[int, str]) -> dict[int, str]:
    active: dict[int, str] = {}
    for col, text in filters.items():
        needle = str(text).strip().lower()
        if needle:
            active[col] = needle
    return active


def _natural_key(text: str) -> list[tuple[int, int, str]]:
    """Case- and accent-insensitive key where digit runs compare as numbers."""
    folded = unicodedata.normalize("NFKD", text.casefold())
    folded = "".join(ch for ch in folded if not unicodedata.combining(ch))
    key: list[tuple[int, int, str]] = []
    for part in _DIGITS_RE.split(folded):
        if not part:
            continue
        if part.isdigit():
            key.append((0, int(part), ""))
        else:
            key.append((1, 0, part))
    return key


def compare_display(a: str, b: str) -> int:
    """Numeric comparison when both values are numbers, natural order otherwise."""
    an, bn = to_number(a), to_number(b)
    if not math.isnan(an) and not math.isnan(bn):
        return (an > bn) - (an < bn)
    ak, bk = _natural_key(a), _natural_key(b)
    return (ak > bk) - (ak < bk)


def visible_row_indices(
    rows: Sequence[Sequence[str]],
    filters: Mapping[int, str],
    sort: SortSpec | None,
    display: DisplayFn,
) -> list[int]:
    """Indices of rows that pass every column filter, in sort order.

    Filters and sort keys both read *display* values, so formula cells
    filter and sort by what they show rather than by their raw text.
    """
    active = _active_filters(filters)
    n_cols = len(rows[0]) if rows else 0

    visible = [
        r for r in range(len(rows))
        if all(
            needle in display(r, col).lower()
            for col, needle in active.items()
            if col < n_cols
        )
    ]
    if sort is None:
        return visible

    col = sort.col
    sign = 1 if sort.direction == "asc" else -1

    def _cmp(a: int, b: int) -> int:
        return sign * compare_display(display(a, col), display(b, col))

    return sorted(visible, key=functools.cmp_to_key(_cmp))


# ---------------------------------------------------------------------------
# Fill propagation
# ---------------------------------------------------------------------------


def fill_range(
    rows: Sequence[Sequence[str]],
    source: Bounds,
    target: Coordinate,
) -> FillResult:
    """Tile the raw content of *source* over the rectangle reaching *target*.

    Every cell of the overall rectangle outside *source* takes the raw text
    of ``source.top + (r - source.top) mod height`` (likewise for columns),
    so patterns repeat in either direction.  Cells beyond the grid are
    skipped.
    """
    overall = source.union(target)
    if overall == source:
        return FillResult(rows=[list(r) for r in rows], bounds=source, expanded=False)

    new_rows = [list(r) for r in rows]
    n_rows = len(new_rows)
    n_cols = len(new_rows[0]) if new_rows else 0
    for coord in overall.coordinates():
        if source.contains(coord):
            continue
        if not (0 <= coord.row < n_rows and 0 <= coord.col < n_cols):
            continue
        src_row = source.top + (coord.row - source.top) % source.height
        src_col = source.left + (coord.col - source.left) % source.width
        if 0 <= src_row < n_rows and 0 <= src_col < n_cols:
            new_rows[coord.row][coord.col] = new_rows[src_row][src_col]
        else:
            new_rows[coord.row][coord.col] = ""
    return FillResult(rows=new_rows, bounds=overall, expanded=True)


def fill_down(rows: Sequence[Sequence[str]], bounds: Bounds) -> list[list[str]]:
    """Copy the top-left cell of *bounds* into every other cell of it."""
    new_rows = [list(r) for r in rows]
    n_rows = len(new_rows)
    n_cols = len(new_rows[0]) if new_rows else 0
    if not (0 <= bounds.top < n_rows and 0 <= bounds.left < n_cols):
        return new_rows
    value = new_rows[bounds.top][bounds.left]
    for coord in bounds.coordinates():
        if coord.row < n_rows and coord.col < n_cols:
            new_rows[coord.row][coord.col] = value
    return new_rows


def clear_range(rows: Sequence[Sequence[str]], bounds: Bounds) -> list[list[str]]:
    """Blank every cell of *bounds* that lies inside the grid."""
    new_rows = [list(r) for r in rows]
    n_rows = len(new_rows)
    n_cols = len(new_rows[0]) if new_rows else 0
    for coord in bounds.coordinates():
        if 0 <= coord.row < n_rows and 0 <= coord.col < n_cols:
            new_rows[coord.row][coord.col] = ""
    return new_rows
