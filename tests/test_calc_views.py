"""Tests for filtering, sorting and drag-fill over evaluated values."""

from __future__ import annotations

import pytest

from datasheet._utils import Bounds, Coordinate
from datasheet.calc._evaluator import FormulaEvaluator
from datasheet.calc._protocol import SortSpec
from datasheet.calc._views import (
    DisplayFn,
    clear_range,
    compare_display,
    fill_down,
    fill_range,
    visible_row_indices,
)


def _display(rows: list[list[str]]) -> DisplayFn:
    """Display function that evaluates formulas on every call."""
    ev = FormulaEvaluator(rows)

    def display(r: int, c: int) -> str:
        raw = rows[r][c]
        return ev.evaluate(raw) if raw.startswith("=") else raw

    return display


def _visible(
    rows: list[list[str]],
    filters: dict[int, str] | None = None,
    sort: SortSpec | None = None,
) -> list[int]:
    return visible_row_indices(rows, filters or {}, sort, _display(rows))


class TestFilter:
    def test_filter_reads_display_value(self) -> None:
        rows = [["=1+1"], ["3"], ["22"]]
        assert _visible(rows, {0: "2"}) == [0, 2]

    def test_case_insensitive_substring(self) -> None:
        rows = [["Apple"], ["banana"], ["PINEAPPLE"]]
        assert _visible(rows, {0: "APP"}) == [0, 2]

    def test_filter_text_trimmed(self) -> None:
        rows = [["Apple"], ["banana"]]
        assert _visible(rows, {0: "  ban "}) == [1]

    def test_blank_filter_ignored(self) -> None:
        rows = [["a"], ["b"]]
        assert _visible(rows, {0: "   "}) == [0, 1]

    def test_filters_combine(self) -> None:
        rows = [["a", "1"], ["a", "2"], ["b", "1"]]
        assert _visible(rows, {0: "a", 1: "1"}) == [0]

    def test_filter_beyond_grid_ignored(self) -> None:
        rows = [["a"], ["b"]]
        assert _visible(rows, {5: "zzz"}) == [0, 1]


class TestSort:
    def test_numeric_ascending(self) -> None:
        rows = [["10"], ["9"], ["100"]]
        assert _visible(rows, sort=SortSpec(0, "asc")) == [1, 0, 2]

    def test_numeric_descending(self) -> None:
        rows = [["10"], ["9"], ["100"]]
        assert _visible(rows, sort=SortSpec(0, "desc")) == [2, 0, 1]

    def test_natural_order(self) -> None:
        rows = [["item10"], ["item2"], ["Item1"]]
        assert _visible(rows, sort=SortSpec(0)) == [2, 1, 0]

    def test_numbers_before_text(self) -> None:
        rows = [["b"], ["2"], ["a"]]
        assert _visible(rows, sort=SortSpec(0)) == [1, 2, 0]

    def test_ties_keep_order(self) -> None:
        rows = [["a"], ["A"], ["á"]]
        assert _visible(rows, sort=SortSpec(0)) == [0, 1, 2]

    def test_sort_reads_display_value(self) -> None:
        rows = [["=5*2"], ["3"]]
        assert _visible(rows, sort=SortSpec(0)) == [1, 0]

    def test_filter_then_sort(self) -> None:
        rows = [["x", "3"], ["y", "1"], ["x", "2"]]
        assert _visible(rows, {0: "x"}, SortSpec(1)) == [2, 0]

    def test_compare_display(self) -> None:
        assert compare_display("2", "10") == -1
        assert compare_display("a", "B") == -1
        assert compare_display("x", "x") == 0
        assert compare_display("10", "9") == 1

    def test_sort_spec_validation(self) -> None:
        with pytest.raises(ValueError):
            SortSpec(0, "up")
        with pytest.raises(ValueError):
            SortSpec(-1)


class TestFillRange:
    def test_tiles_pattern_downward(self) -> None:
        rows = [["1"], ["2"], [""], [""], [""]]
        result = fill_range(rows, Bounds(0, 1, 0, 0), Coordinate(4, 0))
        assert [r[0] for r in result.rows] == ["1", "2", "1", "2", "1"]
        assert result.bounds == Bounds(0, 4, 0, 0)
        assert result.expanded

    def test_tiles_pattern_upward(self) -> None:
        rows = [[""], [""], [""], ["a"], ["b"]]
        result = fill_range(rows, Bounds(3, 4, 0, 0), Coordinate(0, 0))
        assert [r[0] for r in result.rows] == ["b", "a", "b", "a", "b"]

    def test_tiles_horizontally(self) -> None:
        rows = [["x", "y", "", ""]]
        result = fill_range(rows, Bounds(0, 0, 0, 1), Coordinate(0, 3))
        assert result.rows == [["x", "y", "x", "y"]]

    def test_copies_raw_formula_text(self) -> None:
        rows = [["=A1"], [""]]
        result = fill_range(rows, Bounds(0, 0, 0, 0), Coordinate(1, 0))
        assert result.rows[1][0] == "=A1"

    def test_target_inside_source(self) -> None:
        rows = [["1"], ["2"]]
        result = fill_range(rows, Bounds(0, 1, 0, 0), Coordinate(1, 0))
        assert not result.expanded
        assert result.bounds == Bounds(0, 1, 0, 0)
        assert result.rows == rows

    def test_cells_beyond_grid_skipped(self) -> None:
        rows = [["1"], [""]]
        result = fill_range(rows, Bounds(0, 0, 0, 0), Coordinate(5, 0))
        assert result.rows == [["1"], ["1"]]

    def test_input_not_mutated(self) -> None:
        rows = [["1"], [""]]
        fill_range(rows, Bounds(0, 0, 0, 0), Coordinate(1, 0))
        assert rows == [["1"], [""]]


class TestFillDownAndClear:
    def test_fill_down(self) -> None:
        rows = [["a", "b"], ["", ""], ["", "z"]]
        out = fill_down(rows, Bounds(0, 2, 0, 0))
        assert [r[0] for r in out] == ["a", "a", "a"]
        assert out[2][1] == "z"

    def test_clear_range(self) -> None:
        rows = [["a", "b"], ["c", "d"]]
        out = clear_range(rows, Bounds(0, 5, 1, 5))
        assert out == [["a", ""], ["c", ""]]
        assert rows == [["a", "b"], ["c", "d"]]
