"""Tests for the builtin function library and number coercion."""

from __future__ import annotations

import math

from datasheet.calc._evaluator import FormulaEvaluator
from datasheet.calc._functions import (
    ARG,
    ERR,
    FunctionRegistry,
    first_error,
    is_error,
    name_error,
    to_number,
)
from datasheet.calc._protocol import ArgResolver


def _column(*values: str) -> list[list[str]]:
    """Single-column grid: A1, A2, ..."""
    return [[v] for v in values]


class TestAggregates:
    def test_sum_skips_text(self) -> None:
        ev = FormulaEvaluator(_column("5", "x", "7"))
        assert ev.evaluate("=SUM(A1:A3)") == "12"

    def test_count_numeric_only(self) -> None:
        ev = FormulaEvaluator(_column("5", "x", "7"))
        assert ev.evaluate("=COUNT(A1:A3)") == "2"

    def test_average(self) -> None:
        ev = FormulaEvaluator(_column("5", "x", "7"))
        assert ev.evaluate("=AVG(A1:A3)") == "6"
        assert ev.evaluate("=AVERAGE(A1:A3)") == "6"

    def test_min_max(self) -> None:
        ev = FormulaEvaluator(_column("5", "-2", "7"))
        assert ev.evaluate("=MIN(A1:A3)") == "-2"
        assert ev.evaluate("=MAX(A1:A3)") == "7"

    def test_literals_and_ranges_mixed(self) -> None:
        ev = FormulaEvaluator(_column("5", "x", "7"))
        assert ev.evaluate("=SUM(A1:A3, 10)") == "22"
        assert ev.evaluate("=SUM(A1, A3)") == "12"

    def test_blank_cells_count_as_zero(self) -> None:
        ev = FormulaEvaluator(_column("4", ""))
        assert ev.evaluate("=COUNT(A1:A2)") == "2"
        assert ev.evaluate("=AVG(A1:A2)") == "2"

    def test_no_numbers(self) -> None:
        ev = FormulaEvaluator(_column("x"))
        assert ev.evaluate("=SUM()") == "0"
        assert ev.evaluate("=AVG(A1)") == "0"
        assert ev.evaluate("=MIN(A1)") == "0"
        assert ev.evaluate("=MAX(A1)") == "0"

    def test_lowercase_name(self) -> None:
        ev = FormulaEvaluator(_column("1", "2"))
        assert ev.evaluate("=sum(a1:a2)") == "3"

    def test_formula_cells_in_range(self) -> None:
        ev = FormulaEvaluator(_column("2", "=A1*3", "=SUM(A1:A2)"))
        assert ev.evaluate("=SUM(A1:A3)") == "16"


class TestRound:
    def test_default_zero_places(self) -> None:
        ev = FormulaEvaluator(_column("2.5"))
        assert ev.evaluate("=ROUND(A1)") == "3"

    def test_half_away_from_zero(self) -> None:
        ev = FormulaEvaluator(_column("-2.5", "1.25"))
        assert ev.evaluate("=ROUND(A1)") == "-3"
        assert ev.evaluate("=ROUND(A2, 1)") == "1.3"

    def test_places(self) -> None:
        ev = FormulaEvaluator(_column("3.14159"))
        assert ev.evaluate("=ROUND(A1, 2)") == "3.14"

    def test_missing_argument(self) -> None:
        ev = FormulaEvaluator(_column("1"))
        assert ev.evaluate("=ROUND()") == ARG

    def test_places_out_of_range(self) -> None:
        ev = FormulaEvaluator(_column("1"))
        assert ev.evaluate("=ROUND(A1, 200)") == ERR


class TestAbs:
    def test_reference(self) -> None:
        ev = FormulaEvaluator(_column("-2.5"))
        assert ev.evaluate("=ABS(A1)") == "2.5"

    def test_literal(self) -> None:
        ev = FormulaEvaluator(_column(""))
        assert ev.evaluate("=ABS(-4)") == "4"

    def test_missing_argument(self) -> None:
        ev = FormulaEvaluator(_column(""))
        assert ev.evaluate("=ABS()") == ARG

    def test_text(self) -> None:
        ev = FormulaEvaluator(_column("abc"))
        assert ev.evaluate("=ABS(A1)") == "NaN"


class TestIf:
    def test_true_branch(self) -> None:
        ev = FormulaEvaluator(_column("20"))
        assert ev.evaluate('=IF(A1>10, "big", "small")') == "big"

    def test_false_branch(self) -> None:
        ev = FormulaEvaluator(_column("5"))
        assert ev.evaluate('=IF(A1>10, "big", "small")') == "small"

    def test_missing_else(self) -> None:
        ev = FormulaEvaluator(_column("5"))
        assert ev.evaluate('=IF(A1>10, "big")') == ""

    def test_two_char_operators(self) -> None:
        ev = FormulaEvaluator(_column("10"))
        assert ev.evaluate('=IF(A1>=10, "y", "n")') == "y"
        assert ev.evaluate('=IF(A1<>10, "y", "n")') == "n"
        assert ev.evaluate('=IF(A1!=9, "y", "n")') == "y"

    def test_text_compares_as_nan(self) -> None:
        ev = FormulaEvaluator([["abc", "b", "a"]])
        assert ev.evaluate('=IF(A1="abc", "yes", "no")') == "no"
        assert ev.evaluate('=IF(B1>C1, "yes", "no")') == "no"
        assert ev.evaluate('=IF(B1<C1, "yes", "no")') == "no"
        assert ev.evaluate('=IF(A1!=A1, "yes", "no")') == "yes"
        assert ev.evaluate('=IF(A1<>"abc", "yes", "no")') == "yes"

    def test_numeric_text_compares_as_number(self) -> None:
        ev = FormulaEvaluator(_column("3.0"))
        assert ev.evaluate('=IF(A1="3", "yes", "no")') == "yes"
        assert ev.evaluate("=IF(A1>=3, 1, 0)") == "1"

    def test_truthiness_without_operator(self) -> None:
        ev = FormulaEvaluator(_column("0", "3"))
        assert ev.evaluate('=IF(A1, "y", "n")') == "n"
        assert ev.evaluate('=IF(A2, "y", "n")') == "y"

    def test_branch_expression_evaluated(self) -> None:
        ev = FormulaEvaluator(_column("5"))
        assert ev.evaluate("=IF(A1>1, A1*2, 0)") == "10"

    def test_branch_reference(self) -> None:
        ev = FormulaEvaluator([["1", "yes", "no"]])
        assert ev.evaluate("=IF(A1=1, B1, C1)") == "yes"

    def test_too_few_arguments(self) -> None:
        ev = FormulaEvaluator(_column("1"))
        assert ev.evaluate("=IF(A1>0)") == ARG


class TestConcat:
    def test_literals_and_references(self) -> None:
        ev = FormulaEvaluator([["", "x"]])
        assert ev.evaluate('=CONCAT("a", B1, "c")') == "axc"

    def test_range(self) -> None:
        ev = FormulaEvaluator(_column("5", "x", "7"))
        assert ev.evaluate("=CONCAT(A1:A3)") == "5x7"

    def test_bare_text(self) -> None:
        ev = FormulaEvaluator(_column(""))
        assert ev.evaluate("=CONCAT(hello, -)") == "hello-"

    def test_quoted_comma(self) -> None:
        ev = FormulaEvaluator(_column("b"))
        assert ev.evaluate('=CONCAT("a,", A1)') == "a,b"

    def test_nested_call(self) -> None:
        ev = FormulaEvaluator(_column("1", "2"))
        assert ev.evaluate('=CONCAT("total ", SUM(A1:A2))') == "total 3"

    def test_formula_cells_in_range(self) -> None:
        ev = FormulaEvaluator(_column("=1+1", "b"))
        assert ev.evaluate("=CONCAT(A1:A2)") == "2b"

    def test_empty(self) -> None:
        ev = FormulaEvaluator(_column(""))
        assert ev.evaluate("=CONCAT()") == ""


class TestUnknownFunction:
    def test_name_error(self) -> None:
        ev = FormulaEvaluator(_column("1"))
        assert ev.evaluate("=FOO(A1)") == "#NAME?(FOO)"

    def test_name_upper_cased(self) -> None:
        ev = FormulaEvaluator(_column("1"))
        assert ev.evaluate("=vlookup(A1)") == name_error("VLOOKUP")


class TestRegistry:
    def test_lookup_case_insensitive(self) -> None:
        reg = FunctionRegistry()
        assert reg.has("sum")
        assert reg.get("Concat") is not None

    def test_unknown(self) -> None:
        reg = FunctionRegistry()
        assert not reg.has("VLOOKUP")
        assert reg.get("VLOOKUP") is None

    def test_vocabulary(self) -> None:
        assert FunctionRegistry().supported_functions == frozenset({
            "SUM", "AVG", "AVERAGE", "MIN", "MAX", "COUNT",
            "ROUND", "ABS", "IF", "CONCAT",
        })

    def test_builtin_with_custom_resolver(self) -> None:
        class Fixed:
            def resolve(self, arg: str) -> str:
                return {"X": "-7"}.get(arg, arg)

            def gather_numbers(self, args: list[str]) -> list[float]:
                return [1.0, 2.0]

            def range_strings(self, arg: str) -> list[str]:
                return []

        ctx = Fixed()
        assert isinstance(ctx, ArgResolver)
        reg = FunctionRegistry()
        assert reg.get("ABS")(["X"], ctx) == "7"  # type: ignore[misc]
        assert reg.get("SUM")(["anything"], ctx) == "3"  # type: ignore[misc]


class TestErrorTokens:
    def test_is_error(self) -> None:
        assert is_error("#ERR!")
        assert is_error("#DIV/0!")
        assert is_error("#CIRC!")
        assert is_error("#ARG!")
        assert is_error("#NAME?(FOO)")
        assert not is_error("hello")
        assert not is_error("")

    def test_first_error(self) -> None:
        assert first_error("1", "#CIRC!", "#ERR!") == "#CIRC!"
        assert first_error("1", "2") is None


class TestToNumber:
    def test_blank_is_zero(self) -> None:
        assert to_number("") == 0
        assert to_number("   ") == 0

    def test_decimals(self) -> None:
        assert to_number(" 3 ") == 3
        assert to_number("-1.5") == -1.5
        assert to_number("1e3") == 1000
        assert to_number(".5") == 0.5

    def test_radix_prefixes(self) -> None:
        assert to_number("0x10") == 16
        assert to_number("0b101") == 5
        assert math.isnan(to_number("0xZZ"))

    def test_infinity(self) -> None:
        assert to_number("Infinity") == math.inf
        assert to_number("-Infinity") == -math.inf

    def test_not_numbers(self) -> None:
        assert math.isnan(to_number("abc"))
        assert math.isnan(to_number("12px"))
        assert math.isnan(to_number("#ERR!"))
