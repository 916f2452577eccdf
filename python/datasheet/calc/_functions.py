"""Error vocabulary, number coercion and the builtin function library."""

from __future__ import annotations

import math
import re
from collections.abc import Callable
from decimal import ROUND_HALF_UP, Decimal

from datasheet._utils import parse_ref
from datasheet.calc._arith import format_number
from datasheet.calc._parser import is_range_arg, match_function_call, unquote
from datasheet.calc._protocol import ArgResolver

# ---------------------------------------------------------------------------
# Error tokens: rendered verbatim in the cell
# ---------------------------------------------------------------------------

ERR = "#ERR!"
DIV0 = "#DIV/0!"
CIRC = "#CIRC!"
ARG = "#ARG!"
_NAME_PREFIX = "#NAME?("

ERROR_TOKENS = frozenset({ERR, DIV0, CIRC, ARG})


def name_error(func_name: str) -> str:
    """``#NAME?(FOO)`` for an unknown function ``FOO``."""
    return f"{_NAME_PREFIX}{func_name})"


def is_error(value: str) -> bool:
    """Return True if *value* is one of the error tokens."""
    return value in ERROR_TOKENS or (value.startswith(_NAME_PREFIX) and value.endswith(")"))


def first_error(*values: str) -> str | None:
    """Return the first error token found in *values*, or None."""
    for v in values:
        if is_error(v):
            return v
    return None


# ---------------------------------------------------------------------------
# Number coercion
# ---------------------------------------------------------------------------

_DECIMAL_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_INFINITY_RE = re.compile(r"([+-]?)Infinity")
_RADIX_RE = re.compile(r"0([xXoObB])([0-9A-Za-z]+)")
_RADIX_BASES = {"x": 16, "o": 8, "b": 2}


def to_number(text: str) -> float:
    """Numeric value of a display string; NaN when it is not a number.

    Blank (or whitespace-only) text counts as 0.  Accepts decimals with an
    optional exponent, ``Infinity`` and ``0x``/``0o``/``0b`` integers.
    """
    s = text.strip()
    if not s:
        return 0.0
    if _DECIMAL_RE.fullmatch(s):
        return float(s)
    m = _INFINITY_RE.fullmatch(s)
    if m:
        return -math.inf if m.group(1) == "-" else math.inf
    m = _RADIX_RE.fullmatch(s)
    if m:
        try:
            return float(int(m.group(2), _RADIX_BASES[m.group(1).lower()]))
        except ValueError:
            return math.nan
    return math.nan


# ---------------------------------------------------------------------------
# Builtins.  Each takes the raw argument strings and the evaluator's
# resolver, and returns a display string.
# ---------------------------------------------------------------------------

BuiltinFunction = Callable[[list[str], ArgResolver], str]


def _builtin_sum(args: list[str], ctx: ArgResolver) -> str:
    return format_number(sum(ctx.gather_numbers(args)))


def _builtin_average(args: list[str], ctx: ArgResolver) -> str:
    nums = ctx.gather_numbers(args)
    if not nums:
        return "0"
    return format_number(sum(nums) / len(nums))


def _builtin_min(args: list[str], ctx: ArgResolver) -> str:
    nums = ctx.gather_numbers(args)
    if not nums:
        return "0"
    return format_number(min(nums))


def _builtin_max(args: list[str], ctx: ArgResolver) -> str:
    nums = ctx.gather_numbers(args)
    if not nums:
        return "0"
    return format_number(max(nums))


def _builtin_count(args: list[str], ctx: ArgResolver) -> str:
    """COUNT - counts numeric values only."""
    return str(len(ctx.gather_numbers(args)))


def _round_half_up(value: float, decimals: float) -> float:
    if math.isnan(decimals):
        digits = 0
    else:
        digits = int(decimals)  # truncates toward zero
    if digits < 0 or digits > 100:
        raise ValueError(f"ROUND: decimals out of range: {decimals}")
    if not math.isfinite(value) or abs(value) >= 1e21:
        return value
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


def _builtin_round(args: list[str], ctx: ArgResolver) -> str:
    if not args:
        return ARG
    value = to_number(ctx.resolve(args[0]))
    decimals = to_number(ctx.resolve(args[1])) if len(args) > 1 else 0.0
    return format_number(_round_half_up(value, decimals))


def _builtin_abs(args: list[str], ctx: ArgResolver) -> str:
    if not args:
        return ARG
    return format_number(abs(to_number(ctx.resolve(args[0]))))


# lhs OP rhs, two-character operators tried first
_COMPARISON_RE = re.compile(r"^(.+?)\s*(>=|<=|!=|<>|=|>|<)\s*(.+)$")


def _compare(left: str, right: str, op: str) -> bool:
    """Compare both sides as numbers.

    Text is NaN, so any comparison with it is false except ``!=``/``<>``.
    """
    lv, rv = to_number(left), to_number(right)
    if op == ">":
        return lv > rv
    if op == "<":
        return lv < rv
    if op == ">=":
        return lv >= rv
    if op == "<=":
        return lv <= rv
    if op == "=":
        return lv == rv
    return lv != rv  # != and <>


def _builtin_if(args: list[str], ctx: ArgResolver) -> str:
    if len(args) < 2:
        return ARG
    condition = args[0]
    m = _COMPARISON_RE.match(condition)
    if m:
        truthy = _compare(ctx.resolve(m.group(1)), ctx.resolve(m.group(3)), m.group(2))
    else:
        # NaN counts as true, like any other non-zero value
        truthy = to_number(ctx.resolve(condition)) != 0
    if truthy:
        return ctx.resolve(args[1])
    return ctx.resolve(args[2]) if len(args) > 2 else ""


def _builtin_concat(args: list[str], ctx: ArgResolver) -> str:
    parts: list[str] = []
    for arg in args:
        if is_range_arg(arg):
            parts.extend(ctx.range_strings(arg))
            continue
        literal = unquote(arg)
        if literal is not None:
            parts.append(literal)
        elif parse_ref(arg) is not None or match_function_call(arg) is not None:
            parts.append(ctx.resolve(arg))
        else:
            parts.append(arg)
    return "".join(parts)


_BUILTINS: dict[str, BuiltinFunction] = {
    "SUM": _builtin_sum,
    "AVG": _builtin_average,
    "AVERAGE": _builtin_average,
    "MIN": _builtin_min,
    "MAX": _builtin_max,
    "COUNT": _builtin_count,
    "ROUND": _builtin_round,
    "ABS": _builtin_abs,
    "IF": _builtin_if,
    "CONCAT": _builtin_concat,
}


class FunctionRegistry:
    """Closed lookup table of the builtin functions.

    Names are case-insensitive.  Anything not listed evaluates to
    ``#NAME?(<name>)``.
    """

    __slots__ = ("_functions",)

    def __init__(self) -> None:
        self._functions: dict[str, BuiltinFunction] = dict(_BUILTINS)

    def get(self, name: str) -> BuiltinFunction | None:
        return self._functions.get(name.upper())

    def has(self, name: str) -> bool:
        return name.upper() in self._functions

    @property
    def supported_functions(self) -> frozenset[str]:
        return frozenset(self._functions.keys())
