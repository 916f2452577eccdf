"""Safe arithmetic evaluation: a closed recursive descent grammar, no eval().

Grammar::

    Expr   := Term (('+' | '-') Term)*
    Term   := Factor (('*' | '/') Factor)*
    Factor := '(' Expr ')' | '-' Factor | Number
"""

from __future__ import annotations

import math
import re
from decimal import Decimal

_NUMBER_RE = re.compile(r"(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_WHITESPACE_RE = re.compile(r"\s+")


class FormulaSyntaxError(ValueError):
    """Raised when an arithmetic expression does not match the grammar."""


class _ArithmeticParser:
    __slots__ = ("_text", "_pos")

    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    def parse(self) -> float:
        result = self._expr()
        if self._pos != len(self._text):
            raise FormulaSyntaxError(
                f"Unexpected {self._text[self._pos]!r} at position {self._pos}"
            )
        return result

    def _peek(self) -> str:
        return self._text[self._pos] if self._pos < len(self._text) else ""

    def _expr(self) -> float:
        result = self._term()
        while self._peek() in ("+", "-"):
            op = self._text[self._pos]
            self._pos += 1
            term = self._term()
            result = result + term if op == "+" else result - term
        return result

    def _term(self) -> float:
        result = self._factor()
        while self._peek() in ("*", "/"):
            op = self._text[self._pos]
            self._pos += 1
            factor = self._factor()
            if op == "/":
                if factor == 0:
                    raise ZeroDivisionError("division by zero")
                result = result / factor
            else:
                result = result * factor
        return result

    def _factor(self) -> float:
        ch = self._peek()
        if ch == "(":
            self._pos += 1
            result = self._expr()
            if self._peek() != ")":
                raise FormulaSyntaxError("Unmatched parenthesis")
            self._pos += 1
            return result
        if ch == "-":
            self._pos += 1
            return -self._factor()
        m = _NUMBER_RE.match(self._text, self._pos)
        if not m:
            if not ch:
                raise FormulaSyntaxError("Unexpected end of expression")
            raise FormulaSyntaxError(f"Expected a number at position {self._pos}")
        self._pos = m.end()
        return float(m.group())


def evaluate_arithmetic(expr: str) -> float:
    """Evaluate *expr* and return the raw float.

    Raises ``ZeroDivisionError`` on division by zero and
    :class:`FormulaSyntaxError` on anything outside the grammar.
    """
    return _ArithmeticParser(_WHITESPACE_RE.sub("", expr)).parse()


def safe_eval_arithmetic(expr: str) -> str:
    """Evaluate *expr* and format the result for display.

    Integral results have no decimal point; fractional results are rounded
    to 10 decimal places to hide floating point noise.
    """
    result = evaluate_arithmetic(expr)
    if math.isfinite(result) and not result.is_integer():
        result = math.floor(result * 1e10 + 0.5) / 1e10
    return format_number(result)


def format_number(value: float) -> str:
    """Render a number the way the sheet displays it.

    ``3.0`` -> ``"3"``, ``0.5`` -> ``"0.5"``, ``1e-7`` -> ``"1e-7"``,
    ``nan`` -> ``"NaN"``, ``inf`` -> ``"Infinity"``.  Fixed notation is used
    between 1e-6 and 1e21, exponent notation outside that window.
    """
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))

    sign, digit_tuple, exponent = Decimal(repr(value)).as_tuple()
    digits = "".join(str(d) for d in digit_tuple).rstrip("0") or "0"
    # value == 0.<digits> * 10**point
    point = len(digit_tuple) + exponent
    prefix = "-" if sign else ""
    k = len(digits)

    if k <= point <= 21:
        return prefix + digits + "0" * (point - k)
    if 0 < point <= 21:
        return prefix + digits[:point] + "." + digits[point:]
    if -6 < point <= 0:
        return prefix + "0." + "0" * -point + digits
    mantissa = digits[0] + ("." + digits[1:] if k > 1 else "")
    exp = point - 1
    return f"{prefix}{mantissa}e{'+' if exp >= 0 else '-'}{abs(exp)}"
