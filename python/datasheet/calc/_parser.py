"""Formula scanning: function-call matching, argument splitting, references."""

from __future__ import annotations

import re
from collections.abc import Callable

# ---------------------------------------------------------------------------
# Regex patterns
# ---------------------------------------------------------------------------

# Any letters-then-digits token inside an arithmetic expression: A1, ab12
_REF_TOKEN_RE = re.compile(r"[A-Za-z]+[0-9]+")

# Function head: SUM( / avg(
_FUNC_HEAD_RE = re.compile(r"^([A-Za-z]+)\(")

_ARITHMETIC_CHARS = frozenset("+-*/()")

# What is left of an arithmetic expression once references are replaced
_ARITHMETIC_BODY_RE = re.compile(r"^[0-9.eE\s+\-*/()]+$")


def _opens_literal(before: str) -> bool:
    """A quote opens a string literal only at the start of an argument."""
    stripped = before.rstrip()
    return not stripped or stripped[-1] in "(,"


def find_matching_paren(expr: str, start: int) -> int:
    """Index of the ``')'`` matching the ``'('`` at *expr[start]*, or -1."""
    depth = 0
    quote: str | None = None
    for i in range(start, len(expr)):
        ch = expr[i]
        if quote is not None:
            if ch == quote:
                quote = None
        elif ch in ('"', "'") and _opens_literal(expr[:i]):
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i
    return -1


def match_function_call(expr: str) -> tuple[str, str] | None:
    """If *expr* is exactly ``NAME(balanced_args)``, return ``(NAME, args_str)``.

    ``SUM(A1:A5)*2`` is not a match: the call must span the whole expression.
    The returned name is upper-cased.
    """
    m = _FUNC_HEAD_RE.match(expr)
    if not m:
        return None
    open_idx = m.end() - 1
    close_idx = find_matching_paren(expr, open_idx)
    if close_idx != len(expr) - 1:
        return None
    return m.group(1).upper(), expr[open_idx + 1 : close_idx]


def split_args(args_str: str) -> list[str]:
    """Split on commas at paren depth 0, outside quotes; each arg is trimmed.

    A trailing empty argument is dropped, so ``""`` yields ``[]``.
    """
    args: list[str] = []
    depth = 0
    quote: str | None = None
    current = ""
    for ch in args_str:
        if quote is not None:
            if ch == quote:
                quote = None
        elif ch in ('"', "'") and not current.strip():
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == "," and depth == 0:
            args.append(current.strip())
            current = ""
            continue
        current += ch
    if current.strip():
        args.append(current.strip())
    return args


def unquote(arg: str) -> str | None:
    """Content of a ``"..."`` or ``'...'`` literal, or None if *arg* is not quoted."""
    if len(arg) >= 2 and arg[0] == arg[-1] and arg[0] in ('"', "'"):
        return arg[1:-1]
    return None


def is_range_arg(arg: str) -> bool:
    """True when an argument should be expanded as a range.

    Quoted text and nested calls such as ``SUM(A1:A2)`` are not ranges.
    """
    return ":" in arg and unquote(arg) is None and match_function_call(arg) is None


def looks_like_expression(arg: str) -> bool:
    """True for arguments that need evaluating rather than literal use.

    Nested function calls (``ABS(A1)``) and arithmetic (``A1*2``) qualify;
    a signed number such as ``-5`` is left alone.
    """
    if match_function_call(arg) is not None:
        return True
    body = _REF_TOKEN_RE.sub("0", arg)
    if not _ARITHMETIC_BODY_RE.match(body):
        return False
    body = body[1:] if body[:1] in ("-", "+") else body
    return any(ch in _ARITHMETIC_CHARS for ch in body)


def substitute_references(expr: str, resolve: Callable[[str], str]) -> str:
    """Replace every ``A1``-style token in *expr* with ``resolve(token)``."""
    return _REF_TOKEN_RE.sub(lambda m: resolve(m.group(0)), expr)
