"""FormulaEvaluator: recursive, on-demand evaluation of cell formulas.

A formula is either a single function call (``=SUM(A1:A3, 10)``) or an
arithmetic expression over references and numbers (``=(A1+B1)/2``).
References to other formula cells are evaluated recursively.  Circular
references are caught with a visited set that is copied, never shared,
on each recursive step, so ``=A1+A1`` does not flag itself as circular.

Referenced-cell values are memoized per evaluator.  A value whose
evaluation never met a cell on the visited stack does not depend on the
visited set and is keyed by its cell alone; any other value is keyed by
cell and visited set.  Nesting is capped at ``_MAX_NESTING`` cells: a
deeper cell is pushed onto an explicit work stack, evaluated from the top
and memoized, and the interrupted evaluation is retried.  Long reference
chains therefore never exhaust the interpreter stack.

Evaluation is total: every failure path yields an in-band error token.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from typing import TypeVar

from datasheet._utils import Coordinate, parse_range, parse_ref
from datasheet.calc._arith import FormulaSyntaxError, format_number, safe_eval_arithmetic
from datasheet.calc._functions import (
    CIRC,
    DIV0,
    ERR,
    FunctionRegistry,
    first_error,
    name_error,
    to_number,
)
from datasheet.calc._parser import (
    is_range_arg,
    looks_like_expression,
    match_function_call,
    split_args,
    substitute_references,
    unquote,
)

logger = logging.getLogger(__name__)

Visited = frozenset[Coordinate]

_EMPTY: Visited = frozenset()

# Nested cell evaluations before a cell is deferred to the work stack
_MAX_NESTING = 32

_T = TypeVar("_T")
_R = TypeVar("_R")


class _Deferred(Exception):
    """Unwinds to the driver loop so *addr* can be evaluated first."""

    def __init__(self, addr: Coordinate, visited: Visited) -> None:
        super().__init__(addr)
        self.addr = addr
        self.visited = visited


class _BoundResolver:
    """An :class:`ArgResolver` pinned to one visited set."""

    __slots__ = ("_evaluator", "_visited")

    def __init__(self, evaluator: FormulaEvaluator, visited: Visited) -> None:
        self._evaluator = evaluator
        self._visited = visited

    def resolve(self, arg: str) -> str:
        return self._evaluator.resolve_value(arg, self._visited)

    def gather_numbers(self, args: list[str]) -> list[float]:
        return self._evaluator.gather_numbers(args, self._visited)

    def range_strings(self, arg: str) -> list[str]:
        return self._evaluator.range_strings(arg, self._visited)


class FormulaEvaluator:
    """Evaluates formulas against one grid snapshot.

    Usage::

        ev = FormulaEvaluator(rows)
        ev.evaluate("=SUM(A1:A3)")

    ``evaluations`` counts every call to :meth:`evaluate`, nested ones
    and retries included.
    """

    __slots__ = (
        "_rows", "_n_rows", "_n_cols", "_functions", "evaluations",
        "_memo", "_exact", "_depth", "_nesting", "_memo_active", "_volatile",
    )

    def __init__(
        self,
        rows: Sequence[Sequence[str]],
        functions: FunctionRegistry | None = None,
    ) -> None:
        self._rows = rows
        self._n_rows = len(rows)
        self._n_cols = len(rows[0]) if rows else 0
        self._functions = functions if functions is not None else FunctionRegistry()
        self.evaluations = 0
        # Values that do not depend on the visited set
        self._memo: dict[Coordinate, str] = {}
        # Values that do, keyed by the visited set they were computed under
        self._exact: dict[tuple[Coordinate, Visited], str] = {}
        self._depth = 0
        self._nesting = 0
        # Only true while the outermost call started from an empty stack
        self._memo_active = False
        # Bumped whenever a result depends on the visited set
        self._volatile = 0

    def evaluate(self, formula: str, visited: Visited = _EMPTY) -> str:
        """Evaluate *formula* (with or without its leading ``=``) to a display string."""
        if not self._depth:
            return self._drive(self._evaluate_guarded, formula, visited)
        return self._evaluate_guarded(formula, visited)

    def _drive(self, fn: Callable[[_T, Visited], _R], arg: _T, visited: Visited) -> _R:
        """Run *fn* to completion, evaluating deferred cells first.

        Deferred cells form an explicit stack: the most recent one is
        evaluated (and memoized) before anything that is waiting on it.
        """
        self._memo_active = not visited
        pending: list[tuple[Coordinate, Visited]] = []
        while True:
            self._depth += 1
            try:
                if not pending:
                    return fn(arg, visited)
                addr, cell_visited = pending[-1]
                self._evaluate_cell(addr, cell_visited)
                pending.pop()
            except _Deferred as deferred:
                pending.append((deferred.addr, deferred.visited))
            finally:
                self._depth -= 1

    def _evaluate_guarded(self, formula: str, visited: Visited) -> str:
        self.evaluations += 1
        self._depth += 1
        try:
            return self._evaluate(formula, visited)
        except _Deferred:
            raise
        except RecursionError:
            logger.debug("Formula nested too deeply: %r", formula)
            self._volatile += 1
            return ERR
        except Exception:
            logger.debug("Cannot evaluate formula %r", formula, exc_info=True)
            return ERR
        finally:
            self._depth -= 1

    def _evaluate(self, formula: str, visited: Visited) -> str:
        expr = formula[1:] if formula.startswith("=") else formula
        expr = expr.strip()

        call = match_function_call(expr)
        if call is not None:
            name, args_str = call
            func = self._functions.get(name)
            if func is None:
                logger.debug("Unsupported function: %s", name)
                return name_error(name)
            return func(split_args(args_str), _BoundResolver(self, visited))

        return self._evaluate_arithmetic(expr, visited)

    def _evaluate_arithmetic(self, expr: str, visited: Visited) -> str:
        errors: list[str] = []

        def substitute(token: str) -> str:
            value = self.resolve_value(token, visited)
            err = first_error(value)
            if err is not None:
                errors.append(err)
                return "0"
            num = to_number(value)
            return "0" if math.isnan(num) else format_number(num)

        replaced = substitute_references(expr, substitute)
        if errors:
            return errors[0]
        try:
            return safe_eval_arithmetic(replaced)
        except ZeroDivisionError:
            return DIV0
        except FormulaSyntaxError as e:
            logger.debug("Arithmetic error in %r: %s", expr, e)
            return ERR

    # ------------------------------------------------------------------
    # Reference resolution
    # ------------------------------------------------------------------

    def _in_bounds(self, addr: Coordinate) -> bool:
        return 0 <= addr.row < self._n_rows and 0 <= addr.col < self._n_cols

    def _cell_value(self, addr: Coordinate, visited: Visited) -> str:
        """Display value of the formula cell at *addr* (not on the stack)."""
        if self._memo_active:
            cached = self._memo.get(addr)
            if cached is not None:
                return cached
        cached = self._exact.get((addr, visited))
        if cached is not None:
            self._volatile += 1
            return cached
        return self._evaluate_cell(addr, visited)

    def _evaluate_cell(self, addr: Coordinate, visited: Visited) -> str:
        if self._nesting >= _MAX_NESTING:
            raise _Deferred(addr, visited)
        before = self._volatile
        self._nesting += 1
        try:
            value = self.evaluate(self._rows[addr.row][addr.col], visited | {addr})
        finally:
            self._nesting -= 1
        if self._memo_active and self._volatile == before:
            self._memo[addr] = value
        else:
            self._exact[(addr, visited)] = value
        return value

    def resolve_value(self, ref: str, visited: Visited = _EMPTY) -> str:
        """Resolve a single reference or literal to a display string.

        - quoted text resolves to its content
        - nested calls and arithmetic are evaluated
        - anything else that is not a reference is returned as a literal
        - a reference already on the stack is ``#CIRC!``
        - a reference outside the grid is ``"0"``
        """
        if not self._depth:
            return self._drive(self.resolve_value, ref, visited)
        ref = ref.strip()
        literal = unquote(ref)
        if literal is not None:
            return literal
        addr = parse_ref(ref)
        if addr is None:
            if looks_like_expression(ref):
                return self.evaluate(ref, visited)
            return ref
        if addr in visited:
            self._volatile += 1
            return CIRC
        if not self._in_bounds(addr):
            return "0"
        raw = self._rows[addr.row][addr.col]
        if raw.startswith("="):
            return self._cell_value(addr, visited)
        return raw

    def gather_numbers(self, args: list[str], visited: Visited = _EMPTY) -> list[float]:
        """Numeric values of all *args*; ranges expanded, NaN dropped."""
        if not self._depth:
            return self._drive(self.gather_numbers, args, visited)
        nums: list[float] = []
        for arg in args:
            if is_range_arg(arg):
                nums.extend(self._range_numbers(arg, visited))
            else:
                nums.append(to_number(self.resolve_value(arg, visited)))
        return [n for n in nums if not math.isnan(n)]

    def _range_numbers(self, range_ref: str, visited: Visited) -> list[float]:
        """Numbers for every cell of *range_ref*; cells on the stack are NaN."""
        coords = parse_range(range_ref.strip())
        if coords is None:
            return []
        values: list[float] = []
        for addr in coords:
            if addr in visited:
                self._volatile += 1
                values.append(math.nan)
            elif not self._in_bounds(addr):
                values.append(0.0)
            else:
                raw = self._rows[addr.row][addr.col]
                if raw.startswith("="):
                    raw = self._cell_value(addr, visited)
                values.append(to_number(raw))
        return values

    def range_strings(self, range_ref: str, visited: Visited = _EMPTY) -> list[str]:
        """Display strings for every cell of *range_ref*.

        Each element gets its own copy of *visited*, so a shared ancestor
        does not mark its siblings as circular.
        """
        if not self._depth:
            return self._drive(self.range_strings, range_ref, visited)
        coords = parse_range(range_ref.strip())
        if coords is None:
            return []
        values: list[str] = []
        for addr in coords:
            if addr in visited:
                self._volatile += 1
                values.append(CIRC)
            elif not self._in_bounds(addr):
                values.append("")
            else:
                raw = self._rows[addr.row][addr.col]
                if raw.startswith("="):
                    raw = self._cell_value(addr, visited)
                values.append(raw)
        return values


def evaluate_formula(
    formula: str,
    rows: Sequence[Sequence[str]],
    visited: Visited = _EMPTY,
) -> str:
    """Evaluate one formula against *rows*; never raises."""
    return FormulaEvaluator(rows).evaluate(formula, visited)
