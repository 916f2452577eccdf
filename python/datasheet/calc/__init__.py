"""datasheet.calc - Formula evaluation engine for data sheets."""

from datasheet.calc._arith import FormulaSyntaxError, format_number, safe_eval_arithmetic
from datasheet.calc._cache import CacheStats, EvaluationCache
from datasheet.calc._evaluator import FormulaEvaluator, evaluate_formula
from datasheet.calc._functions import (
    ARG,
    CIRC,
    DIV0,
    ERR,
    FunctionRegistry,
    is_error,
    name_error,
    to_number,
)
from datasheet.calc._protocol import ArgResolver, FillResult, SortSpec
from datasheet.calc._views import (
    clear_range,
    compare_display,
    fill_down,
    fill_range,
    visible_row_indices,
)

__all__ = [
    "ARG",
    "ArgResolver",
    "CIRC",
    "CacheStats",
    "DIV0",
    "ERR",
    "EvaluationCache",
    "FillResult",
    "FormulaEvaluator",
    "FormulaSyntaxError",
    "FunctionRegistry",
    "SortSpec",
    "clear_range",
    "compare_display",
    "evaluate_formula",
    "fill_down",
    "fill_range",
    "format_number",
    "is_error",
    "name_error",
    "safe_eval_arithmetic",
    "to_number",
    "visible_row_indices",
]
