"""Argument-resolution protocol and result dataclasses."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datasheet._utils import Bounds

SORT_DIRECTIONS = ("asc", "desc")


@runtime_checkable
class ArgResolver(Protocol):
    """What a builtin function sees of the evaluator.

    Builtins receive raw argument strings and call back into the resolver,
    so that references, ranges and nested formulas resolve with the
    evaluator's visited set.
    """

    def resolve(self, arg: str) -> str:
        """Resolve a reference or literal to its display string."""
        ...

    def gather_numbers(self, args: list[str]) -> list[float]:
        """Numeric values of *args*, ranges expanded, non-numbers dropped."""
        ...

    def range_strings(self, arg: str) -> list[str]:
        """Display strings of every cell in the range *arg*."""
        ...


@dataclass(frozen=True)
class SortSpec:
    """Sort visible rows by one column."""

    col: int
    direction: str = "asc"

    def __post_init__(self) -> None:
        if self.direction not in SORT_DIRECTIONS:
            raise ValueError(f"Unknown sort direction: {self.direction!r}")
        if self.col < 0:
            raise ValueError(f"Sort column must be non-negative, got {self.col}")


@dataclass(frozen=True)
class FillResult:
    """Outcome of a drag-fill."""

    rows: list[list[str]]
    bounds: Bounds  # selection covering source and filled cells
    expanded: bool = False  # False when the target was inside the source
