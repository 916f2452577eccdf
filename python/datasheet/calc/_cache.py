"""Per-cell memo of formula display values, invalidated by grid version."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from datasheet._utils import Coordinate
from datasheet.calc._evaluator import FormulaEvaluator

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Counters for cache diagnostics."""

    hits: int = 0
    misses: int = 0  # formula cells evaluated from scratch
    invalidations: int = 0


class EvaluationCache:
    """Memoizes the display value of formula cells.

    Entries are keyed by coordinate and remember the raw formula text they
    were computed from.  There is no per-cell invalidation: any change of
    the grid version drops every entry, since cross-cell dependencies are
    not tracked.

    One FormulaEvaluator is shared per version, so values of referenced
    cells computed for one display call are reused by the next.
    """

    __slots__ = ("_entries", "_rows", "_version", "_evaluator", "stats")

    def __init__(self) -> None:
        self._entries: dict[Coordinate, tuple[str, str]] = {}
        self._rows: Sequence[Sequence[str]] | None = None
        self._version: int | None = None
        self._evaluator: FormulaEvaluator | None = None
        self.stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def invalidate(self) -> None:
        """Drop every cached value."""
        if self._entries:
            logger.debug("Dropping %d cached formula values", len(self._entries))
        self._entries.clear()
        self._evaluator = None
        self._rows = None
        self._version = None
        self.stats.invalidations += 1

    def resolve(
        self,
        rows: Sequence[Sequence[str]],
        version: int,
        coord: Coordinate,
    ) -> str:
        """Display value of *coord* in *rows* at grid *version*.

        Cells outside the grid display as ``""``.  Literals are returned as
        they are and never cached.
        """
        if version != self._version or rows is not self._rows:
            if self._rows is not None:
                self.invalidate()
            self._rows = rows
            self._version = version
        if not (0 <= coord.row < len(rows) and 0 <= coord.col < len(rows[0])):
            return ""
        raw = rows[coord.row][coord.col]
        if not raw.startswith("="):
            return raw

        cached = self._entries.get(coord)
        if cached is not None:
            if cached[0] == raw:
                self.stats.hits += 1
                return cached[1]
            # Edited in place without a version bump: memoized values may be stale
            self._evaluator = None

        if self._evaluator is None:
            self._evaluator = FormulaEvaluator(rows)
        value = self._evaluator.evaluate(raw)
        self._entries[coord] = (raw, value)
        self.stats.misses += 1
        return value
