"""A1-style address helpers: column letters, cell references and ranges."""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass

_REF_RE = re.compile(r"^([A-Za-z]+)([0-9]+)$")


@dataclass(frozen=True)
class Coordinate:
    """Zero-based (row, col) position in a grid."""

    row: int
    col: int

    def __str__(self) -> str:
        return rowcol_to_a1(self.row, self.col)


@dataclass(frozen=True)
class Bounds:
    """Inclusive rectangle of coordinates."""

    top: int
    bottom: int
    left: int
    right: int

    @classmethod
    def from_corners(cls, start: Coordinate, end: Coordinate) -> Bounds:
        """Normalize two corners given in any order."""
        return cls(
            top=min(start.row, end.row),
            bottom=max(start.row, end.row),
            left=min(start.col, end.col),
            right=max(start.col, end.col),
        )

    @property
    def height(self) -> int:
        return self.bottom - self.top + 1

    @property
    def width(self) -> int:
        return self.right - self.left + 1

    def contains(self, coord: Coordinate) -> bool:
        return self.top <= coord.row <= self.bottom and self.left <= coord.col <= self.right

    def union(self, coord: Coordinate) -> Bounds:
        """Smallest bounds covering this rectangle and *coord*."""
        return Bounds(
            top=min(self.top, coord.row),
            bottom=max(self.bottom, coord.row),
            left=min(self.left, coord.col),
            right=max(self.right, coord.col),
        )

    def coordinates(self) -> Iterator[Coordinate]:
        """Row-major walk over every coordinate in the rectangle."""
        for r in range(self.top, self.bottom + 1):
            for c in range(self.left, self.right + 1):
                yield Coordinate(r, c)


def column_letter(index: int) -> str:
    """0 -> "A", 25 -> "Z", 26 -> "AA" (bijective base-26)."""
    if index < 0:
        raise ValueError(f"Column index must be non-negative, got {index}")
    letters = ""
    n = index
    while n >= 0:
        letters = chr(n % 26 + 65) + letters
        n = n // 26 - 1
    return letters


def column_index(letters: str) -> int:
    """Inverse of :func:`column_letter`, case-insensitive."""
    col = 0
    for ch in letters.upper():
        col = col * 26 + (ord(ch) - 64)
    return col - 1


def rowcol_to_a1(row: int, col: int) -> str:
    """(0, 0) -> "A1"."""
    return f"{column_letter(col)}{row + 1}"


def parse_ref(text: str) -> Coordinate | None:
    """Parse ``"B12"`` into ``Coordinate(11, 1)``; None if not a cell reference."""
    m = _REF_RE.match(text)
    if not m:
        return None
    return Coordinate(int(m.group(2)) - 1, column_index(m.group(1)))


def parse_range(text: str) -> list[Coordinate] | None:
    """Expand ``"A1:B3"`` into every coordinate it covers, row-major.

    Endpoint order does not matter: ``"B3:A1"`` yields the same list.
    """
    parts = text.split(":")
    if len(parts) != 2:
        return None
    start = parse_ref(parts[0])
    end = parse_ref(parts[1])
    if start is None or end is None:
        return None
    return list(Bounds.from_corners(start, end).coordinates())
