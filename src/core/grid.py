"""
Bounds-checked 2D view over a flat, row-major integer array.
"""

import numpy as np
from typing import Iterable, Iterator, List, Optional

from core.errors import ValidationError


CELL_DTYPE = np.int32
CELL_MIN = int(np.iinfo(CELL_DTYPE).min)
CELL_MAX = int(np.iinfo(CELL_DTYPE).max)


class GridIndexError(IndexError):
    """Raised for coordinates outside the grid."""


def _check_value(value: int) -> int:
    if not CELL_MIN <= value <= CELL_MAX:
        raise ValidationError(f"Cell value {value} does not fit in {CELL_DTYPE.__name__}")
    return value


class Grid:
    """A width x height grid of ints stored flat in row-major order."""

    __slots__ = ["width", "height", "cells"]

    def __init__(
        self,
        width: int,
        height: int,
        data: Optional[Iterable[int]] = None,
        fill: int = 0,
    ):
        if width <= 0 or height <= 0:
            raise ValidationError(f"Grid size must be positive, got {width}x{height}")
        self.width = width
        self.height = height
        if data is None:
            self.cells = np.full(width * height, _check_value(fill), dtype=CELL_DTYPE)
        else:
            try:
                values = [int(v) for v in data]
            except (TypeError, ValueError) as e:
                raise ValidationError(f"Grid cells must be integers: {e}") from e
            if len(values) != width * height:
                raise ValidationError(
                    f"Expected {width * height} cells for a {width}x{height} grid, "
                    f"got {len(values)}"
                )
            if values:
                _check_value(min(values))
                _check_value(max(values))
            self.cells = np.asarray(values, dtype=CELL_DTYPE)

    def __len__(self) -> int:
        return self.width * self.height

    def __eq__(self, other) -> bool:
        if not isinstance(other, Grid):
            return NotImplemented
        return (
            self.width == other.width
            and self.height == other.height
            and np.array_equal(self.cells, other.cells)
        )

    def __repr__(self) -> str:
        return f"Grid({self.width}x{self.height})"

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def index_of(self, x: int, y: int) -> int:
        """Flat offset of (x, y)."""
        if not self.in_bounds(x, y):
            raise GridIndexError(f"({x}, {y}) outside {self.width}x{self.height} grid")
        return y * self.width + x

    def get(self, x: int, y: int) -> int:
        return int(self.cells[self.index_of(x, y)])

    def set(self, x: int, y: int, value: int):
        self.cells[self.index_of(x, y)] = _check_value(value)

    def fill(self, value: int):
        self.cells.fill(_check_value(value))

    def copy(self) -> "Grid":
        return Grid(self.width, self.height, self.cells.copy())

    def as_array(self) -> np.ndarray:
        """(height, width) view sharing memory with the grid."""
        return self.cells.reshape(self.height, self.width)

    def rows(self) -> Iterator[List[int]]:
        for row in self.as_array():
            yield [int(v) for v in row]

    def nonzero(self) -> Iterator[tuple]:
        """Yield (x, y, value) for every nonzero cell in row-major order."""
        for offset in np.flatnonzero(self.cells):
            y, x = divmod(int(offset), self.width)
            yield x, y, int(self.cells[offset])

    def to_list(self) -> List[int]:
        return [int(v) for v in self.cells]
