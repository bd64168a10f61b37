"""Output grid geometry shared by the reprojector and the blend rasterizer."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from shared.constants import SUBSECTION_DIVISOR


def round_up_pow2(n: int) -> int:
    if n <= 1:
        return 1
    return 1 << (n - 1).bit_length()


def vertices_for_radius(radius: float, quad_size: float) -> tuple[int, int]:
    """
    Number of quads from the centre to the edge and the sub-section size.

    The count is rounded up so it divides evenly into sub-sections of
    ``round_up_pow2(n) / 16 - 1`` quads, as the terrain system requires.

    Returns:
        (half_size, subsection_size_quads)
    """
    if quad_size <= 0:
        msg = f'quad_size must be positive, got {quad_size}'
        raise ValueError(msg)
    size = math.floor(radius / quad_size + 0.5)
    subsection = max(1, round_up_pow2(size) // SUBSECTION_DIVISOR - 1)
    size = max(1, math.ceil(size / subsection)) * subsection
    return size, subsection


@dataclass(frozen=True)
class OutputGrid:
    """
    Square grid of 2N x 2N cells centred on the local origin.

    Cell (row, col) sits at local ((col - N) * quad, (row - N) * quad);
    local +x points east and +y points south.
    """

    half_size: int
    quad_size: float
    subsection_size_quads: int = 1

    @classmethod
    def from_radius(cls, radius: float, quad_size: float) -> OutputGrid:
        half_size, subsection = vertices_for_radius(radius, quad_size)
        return cls(half_size=half_size, quad_size=float(quad_size), subsection_size_quads=subsection)

    @property
    def size(self) -> int:
        return 2 * self.half_size

    @property
    def shape(self) -> tuple[int, int]:
        return self.size, self.size

    @property
    def radius(self) -> float:
        return self.half_size * self.quad_size

    @property
    def center_index(self) -> tuple[int, int]:
        return self.half_size, self.half_size

    def column_coords(self) -> np.ndarray:
        """Local x of every column centre."""
        return (np.arange(self.size, dtype=np.float64) - self.half_size) * self.quad_size

    def row_coord(self, row: int) -> float:
        return (row - self.half_size) * self.quad_size

    def cell_range(
        self, min_x: float, min_y: float, max_x: float, max_y: float
    ) -> tuple[int, int, int, int] | None:
        """
        Inclusive (col0, row0, col1, row1) of cells touching a local box.

        Returns None when the box misses the grid.
        """
        q = self.quad_size
        n = self.half_size
        col0 = max(0, math.floor(min_x / q) + n)
        row0 = max(0, math.floor(min_y / q) + n)
        col1 = min(self.size - 1, math.ceil(max_x / q) + n)
        row1 = min(self.size - 1, math.ceil(max_y / q) + n)
        if col0 > col1 or row0 > row1:
            return None
        return col0, row0, col1, row1
