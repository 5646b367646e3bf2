# spatial_hash.py
from __future__ import annotations

import math
from collections import defaultdict
from typing import Iterable

from .village import Village


class SpatialHash:
    """
    Bucket grid over tile coordinates for village proximity queries.
    Supplier searches only look at nearby buckets instead of every village.
    """

    def __init__(self, cell_size: float = 8.0):
        self.cell_size = cell_size
        self.grid: dict[tuple[int, int], list[Village]] = defaultdict(list)

    def clear(self) -> None:
        self.grid.clear()

    def _cell(self, x: float, y: float) -> tuple[int, int]:
        return (int(x // self.cell_size), int(y // self.cell_size))

    def insert(self, village: Village) -> None:
        self.grid[self._cell(village.x, village.y)].append(village)

    def rebuild(self, villages: Iterable[Village]) -> None:
        self.clear()
        for village in villages:
            self.insert(village)

    def all_villages(self) -> list[Village]:
        return [village for bucket in self.grid.values() for village in bucket]

    def query_radius(self, x: float, y: float, radius: float) -> list[Village]:
        """Villages whose centre lies within ``radius`` of (x, y).

        An infinite radius returns every indexed village; NaN or negative
        radii match nothing.
        """
        if math.isnan(radius) or radius < 0:
            return []
        if math.isinf(radius):
            return self.all_villages()
        if not self.grid:
            return []

        cx, cy = self._cell(x, y)
        cell_radius = int(radius // self.cell_size) + 1
        # only walk the occupied extent of the grid
        cols = [c for c, _ in self.grid]
        rows = [r for _, r in self.grid]
        x_lo, x_hi = max(cx - cell_radius, min(cols)), min(cx + cell_radius, max(cols))
        y_lo, y_hi = max(cy - cell_radius, min(rows)), min(cy + cell_radius, max(rows))
        r2 = radius * radius

        results = []
        for gx in range(x_lo, x_hi + 1):
            for gy in range(y_lo, y_hi + 1):
                for village in self.grid.get((gx, gy), ()):
                    ddx = village.x - x
                    ddy = village.y - y
                    if ddx * ddx + ddy * ddy <= r2:
                        results.append(village)
        return results
