"""
Static 2-D KD-tree over projected point coordinates.

The tree is stored implicitly in two flat arrays: the coordinates are
reordered by recursive median selection (alternating x/y), and ``ids``
maps each slot back to the caller's position. Subranges of at most
``node_size`` entries are left unsorted and scanned with numpy.
"""

from __future__ import annotations

from typing import List

import numpy as np


class KDTree:
    """Immutable KD-tree supporting rectangular and radial queries."""

    def __init__(self, x: np.ndarray, y: np.ndarray, node_size: int = 64):
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        if x.shape != y.shape or x.ndim != 1:
            raise ValueError("Expected x and y as 1-d arrays of equal length.")

        self.node_size = max(1, int(node_size))
        self.ids = np.arange(len(x), dtype=np.int64)
        self.coords = np.column_stack([x, y]) if len(x) else np.zeros((0, 2))
        self._sort(0, len(x) - 1, 0)

    def __len__(self) -> int:
        return len(self.ids)

    def _sort(self, left: int, right: int, axis: int) -> None:
        if right - left <= self.node_size:
            return

        m = (left + right) >> 1
        segment = slice(left, right + 1)
        order = np.argpartition(self.coords[segment, axis], m - left)
        self.coords[segment] = self.coords[segment][order]
        self.ids[segment] = self.ids[segment][order]

        self._sort(left, m - 1, 1 - axis)
        self._sort(m + 1, right, 1 - axis)

    def range(self, min_x: float, min_y: float, max_x: float, max_y: float) -> List[int]:
        """Return ids of all entries inside the (inclusive) rectangle."""
        result: List[int] = []
        stack = [(0, len(self.ids) - 1, 0)]

        while stack:
            left, right, axis = stack.pop()

            if right - left <= self.node_size:
                xs = self.coords[left:right + 1, 0]
                ys = self.coords[left:right + 1, 1]
                mask = (xs >= min_x) & (xs <= max_x) & (ys >= min_y) & (ys <= max_y)
                result.extend(self.ids[left:right + 1][mask].tolist())
                continue

            m = (left + right) >> 1
            x, y = self.coords[m]
            if min_x <= x <= max_x and min_y <= y <= max_y:
                result.append(int(self.ids[m]))

            lo, hi = (min_x, max_x) if axis == 0 else (min_y, max_y)
            value = x if axis == 0 else y
            if lo <= value:
                stack.append((left, m - 1, 1 - axis))
            if hi >= value:
                stack.append((m + 1, right, 1 - axis))

        return result

    def within(self, qx: float, qy: float, r: float) -> List[int]:
        """Return ids of all entries within distance ``r`` of ``(qx, qy)``."""
        result: List[int] = []
        stack = [(0, len(self.ids) - 1, 0)]
        r2 = r * r

        while stack:
            left, right, axis = stack.pop()

            if right - left <= self.node_size:
                dx = self.coords[left:right + 1, 0] - qx
                dy = self.coords[left:right + 1, 1] - qy
                mask = dx * dx + dy * dy <= r2
                result.extend(self.ids[left:right + 1][mask].tolist())
                continue

            m = (left + right) >> 1
            x, y = self.coords[m]
            if (x - qx) ** 2 + (y - qy) ** 2 <= r2:
                result.append(int(self.ids[m]))

            q = qx if axis == 0 else qy
            value = x if axis == 0 else y
            if q - r <= value:
                stack.append((left, m - 1, 1 - axis))
            if q + r >= value:
                stack.append((m + 1, right, 1 - axis))

        return result


__all__ = ["KDTree"]
