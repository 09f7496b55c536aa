"""SpatialIndex -- grid-based spatial partitioning for O(1) neighbor queries.

Used by the World to replace O(n^2) scans when building event horizons
and per-agent obstacle lists.  Rebuilt once per step from the agent and
obstacle lists, then queried many times.

Bodies are bucketed by center.  Queries take an extra ``reach`` so that
large bodies (planets) whose center lies outside the query circle but
whose edge lies inside are still returned.
"""

from __future__ import annotations

import math
from typing import Iterable, Protocol

from .vector import Vector2


class Body(Protocol):
    position: Vector2
    radius: float


class SpatialIndex:
    """Bucket grid over circular bodies."""

    def __init__(self, cell_size: float = 16.0) -> None:
        if cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")
        self._cell_size = cell_size
        self._inv_cell_size = 1.0 / cell_size
        self._cells: dict[tuple[int, int], list[Body]] = {}
        self._max_radius = 0.0

    def _cell_key(self, x: float, y: float) -> tuple[int, int]:
        """Convert field position to cell key."""
        return (int(math.floor(x * self._inv_cell_size)),
                int(math.floor(y * self._inv_cell_size)))

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._cells.values())

    def rebuild(self, bodies: Iterable[Body]) -> None:
        """Rebuild the entire index from scratch."""
        self._cells = {}
        self._max_radius = 0.0
        for body in bodies:
            self.insert(body)

    def insert(self, body: Body) -> None:
        key = self._cell_key(body.position.x, body.position.y)
        bucket = self._cells.get(key)
        if bucket is None:
            bucket = []
            self._cells[key] = bucket
        bucket.append(body)
        if body.radius > self._max_radius:
            self._max_radius = body.radius

    def query_radius(self, pos: Vector2, radius: float) -> list[Body]:
        """Return all bodies whose edge comes within *radius* of *pos*.

        Results are ordered by insertion within each cell and by cell
        key across cells, so repeated queries are deterministic.
        """
        px, py = pos.x, pos.y
        reach = radius + self._max_radius

        min_cx = int(math.floor((px - reach) * self._inv_cell_size))
        max_cx = int(math.floor((px + reach) * self._inv_cell_size))
        min_cy = int(math.floor((py - reach) * self._inv_cell_size))
        max_cy = int(math.floor((py + reach) * self._inv_cell_size))

        result: list[Body] = []
        cells = self._cells
        for cx in range(min_cx, max_cx + 1):
            for cy in range(min_cy, max_cy + 1):
                bucket = cells.get((cx, cy))
                if bucket is None:
                    continue
                for body in bucket:
                    limit = radius + body.radius
                    dx = body.position.x - px
                    dy = body.position.y - py
                    if dx * dx + dy * dy <= limit * limit:
                        result.append(body)
        return result
