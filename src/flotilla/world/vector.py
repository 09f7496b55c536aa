"""Vector2 -- immutable 2D point/velocity in field units.

Coordinate convention:
    +X = East, +Y = North.  Headings are integer degrees measured
    counter-clockwise from +X and always normalized to [0, 360).
"""

from __future__ import annotations

import math
from dataclasses import dataclass


def normalize_heading(degrees: float) -> int:
    """Round *degrees* to the nearest integer heading in [0, 360)."""
    return int(round(degrees)) % 360


@dataclass(frozen=True, slots=True)
class Vector2:
    """A point or velocity on the playing field."""

    x: float
    y: float

    def __add__(self, other: Vector2) -> Vector2:
        return Vector2(self.x + other.x, self.y + other.y)

    def __sub__(self, other: Vector2) -> Vector2:
        return Vector2(self.x - other.x, self.y - other.y)

    def __mul__(self, scalar: float) -> Vector2:
        return Vector2(self.x * scalar, self.y * scalar)

    __rmul__ = __mul__

    def __iter__(self):
        yield self.x
        yield self.y

    @property
    def length(self) -> float:
        return math.hypot(self.x, self.y)

    def distance_to(self, other: Vector2) -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def distance_to2(self, other: Vector2) -> float:
        dx = self.x - other.x
        dy = self.y - other.y
        return dx * dx + dy * dy

    def heading_to(self, other: Vector2) -> int:
        """Integer heading in degrees from this point towards *other*."""
        return normalize_heading(
            math.degrees(math.atan2(other.y - self.y, other.x - self.x))
        )

    @classmethod
    def from_polar(cls, heading: float, magnitude: float) -> Vector2:
        rad = math.radians(heading)
        return cls(math.cos(rad) * magnitude, math.sin(rad) * magnitude)

    @classmethod
    def coerce(cls, value) -> Vector2:
        """Accept a Vector2 or any (x, y) pair."""
        if isinstance(value, Vector2):
            return value
        x, y = value
        return cls(float(x), float(y))

    def to_list(self) -> list[float]:
        return [self.x, self.y]


ZERO = Vector2(0.0, 0.0)
