"""Geometry kernel -- exact analytic tests between circles and paths.

segment_circle_intersect  -- does a straight path pass too close to a body?
collision_time            -- earliest contact time of two moving circles

Both functions take every degenerate case (zero-length segment, zero
relative velocity) through an explicit branch, so they always return a
definite answer and never divide by zero.
"""

from __future__ import annotations

import math

import numpy as np

from flotilla.world.vector import Vector2


def segment_circle_intersect(
    start: Vector2,
    end: Vector2,
    center: Vector2,
    radius: float,
    fudge: float = 0.0,
) -> bool:
    """True iff the segment start->end passes within radius + fudge of center.

    The segment is parameterized as ``start + t * (end - start)`` and the
    closest point to *center* is found at the vertex of the squared
    distance quadratic, clamped to t in [0, 1].
    """
    dx = end.x - start.x
    dy = end.y - start.y
    a = dx * dx + dy * dy
    limit = radius + fudge

    if a == 0.0:
        # Start and end are the same point
        return start.distance_to2(center) <= limit * limit

    t = ((center.x - start.x) * dx + (center.y - start.y) * dy) / a
    t = min(max(t, 0.0), 1.0)

    closest_x = start.x + dx * t - center.x
    closest_y = start.y + dy * t - center.y
    return closest_x * closest_x + closest_y * closest_y <= limit * limit


def collision_time(
    combined_radius: float,
    pos_a: Vector2,
    pos_b: Vector2,
    vel_a: Vector2,
    vel_b: Vector2,
) -> tuple[bool, float]:
    """Earliest time t at which two moving circles are combined_radius apart.

    Solves ``|(pos_a + t*vel_a) - (pos_b + t*vel_b)| = combined_radius``.
    Returns ``(feasible, t)``; callers restrict to the current step by
    checking ``0 <= t <= 1`` (see :func:`is_collision_this_step`).

    When both roots are non-positive the latest one is reported: the pair
    touched in the past and is separating.
    """
    dx = pos_a.x - pos_b.x
    dy = pos_a.y - pos_b.y
    dvx = vel_a.x - vel_b.x
    dvy = vel_a.y - vel_b.y

    a = dvx * dvx + dvy * dvy
    b = 2.0 * (dx * dvx + dy * dvy)
    c = dx * dx + dy * dy - combined_radius * combined_radius

    if a == 0.0:
        # No relative motion: either already touching or never will
        if c <= 0.0:
            return True, 0.0
        return False, 0.0

    disc = b * b - 4.0 * a * c

    if disc == 0.0:
        return True, -b / (2.0 * a)

    if disc > 0.0:
        root = math.sqrt(disc)
        t1 = (-b + root) / (2.0 * a)
        t2 = (-b - root) / (2.0 * a)
        if t1 >= 0.0 and t2 >= 0.0:
            return True, min(t1, t2)
        if t1 <= 0.0 and t2 <= 0.0:
            return True, max(t1, t2)
        # Roots straddle zero: overlapping right now
        return True, 0.0

    return False, 0.0


def is_collision_this_step(result: tuple[bool, float]) -> bool:
    feasible, t = result
    return feasible and 0.0 <= t <= 1.0


def velocity(heading: int, thrust: float) -> Vector2:
    """Displacement over one step for an integer heading (degrees) and thrust."""
    return Vector2.from_polar(heading, thrust)


def segments_circle_intersect(
    start: Vector2,
    ends: np.ndarray,
    center: Vector2,
    radius: float,
    fudge: float = 0.0,
) -> np.ndarray:
    """Vectorized :func:`segment_circle_intersect` for many segments sharing *start*.

    *ends* is an ``(..., 2)`` array of end points; returns a bool array of
    the leading shape.
    """
    dx = ends[..., 0] - start.x
    dy = ends[..., 1] - start.y
    a = dx * dx + dy * dy
    limit = radius + fudge

    cx = center.x - start.x
    cy = center.y - start.y
    safe_a = np.where(a == 0.0, 1.0, a)
    t = np.clip((cx * dx + cy * dy) / safe_a, 0.0, 1.0)
    t = np.where(a == 0.0, 0.0, t)

    closest_x = dx * t - cx
    closest_y = dy * t - cy
    return closest_x * closest_x + closest_y * closest_y <= limit * limit
