"""Agents and obstacles -- the circular bodies that share the field.

Agent     -- a mobile circular unit owned by a side (player)
Obstacle  -- anything with a position and radius that blocks a straight path

Agents carry two per-step navigation caches, ``max_safe_thrust`` and
``obstacles``.  Both are reset by the scheduler at the start of every step
and are meaningless outside of one resolution pass.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .vector import ZERO, Vector2


@dataclass(frozen=True)
class Obstacle:
    """A static circular body (e.g. a planet or a wreck)."""

    obstacle_id: int
    position: Vector2
    radius: float

    def __post_init__(self) -> None:
        if self.radius <= 0:
            raise ValueError(f"Obstacle {self.obstacle_id} radius must be positive, got {self.radius}")


@dataclass(eq=False)
class Agent:
    """A circular unit on the field.

    ``immobilized`` is supplied by the world snapshot (the unit cannot
    move this step).  ``frozen`` is written back by the scheduler when no
    collision-free command could be found; both make the agent behave as
    a stationary obstacle for everyone else.
    """

    agent_id: int
    position: Vector2
    side: int
    radius: float = 0.5
    immobilized: bool = False
    frozen: bool = False
    velocity: Vector2 = ZERO

    # -- per-step navigation caches --
    max_safe_thrust: np.ndarray | None = field(default=None, repr=False)
    obstacles: list[Agent | Obstacle] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        self.position = Vector2.coerce(self.position)
        self.velocity = Vector2.coerce(self.velocity)
        if self.radius <= 0:
            raise ValueError(f"Agent {self.agent_id} radius must be positive, got {self.radius}")

    @property
    def is_stationary(self) -> bool:
        return self.immobilized or self.frozen

    def reset_navigation(self) -> None:
        """Drop last step's caches and frozen flag."""
        self.max_safe_thrust = None
        self.obstacles = []
        self.frozen = False

    def __repr__(self) -> str:
        return (f"<Agent {self.agent_id} side={self.side} "
                f"pos=({self.position.x:.2f}, {self.position.y:.2f})>")
