"""World -- the explicit world-state value handed to every navigation component.

One World is built per step from the external snapshot (positions, sides,
immobilized flags, static obstacles).  Nothing in the navigation core
reaches for a global; the grid, scorer and scheduler all take the World
they operate on.
"""

from __future__ import annotations

from typing import Iterable, Iterator

from .agent import Agent, Obstacle
from .spatial import SpatialIndex
from .vector import Vector2


class World:
    """Field dimensions, the owning player and every body on the field."""

    def __init__(
        self,
        width: float,
        height: float,
        player_id: int,
        agents: Iterable[Agent] = (),
        obstacles: Iterable[Obstacle] = (),
    ) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"Field dimensions must be positive, got {width}x{height}")
        self.width = float(width)
        self.height = float(height)
        self.player_id = player_id
        self._agents: dict[int, Agent] = {}
        self._obstacles: dict[int, Obstacle] = {}
        self._index = SpatialIndex()
        self._index_dirty = True
        for agent in agents:
            self.add_agent(agent)
        for obstacle in obstacles:
            self.add_obstacle(obstacle)

    # ------------------------------------------------------------------
    # Population
    # ------------------------------------------------------------------

    def add_agent(self, agent: Agent) -> None:
        if agent.agent_id in self._agents:
            raise ValueError(f"Agent {agent.agent_id} already exists")
        self._agents[agent.agent_id] = agent
        self._index_dirty = True

    def add_obstacle(self, obstacle: Obstacle) -> None:
        if obstacle.obstacle_id in self._obstacles:
            raise ValueError(f"Obstacle {obstacle.obstacle_id} already exists")
        self._obstacles[obstacle.obstacle_id] = obstacle
        self._index_dirty = True

    def get_agent(self, agent_id: int) -> Agent:
        """Return the agent with *agent_id*.  Raises KeyError if unknown."""
        try:
            return self._agents[agent_id]
        except KeyError:
            raise KeyError(f"Unknown agent {agent_id}") from None

    @property
    def agents(self) -> list[Agent]:
        """All agents in ascending id order."""
        return [self._agents[k] for k in sorted(self._agents)]

    @property
    def obstacles(self) -> list[Obstacle]:
        return [self._obstacles[k] for k in sorted(self._obstacles)]

    def friendly_agents(self) -> Iterator[Agent]:
        return (a for a in self.agents if a.side == self.player_id)

    def enemy_agents(self) -> Iterator[Agent]:
        return (a for a in self.agents if a.side != self.player_id)

    def is_friendly(self, agent: Agent) -> bool:
        return agent.side == self.player_id

    def refresh(self) -> None:
        """Invalidate the spatial index; call after bodies move."""
        self._index_dirty = True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_outside(self, position: Vector2) -> bool:
        """True when *position* leaves the playable field."""
        return (position.x <= 0 or position.y <= 0
                or position.x >= self.width - 1 or position.y >= self.height - 1)

    def bodies_near(self, position: Vector2, radius: float) -> list[Agent | Obstacle]:
        """Every agent and obstacle whose edge is within *radius* of *position*."""
        if self._index_dirty:
            self._index.rebuild([*self.obstacles, *self.agents])
            self._index_dirty = False
        return self._index.query_radius(position, radius)

    def agents_near(self, position: Vector2, radius: float) -> list[Agent]:
        return [b for b in self.bodies_near(position, radius) if isinstance(b, Agent)]

    def blocking_bodies_near(
        self,
        agent: Agent,
        radius: float,
        movers: set[int],
    ) -> list[Agent | Obstacle]:
        """Bodies within *radius* of *agent* that will not move this step.

        *movers* holds the ids of agents navigating this step; every other
        agent (enemies, immobilized, frozen, idle friendlies) is treated as
        a fixed obstacle.
        """
        result: list[Agent | Obstacle] = []
        for body in self.bodies_near(agent.position, radius):
            if body is agent:
                continue
            if isinstance(body, Agent) and body.agent_id in movers and not body.frozen:
                continue
            result.append(body)
        return result

    def __repr__(self) -> str:
        return (f"<World {self.width:g}x{self.height:g} player={self.player_id} "
                f"agents={len(self._agents)} obstacles={len(self._obstacles)}>")
