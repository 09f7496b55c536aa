"""InfluenceGrid -- discretized next-step threat/opportunity map of the field.

Architecture
------------
The field is cut into square cells, ``grid_resolution`` per unit distance.
Every cell aggregates what could happen there next step:

  - ``occupants``         -- bodies currently covering the cell
  - ``solid``             -- cell lies under a static obstacle
  - ``friendly_exposed``  -- friendlies that could take damage there
  - ``enemy_exposed``     -- enemies that could take damage there
  - ``friendly_attack``   -- falloff-weighted friendly attackers in range
  - ``enemy_attack``      -- enemy attackers in range

Each field is a numpy array; agent contributions are applied to the
bounding window of the agent's reach in one vectorized pass.

Lifecycle per step:
  1. ``clear()`` then ``fill()`` -- solids plus one ``modify_agent(+1)``
     for every agent (friends, enemies, immobilized, frozen)
  2. the scheduler patches single agents with ``modify_agent(-1)`` /
     ``modify_agent(+1)`` when they freeze

Exact reversal:
  A ``+1`` call records the profile it was computed from and the matching
  ``-1`` replays it, so later changes to the agent (a new max-thrust
  table, a frozen flag) cannot leave residue.  Falloff weights are
  quantized to multiples of 2**-10, which keeps every sum and difference
  exact in float64.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

import numpy as np

from flotilla.config import NavigationSettings, settings as default_settings
from flotilla.world.vector import Vector2

if TYPE_CHECKING:
    from flotilla.world.agent import Agent
    from flotilla.world.world import World

_WEIGHT_QUANTUM = 1024.0

_FIELDS = (
    "solid",
    "occupants",
    "friendly_exposed",
    "enemy_exposed",
    "friendly_attack",
    "enemy_attack",
)


class ContributionMode(Enum):
    """How an agent projects influence onto the grid."""
    FRIENDLY_MOBILE = "friendly_mobile"
    FRIENDLY_STATIC = "friendly_static"
    ENEMY_MOBILE = "enemy_mobile"
    ENEMY_STATIC = "enemy_static"


@dataclass(frozen=True)
class Cell:
    """Read-only snapshot of one grid cell."""
    row: int
    col: int
    position: Vector2
    solid: bool
    occupants: int
    friendly_exposed: float
    enemy_exposed: float
    friendly_attack: float
    enemy_attack: float

    @property
    def occupied(self) -> bool:
        return self.occupants > 0


@dataclass(frozen=True)
class CellSample:
    """Vectorized cell lookup for many positions at once."""
    inside: np.ndarray
    solid: np.ndarray
    friendly_exposed: np.ndarray
    enemy_exposed: np.ndarray
    friendly_attack: np.ndarray
    enemy_attack: np.ndarray


@dataclass(frozen=True)
class _Contribution:
    mode: ContributionMode
    position: Vector2
    radius: float
    thrust_profile: tuple[int, ...] | None = None


@dataclass(frozen=True)
class _Window:
    rows: slice
    cols: slice
    dx: np.ndarray
    dy: np.ndarray
    distance: np.ndarray
    mask: np.ndarray


def falloff_weights(distance: np.ndarray, radius: float, max_thrust: float,
                    weapon_radius: float) -> np.ndarray:
    """Attack weight of a friendly at each *distance*, quantized.

    Peaks at the agent, decays across the attack radius, the movement
    radius and a two-steps-ahead band, and reaches zero at the next-turn
    attack radius.
    """
    attack_r = radius + weapon_radius
    move_r = radius + max_thrust
    halfway_r = move_r + 3.0
    next_r = move_r + weapon_radius
    xp = np.maximum.accumulate(np.array([0.0, attack_r, move_r, halfway_r, next_r]))
    fp = np.array([1.0, 0.7, 0.5, 0.3, 0.0])
    weights = np.interp(distance, xp, fp, right=0.0)
    return np.round(weights * _WEIGHT_QUANTUM) / _WEIGHT_QUANTUM


class InfluenceGrid:
    """Per-cell aggregate of next-step occupancy, exposure and threat."""

    def __init__(self, world: World, settings: NavigationSettings | None = None) -> None:
        self._settings = settings or default_settings
        cfg = self._settings
        if world.width > cfg.max_field_width or world.height > cfg.max_field_height:
            raise ValueError(
                f"Field {world.width:g}x{world.height:g} exceeds the maximum "
                f"{cfg.max_field_width}x{cfg.max_field_height}"
            )
        self._world = world
        self._res = cfg.grid_resolution
        self._heading_step = 360.0 / cfg.heading_count
        self.cols = int(math.ceil(world.width * self._res))
        self.rows = int(math.ceil(world.height * self._res))
        shape = (self.rows, self.cols)

        self._solid = np.zeros(shape, dtype=bool)
        self._occupants = np.zeros(shape, dtype=np.int32)
        self._friendly_exposed = np.zeros(shape, dtype=np.float64)
        self._enemy_exposed = np.zeros(shape, dtype=np.float64)
        self._friendly_attack = np.zeros(shape, dtype=np.float64)
        self._enemy_attack = np.zeros(shape, dtype=np.float64)

        self._contributions: dict[int, _Contribution] = {}

    # ------------------------------------------------------------------
    # Rebuild
    # ------------------------------------------------------------------

    def clear(self) -> None:
        """Zero every cell and forget all contributions."""
        self._solid.fill(False)
        self._occupants.fill(0)
        self._friendly_exposed.fill(0.0)
        self._enemy_exposed.fill(0.0)
        self._friendly_attack.fill(0.0)
        self._enemy_attack.fill(0.0)
        self._contributions.clear()

    def fill(self) -> None:
        """Mark static obstacles solid and add every agent's contribution."""
        for obstacle in self._world.obstacles:
            window = self._window(obstacle.position,
                                  obstacle.radius + self._settings.agent_radius)
            if window is not None:
                self._solid[window.rows, window.cols] |= window.mask

        for agent in self._world.agents:
            self.modify_agent(agent, 1)

    # ------------------------------------------------------------------
    # Incremental patching
    # ------------------------------------------------------------------

    def is_contributing(self, agent_id: int) -> bool:
        return agent_id in self._contributions

    def modify_agent(self, agent: Agent, direction: int = 1) -> None:
        """Add (+1) or exactly remove (-1) one agent's contribution."""
        if direction == 1:
            if agent.agent_id in self._contributions:
                raise ValueError(f"Agent {agent.agent_id} is already on the grid")
            contribution = self._profile(agent)
            self._contributions[agent.agent_id] = contribution
        elif direction == -1:
            try:
                contribution = self._contributions.pop(agent.agent_id)
            except KeyError:
                raise KeyError(f"Agent {agent.agent_id} is not on the grid") from None
        else:
            raise ValueError(f"direction must be +1 or -1, got {direction}")

        self._apply(contribution, direction)

    def _profile(self, agent: Agent) -> _Contribution:
        if self._world.is_friendly(agent):
            if agent.is_stationary or agent.max_safe_thrust is None:
                mode = ContributionMode.FRIENDLY_STATIC
            else:
                mode = ContributionMode.FRIENDLY_MOBILE
        elif agent.immobilized:
            mode = ContributionMode.ENEMY_STATIC
        else:
            mode = ContributionMode.ENEMY_MOBILE

        profile = None
        if mode is ContributionMode.FRIENDLY_MOBILE:
            profile = tuple(int(t) for t in agent.max_safe_thrust)
        return _Contribution(mode=mode, position=agent.position,
                             radius=agent.radius, thrust_profile=profile)

    def _reach(self, c: _Contribution) -> float:
        cfg = self._settings
        if c.mode is ContributionMode.FRIENDLY_MOBILE:
            return c.radius + cfg.max_thrust + cfg.weapon_radius
        if c.mode is ContributionMode.ENEMY_MOBILE:
            return c.radius + cfg.max_thrust + cfg.weapon_radius + 1.0
        return c.radius + cfg.weapon_radius

    def _apply(self, c: _Contribution, direction: int) -> None:
        cfg = self._settings
        window = self._window(c.position, self._reach(c))
        if window is None:
            return
        rs, cs = window.rows, window.cols
        d = window.distance
        mask = window.mask

        occupied = mask & (d < c.radius)
        self._occupants[rs, cs] += occupied.astype(np.int32) * direction

        if c.mode is ContributionMode.FRIENDLY_MOBILE:
            exposed = mask & (d < c.radius + cfg.max_thrust)
            self._friendly_exposed[rs, cs] += exposed * float(direction)

            angles = np.degrees(np.arctan2(window.dy, window.dx))
            idx = np.rint(angles / self._heading_step).astype(np.int64) % cfg.heading_count
            thrust = np.asarray(c.thrust_profile, dtype=np.float64)[idx]
            in_reach = mask & (d < c.radius + thrust + cfg.weapon_radius)
            weights = falloff_weights(d, c.radius, cfg.max_thrust, cfg.weapon_radius)
            self._friendly_attack[rs, cs] += np.where(in_reach, weights, 0.0) * direction

        elif c.mode is ContributionMode.FRIENDLY_STATIC:
            exposed = mask & (d < c.radius + cfg.weapon_radius)
            self._friendly_exposed[rs, cs] += exposed * float(direction)

        elif c.mode is ContributionMode.ENEMY_MOBILE:
            self._enemy_exposed[rs, cs] += mask * float(direction)
            self._enemy_attack[rs, cs] += mask * float(direction)

        else:
            self._enemy_exposed[rs, cs] += mask * float(direction)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _window(self, center: Vector2, radius: float) -> _Window | None:
        """Cells whose center lies strictly within *radius* of *center*."""
        res = self._res
        col0 = max(0, int(math.floor((center.x - radius) * res)))
        col1 = min(self.cols - 1, int(math.floor((center.x + radius) * res)))
        row0 = max(0, int(math.floor((center.y - radius) * res)))
        row1 = min(self.rows - 1, int(math.floor((center.y + radius) * res)))
        if col0 > col1 or row0 > row1:
            return None

        xs = (np.arange(col0, col1 + 1, dtype=np.float64) + 0.5) / res
        ys = (np.arange(row0, row1 + 1, dtype=np.float64) + 0.5) / res
        dx = np.broadcast_to(xs[None, :] - center.x, (ys.size, xs.size))
        dy = np.broadcast_to(ys[:, None] - center.y, (ys.size, xs.size))
        distance = np.hypot(dx, dy)
        return _Window(
            rows=slice(row0, row1 + 1),
            cols=slice(col0, col1 + 1),
            dx=dx,
            dy=dy,
            distance=distance,
            mask=distance < radius,
        )

    def cell_position(self, row: int, col: int) -> Vector2:
        return Vector2((col + 0.5) / self._res, (row + 0.5) / self._res)

    def _cell(self, row: int, col: int) -> Cell:
        return Cell(
            row=row,
            col=col,
            position=self.cell_position(row, col),
            solid=bool(self._solid[row, col]),
            occupants=int(self._occupants[row, col]),
            friendly_exposed=float(self._friendly_exposed[row, col]),
            enemy_exposed=float(self._enemy_exposed[row, col]),
            friendly_attack=float(self._friendly_attack[row, col]),
            enemy_attack=float(self._enemy_attack[row, col]),
        )

    def cell_at(self, position: Vector2) -> Cell:
        """The cell covering *position*.  Raises ValueError off the grid."""
        col = int(math.floor(position.x * self._res))
        row = int(math.floor(position.y * self._res))
        if not (0 <= col < self.cols and 0 <= row < self.rows):
            raise ValueError(f"Position ({position.x}, {position.y}) is outside the grid")
        return self._cell(row, col)

    def iterate(self, center: Vector2, radius: float,
                callback: Callable[[Vector2, Cell, float], None]) -> None:
        """Call ``callback(position, cell, distance)`` for every cell within radius.

        Cells are visited in row-major order.
        """
        window = self._window(center, radius)
        if window is None:
            return
        row0, col0 = window.rows.start, window.cols.start
        for r, c in zip(*np.nonzero(window.mask)):
            row, col = row0 + int(r), col0 + int(c)
            callback(self.cell_position(row, col), self._cell(row, col),
                     float(window.distance[r, c]))

    def region(self, center: Vector2, radius: float) -> tuple[np.ndarray, np.ndarray, np.ndarray, CellSample]:
        """Vectorized form of :meth:`iterate`.

        Returns (xs, ys, distances, sample) for every cell within *radius*,
        in the same row-major order.
        """
        window = self._window(center, radius)
        if window is None:
            empty = np.zeros(0)
            return empty, empty, empty, self.sample(empty, empty)
        rr, cc = np.nonzero(window.mask)
        rows = rr + window.rows.start
        cols = cc + window.cols.start
        xs = (cols + 0.5) / self._res
        ys = (rows + 0.5) / self._res
        return xs, ys, window.distance[rr, cc], self._gather(rows, cols, np.ones(rows.size, dtype=bool))

    def sample(self, xs: np.ndarray, ys: np.ndarray) -> CellSample:
        """Look up the covering cell of every (x, y); off-grid points read as empty."""
        xs = np.asarray(xs, dtype=np.float64)
        ys = np.asarray(ys, dtype=np.float64)
        cols = np.floor(xs * self._res).astype(np.int64)
        rows = np.floor(ys * self._res).astype(np.int64)
        inside = (cols >= 0) & (cols < self.cols) & (rows >= 0) & (rows < self.rows)
        return self._gather(np.where(inside, rows, 0), np.where(inside, cols, 0), inside)

    def _gather(self, rows: np.ndarray, cols: np.ndarray, inside: np.ndarray) -> CellSample:
        return CellSample(
            inside=inside,
            solid=np.where(inside, self._solid[rows, cols], False),
            friendly_exposed=np.where(inside, self._friendly_exposed[rows, cols], 0.0),
            enemy_exposed=np.where(inside, self._enemy_exposed[rows, cols], 0.0),
            friendly_attack=np.where(inside, self._friendly_attack[rows, cols], 0.0),
            enemy_attack=np.where(inside, self._enemy_attack[rows, cols], 0.0),
        )

    def snapshot(self) -> dict[str, np.ndarray]:
        """Copies of every cell field, keyed by field name."""
        return {name: getattr(self, f"_{name}").copy() for name in _FIELDS}
