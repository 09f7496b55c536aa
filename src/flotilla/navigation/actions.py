"""Action space and scorer -- every command an agent could issue, and how good it is.

Candidate layout (enumeration order)::

    HOLD,
    (h0, 1) .. (h0, T), (h0, T, lookahead),
    (h1, 1) .. (h1, T), (h1, T, lookahead),
    ...

Scoring works on numpy arrays end to end: candidate end points come from
the VelocityCache, cell fields from ``InfluenceGrid.sample``, and a single
``_position_scores`` function turns positions into values.  Infeasible
entries are carried as ``-inf`` internally and surface as
``Score.INFEASIBLE``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Iterator

import numpy as np

from flotilla.config import NavigationSettings, settings as default_settings
from flotilla.world.vector import Vector2

from .geometry import segments_circle_intersect
from .request import HOLD, INFEASIBLE, Candidate, Request, Score

if TYPE_CHECKING:
    from flotilla.world.agent import Agent, Obstacle
    from flotilla.world.world import World

    from .influence import InfluenceGrid


class VelocityCache:
    """Precomputed per-step offsets for every heading and thrust 0..2*max_thrust."""

    def __init__(self, heading_count: int, max_thrust: int) -> None:
        self.heading_count = heading_count
        self.heading_step = 360 // heading_count
        self.max_thrust = max_thrust
        self.headings = np.arange(heading_count, dtype=np.int64) * self.heading_step
        rad = np.radians(self.headings.astype(np.float64))
        self.unit = np.stack([np.cos(rad), np.sin(rad)], axis=1)
        thrusts = np.arange(2 * max_thrust + 1, dtype=np.float64)
        # (heading, thrust, xy)
        self.offsets = self.unit[:, None, :] * thrusts[None, :, None]

    def heading_index(self, heading: int) -> int:
        return (int(heading) // self.heading_step) % self.heading_count

    def offset(self, heading: int, thrust: int) -> Vector2:
        dx, dy = self.offsets[self.heading_index(heading), thrust]
        return Vector2(float(dx), float(dy))


class ActionSpace:
    """The fixed, ordered candidate set shared by every agent."""

    def __init__(self, settings: NavigationSettings | None = None) -> None:
        cfg = settings or default_settings
        if cfg.heading_count <= 0 or 360 % cfg.heading_count:
            raise ValueError(f"heading_count must divide 360, got {cfg.heading_count}")
        if cfg.max_thrust < 1:
            raise ValueError(f"max_thrust must be at least 1, got {cfg.max_thrust}")
        self.max_thrust = cfg.max_thrust
        self.cache = VelocityCache(cfg.heading_count, cfg.max_thrust)

        candidates = [HOLD]
        for heading in self.cache.headings:
            heading = int(heading)
            for thrust in range(1, cfg.max_thrust + 1):
                candidates.append(Candidate(heading, thrust))
            candidates.append(Candidate(heading, cfg.max_thrust, lookahead=True))
        self.candidates: tuple[Candidate, ...] = tuple(candidates)

        self.heading_index = np.array(
            [self.cache.heading_index(c.heading) for c in candidates], dtype=np.int64)
        self.thrust = np.array([c.thrust for c in candidates], dtype=np.int64)
        self.lookahead = np.array([c.lookahead for c in candidates], dtype=bool)
        self.index = np.arange(len(candidates), dtype=np.int64)

    def __len__(self) -> int:
        return len(self.candidates)

    def __iter__(self) -> Iterator[Candidate]:
        return iter(self.candidates)

    def velocity(self, candidate: Candidate) -> Vector2:
        """Displacement this step; a lookahead executes as (heading, max_thrust)."""
        return self.cache.offset(candidate.heading, candidate.thrust)


class RankedCandidates:
    """An agent's candidates ordered best first.  Infeasible entries trail."""

    def __init__(self, space: ActionSpace, order: np.ndarray, values: np.ndarray) -> None:
        self._space = space
        self.order = order
        self.values = values
        self.feasible_count = int(np.count_nonzero(np.isfinite(values)))

    @property
    def space(self) -> ActionSpace:
        return self._space

    def __len__(self) -> int:
        return len(self.order)

    def __iter__(self) -> Iterator[tuple[Candidate, Score]]:
        for i in range(len(self.order)):
            yield self.candidate(i), self.score(i)

    def candidate(self, rank: int) -> Candidate:
        return self._space.candidates[int(self.order[rank])]

    def score(self, rank: int) -> Score:
        return Score.of(float(self.values[rank]))

    @property
    def best(self) -> Candidate:
        return self.candidate(0)


def relevant_obstacles(
    world: World,
    agent: Agent,
    movers: set[int],
    settings: NavigationSettings | None = None,
) -> list[Agent | Obstacle]:
    """Bodies that do not move this step and lie within one step's travel."""
    cfg = settings or default_settings
    reach = cfg.max_thrust + agent.radius + cfg.forecast_fudge
    return world.blocking_bodies_near(agent, reach, movers)


def compute_max_safe_thrust(
    agent: Agent,
    obstacles: Iterable[Agent | Obstacle],
    cache: VelocityCache,
    fudge: float,
) -> np.ndarray:
    """Largest thrust per heading whose straight path clears every obstacle.

    Path segments for one heading are nested, so the first blocked thrust
    bounds the answer.
    """
    pos = agent.position
    top = cache.max_thrust
    ends = cache.offsets[:, 1:top + 1, :] + np.array([pos.x, pos.y])
    blocked = np.zeros(ends.shape[:2], dtype=bool)
    for body in obstacles:
        blocked |= segments_circle_intersect(pos, ends, body.position, body.radius, fudge)
    first = np.argmax(blocked, axis=1)
    return np.where(blocked.any(axis=1), first, top).astype(np.int64)


class Scorer:
    """Scores candidates against the influence grid for one step."""

    def __init__(
        self,
        world: World,
        grid: InfluenceGrid,
        space: ActionSpace,
        settings: NavigationSettings | None = None,
    ) -> None:
        self._world = world
        self._grid = grid
        self._space = space
        self._settings = settings or default_settings
        cfg = self._settings
        self._samples = np.linspace(cfg.max_thrust, 2 * cfg.max_thrust, cfg.lookahead_samples)

    @property
    def space(self) -> ActionSpace:
        return self._space

    def max_safe_thrust(self, agent: Agent) -> np.ndarray:
        """The agent's cached table, computed from its obstacle list if missing."""
        if agent.max_safe_thrust is None:
            agent.max_safe_thrust = compute_max_safe_thrust(
                agent, agent.obstacles, self._space.cache,
                agent.radius + self._settings.forecast_fudge)
        return agent.max_safe_thrust

    # ------------------------------------------------------------------
    # Value function
    # ------------------------------------------------------------------

    def _position_scores(self, xs: np.ndarray, ys: np.ndarray, request: Request) -> np.ndarray:
        cfg = self._settings
        world = self._world
        reference = request.destination if request.destination is not None else request.target

        cells = self._grid.sample(xs, ys)
        proximity = cfg.max_distance - np.hypot(xs - reference.x, ys - reference.y)

        if request.avoid_enemies:
            values = (cfg.threat_ceiling - cells.enemy_attack) * cfg.exposure_weight + proximity
        else:
            values = cells.enemy_exposed * cfg.exposure_weight + proximity
            values = np.where(cells.friendly_exposed > cells.enemy_attack, values, -np.inf)

        outside = ((xs <= 0) | (ys <= 0)
                   | (xs >= world.width - 1) | (ys >= world.height - 1)
                   | ~cells.inside)
        return np.where(outside, -np.inf, values)

    def _lookahead_points(self, position: Vector2, heading_index) -> np.ndarray:
        unit = self._space.cache.unit[heading_index]
        return (np.array([position.x, position.y])
                + unit[..., None, :] * self._samples[:, None])

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def score(self, candidate: Candidate, request: Request) -> Score:
        """Score one candidate for *request*."""
        agent = request.agent
        cache = self._space.cache
        h = cache.heading_index(candidate.heading)
        if candidate.thrust > self.max_safe_thrust(agent)[h]:
            return INFEASIBLE

        if candidate.lookahead:
            if not request.avoid_enemies:
                return INFEASIBLE
            points = self._lookahead_points(agent.position, h)
        else:
            offset = cache.offsets[h, candidate.thrust]
            points = np.array([[agent.position.x + offset[0], agent.position.y + offset[1]]])

        values = self._position_scores(points[:, 0], points[:, 1], request)
        return Score.of(float(values.min()))

    def values(self, request: Request) -> np.ndarray:
        """Raw value of every candidate in enumeration order (-inf = infeasible)."""
        space = self._space
        cache = space.cache
        agent = request.agent
        pos = agent.position
        max_safe = self.max_safe_thrust(agent)

        values = np.full(len(space), -np.inf)

        plain = ~space.lookahead
        hi = space.heading_index[plain]
        thrust = space.thrust[plain]
        offsets = cache.offsets[hi, thrust]
        scores = self._position_scores(pos.x + offsets[:, 0], pos.y + offsets[:, 1], request)
        values[plain] = np.where(thrust <= max_safe[hi], scores, -np.inf)

        if request.avoid_enemies:
            look_hi = space.heading_index[space.lookahead]
            points = self._lookahead_points(pos, look_hi)
            scores = self._position_scores(points[..., 0], points[..., 1], request).min(axis=1)
            values[space.lookahead] = np.where(
                max_safe[look_hi] >= space.max_thrust, scores, -np.inf)

        return values

    def rank(self, request: Request) -> RankedCandidates:
        """Order candidates best first.

        Near-equal scores (within ``tie_epsilon``) rank together and fall
        back to plain-before-lookahead, then enumeration order.
        """
        space = self._space
        values = self.values(request)
        feasible = np.isfinite(values)
        bucket = np.where(feasible, np.rint(values / self._settings.tie_epsilon), 0.0)
        order = np.lexsort((space.index, space.lookahead, -bucket, ~feasible))
        return RankedCandidates(space, order, values[order])


def _best_cell(mask: np.ndarray, primary: np.ndarray, secondary: np.ndarray) -> int:
    """Index of the masked entry minimizing (primary, secondary, index)."""
    idx = np.flatnonzero(mask)
    order = np.lexsort((idx, secondary[idx], primary[idx]))
    return int(idx[order[0]])


def plan_destination(
    request: Request,
    grid: InfluenceGrid,
    settings: NavigationSettings | None = None,
) -> Vector2:
    """Adjusted destination used as the scoring reference for *request*."""
    cfg = settings or default_settings
    agent = request.agent
    target = request.target
    movement_r = 2 * agent.radius + cfg.max_thrust

    if request.avoid_enemies:
        xs, ys, dist, cells = grid.region(agent.position, movement_r + 2 * cfg.max_thrust)
        open_cells = ~cells.solid
        inner = open_cells & (dist <= movement_r)
        if not inner.any():
            return target
        to_target = np.hypot(xs - target.x, ys - target.y)
        best = _best_cell(inner, cells.enemy_attack, to_target)

        ring = open_cells & (dist > movement_r)
        if ring.any():
            escape = _best_cell(ring, cells.enemy_attack, dist)
            if cells.enemy_attack[escape] < cells.enemy_attack[best]:
                best = escape
        return Vector2(float(xs[best]), float(ys[best]))

    xs, ys, dist, cells = grid.region(agent.position, movement_r)
    valid = ~cells.solid & (cells.friendly_exposed > cells.enemy_attack)
    if not valid.any():
        return target
    to_target = np.hypot(xs - target.x, ys - target.y)
    best = _best_cell(valid, -cells.enemy_exposed, to_target)
    return Vector2(float(xs[best]), float(ys[best]))


def candidates_within(
    ranked: RankedCandidates,
    heading: int,
    window_deg: int,
    floor: int = 0,
) -> Iterator[int]:
    """Feasible ranks, best first, whose heading is within *window_deg* of *heading*.

    Hold always qualifies, and so do the first *floor* ranks.  The mask is
    computed up front; ranks are yielded lazily so a scan that stops early
    pays nothing for the rest.
    """
    space = ranked.space
    feasible = ranked.order[:ranked.feasible_count]
    gap = np.abs(space.cache.headings[space.heading_index[feasible]] - heading) % 360
    keep = (np.minimum(gap, 360 - gap) <= window_deg) | (space.thrust[feasible] == 0)
    keep[:floor] = True
    for rank in np.flatnonzero(keep):
        yield int(rank)
