"""ConflictScheduler -- turns per-agent preferences into collision-free commands.

Architecture
------------
One ``resolve()`` call handles one step:

  1. validate the requests and load them into an arena (handle = index,
     assigned in ascending agent-id order)
  2. link requests whose agents are close enough to collide this step
     (the "event horizon")
  3. compute each mover's obstacle list and max-safe-thrust table,
     rebuild the influence grid, plan destinations and rank candidates;
     every request tentatively commits to its best candidate
  4. work queue: repeatedly take the request with the most known
     conflicts, re-test it against its horizon neighbors' current
     commitments and either finalize it, re-commit to the first
     conflict-free candidate, or freeze it
  5. freezing patches the grid, turns the agent into a fixed obstacle for
     its neighbors and requeues them with freshly ranked candidates

Every commit is conflict-free against the neighbor commitments current at
that moment, and a request is only requeued when a neighbor freezes, so the
loop ends after at most one freeze per request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from loguru import logger

from flotilla.config import NavigationSettings, settings as default_settings
from flotilla.events import AGENT_FROZEN, NAVIGATION_COMPLETE, NAVIGATION_DEGRADED, EventBus
from flotilla.timing import StepClock, Stopwatch
from flotilla.world.world import World

from .actions import (
    ActionSpace,
    Scorer,
    candidates_within,
    plan_destination,
    relevant_obstacles,
)
from .geometry import collision_time, is_collision_this_step
from .influence import InfluenceGrid
from .request import Candidate, Command, NavigationRequest, Request, RequestState


@dataclass
class NavigationResult:
    """Outcome of one resolution pass."""

    commands: list[Command] = field(default_factory=list)
    frozen: list[int] = field(default_factory=list)
    frozen_flags: dict[int, bool] = field(default_factory=dict)
    iterations: int = 0
    degraded: bool = False
    elapsed: float = 0.0

    def command_for(self, agent_id: int) -> Command | None:
        for command in self.commands:
            if command.agent_id == agent_id:
                return command
        return None

    def to_dict(self) -> dict:
        return {
            "commands": [c.to_dict() for c in self.commands],
            "frozen": list(self.frozen),
            "frozen_flags": {str(k): v for k, v in self.frozen_flags.items()},
            "iterations": self.iterations,
            "degraded": self.degraded,
            "elapsed": round(self.elapsed, 6),
        }


class ConflictScheduler:
    """Resolves one step of navigation requests against a World."""

    def __init__(
        self,
        world: World,
        settings: NavigationSettings | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._world = world
        self._settings = settings or default_settings
        self._event_bus = event_bus
        self._space = ActionSpace(self._settings)
        self._grid = InfluenceGrid(world, self._settings)
        self._scorer = Scorer(world, self._grid, self._space, self._settings)

        self._arena: list[Request] = []
        self._pending: set[int] = set()
        self._movers: set[int] = set()
        self._degraded = False
        self._iterations = 0

    @property
    def grid(self) -> InfluenceGrid:
        return self._grid

    @property
    def scorer(self) -> Scorer:
        return self._scorer

    @property
    def requests(self) -> list[Request]:
        """The arena of the most recent pass, indexed by handle."""
        return self._arena

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def resolve(self, requests: Iterable[NavigationRequest]) -> NavigationResult:
        cfg = self._settings
        clock = StepClock(cfg.time_budget_s)
        ordered = self._validate(requests)

        world = self._world
        world.refresh()
        for agent in world.agents:
            agent.reset_navigation()

        self._arena = [
            Request(handle=i, request=r, agent=world.get_agent(r.agent_id))
            for i, r in enumerate(ordered)
        ]
        self._pending = set()
        self._degraded = False
        self._iterations = 0

        for req in self._arena:
            if req.agent.immobilized:
                req.state = RequestState.FROZEN
                req.agent.frozen = True
                self._announce_frozen(req, "immobilized")
        self._movers = {r.agent_id for r in self._arena if r.active}
        active = [r for r in self._arena if r.active]

        with Stopwatch("event horizon"):
            self._build_horizons(active)

        with Stopwatch("max safe thrust"):
            for req in active:
                req.agent.obstacles = relevant_obstacles(world, req.agent, self._movers, cfg)
                self._scorer.max_safe_thrust(req.agent)

        with Stopwatch("influence grid"):
            self._grid.clear()
            self._grid.fill()

        with Stopwatch("ranking"):
            for req in active:
                self._plan(req)

        self._freeze([r for r in active if r.ranked.feasible_count == 0],
                     "no feasible candidate")

        active = [r for r in self._arena if r.active]
        for req in active:
            req.conflicts = self._conflicts(req, req.committed)
        self._pending = {r.handle for r in active}

        with Stopwatch("conflict resolution"):
            while self._pending:
                if not self._degraded and clock.over_budget:
                    self._enter_degraded(clock.elapsed)
                req = min((self._arena[h] for h in self._pending), key=self._queue_key)
                self._pending.discard(req.handle)
                self._iterations += 1
                self._settle(req)

        result = self._result(clock.elapsed)
        logger.info(
            f"Resolved {len(self._arena)} requests: {len(result.commands)} commands, "
            f"{len(result.frozen)} frozen, {result.iterations} iterations "
            f"in {result.elapsed * 1000:.1f} ms"
        )
        self._publish(NAVIGATION_COMPLETE, {
            "commands": len(result.commands),
            "frozen": list(result.frozen),
            "iterations": result.iterations,
            "elapsed": result.elapsed,
        })
        return result

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _validate(self, requests: Iterable[NavigationRequest]) -> list[NavigationRequest]:
        seen: set[int] = set()
        ordered: list[NavigationRequest] = []
        for request in requests:
            if request.agent_id in seen:
                raise ValueError(f"Duplicate request for agent {request.agent_id}")
            agent = self._world.get_agent(request.agent_id)
            if not self._world.is_friendly(agent):
                raise ValueError(
                    f"Agent {request.agent_id} is not controlled by player {self._world.player_id}"
                )
            seen.add(request.agent_id)
            ordered.append(request)
        return sorted(ordered, key=lambda r: r.agent_id)

    def _build_horizons(self, active: list[Request]) -> None:
        """Link every pair of requests that could touch this step."""
        cfg = self._settings
        handles = {r.agent_id: r.handle for r in active}
        for req in active:
            agent = req.agent
            reach = agent.radius + 2 * cfg.max_thrust + cfg.event_horizon_margin
            for other in self._world.agents_near(agent.position, reach):
                handle = handles.get(other.agent_id)
                if handle is not None and handle != req.handle:
                    req.horizon.add(handle)

    def _plan(self, req: Request) -> None:
        req.destination = plan_destination(req, self._grid, self._settings)
        req.ranked = self._scorer.rank(req)
        req.selected = 0
        req.state = RequestState.TENTATIVE

    # ------------------------------------------------------------------
    # Work queue
    # ------------------------------------------------------------------

    @staticmethod
    def _queue_key(req: Request) -> tuple:
        return (-len(req.conflicts), -req.priority, req.handle)

    def _conflicts(self, req: Request, candidate: Candidate) -> set[int]:
        """Horizon neighbors whose current commitment collides with *candidate*."""
        velocity = self._space.velocity(candidate)
        agent = req.agent
        conflicts = set()
        for handle in sorted(req.horizon):
            other = self._arena[handle]
            committed = other.committed
            if committed is None:
                continue
            result = collision_time(
                agent.radius + other.agent.radius,
                agent.position,
                other.agent.position,
                velocity,
                self._space.velocity(committed),
            )
            if is_collision_this_step(result):
                conflicts.add(handle)
        return conflicts

    def _scan_ranks(self, req: Request) -> Iterable[int]:
        ranked = req.ranked
        if self._degraded:
            cfg = self._settings
            return candidates_within(ranked, ranked.best.heading,
                                     cfg.degraded_window_deg, cfg.degraded_scan_floor)
        return range(ranked.feasible_count)

    def _settle(self, req: Request) -> None:
        req.conflicts = self._conflicts(req, req.committed)
        if not req.conflicts:
            req.state = RequestState.FINALIZED
            return

        for rank in self._scan_ranks(req):
            if rank == req.selected:
                continue
            if not self._conflicts(req, req.ranked.candidate(rank)):
                req.selected = rank
                req.conflicts = set()
                req.state = RequestState.FINALIZED
                logger.debug(f"Agent {req.agent_id} re-committed to rank {rank}: "
                             f"{req.ranked.candidate(rank)}")
                return

        self._freeze([req], "no conflict-free candidate")

    def _enter_degraded(self, elapsed: float) -> None:
        window = self._settings.degraded_window_deg
        self._degraded = True
        logger.warning(
            f"Navigation over budget ({elapsed:.2f}s > {self._settings.time_budget_s:.2f}s), "
            f"narrowing candidate scan to +/-{window} degrees"
        )
        self._publish(NAVIGATION_DEGRADED, {"elapsed": elapsed, "window_deg": window})

    # ------------------------------------------------------------------
    # Freezing
    # ------------------------------------------------------------------

    def _freeze(self, requests: list[Request], reason: str) -> None:
        """Freeze *requests*, then any neighbor left without a feasible candidate."""
        stack = [(req, reason) for req in reversed(requests)]
        while stack:
            req, why = stack.pop()
            if not req.active:
                continue
            for neighbor in self._freeze_one(req, why):
                if neighbor.ranked.feasible_count == 0:
                    stack.append((neighbor, "no feasible candidate"))

    def _freeze_one(self, req: Request, reason: str) -> list[Request]:
        grid = self._grid
        agent = req.agent

        grid.modify_agent(agent, -1)
        req.state = RequestState.FROZEN
        agent.frozen = True
        grid.modify_agent(agent, 1)

        self._movers.discard(agent.agent_id)
        self._pending.discard(req.handle)
        self._announce_frozen(req, reason)

        affected = [self._arena[h] for h in sorted(req.horizon) if self._arena[h].active]
        req.horizon.clear()
        req.conflicts.clear()

        for other in affected:
            other.horizon.discard(req.handle)
            other.conflicts.discard(req.handle)
            other.agent.obstacles.append(agent)
            grid.modify_agent(other.agent, -1)
            other.agent.max_safe_thrust = None
            self._scorer.max_safe_thrust(other.agent)
            grid.modify_agent(other.agent, 1)

        for other in affected:
            self._plan(other)
            self._pending.add(other.handle)
        return affected

    def _announce_frozen(self, req: Request, reason: str) -> None:
        logger.debug(f"Agent {req.agent_id} frozen: {reason}")
        self._publish(AGENT_FROZEN, {"agent_id": req.agent_id, "reason": reason})

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _result(self, elapsed: float) -> NavigationResult:
        result = NavigationResult(iterations=self._iterations,
                                  degraded=self._degraded, elapsed=elapsed)
        for req in self._arena:
            result.frozen_flags[req.agent_id] = req.agent.frozen
            candidate = req.committed
            if candidate is None:
                result.frozen.append(req.agent_id)
                continue
            result.commands.append(
                Command(agent_id=req.agent_id, thrust=candidate.thrust, heading=candidate.heading)
            )
        return result

    def _publish(self, event_type: str, data: dict) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event_type, data)
