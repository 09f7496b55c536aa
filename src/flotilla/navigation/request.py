"""Navigation requests, candidate commands and scores.

NavigationRequest -- what the task-assignment layer asks for (input)
Request           -- the scheduler's per-step working record, addressed by handle
Candidate         -- one (heading, thrust) option, optionally a lookahead coast
Score             -- Infeasible | Feasible(value), infeasible always ranks last
Command           -- the final per-agent order handed back to the caller
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from flotilla.world.vector import Vector2

if TYPE_CHECKING:
    from flotilla.world.agent import Agent
    from .actions import RankedCandidates


class Preference(Enum):
    """Qualitative movement bias supplied with each request."""
    AVOID_ENEMIES = "avoid_enemies"
    SEEK_ENGAGEMENT = "seek_engagement"


class RequestState(Enum):
    UNRESOLVED = "unresolved"
    TENTATIVE = "tentatively_committed"
    FINALIZED = "finalized"
    FROZEN = "frozen"


@dataclass(frozen=True)
class NavigationRequest:
    """One agent's movement goal for this step."""

    agent_id: int
    target: Vector2
    preference: Preference = Preference.AVOID_ENEMIES
    priority: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "target", Vector2.coerce(self.target))
        if not isinstance(self.preference, Preference):
            object.__setattr__(self, "preference", Preference(self.preference))

    @property
    def avoid_enemies(self) -> bool:
        return self.preference is Preference.AVOID_ENEMIES


@dataclass(frozen=True)
class Candidate:
    """A (heading, thrust) command.  Lookahead variants execute at max thrust."""

    heading: int
    thrust: int
    lookahead: bool = False

    @property
    def is_hold(self) -> bool:
        return self.thrust == 0


HOLD = Candidate(heading=0, thrust=0)


@dataclass(frozen=True)
class Score:
    """Tri-state candidate score: ``Score.INFEASIBLE`` or ``Score.of(value)``."""

    value: float | None = None

    @classmethod
    def of(cls, value: float) -> Score:
        if value is None or not math.isfinite(value):
            return INFEASIBLE
        return cls(float(value))

    @property
    def feasible(self) -> bool:
        return self.value is not None

    def __repr__(self) -> str:
        if self.value is None:
            return "Score(infeasible)"
        return f"Score({self.value:.3f})"


INFEASIBLE = Score(None)


@dataclass
class Request:
    """Per-step working state of one navigation request.

    ``horizon`` and ``conflicts`` hold handles of other requests in the
    same arena, never object references.
    """

    handle: int
    request: NavigationRequest
    agent: Agent
    destination: Vector2 | None = None
    ranked: RankedCandidates | None = field(default=None, repr=False)
    selected: int = 0
    horizon: set[int] = field(default_factory=set)
    conflicts: set[int] = field(default_factory=set)
    state: RequestState = RequestState.UNRESOLVED

    @property
    def agent_id(self) -> int:
        return self.request.agent_id

    @property
    def target(self) -> Vector2:
        return self.request.target

    @property
    def preference(self) -> Preference:
        return self.request.preference

    @property
    def avoid_enemies(self) -> bool:
        return self.request.avoid_enemies

    @property
    def priority(self) -> float:
        return self.request.priority

    @property
    def active(self) -> bool:
        return self.state is not RequestState.FROZEN

    @property
    def committed(self) -> Candidate | None:
        """The currently committed candidate, or None once frozen."""
        if self.state is RequestState.FROZEN or self.ranked is None:
            return None
        return self.ranked.candidate(self.selected)


@dataclass(frozen=True)
class Command:
    """Final movement order for one agent."""

    agent_id: int
    thrust: int
    heading: int

    def to_dict(self) -> dict:
        return {"agent_id": self.agent_id, "thrust": self.thrust, "heading": self.heading}
