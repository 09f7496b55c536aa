"""Navigation core -- geometry, influence grid, scoring and conflict resolution."""
from .actions import ActionSpace, RankedCandidates, Scorer, VelocityCache, compute_max_safe_thrust, plan_destination
from .geometry import collision_time, is_collision_this_step, segment_circle_intersect
from .influence import Cell, InfluenceGrid
from .request import (
    HOLD,
    INFEASIBLE,
    Candidate,
    Command,
    NavigationRequest,
    Preference,
    Request,
    RequestState,
    Score,
)
from .scheduler import ConflictScheduler, NavigationResult

__all__ = [
    "ActionSpace",
    "Candidate",
    "Cell",
    "Command",
    "ConflictScheduler",
    "HOLD",
    "INFEASIBLE",
    "InfluenceGrid",
    "NavigationRequest",
    "NavigationResult",
    "Preference",
    "RankedCandidates",
    "Request",
    "RequestState",
    "Score",
    "Scorer",
    "VelocityCache",
    "collision_time",
    "compute_max_safe_thrust",
    "is_collision_this_step",
    "plan_destination",
    "segment_circle_intersect",
]
