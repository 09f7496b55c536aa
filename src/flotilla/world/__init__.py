"""World model -- vectors, agents, obstacles and spatial indexing."""
from .agent import Agent, Obstacle
from .spatial import SpatialIndex
from .vector import ZERO, Vector2, normalize_heading
from .world import World

__all__ = [
    "Agent",
    "Obstacle",
    "SpatialIndex",
    "Vector2",
    "World",
    "ZERO",
    "normalize_heading",
]
