"""Pydantic models for step snapshot files.

A snapshot freezes one step of a match: field size, every agent and
obstacle, and the navigation requests issued for that step.  Used by the
CLI and by tests to replay a step deterministically.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from flotilla.navigation.request import NavigationRequest, Preference
from flotilla.world import Agent, Obstacle, Vector2, World


class ScenarioError(Exception):
    """Raised when a snapshot file cannot be read or is malformed."""


class AgentSpec(BaseModel):
    id: int
    x: float
    y: float
    radius: float = Field(default=0.5, gt=0)
    side: int
    immobilized: bool = False


class ObstacleSpec(BaseModel):
    id: int
    x: float
    y: float
    radius: float = Field(gt=0)


class RequestSpec(BaseModel):
    agent_id: int
    target: tuple[float, float]
    preference: Preference = Preference.AVOID_ENEMIES
    priority: float = 0.0


class StepScenario(BaseModel):
    """A complete step snapshot."""

    width: float = Field(gt=0)
    height: float = Field(gt=0)
    player_id: int
    agents: list[AgentSpec] = Field(default_factory=list)
    obstacles: list[ObstacleSpec] = Field(default_factory=list)
    requests: list[RequestSpec] = Field(default_factory=list)

    def build_world(self) -> World:
        try:
            return self._build_world()
        except ValueError as e:
            raise ScenarioError(f"Inconsistent snapshot: {e}") from e

    def _build_world(self) -> World:
        return World(
            self.width,
            self.height,
            self.player_id,
            agents=[
                Agent(a.id, (a.x, a.y), a.side, radius=a.radius, immobilized=a.immobilized)
                for a in self.agents
            ],
            obstacles=[Obstacle(o.id, Vector2(o.x, o.y), o.radius) for o in self.obstacles],
        )

    def build_requests(self) -> list[NavigationRequest]:
        return [
            NavigationRequest(r.agent_id, r.target, r.preference, r.priority)
            for r in self.requests
        ]


def load_step_scenario(path: str | Path) -> StepScenario:
    """Read and validate a snapshot file.  Raises ScenarioError on any problem."""
    path = Path(path)
    try:
        with open(path) as f:
            data = json.load(f)
    except OSError as e:
        raise ScenarioError(f"Cannot read snapshot {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ScenarioError(f"Invalid JSON in {path}: {e}") from e

    try:
        return StepScenario.model_validate(data)
    except ValidationError as e:
        raise ScenarioError(f"Invalid snapshot {path}: {e}") from e


def save_step_scenario(scenario: StepScenario, path: str | Path) -> Path:
    path = Path(path)
    with open(path, "w") as f:
        json.dump(scenario.model_dump(mode="json"), f, indent=2)
    return path
