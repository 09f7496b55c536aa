"""Unit tests for the action space, max-safe-thrust tables and the scorer."""

from __future__ import annotations

import numpy as np
import pytest

from flotilla.config import NavigationSettings
from flotilla.navigation.actions import (
    ActionSpace,
    Scorer,
    VelocityCache,
    candidates_within,
    compute_max_safe_thrust,
    plan_destination,
    relevant_obstacles,
)
from flotilla.navigation.influence import InfluenceGrid
from flotilla.navigation.request import (
    HOLD,
    INFEASIBLE,
    Candidate,
    NavigationRequest,
    Preference,
    Request,
)
from flotilla.world import Agent, Obstacle, Vector2, World


pytestmark = pytest.mark.unit

FRIEND = 0
ENEMY = 1


def _make_agent(agent_id: int, x: float, y: float, side: int = FRIEND, **kwargs) -> Agent:
    return Agent(agent_id, Vector2(x, y), side, **kwargs)


def _setup(agent: Agent, *others: Agent, target=(30.0, 20.0),
           preference: Preference = Preference.AVOID_ENEMIES):
    """World + filled grid + scorer + request for *agent* with an open field."""
    world = World(60.0, 40.0, FRIEND, agents=[agent, *others])
    space = ActionSpace()
    agent.max_safe_thrust = compute_max_safe_thrust(agent, [], space.cache, 0.6)
    grid = InfluenceGrid(world)
    grid.fill()
    scorer = Scorer(world, grid, space)
    request = Request(handle=0, request=NavigationRequest(agent.agent_id, target, preference),
                      agent=agent)
    return world, grid, scorer, request


class TestActionSpace:

    def test_default_enumeration(self):
        space = ActionSpace()
        assert len(space) == 1 + 360 * 8
        assert space.candidates[0] == HOLD
        assert space.candidates[1] == Candidate(0, 1)
        assert space.candidates[7] == Candidate(0, 7)
        assert space.candidates[8] == Candidate(0, 7, lookahead=True)
        assert space.candidates[9] == Candidate(1, 1)

    def test_coarse_headings(self):
        space = ActionSpace(NavigationSettings(heading_count=8))
        assert len(space) == 1 + 8 * 8
        assert sorted({c.heading for c in space if not c.is_hold}) == [0, 45, 90, 135, 180, 225, 270, 315]

    def test_heading_count_must_divide_circle(self):
        with pytest.raises(ValueError):
            ActionSpace(NavigationSettings(heading_count=7))

    def test_lookahead_executes_at_max_thrust(self):
        space = ActionSpace()
        v = space.velocity(Candidate(90, 7, lookahead=True))
        assert v.x == pytest.approx(0.0, abs=1e-12)
        assert v.y == pytest.approx(7.0)

    def test_velocity_cache_covers_two_steps(self):
        cache = VelocityCache(360, 7)
        assert cache.offsets.shape == (360, 15, 2)
        assert cache.offsets[180, 14, 0] == pytest.approx(-14.0)
        assert cache.heading_index(361) == 1


class TestMaxSafeThrust:

    def test_open_field_allows_full_thrust(self):
        agent = _make_agent(1, 10.0, 10.0)
        table = compute_max_safe_thrust(agent, [], VelocityCache(360, 7), 0.6)
        assert table.shape == (360,)
        assert np.all(table == 7)

    def test_obstacle_caps_thrust_toward_it(self):
        agent = _make_agent(1, 10.0, 10.0)
        rock = Obstacle(100, Vector2(15.0, 10.0), 1.0)
        table = compute_max_safe_thrust(agent, [rock], VelocityCache(360, 7), 0.6)
        assert table[0] == 3
        assert table[90] == 7
        assert table[180] == 7

    def test_stationary_agent_blocks_path(self):
        agent = _make_agent(1, 10.0, 10.0)
        wreck = _make_agent(2, 10.0, 13.0, immobilized=True)
        table = compute_max_safe_thrust(agent, [wreck], VelocityCache(360, 7), 0.6)
        assert table[90] == 1

    def test_relevant_obstacles_skip_movers(self):
        me = _make_agent(1, 10.0, 10.0)
        mate = _make_agent(2, 12.0, 10.0)
        enemy = _make_agent(3, 14.0, 10.0, ENEMY)
        near_rock = Obstacle(100, Vector2(10.0, 16.0), 1.0)
        far_rock = Obstacle(101, Vector2(40.0, 30.0), 1.0)
        world = World(60.0, 40.0, FRIEND, agents=[me, mate, enemy],
                      obstacles=[near_rock, far_rock])

        found = relevant_obstacles(world, me, movers={1, 2})
        assert enemy in found
        assert near_rock in found
        assert mate not in found
        assert me not in found
        assert far_rock not in found

        mate.frozen = True
        assert mate in relevant_obstacles(world, me, movers={1, 2})


class TestScorer:

    def test_open_field_heads_for_target(self):
        agent = _make_agent(1, 20.0, 20.0)
        _, _, scorer, request = _setup(agent)
        ranked = scorer.rank(request)
        assert ranked.best == Candidate(0, 7)
        assert ranked.score(0).value == pytest.approx(
            scorer.score(Candidate(0, 7), request).value)

    def test_thrust_above_table_is_infeasible(self):
        agent = _make_agent(1, 20.0, 20.0)
        _, _, scorer, request = _setup(agent)
        agent.max_safe_thrust[0] = 3
        assert scorer.score(Candidate(0, 5), request) is INFEASIBLE
        assert scorer.score(Candidate(0, 7, lookahead=True), request) is INFEASIBLE
        assert scorer.score(Candidate(0, 3), request).feasible

    def test_leaving_the_field_is_infeasible(self):
        agent = _make_agent(1, 2.0, 20.0)
        _, _, scorer, request = _setup(agent)
        assert scorer.score(Candidate(180, 7), request) is INFEASIBLE
        assert scorer.score(Candidate(0, 7), request).feasible

    def test_lookahead_requires_avoid_preference(self):
        agent = _make_agent(1, 20.0, 20.0)
        _, _, scorer, request = _setup(agent, preference=Preference.SEEK_ENGAGEMENT)
        assert scorer.score(Candidate(0, 7, lookahead=True), request) is INFEASIBLE

    def test_lookahead_scores_worst_sample(self):
        agent = _make_agent(1, 20.0, 20.0)
        _, _, scorer, request = _setup(agent)
        plain = scorer.score(Candidate(0, 7), request)
        coast = scorer.score(Candidate(0, 7, lookahead=True), request)
        assert coast.feasible
        assert coast.value < plain.value

    def test_avoid_stays_out_of_enemy_reach(self):
        agent = _make_agent(1, 20.0, 20.0)
        enemy = _make_agent(2, 35.0, 20.0, ENEMY)
        _, grid, scorer, request = _setup(agent, enemy)
        ranked = scorer.rank(request)
        end = agent.position + scorer.space.velocity(ranked.best)
        assert grid.cell_at(end).enemy_attack == 0.0

    def test_seek_moves_toward_exposed_enemy(self):
        agent = _make_agent(1, 20.0, 20.0)
        enemy = _make_agent(2, 30.0, 20.0, ENEMY, immobilized=True)
        _, _, scorer, request = _setup(agent, enemy, preference=Preference.SEEK_ENGAGEMENT)
        ranked = scorer.rank(request)
        assert ranked.best == Candidate(0, 7)
        assert ranked.score(0).value > 10000.0

    def test_infeasible_candidates_trail(self):
        agent = _make_agent(1, 2.0, 20.0)
        _, _, scorer, request = _setup(agent)
        ranked = scorer.rank(request)
        assert 0 < ranked.feasible_count < len(ranked)
        scores = [score for _, score in ranked]
        assert all(s.feasible for s in scores[:ranked.feasible_count])
        assert all(s is INFEASIBLE for s in scores[ranked.feasible_count:])

    def test_ranking_is_deterministic(self):
        agent = _make_agent(1, 20.0, 20.0)
        enemy = _make_agent(2, 33.0, 25.0, ENEMY)
        _, _, scorer, request = _setup(agent, enemy)
        first = scorer.rank(request)
        second = scorer.rank(request)
        assert np.array_equal(first.order, second.order)


def _heading_gap(a: int, b: int) -> int:
    gap = abs(a - b) % 360
    return min(gap, 360 - gap)


class TestCandidatesWithin:

    def _ranked(self, x: float = 20.0):
        agent = _make_agent(1, x, 20.0)
        _, _, scorer, request = _setup(agent)
        return scorer.rank(request)

    def test_keeps_window_in_rank_order(self):
        ranked = self._ranked()
        expected = [
            rank for rank in range(ranked.feasible_count)
            if ranked.candidate(rank).is_hold
            or _heading_gap(ranked.candidate(rank).heading, 0) <= 15
        ]
        assert list(candidates_within(ranked, 0, 15)) == expected

    def test_hold_always_qualifies(self):
        ranked = self._ranked()
        ranks = list(candidates_within(ranked, 90, 0))
        assert any(ranked.candidate(rank) == HOLD for rank in ranks)
        assert all(ranked.candidate(r).is_hold or ranked.candidate(r).heading == 90
                   for r in ranks)

    def test_floor_ranks_bypass_the_window(self):
        ranked = self._ranked()
        assert ranked.best.heading == 0
        ranks = list(candidates_within(ranked, 180, 5, floor=4))
        assert ranks[:4] == [0, 1, 2, 3]
        assert all(_heading_gap(ranked.candidate(r).heading, 180) <= 5
                   or ranked.candidate(r).is_hold for r in ranks[4:])

    def test_only_feasible_ranks_and_lazy(self):
        ranked = self._ranked(x=2.0)
        assert ranked.feasible_count < len(ranked)
        ranks = candidates_within(ranked, 180, 30)
        assert not isinstance(ranks, list)
        assert all(r < ranked.feasible_count for r in ranks)


class TestPlanDestination:

    def test_reachable_target_is_kept(self):
        agent = _make_agent(1, 20.0, 20.0)
        _, grid, _, request = _setup(agent, target=(24.0, 20.0))
        dest = plan_destination(request, grid)
        assert dest.distance_to(Vector2(24.0, 20.0)) < 0.2

    def test_far_target_is_clipped_to_movement_radius(self):
        agent = _make_agent(1, 20.0, 20.0)
        _, grid, _, request = _setup(agent, target=(50.0, 20.0))
        dest = plan_destination(request, grid)
        assert dest.distance_to(agent.position) <= 8.0
        assert dest.x > 27.5

    def test_threatened_agent_escapes_to_outer_ring(self):
        agent = _make_agent(1, 20.0, 20.0)
        enemy = _make_agent(2, 24.0, 20.0, ENEMY)
        _, grid, _, request = _setup(agent, enemy)
        dest = plan_destination(request, grid)
        assert dest.distance_to(agent.position) > 8.0
        assert grid.cell_at(dest).enemy_attack == 0.0

    def test_seek_without_superiority_keeps_target(self):
        agent = _make_agent(1, 20.0, 20.0)
        enemy = _make_agent(2, 22.0, 20.0, ENEMY)
        _, grid, _, request = _setup(agent, enemy, preference=Preference.SEEK_ENGAGEMENT)
        assert plan_destination(request, grid) == Vector2(30.0, 20.0)
