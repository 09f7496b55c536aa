"""Unit tests for SpatialIndex -- bucketed neighbor queries over circular bodies."""

from __future__ import annotations

import pytest

from flotilla.world import Agent, Obstacle, SpatialIndex, Vector2


pytestmark = pytest.mark.unit


def _make_agent(agent_id: int, x: float, y: float) -> Agent:
    """Helper to create a minimal agent at (x, y)."""
    return Agent(agent_id, Vector2(x, y), side=0)


class TestSpatialIndexBasic:

    def test_empty_index_returns_nothing(self):
        index = SpatialIndex(cell_size=16.0)
        assert index.query_radius(Vector2(0.0, 0.0), 100.0) == []
        assert len(index) == 0

    def test_invalid_cell_size(self):
        with pytest.raises(ValueError):
            SpatialIndex(cell_size=0.0)

    def test_single_body_in_range(self):
        index = SpatialIndex()
        a = _make_agent(1, 10.0, 10.0)
        index.rebuild([a])
        assert index.query_radius(Vector2(0.0, 0.0), 15.0) == [a]

    def test_single_body_out_of_range(self):
        index = SpatialIndex()
        index.rebuild([_make_agent(1, 100.0, 100.0)])
        assert index.query_radius(Vector2(0.0, 0.0), 20.0) == []

    def test_query_measures_to_body_edge(self):
        index = SpatialIndex()
        agent = _make_agent(1, 10.0, 0.0)
        index.rebuild([agent])
        # center is 10 away, edge 9.5 away
        assert index.query_radius(Vector2(0.0, 0.0), 9.5) == [agent]
        assert index.query_radius(Vector2(0.0, 0.0), 9.4) == []

    def test_large_body_found_from_neighbor_cell(self):
        index = SpatialIndex(cell_size=8.0)
        planet = Obstacle(100, Vector2(40.0, 40.0), 20.0)
        index.rebuild([planet, _make_agent(1, 0.0, 0.0)])
        assert index.query_radius(Vector2(40.0, 63.0), 4.0) == [planet]

    def test_rebuild_clears_old_data(self):
        index = SpatialIndex()
        index.rebuild([_make_agent(1, 5.0, 5.0)])
        assert len(index.query_radius(Vector2(0.0, 0.0), 20.0)) == 1

        index.rebuild([_make_agent(2, 200.0, 200.0)])
        assert index.query_radius(Vector2(0.0, 0.0), 20.0) == []
        assert len(index.query_radius(Vector2(200.0, 200.0), 20.0)) == 1

    def test_negative_coordinates(self):
        index = SpatialIndex()
        index.rebuild([_make_agent(1, -30.0, -40.0)])
        assert len(index.query_radius(Vector2(-30.0, -40.0), 5.0)) == 1

    def test_query_order_is_stable(self):
        bodies = [_make_agent(i, float(i * 7 % 50), float(i * 13 % 50)) for i in range(40)]
        index = SpatialIndex()
        index.rebuild(bodies)
        first = index.query_radius(Vector2(25.0, 25.0), 20.0)
        second = index.query_radius(Vector2(25.0, 25.0), 20.0)
        assert [b.agent_id for b in first] == [b.agent_id for b in second]
        assert len(index) == 40
