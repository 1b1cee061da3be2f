import pytest

from conftest import make_graph
from neurohunt.models import SynapseState
from neurohunt.pathfinding import (
    fog_can_expand,
    hop_distances,
    open_synapse_predicate,
    reachable_set,
    shortest_path,
    shortest_path_to_any,
    visible_neurons,
)
from neurohunt.state import NotFoundError


@pytest.fixture
def long_line():
    return make_graph([(f"N{i}", f"N{i + 1}") for i in range(6)])


class TestShortestPath:

    def test_line(self, line_graph):
        assert shortest_path(line_graph, "N0", "N2") == ["N0", "N1", "N2"]

    def test_start_is_goal(self, line_graph):
        assert shortest_path(line_graph, "N1", "N1") == ["N1"]

    def test_ties_follow_connection_order(self, diamond_graph):
        for _ in range(5):
            assert shortest_path(diamond_graph, "N0", "N3") == ["N0", "N1", "N3"]

    def test_tie_break_changes_with_insertion_order(self):
        graph = make_graph([("N0", "N2"), ("N0", "N1"), ("N1", "N3"), ("N2", "N3")], core="N3")
        assert shortest_path(graph, "N0", "N3") == ["N0", "N2", "N3"]

    def test_routes_around_blocked_neuron(self, diamond_graph):
        diamond_graph.set_node_blocked("N1", True)
        pred = open_synapse_predicate(diamond_graph)
        assert shortest_path(diamond_graph, "N0", "N4", pred) == ["N0", "N2", "N3", "N4"]

    def test_unreachable_returns_none(self, line_graph):
        line_graph.set_node_blocked("N1", True)
        pred = open_synapse_predicate(line_graph)
        assert shortest_path(line_graph, "N0", "N2", pred) is None

    def test_destroyed_set_is_an_obstacle(self, diamond_graph):
        pred = open_synapse_predicate(diamond_graph, destroyed={"N1", "N2"})
        assert shortest_path(diamond_graph, "N0", "N4", pred) is None

    def test_assume_open_lets_route_pass_through_blocked(self, line_graph):
        line_graph.set_node_blocked("N1", True)
        pred = open_synapse_predicate(line_graph, destroyed={"N1"}, assume_open={"N1"})
        assert shortest_path(line_graph, "N0", "N2", pred) == ["N0", "N1", "N2"]

    def test_unknown_neuron_raises(self, line_graph):
        with pytest.raises(NotFoundError):
            shortest_path(line_graph, "N0", "missing")

    def test_to_any_picks_nearest_goal(self, long_line):
        assert shortest_path_to_any(long_line, "N0", ["N5", "N2"]) == ["N0", "N1", "N2"]
        assert shortest_path_to_any(long_line, "N0", []) is None

    def test_queries_do_not_mutate_graph(self, diamond_graph):
        before = diamond_graph.to_dict()
        shortest_path(diamond_graph, "N0", "N4", open_synapse_predicate(diamond_graph))
        visible_neurons(diamond_graph, "N0")
        assert diamond_graph.to_dict() == before
        assert diamond_graph.pending_changes == []


class TestReachableSet:

    def test_hop_bound(self, long_line):
        assert reachable_set(long_line, "N0", 2) == {"N0", "N1", "N2"}
        distances = hop_distances(long_line, "N0")
        for nid in reachable_set(long_line, "N0", 3):
            assert distances[nid] <= 3

    def test_zero_hops_is_origin_only(self, long_line):
        assert reachable_set(long_line, "N3", 0) == {"N3"}

    def test_frontier_is_revealed_but_not_expanded(self, long_line):
        only_origin = lambda nid: nid == "N0"
        assert reachable_set(long_line, "N0", 4, only_origin) == {"N0", "N1"}

    def test_gated_origin_reveals_nothing_else(self, long_line):
        assert reachable_set(long_line, "N2", 3, lambda nid: False) == {"N2"}


class TestFog:

    def test_unactivated_neighbour_blocks_sight(self, long_line):
        assert visible_neurons(long_line, "N0") == {"N0", "N1"}

    def test_active_synapse_extends_sight(self, long_line):
        long_line.set_edge_state("e0", SynapseState.ACTIVE)
        long_line.activate_neuron("N1")
        assert visible_neurons(long_line, "N1") == {"N0", "N1", "N2"}

    def test_expansion_gate(self, line_graph):
        can_expand = fog_can_expand(line_graph)
        assert can_expand("N0")
        assert not can_expand("N1")
        line_graph.set_edge_state("e1", SynapseState.ACTIVE)
        assert can_expand("N1")
