"""
Graph state tests.

Every mutator either applies fully or raises before writing, and the
invariants reported by ``check_invariants`` hold after any sequence of
accepted and refused operations.
"""

import random

import pytest

from conftest import make_graph
from neurohunt.models import Neuron, NeuronType, Synapse, SynapseState
from neurohunt.state import (
    GameValidationError,
    InvalidOperationError,
    NetworkGraph,
    NotFoundError,
    build_graph_from_dict,
)


class TestConstruction:

    def test_connections_derived_from_synapses(self, diamond_graph):
        assert diamond_graph.neighbors("N0") == ["N1", "N2"]
        assert diamond_graph.neighbors("N3") == ["N1", "N2", "N4"]
        assert diamond_graph.check_invariants() == []

    def test_rejects_unknown_endpoint(self):
        neurons = [
            Neuron(id="A", x=0, y=0, type=NeuronType.ENTRY),
            Neuron(id="B", x=1, y=0, type=NeuronType.CORE),
        ]
        with pytest.raises(NotFoundError):
            NetworkGraph(neurons, [Synapse(id="s", from_neuron_id="A", to_neuron_id="Z")], "A", "B")

    def test_rejects_duplicate_synapse(self):
        neurons = [
            Neuron(id="A", x=0, y=0, type=NeuronType.ENTRY),
            Neuron(id="B", x=1, y=0, type=NeuronType.CORE),
        ]
        synapses = [
            Synapse(id="s1", from_neuron_id="A", to_neuron_id="B"),
            Synapse(id="s2", from_neuron_id="B", to_neuron_id="A"),
        ]
        with pytest.raises(InvalidOperationError):
            NetworkGraph(neurons, synapses, "A", "B")

    def test_rejects_connections_that_disagree_with_synapses(self):
        neurons = [
            Neuron(id="A", x=0, y=0, type=NeuronType.ENTRY, connections=["B"]),
            Neuron(id="B", x=1, y=0, type=NeuronType.CORE, connections=["A"]),
            Neuron(id="C", x=2, y=0, connections=["A"]),
        ]
        synapses = [Synapse(id="s1", from_neuron_id="A", to_neuron_id="B")]
        with pytest.raises(InvalidOperationError):
            NetworkGraph(neurons, synapses, "A", "B")

    def test_requires_single_entry_and_core(self):
        neurons = [
            Neuron(id="A", x=0, y=0, type=NeuronType.ENTRY),
            Neuron(id="B", x=1, y=0, type=NeuronType.ENTRY),
        ]
        with pytest.raises(InvalidOperationError):
            NetworkGraph(neurons, [Synapse(id="s", from_neuron_id="A", to_neuron_id="B")], "A", "B")


class TestSynapseState:

    def test_unknown_synapse_raises_not_found(self, line_graph):
        with pytest.raises(NotFoundError):
            line_graph.set_edge_state("nope", SynapseState.ACTIVE)
        assert line_graph.pending_changes == []

    def test_setting_same_state_twice_is_idempotent(self, line_graph):
        line_graph.set_edge_state("e0", SynapseState.ACTIVE)
        first = line_graph.to_dict()
        line_graph.pop_pending_changes()

        line_graph.set_edge_state("e0", SynapseState.ACTIVE)
        assert line_graph.to_dict() == first
        assert line_graph.pending_changes == []

    def test_blocked_endpoint_overrides_requested_state(self, line_graph):
        line_graph.set_node_blocked("N1", True)
        applied = line_graph.set_edge_state("e0", SynapseState.ACTIVE)
        assert applied == SynapseState.BLOCKED
        assert line_graph.synapses["e0"].state == SynapseState.BLOCKED

    def test_blocking_open_synapse_seals_it(self, line_graph):
        line_graph.set_edge_state("e1", SynapseState.BLOCKED)
        synapse = line_graph.synapses["e1"]
        assert synapse.sealed
        assert line_graph.set_edge_state("e1", SynapseState.ACTIVE) == SynapseState.BLOCKED
        assert line_graph.check_invariants() == []

    def test_activate_and_block_in_either_order_end_blocked(self):
        first = make_graph([("N0", "N1"), ("N1", "N2")])
        second = make_graph([("N0", "N1"), ("N1", "N2")])

        first.set_edge_state("e1", SynapseState.ACTIVE)
        first.set_edge_state("e1", SynapseState.BLOCKED)
        second.set_edge_state("e1", SynapseState.BLOCKED)
        second.set_edge_state("e1", SynapseState.ACTIVE)

        assert first.synapses["e1"].state == SynapseState.BLOCKED
        assert first.to_dict() == second.to_dict()

    def test_unsealing_restores_dormant(self, line_graph):
        line_graph.set_edge_state("e1", SynapseState.BLOCKED)
        assert line_graph.set_synapse_sealed("e1", False) == SynapseState.DORMANT

    def test_leaving_active_deactivates_stranded_neuron(self, line_graph):
        line_graph.set_edge_state("e0", SynapseState.ACTIVE)
        line_graph.activate_neuron("N1")

        line_graph.set_edge_state("e0", SynapseState.DORMANT)
        assert not line_graph.neurons["N1"].is_activated
        assert line_graph.neurons["N0"].is_activated
        assert line_graph.check_invariants() == []


class TestNeuronBlocking:

    def test_blocking_cascades_to_incident_synapses(self, diamond_graph):
        changed = diamond_graph.set_node_blocked("N1", True)
        assert sorted(changed) == ["e0", "e2"]
        for sid in ("e0", "e2"):
            assert diamond_graph.synapses[sid].state == SynapseState.BLOCKED
        assert diamond_graph.synapses["e1"].state == SynapseState.DORMANT

    def test_unblocking_restores_dormant_not_active(self, line_graph):
        line_graph.set_edge_state("e0", SynapseState.ACTIVE)
        line_graph.activate_neuron("N1")
        line_graph.set_node_blocked("N1", True)
        assert not line_graph.neurons["N1"].is_activated

        line_graph.set_node_blocked("N1", False)
        assert line_graph.synapses["e0"].state == SynapseState.DORMANT
        assert line_graph.synapses["e1"].state == SynapseState.DORMANT

    def test_synapse_stays_blocked_while_other_endpoint_blocked(self):
        graph = make_graph([("N0", "N1"), ("N1", "N2"), ("N2", "N3")])
        graph.set_node_blocked("N1", True)
        graph.set_node_blocked("N2", True)
        graph.set_node_blocked("N1", False)
        assert graph.synapses["e1"].state == SynapseState.BLOCKED
        assert graph.synapses["e0"].state == SynapseState.DORMANT

    def test_unblocking_keeps_sealed_synapse_blocked(self, line_graph):
        line_graph.set_edge_state("e1", SynapseState.BLOCKED)
        line_graph.set_node_blocked("N1", True)
        line_graph.set_node_blocked("N1", False)
        assert line_graph.synapses["e1"].state == SynapseState.BLOCKED
        assert line_graph.synapses["e0"].state == SynapseState.DORMANT

    @pytest.mark.parametrize("neuron_id", ["N0", "N2"])
    def test_entry_and_core_cannot_be_blocked(self, line_graph, neuron_id):
        before = line_graph.to_dict()
        with pytest.raises(InvalidOperationError):
            line_graph.set_node_blocked(neuron_id, True)
        assert line_graph.to_dict() == before

    def test_unknown_neuron_raises_not_found(self, line_graph):
        with pytest.raises(NotFoundError):
            line_graph.set_node_blocked("ghost", True)


class TestActivation:

    def test_single_activation_leaves_rest_untouched(self, line_graph):
        """Activating the first hop must not touch anything further along."""
        line_graph.set_edge_state("e0", SynapseState.ACTIVE)
        line_graph.activate_neuron("N1")

        assert line_graph.neurons["N1"].is_activated
        assert not line_graph.neurons["N2"].is_activated
        assert line_graph.synapses["e1"].state == SynapseState.DORMANT

    def test_activation_requires_active_synapse(self, line_graph):
        with pytest.raises(InvalidOperationError):
            line_graph.activate_neuron("N1")
        assert not line_graph.neurons["N1"].is_activated

    def test_entry_cannot_be_deactivated(self, line_graph):
        with pytest.raises(InvalidOperationError):
            line_graph.deactivate_neuron("N0")


class TestAiPathPaint:

    def test_paints_dormant_and_clears_previous(self, line_graph):
        line_graph.mark_ai_path(["N2", "N1", "N0"])
        assert line_graph.synapses["e0"].state == SynapseState.AI_PATH
        assert line_graph.synapses["e1"].state == SynapseState.AI_PATH

        line_graph.mark_ai_path(["N2", "N1"])
        assert line_graph.synapses["e0"].state == SynapseState.DORMANT
        assert line_graph.synapses["e1"].state == SynapseState.AI_PATH

    def test_does_not_repaint_active(self, line_graph):
        line_graph.set_edge_state("e0", SynapseState.ACTIVE)
        line_graph.mark_ai_path(["N1", "N0"])
        assert line_graph.synapses["e0"].state == SynapseState.ACTIVE


class TestInvariantsUnderRandomOperations:

    def test_invariants_hold_after_every_operation(self):
        graph = make_graph([("N0", "N1"), ("N0", "N2"), ("N1", "N3"), ("N2", "N3"), ("N3", "N4"), ("N1", "N2")])
        rng = random.Random(7)
        states = list(SynapseState)
        neuron_ids = list(graph.neurons)
        synapse_ids = list(graph.synapses)

        for _ in range(400):
            op = rng.randrange(4)
            try:
                if op == 0:
                    graph.set_edge_state(rng.choice(synapse_ids), rng.choice(states))
                elif op == 1:
                    graph.set_node_blocked(rng.choice(neuron_ids), rng.random() < 0.5)
                elif op == 2:
                    graph.activate_neuron(rng.choice(neuron_ids))
                else:
                    graph.set_synapse_sealed(rng.choice(synapse_ids), rng.random() < 0.3)
            except GameValidationError:
                pass
            assert graph.check_invariants() == []


class TestSerialization:

    def test_dict_round_trip_preserves_state_and_order(self, diamond_graph):
        diamond_graph.set_edge_state("e0", SynapseState.ACTIVE)
        diamond_graph.activate_neuron("N1")
        diamond_graph.set_node_blocked("N2", True)
        diamond_graph.set_edge_state("e4", SynapseState.BLOCKED)

        rebuilt = build_graph_from_dict(diamond_graph.to_dict())
        assert rebuilt.to_dict() == diamond_graph.to_dict()
        assert rebuilt.neighbors("N3") == diamond_graph.neighbors("N3")
        assert rebuilt.pending_changes == []

    def test_pending_changes_drain(self, line_graph):
        line_graph.set_node_blocked("N1", True)
        changes = line_graph.pop_pending_changes()
        assert {"kind": "neuron", "id": "N1"} in changes
        assert {"kind": "synapse", "id": "e0"} in changes
        assert line_graph.pop_pending_changes() == []
