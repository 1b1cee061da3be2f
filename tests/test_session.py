"""
Two-peer session tests over an in-process bus.

The explorer and protector each hold their own copy of the graph; after the
bus is flushed both copies must agree on every synapse and neuron flag.
"""

import random

import pytest

from conftest import make_graph
from neurohunt.adversary import AdversaryController, AdversaryPhase
from neurohunt.channel import ReplicationChannel
from neurohunt.constants import DESTROY_COST, INITIAL_RESOURCES, MAX_CAPTURES, SYNAPSE_SEAL_COST
from neurohunt.models import SynapseState
from neurohunt.protocol import EventType
from neurohunt.session import ExplorerSession, ProtectorSession


def graph_states(graph):
    synapses = {sid: (s.state, s.sealed) for sid, s in graph.synapses.items()}
    neurons = {nid: (n.is_activated, n.is_blocked) for nid, n in graph.neurons.items()}
    return synapses, neurons


def fast_ai(graph):
    return AdversaryController(
        graph,
        spawn_neuron_id="N3" if "N3" in graph.neurons else None,
        base_speed=1.0,
        speed_increase=0.0,
        catch_cooldown_seconds=1.0,
        push_back_hops=2,
    )


def five_line():
    return make_graph([("N0", "N1"), ("N1", "N2"), ("N2", "N3"), ("N3", "N4")])


@pytest.fixture
def peers(bus):
    explorer = ExplorerSession(ReplicationChannel(bus.connect()), graph=five_line(), rng=random.Random(1))
    protector = ProtectorSession(
        ReplicationChannel(bus.connect()),
        rng=random.Random(2),
        adversary_factory=fast_ai,
    )
    explorer.start()
    protector.start()
    bus.flush()
    return explorer, protector


def solve(explorer, synapse_id):
    ok, error = explorer.handle_start_puzzle(synapse_id)
    assert ok, error
    ok, error = explorer.handle_puzzle_answer(explorer.puzzle.solution())
    assert ok, error


class TestStartup:

    def test_protector_receives_network_and_explorer(self, peers):
        explorer, protector = peers
        assert protector.graph is not None
        assert protector.explorer_neuron_id == "N0"
        assert protector.adversary.phase == AdversaryPhase.HUNTING
        assert protector.adversary.target_path == ["N3", "N2", "N1", "N0"]
        assert graph_states(protector.graph) == graph_states(explorer.graph)

    def test_explorer_mirrors_ai(self, peers):
        explorer, protector = peers
        assert explorer.ai_mirror.current_neuron_id == "N3"
        assert explorer.ai_mirror.path == protector.adversary.target_path
        assert explorer.graph.synapses["e2"].state == SynapseState.AI_PATH

    def test_late_protector_resyncs_from_snapshot(self, bus):
        explorer = ExplorerSession(ReplicationChannel(bus.connect()), graph=five_line(), rng=random.Random(1))
        protector_end = bus.connect()
        protector = ProtectorSession(ReplicationChannel(protector_end), adversary_factory=fast_ai)
        protector_end.muted = True

        explorer.start()
        solve(explorer, "e0")
        explorer.graph.set_node_blocked("N3", True)
        bus.flush()
        assert protector.graph is None

        protector_end.muted = False
        protector.tick(0.25)
        bus.flush()
        assert protector.graph is None
        protector.tick(0.25)
        bus.flush()

        assert protector.graph is not None
        assert protector.explorer_neuron_id == "N1"
        assert protector.explorer_path == ["N0", "N1"]
        assert protector.graph.neurons["N3"].is_blocked
        assert "N3" in protector.adversary.state.destroyed_neurons
        assert protector.graph.neurons["N1"].is_activated


class TestExplorerActions:

    def test_single_activation(self, peers, bus):
        explorer, protector = peers
        solve(explorer, "e0")
        bus.flush()

        for graph in (explorer.graph, protector.graph):
            assert graph.synapses["e0"].state == SynapseState.ACTIVE
            assert graph.neurons["N1"].is_activated
            assert not graph.neurons["N2"].is_activated
            assert graph.synapses["e1"].state != SynapseState.ACTIVE
        assert protector.explorer_neuron_id == "N1"
        assert graph_states(protector.graph) == graph_states(explorer.graph)

    def test_failed_puzzle_marks_synapse_failed(self, peers, bus):
        explorer, protector = peers
        explorer.handle_start_puzzle("e0")
        wrong = [[9] for _ in explorer.puzzle.challenges]
        assert explorer.handle_puzzle_answer(wrong) == (False, "Wrong answer")
        bus.flush()
        assert explorer.graph.synapses["e0"].state == SynapseState.FAILED
        assert protector.graph.synapses["e0"].state == SynapseState.FAILED

    def test_move_requires_active_synapse(self, peers):
        explorer, _ = peers
        assert explorer.handle_move("N1") == (False, "Solve the connection first")
        assert explorer.handle_move("N2") == (False, "Neuron is not adjacent")

    def test_cannot_start_puzzle_far_away(self, peers):
        explorer, _ = peers
        ok, error = explorer.handle_start_puzzle("e2")
        assert not ok
        assert error == "Connection is not next to the explorer"

    def test_walking_back_truncates_path(self, peers, bus):
        explorer, _ = peers
        solve(explorer, "e0")
        assert explorer.progress.activated_path == ["N0", "N1"]
        assert explorer.handle_move("N0") == (True, None)
        assert explorer.progress.activated_path == ["N0"]

    def test_visible_neurons_follow_fog(self, peers):
        explorer, _ = peers
        assert explorer.visible_neurons() == {"N0", "N1"}
        solve(explorer, "e0")
        assert explorer.visible_neurons() == {"N0", "N1", "N2"}


class TestProtectorActions:

    def test_concurrent_activate_and_seal_converge_blocked(self, peers, bus):
        explorer, protector = peers
        solve(explorer, "e0")
        ok, error = protector.handle_seal_synapse("e0")
        assert ok, error
        bus.flush()

        for graph in (explorer.graph, protector.graph):
            assert graph.synapses["e0"].state == SynapseState.BLOCKED
            assert graph.synapses["e0"].sealed
            assert not graph.neurons["N1"].is_activated
        assert graph_states(protector.graph) == graph_states(explorer.graph)
        assert protector.resources.current == INITIAL_RESOURCES - SYNAPSE_SEAL_COST

        # The explorer had already crossed; it steps back to the last live neuron
        assert explorer.progress.current_neuron_id == "N0"
        assert explorer.progress.activated_path == ["N0"]
        assert protector.explorer_neuron_id == "N0"
        assert explorer.visible_neurons() == {"N0", "N1"}

    def test_cannot_seal_synapse_the_explorer_crossed(self, peers, bus):
        explorer, protector = peers
        solve(explorer, "e0")
        bus.flush()
        visible = explorer.visible_neurons()

        assert protector.handle_seal_synapse("e0") == (False, "Connection is on the explorer's active path")
        bus.flush()

        assert protector.resources.current == INITIAL_RESOURCES
        for graph in (explorer.graph, protector.graph):
            assert graph.synapses["e0"].state == SynapseState.ACTIVE
            assert graph.neurons["N1"].is_activated
        assert explorer.visible_neurons() == visible == {"N0", "N1", "N2"}

    def test_seal_ahead_of_explorer_still_allowed(self, peers, bus):
        explorer, protector = peers
        solve(explorer, "e0")
        bus.flush()
        assert protector.handle_seal_synapse("e1") == (True, None)
        bus.flush()
        assert explorer.graph.synapses["e1"].state == SynapseState.BLOCKED
        assert explorer.progress.current_neuron_id == "N1"

    def test_concurrent_move_and_destroy_steps_explorer_back(self, peers, bus):
        explorer, protector = peers
        solve(explorer, "e0")
        assert protector.handle_destroy_neuron("N1") == (True, None)
        bus.flush()

        assert explorer.progress.current_neuron_id == "N0"
        assert protector.explorer_neuron_id == "N0"
        assert protector.explorer_path == ["N0"]
        assert graph_states(protector.graph) == graph_states(explorer.graph)

    def test_cannot_destroy_the_ai_neuron(self, peers, bus):
        explorer, protector = peers
        ai = protector.adversary
        assert ai.current_neuron_id == "N3"

        assert protector.handle_destroy_neuron("N3") == (False, "The AI is on this neuron")
        assert protector.resources.current == INITIAL_RESOURCES
        assert not protector.graph.neurons["N3"].is_blocked

        protector.tick(1.0)
        bus.flush()
        assert ai.current_neuron_id == "N2"
        assert explorer.ai_mirror.current_neuron_id == "N2"

    def test_destroy_replicates_and_cuts_ai_route(self, peers, bus):
        explorer, protector = peers
        assert protector.handle_destroy_neuron("N2") == (True, None)
        bus.flush()

        assert protector.resources.current == INITIAL_RESOURCES - DESTROY_COST
        assert explorer.graph.neurons["N2"].is_blocked
        assert explorer.graph.synapses["e1"].state == SynapseState.BLOCKED
        assert protector.adversary.target_path == []
        assert explorer.ai_mirror.path == []
        assert graph_states(protector.graph) == graph_states(explorer.graph)

    @pytest.mark.parametrize(
        "neuron_id, error",
        [
            ("N0", "Cannot destroy the entry neuron"),
            ("N4", "Cannot destroy the core neuron"),
            ("N9", "Unknown neuron N9"),
        ],
    )
    def test_destroy_rejections(self, peers, neuron_id, error):
        _, protector = peers
        assert protector.handle_destroy_neuron(neuron_id) == (False, error)
        assert protector.resources.current == INITIAL_RESOURCES

    def test_cannot_destroy_explorer_path(self, peers, bus):
        explorer, protector = peers
        solve(explorer, "e0")
        bus.flush()
        assert protector.handle_destroy_neuron("N1") == (False, "The explorer is on this neuron")

    def test_insufficient_resources_rejected_without_change(self, peers, bus):
        explorer, protector = peers
        protector.resources.set_current(5)
        assert protector.handle_destroy_neuron("N2") == (False, "Not enough resources")
        bus.flush()
        assert protector.resources.current == 5
        assert not protector.graph.neurons["N2"].is_blocked
        assert not explorer.graph.neurons["N2"].is_blocked

    def test_firewall_round_credits_and_resumes_ai(self, peers):
        _, protector = peers
        firewall = protector.open_firewall()
        assert protector.adversary.phase == AdversaryPhase.PAUSED
        for color in list(firewall.sequence):
            protector.handle_firewall_press(color)
        assert protector.resources.current == INITIAL_RESOURCES + 11
        assert protector.firewall is None
        assert protector.adversary.phase == AdversaryPhase.HUNTING

    def test_terminal_hack_credits_and_slows_ai(self, peers):
        _, protector = peers
        before = protector.resources.current
        assert protector.handle_terminal_submit(protector.terminal.command) == (True, None)
        assert protector.resources.current > before
        assert protector.adversary.is_slowed


class TestCaptures:

    def test_capture_opens_dilemma_and_pauses_moves(self, peers, bus):
        explorer, protector = peers
        for _ in range(3):
            protector.tick(1.0)
        bus.flush()

        assert protector.capture_count == 1
        assert explorer.capture_count == 1
        assert explorer.active_dilemma is not None
        assert explorer.active_dilemma.id == protector.active_dilemma.id
        assert explorer.handle_start_puzzle("e0") == (False, "Resolve the dilemma first")

        choice = explorer.active_dilemma.choices[0].id
        assert explorer.handle_dilemma_choice(choice) == (True, None)
        bus.flush()
        assert protector.active_dilemma is None
        assert protector.adversary.phase == AdversaryPhase.CAUGHT

        protector.tick(1.0)
        assert protector.adversary.current_neuron_id == "N2"
        assert protector.adversary.phase == AdversaryPhase.HUNTING

    def test_capture_rolls_back_last_step_on_both_peers(self, peers, bus):
        explorer, protector = peers
        solve(explorer, "e0")
        bus.flush()

        protector.tick(1.0)
        protector.tick(1.0)
        bus.flush()

        assert explorer.progress.current_neuron_id == "N0"
        assert explorer.progress.activated_path == ["N0"]
        assert protector.explorer_neuron_id == "N0"
        for graph in (explorer.graph, protector.graph):
            assert graph.synapses["e0"].state != SynapseState.ACTIVE
            assert not graph.neurons["N1"].is_activated
        assert graph_states(protector.graph) == graph_states(explorer.graph)

    def test_final_capture_loses_the_game(self, peers, bus):
        explorer, protector = peers
        protector.capture_count = MAX_CAPTURES - 1
        for _ in range(3):
            protector.tick(1.0)
        bus.flush()

        assert protector.game_over and protector.winner == "protector"
        assert explorer.game_over and explorer.winner == "protector"
        assert explorer.active_dilemma is None
        assert protector.handle_destroy_neuron("N2") == (False, "The game is over")


class TestEndings:

    def test_reaching_core_wins(self, bus):
        explorer = ExplorerSession(ReplicationChannel(bus.connect()), graph=make_graph([("N0", "N1"), ("N1", "N2")]))
        listener = ReplicationChannel(bus.connect(), role="protector")
        winners = []
        listener.register(EventType.GAME_WON, lambda data, env: winners.append(data["winner"]))

        explorer.start()
        solve(explorer, "e0")
        solve(explorer, "e1")
        bus.flush()

        assert explorer.game_over
        assert explorer.winner == "explorer"
        assert winners == ["explorer"]
        assert explorer.handle_move("N1") == (False, "The game is over")

    def test_restart_replaces_network_on_both_peers(self, peers, bus):
        explorer, protector = peers
        protector.handle_destroy_neuron("N2")
        bus.flush()

        explorer.handle_restart()
        bus.flush()

        assert len(explorer.graph.neurons) == 40
        assert protector.graph is not None
        assert graph_states(protector.graph) == graph_states(explorer.graph)
        assert protector.resources.current == INITIAL_RESOURCES
        assert protector.capture_count == 0
        assert protector.explorer_neuron_id == explorer.graph.entry_neuron_id
