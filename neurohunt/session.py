"""
Per-role game sessions.

The explorer peer owns the graph (it generates and re-sends it) and the
explorer's progress; the protector peer owns the AI and the resource pool.
Both apply the same graph mutations in response to the same events, so the
two copies converge without a central server.
"""

import logging
import random
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from .adversary import AI_CAUGHT, AI_HACKED, AI_MOVED, AdversaryController
from .channel import ReplicationChannel
from .constants import (
    AI_REPAIR_ENABLED,
    DESTROY_COST,
    INITIAL_RESOURCES,
    INITIAL_STATE_REQUEST_DELAY_SECONDS,
    MAX_CAPTURES,
    MAX_RESOURCES,
    MAX_TRANSIENT_MESSAGES,
    STATE_REQUEST_INTERVAL_SECONDS,
    SYNAPSE_SEAL_COST,
    TERMINAL_SLOWDOWN_FACTOR,
    TERMINAL_SLOWDOWN_SECONDS,
)
from .dilemmas import Dilemma, DilemmaCatalog, dilemma_from_payload
from .graph_generator import NetworkGenerator
from .minigames import FirewallMinigame, PuzzleMinigame, TerminalMinigame
from .models import AdversaryMirror, ExplorerProgress, Role, SynapseState
from .pathfinding import visible_neurons
from .protocol import Envelope, EventType
from .resources import ResourcePool
from .state import GameValidationError, InvalidOperationError, NetworkGraph, build_graph_from_dict

LOGGER = logging.getLogger(__name__)

ActionResult = Tuple[bool, Optional[str]]


class GameSession:
    """Shared plumbing for both roles: handler table, transient messages, common mutations."""

    role: Role = Role.EXPLORER

    def __init__(self, channel: ReplicationChannel, rng: Optional[random.Random] = None) -> None:
        self.channel = channel
        self.rng = rng or random.Random()
        self.graph: Optional[NetworkGraph] = None
        self.messages: Deque[str] = deque(maxlen=MAX_TRANSIENT_MESSAGES)
        self.game_over = False
        self.winner: Optional[str] = None
        self.capture_count = 0
        self.active_dilemma: Optional[Dilemma] = None
        self.on_game_over: Optional[Callable[[str], None]] = None

        self.handlers: Dict[EventType, Callable[[Dict[str, Any], Envelope], None]] = self._build_handlers()
        for event_type, handler in self.handlers.items():
            channel.register(event_type, handler)
        channel.on_partner_connected = self.on_partner_connected

    def _build_handlers(self) -> Dict[EventType, Callable[[Dict[str, Any], Envelope], None]]:
        return {}

    def start(self) -> None:
        self.channel.assign_role(self.role.value)

    def on_partner_connected(self, role: str) -> None:
        self.push_message(f"{role.capitalize()} connected")

    def tick(self, dt: float) -> None:
        pass

    def close(self) -> None:
        self.channel.close()

    def push_message(self, text: str) -> None:
        self.messages.append(text)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_graph_ready(self) -> NetworkGraph:
        if self.graph is None:
            raise GameValidationError("Network not received yet")
        return self.graph

    def validate_game_running(self) -> None:
        if self.game_over:
            raise GameValidationError("The game is over")
        if self.active_dilemma is not None:
            raise GameValidationError("Resolve the dilemma first")

    # ------------------------------------------------------------------
    # Mutations applied identically on both peers
    # ------------------------------------------------------------------

    def apply_synapse_state(self, synapse_id: str, state: SynapseState) -> SynapseState:
        graph = self.validate_graph_ready()
        return graph.set_edge_state(synapse_id, state)

    def apply_neuron_blocked(self, neuron_id: str, blocked: bool) -> None:
        graph = self.validate_graph_ready()
        graph.set_node_blocked(neuron_id, blocked)

    def _finish(self, winner: str) -> None:
        if self.game_over:
            return
        self.game_over = True
        self.winner = winner
        LOGGER.info("Game over, winner: %s", winner)
        if self.on_game_over is not None:
            self.on_game_over(winner)


class ExplorerSession(GameSession):
    """The explorer peer: generates the network, solves puzzles and walks toward the core."""

    role = Role.EXPLORER

    def __init__(
        self,
        channel: ReplicationChannel,
        generator: Optional[NetworkGenerator] = None,
        graph: Optional[NetworkGraph] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(channel, rng)
        self.generator = generator or NetworkGenerator(seed=self.rng.randrange(1 << 30))
        self.progress: Optional[ExplorerProgress] = None
        self.ai_mirror = AdversaryMirror()
        self.puzzle: Optional[PuzzleMinigame] = None
        if graph is not None:
            self._install_graph(graph)

    def _build_handlers(self):
        return {
            EventType.REQUEST_GAME_STATE: self.handle_request_game_state,
            EventType.SYNAPSE_BLOCKED: self.handle_synapse_blocked,
            EventType.NEURON_DESTROYED: self.handle_neuron_destroyed,
            EventType.NEURON_HACKED: self.handle_neuron_hacked,
            EventType.AI_POSITION: self.handle_ai_position,
            EventType.AI_CONNECTED: self.handle_ai_connected,
            EventType.DILEMMA_TRIGGERED: self.handle_dilemma_triggered,
            EventType.GAME_LOST: self.handle_game_lost,
            EventType.GAME_RESTART: self.handle_game_restart,
        }

    def _install_graph(self, graph: NetworkGraph) -> None:
        self.graph = graph
        entry = graph.entry_neuron_id
        graph.activate_neuron(entry)
        self.progress = ExplorerProgress(current_neuron_id=entry, activated_path=[entry])
        self.ai_mirror = AdversaryMirror()
        self.puzzle = None

    def start(self) -> None:
        super().start()
        if self.graph is None:
            self._install_graph(self.generator.generate())
            LOGGER.info("Generated network with %d neurons", len(self.graph.neurons))
        self.broadcast_network()

    def broadcast_network(self) -> None:
        graph = self.validate_graph_ready()
        self.channel.send(EventType.NETWORK_GENERATED, graph.to_dict())
        self.channel.send(EventType.EXPLORER_MOVED, self.progress.to_payload())

    def on_partner_connected(self, role: str) -> None:
        super().on_partner_connected(role)
        if self.graph is not None:
            self.broadcast_network()

    def visible_neurons(self):
        graph = self.validate_graph_ready()
        return visible_neurons(graph, self.progress.current_neuron_id)

    def snapshot(self) -> Dict[str, Any]:
        graph = self.validate_graph_ready()
        return {
            "networkData": graph.to_dict(),
            "explorerPosition": self.progress.current_neuron_id,
            "explorerPath": list(self.progress.activated_path),
            "aiState": {"currentNeuronId": self.ai_mirror.current_neuron_id, "path": list(self.ai_mirror.path)},
            "blockedNeurons": graph.blocked_neuron_ids(),
        }

    # ------------------------------------------------------------------
    # Local actions
    # ------------------------------------------------------------------

    def _validate_incident(self, synapse_id: str):
        graph = self.validate_graph_ready()
        synapse = graph.get_synapse(synapse_id)
        if self.progress.current_neuron_id not in synapse.endpoints:
            raise GameValidationError("Connection is not next to the explorer")
        return synapse

    def handle_start_puzzle(self, synapse_id: str) -> ActionResult:
        try:
            self.validate_game_running()
            synapse = self._validate_incident(synapse_id)
            if self.puzzle is not None:
                raise GameValidationError("Already solving a puzzle")
            if synapse.state == SynapseState.BLOCKED:
                raise GameValidationError("This connection is blocked")
            if synapse.state == SynapseState.ACTIVE:
                raise GameValidationError("This connection is already active")

            self.apply_synapse_state(synapse_id, SynapseState.SOLVING)
            puzzle = PuzzleMinigame(synapse_id, synapse.difficulty, self.rng)
            puzzle.on_complete(self._on_puzzle_complete)
            puzzle.on_fail(self._on_puzzle_failed)
            self.puzzle = puzzle
            self.progress.is_solving_puzzle = True
            self.progress.solving_synapse_id = synapse_id
            self.channel.send(EventType.PUZZLE_STARTED, {"synapseId": synapse_id})
            return True, None
        except GameValidationError as exc:
            self.push_message(str(exc))
            return False, str(exc)

    def handle_puzzle_answer(self, answers) -> ActionResult:
        if self.puzzle is None:
            return False, "No puzzle in progress"
        if self.puzzle.submit(answers):
            return True, None
        return False, "Wrong answer"

    def handle_abandon_puzzle(self) -> None:
        if self.puzzle is not None:
            self.puzzle.abandon()

    def _clear_puzzle(self) -> None:
        self.puzzle = None
        self.progress.is_solving_puzzle = False
        self.progress.solving_synapse_id = None

    def _on_puzzle_complete(self, synapse_id: str) -> None:
        self._clear_puzzle()
        graph = self.validate_graph_ready()
        synapse = graph.get_synapse(synapse_id)
        if self.progress.current_neuron_id not in synapse.endpoints:
            self.push_message("Explorer moved away from the connection")
            self.apply_synapse_state(synapse_id, SynapseState.DORMANT)
            return
        applied = self.apply_synapse_state(synapse_id, SynapseState.ACTIVE)
        if applied != SynapseState.ACTIVE:
            self.push_message("This connection is blocked")
            return
        self.channel.send(EventType.PUZZLE_COMPLETED, {"synapseId": synapse_id})
        self.channel.send(EventType.SYNAPSE_ACTIVATED, {"synapseId": synapse_id})
        self.handle_move(synapse.other_end(self.progress.current_neuron_id))

    def _on_puzzle_failed(self, synapse_id: str) -> None:
        self._clear_puzzle()
        self.apply_synapse_state(synapse_id, SynapseState.FAILED)
        self.channel.send(EventType.PUZZLE_FAILED, {"synapseId": synapse_id})

    def handle_move(self, neuron_id: str) -> ActionResult:
        """Cross an Active synapse to a neighbouring neuron."""
        try:
            self.validate_game_running()
            graph = self.validate_graph_ready()
            target = graph.get_neuron(neuron_id)
            if self.puzzle is not None:
                raise GameValidationError("Finish the puzzle first")
            current = self.progress.current_neuron_id
            synapse = graph.edge_between(current, neuron_id)
            if synapse is None:
                raise GameValidationError("Neuron is not adjacent")
            if synapse.state != SynapseState.ACTIVE:
                raise GameValidationError("Solve the connection first")
            if target.is_blocked:
                raise GameValidationError("This neuron is destroyed")

            graph.activate_neuron(neuron_id)
            path = self.progress.activated_path
            if neuron_id in path:
                del path[path.index(neuron_id) + 1:]
            else:
                path.append(neuron_id)
            self.progress.current_neuron_id = neuron_id
            self.channel.send(EventType.EXPLORER_MOVED, self.progress.to_payload())

            if neuron_id == graph.core_neuron_id:
                self.channel.send(EventType.GAME_WON, {"winner": Role.EXPLORER.value})
                self._finish(Role.EXPLORER.value)
            return True, None
        except GameValidationError as exc:
            self.push_message(str(exc))
            return False, str(exc)

    def handle_dilemma_choice(self, choice_id: str) -> ActionResult:
        dilemma = self.active_dilemma
        if dilemma is None:
            return False, "No dilemma open"
        if choice_id not in dilemma.choice_ids():
            return False, "Unknown choice"
        self.active_dilemma = None
        self.channel.send(EventType.DILEMMA_CHOICE, {"dilemmaId": dilemma.id, "choiceId": choice_id})
        return True, None

    def handle_restart(self) -> None:
        self.channel.send(EventType.GAME_RESTART, {})
        self.reset_game()

    def reset_game(self) -> None:
        self.game_over = False
        self.winner = None
        self.capture_count = 0
        self.active_dilemma = None
        self.generator = NetworkGenerator(seed=self.rng.randrange(1 << 30))
        self._install_graph(self.generator.generate())
        LOGGER.info("Game restarted")
        self.broadcast_network()

    # ------------------------------------------------------------------
    # Incoming events
    # ------------------------------------------------------------------

    def handle_request_game_state(self, data: Dict[str, Any], envelope: Envelope) -> None:
        if self.graph is None:
            return
        LOGGER.info("Sending state snapshot to %s", envelope.from_role)
        self.channel.send(EventType.GAME_STATE_RESPONSE, self.snapshot())

    def _abandon_if_blocked(self) -> None:
        if self.puzzle is None:
            return
        synapse = self.graph.get_synapse(self.puzzle.synapse_id)
        if synapse.state == SynapseState.BLOCKED:
            self.push_message("This connection is blocked")
            self.puzzle.abandon()

    def _retreat_if_stranded(self) -> None:
        """Step back along the path when a block raced our last move and deactivated our neuron."""
        graph = self.graph
        if graph.neurons[self.progress.current_neuron_id].is_activated:
            return
        path = self.progress.activated_path
        while len(path) > 1 and not graph.neurons[path[-1]].is_activated:
            path.pop()
        self.progress.current_neuron_id = path[-1]
        self.push_message("The connection behind you was cut")
        self.channel.send(EventType.EXPLORER_MOVED, self.progress.to_payload())

    def handle_synapse_blocked(self, data: Dict[str, Any], envelope: Envelope) -> None:
        self.apply_synapse_state(data["synapseId"], SynapseState.BLOCKED)
        self._abandon_if_blocked()
        self._retreat_if_stranded()

    def handle_neuron_destroyed(self, data: Dict[str, Any], envelope: Envelope) -> None:
        self.apply_neuron_blocked(data["neuronId"], True)
        self._abandon_if_blocked()
        self._retreat_if_stranded()

    def handle_neuron_hacked(self, data: Dict[str, Any], envelope: Envelope) -> None:
        self.apply_neuron_blocked(data["neuronId"], False)

    def handle_ai_position(self, data: Dict[str, Any], envelope: Envelope) -> None:
        graph = self.validate_graph_ready()
        neuron_id = graph.get_neuron(data["neuronId"]).id
        path = [str(n) for n in data["path"] if n in graph.neurons]
        self.ai_mirror.current_neuron_id = neuron_id
        self.ai_mirror.path = path
        graph.mark_ai_path(path)

    def handle_ai_connected(self, data: Dict[str, Any], envelope: Envelope) -> None:
        """Caught: step back one neuron and undo the synapse that led here."""
        graph = self.validate_graph_ready()
        self.capture_count += 1
        self.push_message("The AI caught you")
        if self.puzzle is not None:
            self.puzzle.abandon()

        path = self.progress.activated_path
        if len(path) < 2:
            return
        popped = path.pop()
        previous = path[-1]
        synapse = graph.edge_between(previous, popped)
        if synapse is not None and synapse.state == SynapseState.ACTIVE:
            graph.set_edge_state(synapse.id, SynapseState.DORMANT)
            self.channel.send(EventType.SYNAPSE_DEACTIVATED, {"synapseId": synapse.id})
        self.progress.current_neuron_id = previous
        self.channel.send(EventType.EXPLORER_MOVED, self.progress.to_payload())

    def handle_dilemma_triggered(self, data: Dict[str, Any], envelope: Envelope) -> None:
        self.active_dilemma = dilemma_from_payload(data)
        LOGGER.info("Dilemma opened: %s", self.active_dilemma.id)

    def handle_game_lost(self, data: Dict[str, Any], envelope: Envelope) -> None:
        self.active_dilemma = None
        self._finish(data["winner"])

    def handle_game_restart(self, data: Dict[str, Any], envelope: Envelope) -> None:
        self.reset_game()


class ProtectorSession(GameSession):
    """The protector peer: runs the AI, spends resources and plays the support minigames."""

    role = Role.PROTECTOR

    def __init__(
        self,
        channel: ReplicationChannel,
        rng: Optional[random.Random] = None,
        dilemmas: Optional[DilemmaCatalog] = None,
        repair_enabled: bool = AI_REPAIR_ENABLED,
        adversary_factory: Optional[Callable[[NetworkGraph], AdversaryController]] = None,
    ) -> None:
        super().__init__(channel, rng)
        self.resources = ResourcePool(INITIAL_RESOURCES, MAX_RESOURCES, DESTROY_COST)
        self.dilemmas = dilemmas or DilemmaCatalog(rng=self.rng)
        self.repair_enabled = repair_enabled
        self.adversary_factory = adversary_factory
        self.adversary: Optional[AdversaryController] = None
        self.explorer_neuron_id: Optional[str] = None
        self.explorer_path: List[str] = []
        self.firewall: Optional[FirewallMinigame] = None
        self.terminal = TerminalMinigame(self.rng)
        self.terminal.on_complete(self._on_terminal_complete)
        self._request_timer = INITIAL_STATE_REQUEST_DELAY_SECONDS

    def _build_handlers(self):
        return {
            EventType.NETWORK_GENERATED: self.handle_network_generated,
            EventType.GAME_STATE_RESPONSE: self.handle_game_state_response,
            EventType.EXPLORER_MOVED: self.handle_explorer_moved,
            EventType.SYNAPSE_ACTIVATED: self.handle_synapse_activated,
            EventType.SYNAPSE_DEACTIVATED: self.handle_synapse_deactivated,
            EventType.PUZZLE_STARTED: self.handle_puzzle_started,
            EventType.PUZZLE_COMPLETED: self.handle_puzzle_completed,
            EventType.PUZZLE_FAILED: self.handle_puzzle_failed,
            EventType.DILEMMA_CHOICE: self.handle_dilemma_choice,
            EventType.GAME_WON: self.handle_game_won,
            EventType.GAME_RESTART: self.handle_game_restart,
        }

    # ------------------------------------------------------------------
    # Graph installation and resync
    # ------------------------------------------------------------------

    def request_game_state(self) -> None:
        self.channel.send(EventType.REQUEST_GAME_STATE, {"role": self.role.value})

    def _install_graph(self, graph: NetworkGraph, ai_neuron_id: Optional[str] = None) -> None:
        previous = self.adversary
        self.graph = graph
        if self.adversary_factory is not None:
            adversary = self.adversary_factory(graph)
        else:
            adversary = AdversaryController(graph, repair_enabled=self.repair_enabled)
        if previous is not None and previous.current_neuron_id in graph.neurons:
            adversary.state.current_neuron_id = previous.current_neuron_id
            adversary.state.ramp_multiplier = previous.state.ramp_multiplier
            adversary.hunting_elapsed = previous.hunting_elapsed
        elif ai_neuron_id is not None and ai_neuron_id in graph.neurons:
            adversary.state.current_neuron_id = ai_neuron_id
        adversary.state.destroyed_neurons = set(graph.blocked_neuron_ids())
        self.adversary = adversary
        LOGGER.info("Network installed, AI at %s", adversary.current_neuron_id)

        if self.explorer_neuron_id in graph.neurons:
            adversary.update_explorer_position(self.explorer_neuron_id, self.explorer_path)
        adversary.emit_position()
        self._drain_ai_events()

    def handle_network_generated(self, data: Dict[str, Any], envelope: Envelope) -> None:
        self._install_graph(build_graph_from_dict(data))

    def handle_game_state_response(self, data: Dict[str, Any], envelope: Envelope) -> None:
        network = data.get("networkData")
        if network is None:
            return
        graph = build_graph_from_dict(network)
        for neuron_id in data["blockedNeurons"]:
            if neuron_id in graph.neurons and not graph.is_special(neuron_id):
                graph.set_node_blocked(neuron_id, True)
        graph.pop_pending_changes()
        if data.get("explorerPosition") in graph.neurons:
            self.explorer_neuron_id = data["explorerPosition"]
            self.explorer_path = [n for n in data["explorerPath"] if n in graph.neurons]
        ai_state = data.get("aiState") or {}
        self._install_graph(graph, ai_neuron_id=ai_state.get("currentNeuronId"))
        LOGGER.info("Resynchronised from snapshot")

    def tick(self, dt: float) -> None:
        if self.graph is None:
            self._request_timer -= dt
            if self._request_timer <= 0:
                self.request_game_state()
                self._request_timer = STATE_REQUEST_INTERVAL_SECONDS
            return
        if self.game_over or self.adversary is None:
            return
        self.adversary.tick(dt)
        self._drain_ai_events()

    # ------------------------------------------------------------------
    # AI events
    # ------------------------------------------------------------------

    def _drain_ai_events(self) -> None:
        if self.adversary is None:
            return
        for event in self.adversary.pop_pending_events():
            kind = event["event"]
            if kind == AI_MOVED:
                self.graph.mark_ai_path(event["path"])
                self.channel.send(EventType.AI_POSITION, {"neuronId": event["neuronId"], "path": event["path"]})
            elif kind == AI_CAUGHT:
                self._on_capture(event["neuronId"])
            elif kind == AI_HACKED:
                self.channel.send(EventType.NEURON_HACKED, {"neuronId": event["neuronId"]})

    def _on_capture(self, neuron_id: str) -> None:
        self.capture_count += 1
        pushed_to = self.explorer_path[-2] if len(self.explorer_path) > 1 else self.explorer_neuron_id
        self.channel.send(EventType.AI_CONNECTED, {"neuronId": neuron_id, "explorerPushedTo": pushed_to})
        self.push_message("The AI reached the explorer")

        if self.capture_count >= MAX_CAPTURES:
            self.adversary.pause()
            self.channel.send(EventType.GAME_LOST, {"winner": Role.PROTECTOR.value})
            self._finish(Role.PROTECTOR.value)
            return

        dilemma = self.dilemmas.pick()
        self.active_dilemma = dilemma
        self.adversary.pause()
        self.channel.send(EventType.DILEMMA_TRIGGERED, dilemma.to_payload())

    # ------------------------------------------------------------------
    # Local actions
    # ------------------------------------------------------------------

    def _crosses_explorer_path(self, synapse) -> bool:
        path = self.explorer_path
        return any(set(pair) == set(synapse.endpoints) for pair in zip(path, path[1:]))

    def handle_destroy_neuron(self, neuron_id: str) -> ActionResult:
        try:
            self.validate_game_running()
            graph = self.validate_graph_ready()
            neuron = graph.get_neuron(neuron_id)
            if graph.is_special(neuron_id):
                raise GameValidationError(f"Cannot destroy the {neuron.type.value} neuron")
            if neuron_id == self.explorer_neuron_id:
                raise GameValidationError("The explorer is on this neuron")
            if neuron_id in self.explorer_path:
                raise GameValidationError("Neuron is on the explorer's active path")
            if self.adversary is not None and neuron_id == self.adversary.current_neuron_id:
                raise GameValidationError("The AI is on this neuron")
            if neuron.is_blocked:
                raise GameValidationError("Neuron already destroyed")
            if not self.resources.try_spend(DESTROY_COST):
                raise GameValidationError("Not enough resources")

            graph.set_node_blocked(neuron_id, True)
            self.adversary.add_destroyed_node_obstacle(neuron_id)
            self.channel.send(
                EventType.NEURON_DESTROYED,
                {"neuronId": neuron_id, "resourcesRemaining": self.resources.current},
            )
            self._drain_ai_events()
            return True, None
        except GameValidationError as exc:
            self.push_message(str(exc))
            return False, str(exc)

    def handle_seal_synapse(self, synapse_id: str) -> ActionResult:
        try:
            self.validate_game_running()
            graph = self.validate_graph_ready()
            synapse = graph.get_synapse(synapse_id)
            if synapse.state == SynapseState.BLOCKED:
                raise GameValidationError("Connection already blocked")
            if self._crosses_explorer_path(synapse):
                raise GameValidationError("Connection is on the explorer's active path")
            if not self.resources.try_spend(SYNAPSE_SEAL_COST):
                raise GameValidationError("Not enough resources")

            graph.set_edge_state(synapse_id, SynapseState.BLOCKED)
            self.channel.send(
                EventType.SYNAPSE_BLOCKED,
                {"synapseId": synapse_id, "resourcesRemaining": self.resources.current},
            )
            self.adversary.notify_graph_changed()
            self._drain_ai_events()
            return True, None
        except GameValidationError as exc:
            self.push_message(str(exc))
            return False, str(exc)

    def open_firewall(self) -> FirewallMinigame:
        """Open the firewall minigame; the AI waits while it is open."""
        if self.firewall is None:
            self.firewall = FirewallMinigame(self.rng)
            self.firewall.on_complete(self._on_firewall_round)
            self.firewall.on_fail(self._on_firewall_failed)
            if self.adversary is not None:
                self.adversary.pause()
        return self.firewall

    def handle_firewall_press(self, color: str) -> Optional[bool]:
        if self.firewall is None:
            return None
        return self.firewall.press(color)

    def close_firewall(self) -> None:
        if self.firewall is None:
            return
        self.firewall.close()
        self.firewall = None
        if self.adversary is not None and self.active_dilemma is None and not self.game_over:
            self.adversary.resume()

    def _on_firewall_round(self, reward: int, round_number: int) -> None:
        gained = self.resources.credit(reward)
        self.push_message(f"Firewall round {round_number} cleared: +{gained}")
        self.close_firewall()

    def _on_firewall_failed(self, round_number: int) -> None:
        self.push_message("Firewall breached")
        self.close_firewall()

    def handle_terminal_submit(self, text: str) -> ActionResult:
        if self.terminal.submit(text):
            return True, None
        return False, "Command rejected"

    def _on_terminal_complete(self, reward: int, command: str) -> None:
        gained = self.resources.credit(reward)
        self.push_message(f"Hack complete: +{gained}")
        if self.adversary is not None and not self.adversary.is_slowed:
            self.adversary.apply_slowdown(TERMINAL_SLOWDOWN_FACTOR, TERMINAL_SLOWDOWN_SECONDS)

    def handle_restart(self) -> None:
        self.channel.send(EventType.GAME_RESTART, {})
        self.reset_game()

    def reset_game(self) -> None:
        self.game_over = False
        self.winner = None
        self.capture_count = 0
        self.active_dilemma = None
        self.graph = None
        self.adversary = None
        self.explorer_neuron_id = None
        self.explorer_path = []
        self.firewall = None
        self.resources = ResourcePool(INITIAL_RESOURCES, MAX_RESOURCES, DESTROY_COST)
        self._request_timer = INITIAL_STATE_REQUEST_DELAY_SECONDS
        LOGGER.info("Game restarted; waiting for a new network")

    # ------------------------------------------------------------------
    # Incoming events
    # ------------------------------------------------------------------

    def handle_explorer_moved(self, data: Dict[str, Any], envelope: Envelope) -> None:
        neuron_id = str(data["neuronId"])
        path = [str(n) for n in data["activatedPath"]]
        if self.graph is not None:
            neuron = self.graph.get_neuron(neuron_id)
            if not neuron.is_activated:
                try:
                    self.graph.activate_neuron(neuron_id)
                except InvalidOperationError:
                    # The synapse it crossed was blocked here first
                    LOGGER.debug("Explorer on %s without an active synapse", neuron_id)
        self.explorer_neuron_id = neuron_id
        self.explorer_path = path
        if self.adversary is not None and not self.game_over:
            self.adversary.update_explorer_position(neuron_id, path)
            self._drain_ai_events()

    def _apply_and_notify(self, synapse_id: str, state: SynapseState) -> None:
        self.apply_synapse_state(synapse_id, state)
        if self.adversary is not None:
            self.adversary.notify_graph_changed()
            self._drain_ai_events()

    def handle_synapse_activated(self, data: Dict[str, Any], envelope: Envelope) -> None:
        self._apply_and_notify(data["synapseId"], SynapseState.ACTIVE)

    def handle_synapse_deactivated(self, data: Dict[str, Any], envelope: Envelope) -> None:
        self._apply_and_notify(data["synapseId"], SynapseState.DORMANT)

    def handle_puzzle_started(self, data: Dict[str, Any], envelope: Envelope) -> None:
        self.apply_synapse_state(data["synapseId"], SynapseState.SOLVING)

    def handle_puzzle_completed(self, data: Dict[str, Any], envelope: Envelope) -> None:
        self.validate_graph_ready().get_synapse(data["synapseId"])

    def handle_puzzle_failed(self, data: Dict[str, Any], envelope: Envelope) -> None:
        self.apply_synapse_state(data["synapseId"], SynapseState.FAILED)

    def handle_dilemma_choice(self, data: Dict[str, Any], envelope: Envelope) -> None:
        dilemma = self.active_dilemma
        if dilemma is None or dilemma.id != data["dilemmaId"]:
            raise GameValidationError("Choice for a dilemma that is not open")
        if data["choiceId"] not in dilemma.choice_ids():
            raise GameValidationError("Unknown dilemma choice")
        LOGGER.info("Explorer chose %s for %s", data["choiceId"], dilemma.id)
        self.active_dilemma = None
        if self.adversary is not None and self.firewall is None:
            self.adversary.resume()

    def handle_game_won(self, data: Dict[str, Any], envelope: Envelope) -> None:
        if self.adversary is not None:
            self.adversary.pause()
        self._finish(data["winner"])

    def handle_game_restart(self, data: Dict[str, Any], envelope: Envelope) -> None:
        self.reset_game()
