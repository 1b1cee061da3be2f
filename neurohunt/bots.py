"""
Bot implementations: scripted players that drive a session through its public
``handle_*`` actions, used by headless peers and end-to-end tests.
"""

from typing import List, Optional

from .models import SynapseState
from .pathfinding import shortest_path
from .session import ExplorerSession, GameSession, ProtectorSession


class BotTemplate:

    def __init__(self, action_cooldown: float = 0.5):
        self.session: Optional[GameSession] = None
        self.action_cooldown = action_cooldown  # Minimum seconds between actions
        self.clock = 0.0
        self.last_action_time = -action_cooldown
        self.actions_taken = 0

    def join_session(self, session: GameSession) -> None:
        self.session = session

    def step(self, dt: float) -> bool:
        """Advance the bot clock and act if the cooldown allows. Returns True if it acted."""
        self.clock += dt
        if not self.session or self.session.graph is None or self.session.game_over:
            return False
        if self.clock - self.last_action_time < self.action_cooldown:
            return False
        acted = self._make_move()
        if acted:
            self.last_action_time = self.clock
            self.actions_taken += 1
        return acted

    def _make_move(self) -> bool:
        return False


class ExplorerBot(BotTemplate):
    """Walks the shortest open route to the core, solving each puzzle after a think delay."""

    def __init__(self, action_cooldown: float = 0.5, seconds_per_difficulty: float = 1.0):
        super().__init__(action_cooldown)
        self.seconds_per_difficulty = seconds_per_difficulty
        self.puzzle_started_at: Optional[float] = None

    def _make_move(self) -> bool:
        session = self.session
        if not isinstance(session, ExplorerSession):
            return False

        if session.active_dilemma is not None:
            choice = session.active_dilemma.choices[0].id
            return session.handle_dilemma_choice(choice)[0]

        if session.puzzle is not None:
            if self.puzzle_started_at is None:
                self.puzzle_started_at = self.clock
            think_time = session.puzzle.difficulty * self.seconds_per_difficulty
            if self.clock - self.puzzle_started_at < think_time:
                return False
            self.puzzle_started_at = None
            return session.handle_puzzle_answer(session.puzzle.solution())[0]

        route = self.route_to_core()
        if not route or len(route) < 2:
            return False
        graph = session.graph
        synapse = graph.edge_between(route[0], route[1])
        if synapse.state == SynapseState.ACTIVE:
            return session.handle_move(route[1])[0]
        return session.handle_start_puzzle(synapse.id)[0]

    def route_to_core(self) -> Optional[List[str]]:
        session = self.session
        graph = session.graph

        def open_route(synapse):
            if synapse.state == SynapseState.BLOCKED:
                return False
            return not any(graph.neurons[n].is_blocked for n in synapse.endpoints)

        return shortest_path(graph, session.progress.current_neuron_id, graph.core_neuron_id, open_route)


class ProtectorBot(BotTemplate):
    """Destroys the next neuron on the explorer's route when affordable, otherwise earns resources."""

    def __init__(self, action_cooldown: float = 1.0):
        super().__init__(action_cooldown)

    def _make_move(self) -> bool:
        session = self.session
        if not isinstance(session, ProtectorSession):
            return False
        if session.active_dilemma is not None:
            return False

        target = self.pick_destroy_target()
        if target is not None and session.resources.can_afford():
            return session.handle_destroy_neuron(target)[0]

        return self._play_firewall_round()

    def pick_destroy_target(self) -> Optional[str]:
        session = self.session
        graph = session.graph
        if session.explorer_neuron_id is None:
            return None

        def open_route(synapse):
            return not any(graph.neurons[n].is_blocked for n in synapse.endpoints)

        route = shortest_path(graph, session.explorer_neuron_id, graph.core_neuron_id, open_route)
        if not route:
            return None
        ai_neuron_id = session.adversary.current_neuron_id if session.adversary else None
        for neuron_id in route[1:]:
            if graph.is_special(neuron_id) or neuron_id in session.explorer_path or neuron_id == ai_neuron_id:
                continue
            return neuron_id
        return None

    def _play_firewall_round(self) -> bool:
        session = self.session
        firewall = session.open_firewall()
        for color in list(firewall.sequence):
            if session.handle_firewall_press(color) is not None:
                break
        return True
