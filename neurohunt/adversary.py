import logging
import math
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .constants import (
    AI_BASE_SPEED,
    AI_CATCH_COOLDOWN_SECONDS,
    AI_MAX_SPEED,
    AI_PUSH_BACK_HOPS,
    AI_REPAIR_ENABLED,
    AI_REPAIR_SECONDS,
    AI_SPEED_INCREASE,
)
from .models import AdversaryState
from .pathfinding import hop_distances, open_synapse_predicate, shortest_path, shortest_path_to_any
from .state import NetworkGraph

LOGGER = logging.getLogger(__name__)

# Pending event kinds drained by the session
AI_MOVED = "moved"
AI_CAUGHT = "caught"
AI_HACKED = "hacked"


class AdversaryPhase(str, Enum):
    IDLE = "idle"
    HUNTING = "hunting"
    PAUSED = "paused"
    CAUGHT = "caught"
    REPAIRING = "repairing"


def choose_spawn(graph: NetworkGraph) -> str:
    """Neuron farthest from the entry, excluding entry and core."""
    entry = graph.get_neuron(graph.entry_neuron_id)
    best_id = graph.entry_neuron_id
    best_distance = -1.0
    for neuron in graph.neurons.values():
        if graph.is_special(neuron.id):
            continue
        distance = math.hypot(neuron.x - entry.x, neuron.y - entry.y)
        if distance > best_distance:
            best_id = neuron.id
            best_distance = distance
    return best_id


class AdversaryController:
    """The AI hunter. Runs only on the protector peer.

    The controller never talks to the network. Position updates, captures and
    repairs are appended to ``pending_events`` and drained by the session with
    ``pop_pending_events`` after every call that can produce them.
    """

    def __init__(
        self,
        graph: NetworkGraph,
        spawn_neuron_id: Optional[str] = None,
        base_speed: float = AI_BASE_SPEED,
        speed_increase: float = AI_SPEED_INCREASE,
        max_speed: float = AI_MAX_SPEED,
        catch_cooldown_seconds: float = AI_CATCH_COOLDOWN_SECONDS,
        push_back_hops: int = AI_PUSH_BACK_HOPS,
        repair_enabled: bool = AI_REPAIR_ENABLED,
        repair_seconds: float = AI_REPAIR_SECONDS,
    ) -> None:
        self.graph = graph
        self.spawn_neuron_id = spawn_neuron_id or choose_spawn(graph)
        graph.get_neuron(self.spawn_neuron_id)
        self.state = AdversaryState(current_neuron_id=self.spawn_neuron_id, base_speed=base_speed)
        self.speed_increase = speed_increase
        self.max_speed = max_speed
        self.catch_cooldown_seconds = catch_cooldown_seconds
        self.push_back_hops = push_back_hops
        self.repair_enabled = repair_enabled
        self.repair_seconds = repair_seconds

        self.phase = AdversaryPhase.IDLE
        self._phase_before_pause: Optional[AdversaryPhase] = None
        self.explorer_neuron_id: Optional[str] = None
        self.explorer_path: List[str] = []
        self.hunting_elapsed = 0.0
        self.slowdown_remaining = 0.0
        self.cooldown_remaining = 0.0
        self.repair_target: Optional[str] = None
        self.repair_remaining = 0.0

        self.on_catch_explorer: Optional[Callable[[str], None]] = None
        self.pending_events: List[Dict[str, Any]] = []

    # ------------------------------------------------------------------
    # Read-only helpers
    # ------------------------------------------------------------------

    @property
    def current_neuron_id(self) -> str:
        return self.state.current_neuron_id

    @property
    def target_path(self) -> List[str]:
        return self.state.target_path

    @property
    def is_slowed(self) -> bool:
        return self.slowdown_remaining > 0

    def effective_speed(self) -> float:
        """Synapses per second after the ramp cap and any active slowdown."""
        ramped = min(self.state.base_speed * self.state.ramp_multiplier, self.max_speed)
        return ramped * self.state.slowdown_factor

    def _predicate(self, assume_open=frozenset()):
        return open_synapse_predicate(self.graph, self.state.destroyed_neurons, assume_open)

    def _path_is_valid(self, path: List[str]) -> bool:
        if not path or path[0] != self.state.current_neuron_id:
            return False
        can_traverse = self._predicate()
        for a, b in zip(path, path[1:]):
            synapse = self.graph.edge_between(a, b)
            if synapse is None or not can_traverse(synapse):
                return False
        return True

    def _path_to_explorer(self) -> Optional[List[str]]:
        if self.explorer_neuron_id is None:
            return None
        return shortest_path(self.graph, self.state.current_neuron_id, self.explorer_neuron_id, self._predicate())

    # ------------------------------------------------------------------
    # Path management
    # ------------------------------------------------------------------

    def _set_path(self, path: List[str]) -> None:
        old = self.state.target_path
        old_next = old[1] if len(old) > 1 else None
        new_next = path[1] if len(path) > 1 else None
        if new_next != old_next:
            self.state.progress = 0.0
        self.state.target_path = list(path)
        if path != old:
            self.emit_position()

    def recompute_path(self) -> List[str]:
        """Route toward the explorer. An unreachable explorer leaves an empty path."""
        path = self._path_to_explorer()
        if path is not None:
            self.repair_target = None
        self._set_path(path or [])
        return self.state.target_path

    def _ensure_fresh_path(self) -> None:
        path = self.state.target_path
        if self.repair_target is not None:
            direct = self._path_to_explorer()
            if direct is not None:
                self.repair_target = None
                self._set_path(direct)
            elif not self._path_is_valid(path):
                self.repair_target = None
                self._set_path([])
            return
        fresh = self._path_is_valid(path) and path[-1] == self.explorer_neuron_id
        if not fresh:
            self.recompute_path()

    def notify_graph_changed(self) -> None:
        if self.phase in (AdversaryPhase.HUNTING, AdversaryPhase.PAUSED):
            self._ensure_fresh_path()

    # ------------------------------------------------------------------
    # External inputs
    # ------------------------------------------------------------------

    def update_explorer_position(self, neuron_id: str, activated_path: Optional[List[str]] = None) -> None:
        self.graph.get_neuron(neuron_id)
        self.explorer_neuron_id = neuron_id
        if activated_path is not None:
            self.explorer_path = list(activated_path)
        if self.phase == AdversaryPhase.IDLE:
            self.phase = AdversaryPhase.HUNTING
            LOGGER.info("AI started hunting from %s", self.state.current_neuron_id)
        if self.phase in (AdversaryPhase.HUNTING, AdversaryPhase.PAUSED):
            self.recompute_path()
        self._check_capture()

    def add_destroyed_node_obstacle(self, neuron_id: str) -> None:
        self.graph.get_neuron(neuron_id)
        self.state.destroyed_neurons.add(neuron_id)
        if neuron_id in self.state.target_path:
            LOGGER.debug("Destroyed neuron %s was on the AI path; recomputing", neuron_id)
            self.repair_target = None
            self.recompute_path()

    def remove_destroyed_node_obstacle(self, neuron_id: str) -> None:
        self.state.destroyed_neurons.discard(neuron_id)
        if self.repair_target == neuron_id:
            self.repair_target = None
            if self.phase == AdversaryPhase.REPAIRING:
                self.phase = AdversaryPhase.HUNTING
        self.notify_graph_changed()

    def apply_slowdown(self, factor: float, duration_seconds: float) -> None:
        """Scale speed by ``factor`` for ``duration_seconds``. The latest call replaces any earlier one."""
        if factor <= 0:
            raise ValueError("Slowdown factor must be positive")
        self.state.slowdown_factor = float(factor)
        self.slowdown_remaining = max(0.0, float(duration_seconds))

    def pause(self) -> None:
        if self.phase == AdversaryPhase.PAUSED:
            return
        self._phase_before_pause = self.phase
        self.phase = AdversaryPhase.PAUSED

    def resume(self) -> None:
        if self.phase != AdversaryPhase.PAUSED:
            return
        previous = self._phase_before_pause or AdversaryPhase.HUNTING
        self._phase_before_pause = None
        if previous == AdversaryPhase.IDLE and self.explorer_neuron_id is not None:
            previous = AdversaryPhase.HUNTING
        self.phase = previous

    # ------------------------------------------------------------------
    # Relocation
    # ------------------------------------------------------------------

    def reset_to_spawn(self) -> None:
        self.state.current_neuron_id = self.spawn_neuron_id
        self.state.target_path = []
        self.state.progress = 0.0
        self.repair_target = None
        self.state.ramp_multiplier = max(1.0, self.state.ramp_multiplier / 2.0)
        if self.speed_increase > 0:
            self.hunting_elapsed = (self.state.ramp_multiplier - 1.0) / self.speed_increase
        self.phase = AdversaryPhase.HUNTING if self.explorer_neuron_id is not None else AdversaryPhase.IDLE
        self._phase_before_pause = None
        self.emit_position()
        if self.phase == AdversaryPhase.HUNTING:
            self.recompute_path()

    def reset_after_catch(self) -> None:
        """Push the AI a few hops away from the capture point and resume hunting."""
        can_traverse = self._predicate()
        avoid = set(self.explorer_path)
        if self.explorer_neuron_id is not None:
            avoid.add(self.explorer_neuron_id)
        visited = {self.state.current_neuron_id}
        current = self.state.current_neuron_id
        for _ in range(self.push_back_hops):
            step = None
            for neighbor in self.graph.neighbors(current):
                if neighbor in avoid or neighbor in visited:
                    continue
                synapse = self.graph.edge_between(current, neighbor)
                if synapse is not None and can_traverse(synapse):
                    step = neighbor
                    break
            if step is None:
                break
            visited.add(step)
            current = step

        self.state.current_neuron_id = current
        self.state.target_path = []
        self.state.progress = 0.0
        self.cooldown_remaining = 0.0
        self.phase = AdversaryPhase.HUNTING
        self.emit_position()
        self.recompute_path()

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self, dt: float) -> None:
        if dt <= 0:
            return
        if self.slowdown_remaining > 0:
            self.slowdown_remaining -= dt
            if self.slowdown_remaining <= 0:
                self.slowdown_remaining = 0.0
                self.state.slowdown_factor = 1.0

        if self.phase == AdversaryPhase.CAUGHT:
            self.cooldown_remaining -= dt
            if self.cooldown_remaining <= 0:
                self.reset_after_catch()
        elif self.phase == AdversaryPhase.REPAIRING:
            self._tick_repair(dt)
        elif self.phase == AdversaryPhase.HUNTING:
            self._tick_hunt(dt)

    def _tick_hunt(self, dt: float) -> None:
        self.hunting_elapsed += dt
        self.state.ramp_multiplier = 1.0 + self.hunting_elapsed * self.speed_increase
        self._ensure_fresh_path()

        path = self.state.target_path
        if len(path) < 2:
            if self.repair_enabled and self.state.destroyed_neurons and self.explorer_neuron_id is not None:
                self._plan_repair()
            return

        self.state.progress += self.effective_speed() * dt
        if self.state.progress < 1.0:
            return

        self.state.current_neuron_id = path[1]
        self.state.target_path = path[1:]
        self.state.progress = 0.0
        self.emit_position()
        if self._check_capture():
            return
        if self.repair_target is not None and self.repair_target in self.graph.neighbors(self.state.current_neuron_id):
            self._begin_repair()
            return
        self._ensure_fresh_path()

    # ------------------------------------------------------------------
    # Repair
    # ------------------------------------------------------------------

    def _plan_repair(self) -> None:
        current = self.state.current_neuron_id
        destroyed = self.state.destroyed_neurons

        for neighbor in self.graph.neighbors(current):
            if neighbor not in destroyed:
                continue
            route = shortest_path(self.graph, current, self.explorer_neuron_id, self._predicate({neighbor}))
            if route is not None:
                self.repair_target = neighbor
                self._begin_repair()
                return

        reachable = hop_distances(self.graph, current, self._predicate())
        here = self.graph.neurons[current]
        candidates = []
        for neuron_id in [nid for nid in self.graph.neurons if nid in destroyed]:
            borders = [n for n in self.graph.neighbors(neuron_id) if n in reachable]
            if not borders:
                continue
            target = self.graph.neurons[neuron_id]
            candidates.append((math.hypot(target.x - here.x, target.y - here.y), neuron_id, borders))
        if not candidates:
            return
        _, target_id, borders = min(candidates, key=lambda c: c[0])
        self.repair_target = target_id
        if current in borders:
            self._begin_repair()
            return
        route = shortest_path_to_any(self.graph, current, borders, self._predicate())
        if route is not None:
            LOGGER.debug("AI heading to repair %s via %s", target_id, route)
            self._set_path(route)

    def _begin_repair(self) -> None:
        self.phase = AdversaryPhase.REPAIRING
        self.repair_remaining = self.repair_seconds
        self._set_path([self.state.current_neuron_id])
        LOGGER.info("AI repairing neuron %s", self.repair_target)

    def _tick_repair(self, dt: float) -> None:
        target = self.repair_target
        if target is None or target not in self.state.destroyed_neurons:
            self.repair_target = None
            self.phase = AdversaryPhase.HUNTING
            return
        self.repair_remaining -= dt
        if self.repair_remaining > 0:
            return
        self.graph.set_node_blocked(target, False)
        self.state.destroyed_neurons.discard(target)
        self.repair_target = None
        self.phase = AdversaryPhase.HUNTING
        self.pending_events.append({"event": AI_HACKED, "neuronId": target})
        LOGGER.info("AI restored neuron %s", target)
        self.recompute_path()

    # ------------------------------------------------------------------
    # Capture and events
    # ------------------------------------------------------------------

    def _check_capture(self) -> bool:
        if self.phase not in (AdversaryPhase.HUNTING, AdversaryPhase.REPAIRING):
            return False
        if self.explorer_neuron_id != self.state.current_neuron_id:
            return False
        self.phase = AdversaryPhase.CAUGHT
        self.cooldown_remaining = self.catch_cooldown_seconds
        self.repair_target = None
        self.state.target_path = []
        self.state.progress = 0.0
        self.pending_events.append({"event": AI_CAUGHT, "neuronId": self.state.current_neuron_id})
        LOGGER.info("AI caught the explorer at %s", self.state.current_neuron_id)
        if self.on_catch_explorer is not None:
            self.on_catch_explorer(self.state.current_neuron_id)
        return True

    def emit_position(self) -> None:
        self.pending_events.append(
            {
                "event": AI_MOVED,
                "neuronId": self.state.current_neuron_id,
                "path": list(self.state.target_path),
            }
        )

    def pop_pending_events(self) -> List[Dict[str, Any]]:
        events = self.pending_events
        self.pending_events = []
        return events

    def snapshot(self) -> Dict[str, Any]:
        return {
            "currentNeuronId": self.state.current_neuron_id,
            "path": list(self.state.target_path),
            "phase": self.phase.value,
        }
