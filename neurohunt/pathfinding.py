"""
Breadth-first path planning over a NetworkGraph.

All functions here are pure: they read the graph, never write it, and iterate
neighbours in connection order so equal-length routes always resolve the same
way on both peers.
"""

from collections import deque
from typing import AbstractSet, Callable, Dict, Iterable, List, Optional, Set

from .constants import EXPLORER_VISION_RADIUS
from .models import NeuronType, Synapse, SynapseState
from .state import NetworkGraph

TraversalPredicate = Callable[[Synapse], bool]
ExpansionPredicate = Callable[[str], bool]


def _always(_synapse: Synapse) -> bool:
    return True


def open_synapse_predicate(
    graph: NetworkGraph,
    destroyed: AbstractSet[str] = frozenset(),
    assume_open: AbstractSet[str] = frozenset(),
) -> TraversalPredicate:
    """Predicate used by the AI: not Blocked and neither endpoint destroyed or blocked.

    Neurons in ``assume_open`` are treated as if they had been restored, which
    lets the AI ask "would repairing this neuron give me a route?".
    """

    def can_traverse(synapse: Synapse) -> bool:
        a, b = synapse.endpoints
        if a in assume_open or b in assume_open:
            other_ends = [n for n in (a, b) if n not in assume_open]
            return all(n not in destroyed and not graph.neurons[n].is_blocked for n in other_ends) and not synapse.sealed
        if synapse.state == SynapseState.BLOCKED:
            return False
        for endpoint in synapse.endpoints:
            if endpoint in destroyed or graph.neurons[endpoint].is_blocked:
                return False
        return True

    return can_traverse


def shortest_path_to_any(
    graph: NetworkGraph,
    start: str,
    goals: Iterable[str],
    can_traverse: Optional[TraversalPredicate] = None,
) -> Optional[List[str]]:
    """Return the shortest route from ``start`` to the first goal BFS reaches, or None."""
    graph.get_neuron(start)
    goal_set = set(goals)
    if start in goal_set:
        return [start]
    if not goal_set:
        return None
    can_traverse = can_traverse or _always

    parents: Dict[str, Optional[str]] = {start: None}
    queue: deque[str] = deque([start])
    while queue:
        current = queue.popleft()
        for neighbor in graph.neighbors(current):
            if neighbor in parents:
                continue
            synapse = graph.edge_between(current, neighbor)
            if synapse is None or not can_traverse(synapse):
                continue
            parents[neighbor] = current
            if neighbor in goal_set:
                return _walk_back(parents, neighbor)
            queue.append(neighbor)
    return None


def shortest_path(
    graph: NetworkGraph,
    start: str,
    goal: str,
    can_traverse: Optional[TraversalPredicate] = None,
) -> Optional[List[str]]:
    """Return ``[start, ..., goal]`` over traversable synapses, or None if unreachable.

    Edges have unit cost; puzzle difficulty only affects activation time.
    """
    graph.get_neuron(goal)
    return shortest_path_to_any(graph, start, (goal,), can_traverse)


def _walk_back(parents: Dict[str, Optional[str]], node: Optional[str]) -> List[str]:
    path: List[str] = []
    while node is not None:
        path.append(node)
        node = parents[node]
    path.reverse()
    return path


def hop_distances(
    graph: NetworkGraph,
    start: str,
    can_traverse: Optional[TraversalPredicate] = None,
) -> Dict[str, int]:
    """Hop count from ``start`` to every neuron it can reach."""
    graph.get_neuron(start)
    can_traverse = can_traverse or _always
    distances: Dict[str, int] = {start: 0}
    queue: deque[str] = deque([start])
    while queue:
        current = queue.popleft()
        for neighbor in graph.neighbors(current):
            if neighbor in distances:
                continue
            synapse = graph.edge_between(current, neighbor)
            if synapse is None or not can_traverse(synapse):
                continue
            distances[neighbor] = distances[current] + 1
            queue.append(neighbor)
    return distances


def reachable_set(
    graph: NetworkGraph,
    start: str,
    max_hops: int,
    can_expand: Optional[ExpansionPredicate] = None,
) -> Set[str]:
    """Neurons within ``max_hops`` of ``start``.

    A discovered neuron is always part of the result, but the search only
    continues through neurons accepted by ``can_expand``. The origin itself is
    subject to the same gate.
    """
    graph.get_neuron(start)
    seen: Set[str] = {start}
    if max_hops <= 0:
        return seen
    queue: deque[tuple] = deque([(start, 0)])
    while queue:
        node_id, depth = queue.popleft()
        if depth >= max_hops:
            continue
        if can_expand is not None and not can_expand(node_id):
            continue
        for neighbor in graph.neighbors(node_id):
            if neighbor not in seen:
                seen.add(neighbor)
                queue.append((neighbor, depth + 1))
    return seen


def fog_can_expand(graph: NetworkGraph) -> ExpansionPredicate:
    """Expansion gate for fog of war: Entry, activated, or touching an Active synapse."""

    def can_expand(neuron_id: str) -> bool:
        neuron = graph.neurons[neuron_id]
        if neuron.type == NeuronType.ENTRY or neuron.is_activated:
            return True
        return any(s.state == SynapseState.ACTIVE for s in graph.incident_synapses(neuron_id))

    return can_expand


def visible_neurons(graph: NetworkGraph, explorer_neuron_id: str, radius: int = EXPLORER_VISION_RADIUS) -> Set[str]:
    """Neurons revealed to the explorer standing on ``explorer_neuron_id``."""
    return reachable_set(graph, explorer_neuron_id, radius, fog_can_expand(graph))
