"""
Graph Generator - procedural neural network layout.

Neurons are placed on a jittered grid, joined by short non-crossing synapses,
patched into a single component, then typed (entry, core, junctions) and
given puzzle difficulties that grow with distance from the entry.
"""
import asyncio
import math
import random
from typing import Any, Dict, List, Optional, Set, Tuple

from .constants import (
    JUNCTION_MIN_CONNECTIONS,
    MAX_CONNECTIONS,
    MAX_DIFFICULTY,
    MIN_CONNECTIONS,
    MIN_DIFFICULTY,
    NETWORK_HEIGHT,
    NETWORK_MARGIN,
    NETWORK_WIDTH,
    NEURON_COUNT,
)
from .models import Neuron, NeuronType, Synapse
from .pathfinding import hop_distances
from .state import NetworkGraph

Point = Tuple[float, float]


def _orientation(a: Point, b: Point, c: Point) -> int:
    val = (b[1] - a[1]) * (c[0] - b[0]) - (b[0] - a[0]) * (c[1] - b[1])
    if abs(val) < 1e-9:
        return 0
    return 1 if val > 0 else 2


def _on_segment(a: Point, b: Point, c: Point) -> bool:
    return min(a[0], b[0]) - 1e-9 <= c[0] <= max(a[0], b[0]) + 1e-9 and min(a[1], b[1]) - 1e-9 <= c[1] <= max(a[1], b[1]) + 1e-9


def segments_intersect(p1: Point, p2: Point, q1: Point, q2: Point) -> bool:
    o1 = _orientation(p1, p2, q1)
    o2 = _orientation(p1, p2, q2)
    o3 = _orientation(q1, q2, p1)
    o4 = _orientation(q1, q2, p2)
    if o1 != o2 and o3 != o4:
        return True
    if o1 == 0 and _on_segment(p1, p2, q1):
        return True
    if o2 == 0 and _on_segment(p1, p2, q2):
        return True
    if o3 == 0 and _on_segment(q1, q2, p1):
        return True
    if o4 == 0 and _on_segment(q1, q2, p2):
        return True
    return False


class NetworkGenerator:
    """Builds a fresh NetworkGraph. Passing a seed makes the layout reproducible."""

    def __init__(
        self,
        neuron_count: int = NEURON_COUNT,
        width: float = NETWORK_WIDTH,
        height: float = NETWORK_HEIGHT,
        margin: float = NETWORK_MARGIN,
        min_connections: int = MIN_CONNECTIONS,
        max_connections: int = MAX_CONNECTIONS,
        seed: Optional[int] = None,
    ):
        if neuron_count < 2:
            raise ValueError("A network needs at least two neurons")
        self.neuron_count = neuron_count
        self.width = width
        self.height = height
        self.margin = margin
        self.min_connections = min_connections
        self.max_connections = max(max_connections, min_connections)
        self.rng = random.Random(seed)

    def generate(self) -> NetworkGraph:
        positions = self._generate_positions()
        pairs = self._generate_links(positions)
        pairs = self._connect_components(positions, pairs)

        neurons = [Neuron(id=f"n{i}", x=x, y=y) for i, (x, y) in enumerate(positions)]
        synapses: List[Synapse] = []
        for index, (i, j) in enumerate(pairs):
            synapses.append(Synapse(id=f"s{index}", from_neuron_id=f"n{i}", to_neuron_id=f"n{j}"))
            neurons[i].connections.append(f"n{j}")
            neurons[j].connections.append(f"n{i}")

        entry, core = self._pick_entry_and_core(neurons, pairs)
        for neuron in neurons:
            if neuron.id == entry:
                neuron.type = NeuronType.ENTRY
                neuron.is_activated = True
            elif neuron.id == core:
                neuron.type = NeuronType.CORE
            elif len(neuron.connections) >= JUNCTION_MIN_CONNECTIONS:
                neuron.type = NeuronType.JUNCTION

        graph = NetworkGraph(neurons, synapses, entry, core, width=self.width, height=self.height)
        self._assign_difficulties(graph)
        graph.pop_pending_changes()
        return graph

    async def generate_async(self) -> NetworkGraph:
        """Generate in a worker thread so the event loop keeps ticking."""
        return await asyncio.to_thread(self.generate)

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def _generate_positions(self) -> List[Point]:
        usable_w = max(1.0, self.width - 2 * self.margin)
        usable_h = max(1.0, self.height - 2 * self.margin)
        aspect = usable_w / usable_h
        cols = max(1, math.ceil(math.sqrt(self.neuron_count * aspect)))
        rows = max(1, math.ceil(self.neuron_count / cols))
        cell_w = usable_w / cols
        cell_h = usable_h / rows
        jitter_w = cell_w * 0.3
        jitter_h = cell_h * 0.3

        positions: List[Point] = []
        for r in range(rows):
            for c in range(cols):
                if len(positions) >= self.neuron_count:
                    return positions
                cx = self.margin + (c + 0.5) * cell_w
                cy = self.margin + (r + 0.5) * cell_h
                positions.append(
                    (cx + self.rng.uniform(-jitter_w, jitter_w), cy + self.rng.uniform(-jitter_h, jitter_h))
                )
        return positions

    def _generate_links(self, positions: List[Point]) -> List[Tuple[int, int]]:
        """Shortest-first non-crossing links, capped per neuron at a random degree."""
        count = len(positions)
        caps = [self.rng.randint(self.min_connections, self.max_connections) for _ in range(count)]
        candidates: List[Tuple[float, int, int]] = []
        for i in range(count):
            for j in range(i + 1, count):
                candidates.append((math.dist(positions[i], positions[j]), i, j))
        candidates.sort()

        degree = [0] * count
        pairs: List[Tuple[int, int]] = []
        for _, i, j in candidates:
            if degree[i] >= caps[i] or degree[j] >= caps[j]:
                continue
            if self._would_cross(positions, pairs, i, j):
                continue
            pairs.append((i, j))
            degree[i] += 1
            degree[j] += 1
        return pairs

    def _would_cross(self, positions: List[Point], pairs: List[Tuple[int, int]], i: int, j: int) -> bool:
        for a, b in pairs:
            if len({a, b, i, j}) < 4:
                continue
            if segments_intersect(positions[i], positions[j], positions[a], positions[b]):
                return True
        return False

    def _connect_components(self, positions: List[Point], pairs: List[Tuple[int, int]]) -> List[Tuple[int, int]]:
        count = len(positions)
        parent = list(range(count))

        def find(x: int) -> int:
            while parent[x] != x:
                parent[x] = parent[parent[x]]
                x = parent[x]
            return x

        for a, b in pairs:
            parent[find(a)] = find(b)

        taken: Set[Tuple[int, int]] = set(pairs)
        while len({find(i) for i in range(count)}) > 1:
            root = find(0)
            inside = [i for i in range(count) if find(i) == root]
            outside = [i for i in range(count) if find(i) != root]
            options = sorted(
                (math.dist(positions[a], positions[b]), min(a, b), max(a, b))
                for a in inside
                for b in outside
            )
            chosen = next(
                ((a, b) for _, a, b in options if not self._would_cross(positions, pairs, a, b)),
                (options[0][1], options[0][2]),
            )
            if chosen not in taken:
                taken.add(chosen)
                pairs.append(chosen)
            parent[find(chosen[0])] = find(chosen[1])
        return pairs

    # ------------------------------------------------------------------
    # Typing
    # ------------------------------------------------------------------

    def _pick_entry_and_core(self, neurons: List[Neuron], pairs: List[Tuple[int, int]]) -> Tuple[str, str]:
        """Entry is the leftmost neuron; core is the neuron most hops away from it."""
        entry = min(neurons, key=lambda n: (n.x, n.y)).id
        adjacency: Dict[str, List[str]] = {n.id: n.connections for n in neurons}
        distances = {entry: 0}
        frontier = [entry]
        while frontier:
            nxt: List[str] = []
            for node in frontier:
                for other in adjacency[node]:
                    if other not in distances:
                        distances[other] = distances[node] + 1
                        nxt.append(other)
            frontier = nxt
        by_id = {n.id: n for n in neurons}
        entry_x = by_id[entry].x
        core = max(
            (nid for nid in distances if nid != entry),
            key=lambda nid: (distances[nid], by_id[nid].x - entry_x),
        )
        return entry, core

    def _assign_difficulties(self, graph: NetworkGraph) -> None:
        distances = hop_distances(graph, graph.entry_neuron_id)
        farthest = max(distances.values()) or 1
        span = MAX_DIFFICULTY - MIN_DIFFICULTY
        for synapse in graph.synapses.values():
            hops = min(distances.get(n, farthest) for n in synapse.endpoints)
            difficulty = MIN_DIFFICULTY + round(span * hops / farthest)
            synapse.difficulty = max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, difficulty))


def generate_network(seed: Optional[int] = None, **kwargs: Any) -> NetworkGraph:
    return NetworkGenerator(seed=seed, **kwargs).generate()
