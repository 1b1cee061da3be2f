from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from .constants import MAX_DIFFICULTY, MIN_DIFFICULTY
from .models import Neuron, NeuronType, Synapse, SynapseState


class GameValidationError(Exception):
    """Raised when a game action or replicated event fails validation."""
    pass


class NotFoundError(GameValidationError):
    """An unknown neuron or synapse id was referenced."""
    pass


class InvalidOperationError(GameValidationError):
    """A mutation would break a graph invariant and was refused."""
    pass


class NetworkGraph:
    """Fixed neuron/synapse topology with invariant-preserving state mutators.

    The neuron and synapse sets never change after construction; only state
    flags do. Every mutator validates before it writes, so a refused call
    leaves the graph untouched. Both peers must call the mutators with the
    same arguments in the same order to stay in sync.
    """

    def __init__(
        self,
        neurons: List[Neuron],
        synapses: List[Synapse],
        entry_neuron_id: str,
        core_neuron_id: str,
        width: float = 0.0,
        height: float = 0.0,
    ) -> None:
        self.neurons: Dict[str, Neuron] = {n.id: n for n in neurons}
        self.synapses: Dict[str, Synapse] = {s.id: s for s in synapses}
        self.entry_neuron_id = entry_neuron_id
        self.core_neuron_id = core_neuron_id
        self.width = float(width)
        self.height = float(height)

        self._incident: Dict[str, List[str]] = {nid: [] for nid in self.neurons}
        self._pair_index: Dict[FrozenSet[str], str] = {}
        # Change notifications queued for the renderer
        self.pending_changes: List[Dict[str, str]] = []

        self._index_synapses()
        self._validate_topology()

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    def _index_synapses(self) -> None:
        derived: Dict[str, List[str]] = {nid: [] for nid in self.neurons}
        for synapse in self.synapses.values():
            a, b = synapse.endpoints
            if a not in self.neurons or b not in self.neurons:
                raise NotFoundError(f"Synapse {synapse.id} references an unknown neuron")
            if a == b:
                raise InvalidOperationError(f"Synapse {synapse.id} is a self loop")
            pair = frozenset((a, b))
            if pair in self._pair_index:
                raise InvalidOperationError(f"Duplicate synapse between {a} and {b}")
            self._pair_index[pair] = synapse.id
            self._incident[a].append(synapse.id)
            self._incident[b].append(synapse.id)
            derived[a].append(b)
            derived[b].append(a)

        for neuron in self.neurons.values():
            if not neuron.connections:
                neuron.connections = derived[neuron.id]
            elif len(neuron.connections) != len(derived[neuron.id]) or set(neuron.connections) != set(derived[neuron.id]):
                raise InvalidOperationError(f"Connections of {neuron.id} do not mirror its synapses")

    def _validate_topology(self) -> None:
        entries = [n.id for n in self.neurons.values() if n.type == NeuronType.ENTRY]
        cores = [n.id for n in self.neurons.values() if n.type == NeuronType.CORE]
        if entries != [self.entry_neuron_id]:
            raise InvalidOperationError("Graph must have exactly one entry neuron")
        if cores != [self.core_neuron_id]:
            raise InvalidOperationError("Graph must have exactly one core neuron")
        for nid in (self.entry_neuron_id, self.core_neuron_id):
            if self.neurons[nid].is_blocked:
                raise InvalidOperationError(f"{nid} cannot start blocked")
        for synapse in self.synapses.values():
            if not MIN_DIFFICULTY <= synapse.difficulty <= MAX_DIFFICULTY:
                raise InvalidOperationError(f"Synapse {synapse.id} difficulty out of range")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_neuron(self, neuron_id: str) -> Neuron:
        neuron = self.neurons.get(neuron_id)
        if neuron is None:
            raise NotFoundError(f"Unknown neuron {neuron_id}")
        return neuron

    def get_synapse(self, synapse_id: str) -> Synapse:
        synapse = self.synapses.get(synapse_id)
        if synapse is None:
            raise NotFoundError(f"Unknown synapse {synapse_id}")
        return synapse

    def neighbors(self, neuron_id: str) -> List[str]:
        """Return the connection list of a neuron. Callers must not mutate it."""
        return self.get_neuron(neuron_id).connections

    def edge_between(self, a: str, b: str) -> Optional[Synapse]:
        synapse_id = self._pair_index.get(frozenset((a, b)))
        if synapse_id is None:
            return None
        return self.synapses[synapse_id]

    def incident_synapses(self, neuron_id: str) -> List[Synapse]:
        self.get_neuron(neuron_id)
        return [self.synapses[sid] for sid in self._incident[neuron_id]]

    def is_special(self, neuron_id: str) -> bool:
        return neuron_id in (self.entry_neuron_id, self.core_neuron_id)

    def blocked_neuron_ids(self) -> List[str]:
        return [n.id for n in self.neurons.values() if n.is_blocked]

    def _endpoint_blocked(self, synapse: Synapse) -> bool:
        a, b = synapse.endpoints
        return self.neurons[a].is_blocked or self.neurons[b].is_blocked

    def _must_be_blocked(self, synapse: Synapse) -> bool:
        return synapse.sealed or self._endpoint_blocked(synapse)

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def set_edge_state(self, synapse_id: str, new_state: SynapseState) -> SynapseState:
        """Set a synapse state and return the state actually applied.

        Blocked dominates: a synapse with a blocked endpoint, or a sealed one,
        stays Blocked whatever is requested. Requesting Blocked on a synapse
        whose endpoints are both open seals it.
        """
        synapse = self.get_synapse(synapse_id)
        new_state = SynapseState(new_state)

        if new_state == SynapseState.BLOCKED and not synapse.sealed and not self._endpoint_blocked(synapse):
            synapse.sealed = True
        if self._must_be_blocked(synapse):
            new_state = SynapseState.BLOCKED

        self._write_synapse_state(synapse, new_state)
        return synapse.state

    def set_synapse_sealed(self, synapse_id: str, sealed: bool) -> SynapseState:
        synapse = self.get_synapse(synapse_id)
        synapse.sealed = bool(sealed)
        if synapse.sealed:
            self._write_synapse_state(synapse, SynapseState.BLOCKED)
        elif synapse.state == SynapseState.BLOCKED and not self._endpoint_blocked(synapse):
            self._write_synapse_state(synapse, SynapseState.DORMANT)
        return synapse.state

    def set_node_blocked(self, neuron_id: str, blocked: bool) -> List[str]:
        """Block or unblock a neuron and cascade to its synapses.

        Returns the ids of synapses whose state changed. Unblocking never
        restores Active; open synapses come back Dormant.
        """
        neuron = self.get_neuron(neuron_id)
        if self.is_special(neuron_id):
            raise InvalidOperationError(f"Cannot change blocked state of {neuron.type.value} neuron")

        blocked = bool(blocked)
        if neuron.is_blocked != blocked:
            neuron.is_blocked = blocked
            self._record_change("neuron", neuron_id)

        changed: List[str] = []
        for synapse in self.incident_synapses(neuron_id):
            before = synapse.state
            if blocked:
                self._write_synapse_state(synapse, SynapseState.BLOCKED)
            elif synapse.state == SynapseState.BLOCKED and not self._must_be_blocked(synapse):
                self._write_synapse_state(synapse, SynapseState.DORMANT)
            if synapse.state != before:
                changed.append(synapse.id)

        if blocked and neuron.is_activated:
            neuron.is_activated = False
            self._record_change("neuron", neuron_id)
        return changed

    def activate_neuron(self, neuron_id: str) -> None:
        neuron = self.get_neuron(neuron_id)
        if neuron.is_activated:
            return
        if neuron.type != NeuronType.ENTRY and not self._has_active_synapse(neuron_id):
            raise InvalidOperationError(f"{neuron_id} has no active synapse")
        neuron.is_activated = True
        self._record_change("neuron", neuron_id)

    def deactivate_neuron(self, neuron_id: str) -> None:
        neuron = self.get_neuron(neuron_id)
        if neuron.type == NeuronType.ENTRY:
            raise InvalidOperationError("Entry neuron is always active")
        if neuron.is_activated:
            neuron.is_activated = False
            self._record_change("neuron", neuron_id)

    def mark_ai_path(self, path: Iterable[str]) -> List[str]:
        """Paint Dormant synapses along ``path`` as AI_PATH, clearing the old paint.

        Display only: AI_PATH behaves like Dormant for every rule.
        """
        wanted = set()
        hops = list(path)
        for a, b in zip(hops, hops[1:]):
            synapse = self.edge_between(a, b)
            if synapse is not None:
                wanted.add(synapse.id)

        changed: List[str] = []
        for synapse in self.synapses.values():
            if synapse.state == SynapseState.AI_PATH and synapse.id not in wanted:
                self._write_synapse_state(synapse, SynapseState.DORMANT)
                changed.append(synapse.id)
            elif synapse.state == SynapseState.DORMANT and synapse.id in wanted:
                self._write_synapse_state(synapse, SynapseState.AI_PATH)
                changed.append(synapse.id)
        return changed

    def _has_active_synapse(self, neuron_id: str) -> bool:
        return any(self.synapses[sid].state == SynapseState.ACTIVE for sid in self._incident[neuron_id])

    def _write_synapse_state(self, synapse: Synapse, new_state: SynapseState) -> None:
        if synapse.state == new_state:
            return
        was_active = synapse.state == SynapseState.ACTIVE
        synapse.state = new_state
        self._record_change("synapse", synapse.id)
        if was_active:
            for endpoint in synapse.endpoints:
                self._refresh_activation(endpoint)

    def _refresh_activation(self, neuron_id: str) -> None:
        neuron = self.neurons[neuron_id]
        if not neuron.is_activated or neuron.type == NeuronType.ENTRY:
            return
        if not self._has_active_synapse(neuron_id):
            neuron.is_activated = False
            self._record_change("neuron", neuron_id)

    # ------------------------------------------------------------------
    # Notifications and diagnostics
    # ------------------------------------------------------------------

    def _record_change(self, kind: str, item_id: str) -> None:
        self.pending_changes.append({"kind": kind, "id": item_id})

    def pop_pending_changes(self) -> List[Dict[str, str]]:
        changes = self.pending_changes
        self.pending_changes = []
        return changes

    def check_invariants(self) -> List[str]:
        """Return a description of every violated invariant (empty when consistent)."""
        problems: List[str] = []
        for neuron in self.neurons.values():
            for other in neuron.connections:
                if neuron.id not in self.neurons[other].connections:
                    problems.append(f"asymmetric connection {neuron.id}->{other}")
                if self.edge_between(neuron.id, other) is None:
                    problems.append(f"connection {neuron.id}-{other} has no synapse")
            if neuron.is_activated and neuron.type != NeuronType.ENTRY and not self._has_active_synapse(neuron.id):
                problems.append(f"{neuron.id} activated without an active synapse")
        for nid in (self.entry_neuron_id, self.core_neuron_id):
            if self.neurons[nid].is_blocked:
                problems.append(f"{nid} is blocked")
        for synapse in self.synapses.values():
            a, b = synapse.endpoints
            if b not in self.neurons[a].connections or a not in self.neurons[b].connections:
                problems.append(f"synapse {synapse.id} missing from connections")
            if (synapse.state == SynapseState.BLOCKED) != self._must_be_blocked(synapse):
                problems.append(f"synapse {synapse.id} blocked state disagrees with endpoints")
        return problems

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entryNeuronId": self.entry_neuron_id,
            "coreNeuronId": self.core_neuron_id,
            "width": self.width,
            "height": self.height,
            "neurons": [
                {
                    "id": n.id,
                    "x": round(n.x, 3),
                    "y": round(n.y, 3),
                    "type": n.type.value,
                    "connections": list(n.connections),
                    "isActivated": n.is_activated,
                    "isBlocked": n.is_blocked,
                }
                for n in self.neurons.values()
            ],
            "synapses": [
                {
                    "id": s.id,
                    "fromNeuronId": s.from_neuron_id,
                    "toNeuronId": s.to_neuron_id,
                    "state": s.state.value,
                    "difficulty": s.difficulty,
                    "sealed": s.sealed,
                }
                for s in self.synapses.values()
            ],
        }


def build_graph_from_dict(data: Dict[str, Any]) -> NetworkGraph:
    """Rebuild a graph from a ``to_dict`` payload received over the wire."""
    neurons: List[Neuron] = []
    for n in data["neurons"]:
        neurons.append(
            Neuron(
                id=str(n["id"]),
                x=float(n["x"]),
                y=float(n["y"]),
                type=NeuronType(n.get("type", NeuronType.NORMAL.value)),
                connections=[str(c) for c in n.get("connections", [])],
                is_activated=bool(n.get("isActivated", False)),
                is_blocked=bool(n.get("isBlocked", False)),
            )
        )
    synapses: List[Synapse] = []
    for s in data["synapses"]:
        synapses.append(
            Synapse(
                id=str(s["id"]),
                from_neuron_id=str(s["fromNeuronId"]),
                to_neuron_id=str(s["toNeuronId"]),
                state=SynapseState(s.get("state", SynapseState.DORMANT.value)),
                difficulty=int(s.get("difficulty", MIN_DIFFICULTY)),
                sealed=bool(s.get("sealed", False)),
            )
        )
    graph = NetworkGraph(
        neurons,
        synapses,
        entry_neuron_id=str(data["entryNeuronId"]),
        core_neuron_id=str(data["coreNeuronId"]),
        width=float(data.get("width", 0.0)),
        height=float(data.get("height", 0.0)),
    )
    graph.pending_changes = []
    return graph
