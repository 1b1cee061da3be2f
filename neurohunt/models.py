from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

from .constants import AI_BASE_SPEED


class Role(str, Enum):
    EXPLORER = "explorer"
    PROTECTOR = "protector"


class NeuronType(str, Enum):
    NORMAL = "normal"
    ENTRY = "entry"
    CORE = "core"
    JUNCTION = "junction"


class SynapseState(str, Enum):
    DORMANT = "dormant"
    SOLVING = "solving"
    ACTIVE = "active"
    FAILED = "failed"
    BLOCKED = "blocked"
    AI_PATH = "ai_path"


@dataclass
class Neuron:
    id: str
    x: float
    y: float
    type: NeuronType = NeuronType.NORMAL
    # Insertion order is the BFS tie-break order
    connections: List[str] = field(default_factory=list)
    is_activated: bool = False
    is_blocked: bool = False

    @property
    def position(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass
class Synapse:
    id: str
    from_neuron_id: str
    to_neuron_id: str
    state: SynapseState = SynapseState.DORMANT
    difficulty: int = 1
    sealed: bool = False  # blocked directly by the protector, independent of endpoints

    @property
    def endpoints(self) -> Tuple[str, str]:
        return (self.from_neuron_id, self.to_neuron_id)

    def other_end(self, neuron_id: str) -> str:
        return self.to_neuron_id if neuron_id == self.from_neuron_id else self.from_neuron_id


@dataclass
class AdversaryState:
    current_neuron_id: str
    target_path: List[str] = field(default_factory=list)
    progress: float = 0.0  # along the synapse toward target_path[1], in [0, 1]
    base_speed: float = AI_BASE_SPEED
    ramp_multiplier: float = 1.0
    slowdown_factor: float = 1.0
    destroyed_neurons: Set[str] = field(default_factory=set)

    @property
    def speed_multiplier(self) -> float:
        return self.ramp_multiplier * self.slowdown_factor


@dataclass
class AdversaryMirror:
    """Read-only copy of the AI position held by the explorer peer."""
    current_neuron_id: Optional[str] = None
    path: List[str] = field(default_factory=list)


@dataclass
class ExplorerProgress:
    current_neuron_id: str
    activated_path: List[str] = field(default_factory=list)
    is_solving_puzzle: bool = False
    solving_synapse_id: Optional[str] = None

    def to_payload(self) -> Dict[str, object]:
        return {"neuronId": self.current_neuron_id, "activatedPath": list(self.activated_path)}
