"""
Wire protocol shared by both peers.

Every frame on the bus is one JSON object::

    {"type": "...", "data": {...}, "from": "explorer"|"protector"|null,
     "timestamp": 1712345678.123, "senderId": "...", "seq": 7}

Payloads set explicit final values (never deltas), so applying an event twice
or slightly out of order converges to the same state.
"""

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .constants import normalize_role
from .state import GameValidationError


class EventType(str, Enum):
    PLAYER_CONNECTED = "player-connected"
    PLAYER_CONNECTED_ACK = "player-connected-ack"
    PING = "ping"
    PONG = "pong"
    REQUEST_GAME_STATE = "request-game-state"
    GAME_STATE_RESPONSE = "game-state-response"
    NETWORK_GENERATED = "network-generated"
    EXPLORER_MOVED = "explorer-moved"
    SYNAPSE_ACTIVATED = "synapse-activated"
    SYNAPSE_DEACTIVATED = "synapse-deactivated"
    SYNAPSE_BLOCKED = "synapse-blocked"
    NEURON_DESTROYED = "neuron-destroyed"
    NEURON_HACKED = "neuron-hacked"
    AI_POSITION = "ai-position"
    AI_CONNECTED = "ai-connected"
    PUZZLE_STARTED = "puzzle-started"
    PUZZLE_COMPLETED = "puzzle-completed"
    PUZZLE_FAILED = "puzzle-failed"
    GAME_WON = "game-won"
    GAME_LOST = "game-lost"
    GAME_RESTART = "game-restart"
    DILEMMA_TRIGGERED = "dilemma-triggered"
    DILEMMA_CHOICE = "dilemma-choice"


# Events used for presence bookkeeping rather than game state
PRESENCE_EVENTS = frozenset(
    {EventType.PLAYER_CONNECTED, EventType.PLAYER_CONNECTED_ACK, EventType.PING, EventType.PONG}
)

_STR = (str,)
_INT = (int,)
_LIST = (list,)
_DICT = (dict,)
_OPT_STR = (str, type(None))
_OPT_DICT = (dict, type(None))

PAYLOAD_SCHEMAS: Dict[EventType, Dict[str, Tuple[type, ...]]] = {
    EventType.PLAYER_CONNECTED: {"role": _STR},
    EventType.PLAYER_CONNECTED_ACK: {"role": _STR},
    EventType.PING: {"role": _STR},
    EventType.PONG: {"role": _STR},
    EventType.REQUEST_GAME_STATE: {"role": _STR},
    EventType.GAME_STATE_RESPONSE: {
        "networkData": _OPT_DICT,
        "explorerPosition": _OPT_STR,
        "explorerPath": _LIST,
        "aiState": _OPT_DICT,
        "blockedNeurons": _LIST,
    },
    EventType.NETWORK_GENERATED: {
        "neurons": _LIST,
        "synapses": _LIST,
        "entryNeuronId": _STR,
        "coreNeuronId": _STR,
    },
    EventType.EXPLORER_MOVED: {"neuronId": _STR, "activatedPath": _LIST},
    EventType.SYNAPSE_ACTIVATED: {"synapseId": _STR},
    EventType.SYNAPSE_DEACTIVATED: {"synapseId": _STR},
    EventType.SYNAPSE_BLOCKED: {"synapseId": _STR, "resourcesRemaining": _INT},
    EventType.NEURON_DESTROYED: {"neuronId": _STR, "resourcesRemaining": _INT},
    EventType.NEURON_HACKED: {"neuronId": _STR},
    EventType.AI_POSITION: {"neuronId": _STR, "path": _LIST},
    EventType.AI_CONNECTED: {"neuronId": _STR, "explorerPushedTo": _OPT_STR},
    EventType.PUZZLE_STARTED: {"synapseId": _STR},
    EventType.PUZZLE_COMPLETED: {"synapseId": _STR},
    EventType.PUZZLE_FAILED: {"synapseId": _STR},
    EventType.GAME_WON: {"winner": _STR},
    EventType.GAME_LOST: {"winner": _STR},
    EventType.GAME_RESTART: {},
    EventType.DILEMMA_TRIGGERED: {
        "dilemmaId": _STR,
        "title": _STR,
        "description": _STR,
        "choices": _LIST,
    },
    EventType.DILEMMA_CHOICE: {"dilemmaId": _STR, "choiceId": _STR},
}


def validate_payload(event_type: EventType, data: Any) -> Dict[str, Any]:
    """Check required keys and their JSON types. Raises GameValidationError."""
    if not isinstance(data, dict):
        raise GameValidationError(f"{event_type.value} payload must be an object")
    for key, types in PAYLOAD_SCHEMAS[event_type].items():
        if key not in data:
            raise GameValidationError(f"{event_type.value} payload missing '{key}'")
        value = data[key]
        # bool is an int subclass; reject it where a count is expected
        if isinstance(value, bool) and bool not in types:
            raise GameValidationError(f"{event_type.value}.{key} has wrong type")
        if not isinstance(value, types):
            raise GameValidationError(f"{event_type.value}.{key} has wrong type")
    return data


@dataclass
class Envelope:
    type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    from_role: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    sender_id: str = ""
    seq: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "data": self.data,
            "from": self.from_role,
            "timestamp": self.timestamp,
            "senderId": self.sender_id,
            "seq": self.seq,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, raw: Any) -> "Envelope":
        if not isinstance(raw, dict):
            raise GameValidationError("Envelope must be a JSON object")
        try:
            event_type = EventType(raw.get("type"))
        except ValueError:
            raise GameValidationError(f"Unknown event type {raw.get('type')!r}")
        data = raw.get("data")
        if data is None:
            data = {}
        validate_payload(event_type, data)

        from_value = raw.get("from")
        from_role = normalize_role(from_value) if from_value is not None else None
        if from_value is not None and from_role is None:
            raise GameValidationError(f"Unknown sender role {from_value!r}")

        seq = raw.get("seq", 0)
        if not isinstance(seq, int) or isinstance(seq, bool):
            raise GameValidationError("Envelope seq must be an integer")
        timestamp = raw.get("timestamp", 0.0)
        if not isinstance(timestamp, (int, float)):
            raise GameValidationError("Envelope timestamp must be a number")

        return cls(
            type=event_type,
            data=data,
            from_role=from_role,
            timestamp=float(timestamp),
            sender_id=str(raw.get("senderId") or ""),
            seq=seq,
        )

    @classmethod
    def from_json(cls, raw: str) -> "Envelope":
        try:
            parsed = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise GameValidationError(f"Malformed frame: {exc}")
        return cls.from_dict(parsed)
