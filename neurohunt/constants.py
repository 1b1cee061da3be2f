import os
from typing import Dict, Optional, Tuple


# Core timing
TICK_INTERVAL_SECONDS: float = 0.1
PING_INTERVAL_SECONDS: float = 2.0
INITIAL_STATE_REQUEST_DELAY_SECONDS: float = 0.5
STATE_REQUEST_INTERVAL_SECONDS: float = 2.0

# Roles
ROLES: Tuple[str, ...] = ("explorer", "protector")
LEGACY_ROLE_ALIASES: Dict[str, str] = {
    "guide": "protector",
    "defender": "protector",
    "player": "explorer",
}

# Network generation
NEURON_COUNT: int = 40
MIN_CONNECTIONS: int = 2
MAX_CONNECTIONS: int = 4
NETWORK_WIDTH: float = 1600.0
NETWORK_HEIGHT: float = 1000.0
NETWORK_MARGIN: float = 50.0
JUNCTION_MIN_CONNECTIONS: int = 3
MIN_DIFFICULTY: int = 1
MAX_DIFFICULTY: int = 3

# Explorer
EXPLORER_VISION_RADIUS: int = 3

# AI behaviour
AI_BASE_SPEED: float = 0.2          # synapses per second
AI_SPEED_INCREASE: float = 0.003    # ramp per elapsed hunting second
AI_MAX_SPEED: float = 1.0
AI_CATCH_COOLDOWN_SECONDS: float = 2.0
AI_PUSH_BACK_HOPS: int = 3
AI_REPAIR_ENABLED: bool = False
AI_REPAIR_SECONDS: float = 5.0

# Resources
INITIAL_RESOURCES: int = 30
MAX_RESOURCES: int = 100
DESTROY_COST: int = 15
SYNAPSE_SEAL_COST: int = 10
FIREWALL_BASE_REWARD: int = 10
FIREWALL_ROUND_MULTIPLIER: int = 1

# Terminal minigame: (max command length, min reward, max reward)
TERMINAL_REWARD_TIERS: Tuple[Tuple[int, int, int], ...] = (
    (10, 3, 5),
    (18, 6, 10),
)
TERMINAL_LONG_REWARD: Tuple[int, int] = (11, 15)
TERMINAL_SLOWDOWN_FACTOR: float = 0.7  # 30% slower
TERMINAL_SLOWDOWN_SECONDS: float = 5.0

# Session rules
MAX_CAPTURES: int = 3
MAX_TRANSIENT_MESSAGES: int = 20
SEEN_ENVELOPE_MEMORY: int = 512

# Relay
RELAY_HOST: str = os.environ.get("NEUROHUNT_RELAY_HOST", "0.0.0.0")
RELAY_PORT: int = int(os.environ.get("PORT", 8765))
RELAY_URL: str = os.environ.get("NEUROHUNT_RELAY_URL", f"ws://localhost:{RELAY_PORT}")


def normalize_role(value: object) -> Optional[str]:
    """Return a supported role name, treating legacy names as aliases."""
    if not isinstance(value, str):
        return None
    lowered = value.strip().lower()
    lowered = LEGACY_ROLE_ALIASES.get(lowered, lowered)
    return lowered if lowered in ROLES else None


def get_terminal_reward_range(command_length: int) -> Tuple[int, int]:
    """Return the (min, max) resource reward for a hack command of the given length."""
    for max_length, low, high in TERMINAL_REWARD_TIERS:
        if command_length <= max_length:
            return low, high
    return TERMINAL_LONG_REWARD


def get_firewall_reward(round_number: int) -> int:
    """Return the resource reward for completing the given firewall round."""
    return FIREWALL_BASE_REWARD + max(0, int(round_number)) * FIREWALL_ROUND_MULTIPLIER


# Minigames
PUZZLE_GATE_WEIGHTS: Dict[int, Tuple[float, float, float]] = {
    # difficulty -> (OR, AND, XOR) probabilities
    1: (0.7, 0.2, 0.1),
    2: (0.4, 0.4, 0.2),
    3: (0.2, 0.4, 0.4),
}
FIREWALL_COLORS: Tuple[str, ...] = ("red", "blue", "green", "yellow")
FIREWALL_BASE_SEQUENCE_LENGTH: int = 3
FIREWALL_SEQUENCE_INCREMENT: int = 1
