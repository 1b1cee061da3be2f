import random
from dataclasses import dataclass
from typing import Optional

from .constants import (
    DESTROY_COST,
    INITIAL_RESOURCES,
    MAX_RESOURCES,
    get_firewall_reward,
    get_terminal_reward_range,
)


@dataclass
class ResourcePool:
    """Protector resources, always clamped to ``[0, maximum]``."""
    current: int = INITIAL_RESOURCES
    maximum: int = MAX_RESOURCES
    unit_cost: int = DESTROY_COST

    def __post_init__(self) -> None:
        self.current = max(0, min(int(self.current), int(self.maximum)))

    def can_afford(self, cost: Optional[int] = None) -> bool:
        return self.current >= (self.unit_cost if cost is None else int(cost))

    def try_spend(self, cost: Optional[int] = None) -> bool:
        """Debit ``cost`` (defaults to ``unit_cost``) only if fully affordable."""
        amount = self.unit_cost if cost is None else int(cost)
        if amount < 0 or self.current < amount:
            return False
        self.current -= amount
        return True

    def credit(self, amount: int) -> int:
        """Add resources up to the maximum. Returns the amount actually added."""
        before = self.current
        self.current = max(0, min(self.current + int(amount), self.maximum))
        return self.current - before

    def set_current(self, value: int) -> None:
        self.current = max(0, min(int(value), self.maximum))


def terminal_hack_reward(command: str, rng: Optional[random.Random] = None) -> int:
    low, high = get_terminal_reward_range(len(command))
    return (rng or random).randint(low, high)


def firewall_round_reward(round_number: int) -> int:
    return get_firewall_reward(round_number)
