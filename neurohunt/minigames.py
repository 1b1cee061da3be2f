"""
Minigame logic without any UI. Sessions only listen for pass/fail through
``on_complete`` / ``on_fail``; everything else here is for bots and tests.
"""

import itertools
import random
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from .constants import (
    FIREWALL_BASE_SEQUENCE_LENGTH,
    FIREWALL_COLORS,
    FIREWALL_SEQUENCE_INCREMENT,
    PUZZLE_GATE_WEIGHTS,
)
from .resources import firewall_round_reward, terminal_hack_reward

GATE_AND = "AND"
GATE_OR = "OR"
GATE_XOR = "XOR"

TERMINAL_COMMANDS: Sequence[str] = (
    "run deep scan",
    "init secure mode",
    "start backup now",
    "load neural core",
    "sync all nodes",
    "purge ai cache",
    "reset network stack",
    "enable stealth mode",
    "run full system scan",
    "start encrypted data transfer",
    "load advanced firewall rules",
    "run neural pathway analysis",
    "init cortex defense system",
    "execute full system memory purge",
    "run deep neural network scan",
    "reset primary firewall defense matrix",
    "init full spectrum threat analysis protocol",
    "run complete neural pathway integrity check",
)


class Minigame:
    def __init__(self) -> None:
        self._complete_callbacks: List[Callable[..., None]] = []
        self._fail_callbacks: List[Callable[..., None]] = []
        self.finished = False
        self.succeeded: Optional[bool] = None

    def on_complete(self, callback: Callable[..., None]) -> None:
        self._complete_callbacks.append(callback)

    def on_fail(self, callback: Callable[..., None]) -> None:
        self._fail_callbacks.append(callback)

    def _complete(self, *args: Any) -> None:
        self.succeeded = True
        for callback in list(self._complete_callbacks):
            callback(*args)

    def _fail(self, *args: Any) -> None:
        self.succeeded = False
        for callback in list(self._fail_callbacks):
            callback(*args)


def evaluate_gate(gate: str, inputs: Sequence[int]) -> int:
    if not inputs:
        return 0
    if gate == GATE_AND:
        return 1 if all(v == 1 for v in inputs) else 0
    if gate == GATE_OR:
        return 1 if any(v == 1 for v in inputs) else 0
    if gate == GATE_XOR:
        return sum(1 for v in inputs if v == 1) % 2
    return int(inputs[0])


@dataclass
class GateChallenge:
    gate: str
    input_count: int
    target: int = 1


class PuzzleMinigame(Minigame):
    """Logic-gate puzzle guarding one synapse.

    Each challenge is a gate with some switches; the explorer must set the
    switches so every gate outputs its target. One attempt only: a wrong
    answer fails the puzzle.
    """

    def __init__(self, synapse_id: str, difficulty: int = 1, rng: Optional[random.Random] = None) -> None:
        super().__init__()
        self.synapse_id = synapse_id
        self.difficulty = max(1, min(3, int(difficulty)))
        self.rng = rng or random.Random()
        self.challenges = [self._make_challenge() for _ in range(self.difficulty)]

    def _random_gate(self) -> str:
        p_or, p_and, _ = PUZZLE_GATE_WEIGHTS[self.difficulty]
        roll = self.rng.random()
        if roll < p_or:
            return GATE_OR
        if roll < p_or + p_and:
            return GATE_AND
        return GATE_XOR

    def _make_challenge(self) -> GateChallenge:
        gate = self._random_gate()
        input_count = self.rng.randint(2, 1 + self.difficulty)
        return GateChallenge(gate=gate, input_count=input_count, target=self.rng.randint(0, 1))

    def check(self, answers: Sequence[Sequence[int]]) -> bool:
        if len(answers) != len(self.challenges):
            return False
        for challenge, inputs in zip(self.challenges, answers):
            if len(inputs) != challenge.input_count:
                return False
            if evaluate_gate(challenge.gate, inputs) != challenge.target:
                return False
        return True

    def submit(self, answers: Sequence[Sequence[int]]) -> bool:
        if self.finished:
            return bool(self.succeeded)
        self.finished = True
        if self.check(answers):
            self._complete(self.synapse_id)
            return True
        self._fail(self.synapse_id)
        return False

    def abandon(self) -> None:
        if not self.finished:
            self.finished = True
            self._fail(self.synapse_id)

    def solution(self) -> List[List[int]]:
        """A valid answer, found by brute force over the switch settings."""
        answer: List[List[int]] = []
        for challenge in self.challenges:
            for combo in itertools.product((0, 1), repeat=challenge.input_count):
                if evaluate_gate(challenge.gate, combo) == challenge.target:
                    answer.append(list(combo))
                    break
        return answer


class FirewallMinigame(Minigame):
    """Repeat-the-sequence game. Each cleared round credits resources and starts a longer one."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        super().__init__()
        self.rng = rng or random.Random()
        self.round = 1
        self.sequence: List[str] = []
        self.entered: List[str] = []
        self._new_sequence()

    def _new_sequence(self) -> None:
        length = FIREWALL_BASE_SEQUENCE_LENGTH + (self.round - 1) * FIREWALL_SEQUENCE_INCREMENT
        self.sequence = [self.rng.choice(FIREWALL_COLORS) for _ in range(length)]
        self.entered = []

    def press(self, color: str) -> Optional[bool]:
        """Returns True when a round is cleared, False on a mistake, None while in progress."""
        if self.finished:
            return None
        self.entered.append(color)
        index = len(self.entered) - 1
        if self.sequence[index] != color:
            self.finished = True
            self._fail(self.round)
            return False
        if len(self.entered) < len(self.sequence):
            return None
        reward = firewall_round_reward(self.round)
        cleared = self.round
        self.round += 1
        self._new_sequence()
        self._complete(reward, cleared)
        return True

    def close(self) -> None:
        self.finished = True


class TerminalMinigame(Minigame):
    """Type the shown command. Longer commands pay more."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        super().__init__()
        self.rng = rng or random.Random()
        self.command = ""
        self.next_command()

    def next_command(self) -> str:
        self.command = self.rng.choice(TERMINAL_COMMANDS)
        return self.command

    def submit(self, text: str) -> bool:
        typed = " ".join(text.strip().lower().split())
        command = self.command
        if typed == command:
            reward = terminal_hack_reward(command, self.rng)
            self.next_command()
            self._complete(reward, command)
            return True
        self.next_command()
        self._fail(command)
        return False
