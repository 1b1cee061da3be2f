import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class DilemmaChoice:
    id: str
    description: str


@dataclass
class Dilemma:
    id: str
    title: str
    description: str
    choices: List[DilemmaChoice] = field(default_factory=list)

    def choice_ids(self) -> List[str]:
        return [c.id for c in self.choices]

    def to_payload(self) -> Dict[str, Any]:
        return {
            "dilemmaId": self.id,
            "title": self.title,
            "description": self.description,
            "choices": [{"id": c.id, "description": c.description} for c in self.choices],
        }


DEFAULT_DILEMMAS: List[Dilemma] = [
    Dilemma(
        id="memory-wipe",
        title="Memory Fragment",
        description="The AI offers to spare you if you erase a memory you recovered.",
        choices=[
            DilemmaChoice("erase", "Erase the memory and slip away"),
            DilemmaChoice("keep", "Keep the memory and take the hit"),
        ],
    ),
    Dilemma(
        id="trace-route",
        title="Trace Route",
        description="Handing over your route would buy the protector time, but expose your path.",
        choices=[
            DilemmaChoice("share", "Share the route"),
            DilemmaChoice("hide", "Hide the route"),
        ],
    ),
    Dilemma(
        id="core-access",
        title="Core Access",
        description="A shortcut to the core opens if you disable the protector's firewall.",
        choices=[
            DilemmaChoice("disable", "Disable the firewall"),
            DilemmaChoice("refuse", "Refuse the shortcut"),
        ],
    ),
    Dilemma(
        id="mirror",
        title="Mirror Process",
        description="The AI claims it was once an explorer like you and asks to merge.",
        choices=[
            DilemmaChoice("merge", "Merge with the process"),
            DilemmaChoice("reject", "Reject the process"),
        ],
    ),
]


class DilemmaCatalog:
    def __init__(self, dilemmas: Optional[List[Dilemma]] = None, rng: Optional[random.Random] = None):
        self.dilemmas = list(dilemmas if dilemmas is not None else DEFAULT_DILEMMAS)
        self.rng = rng or random.Random()

    def pick(self) -> Dilemma:
        return self.rng.choice(self.dilemmas)

    def get(self, dilemma_id: str) -> Optional[Dilemma]:
        return next((d for d in self.dilemmas if d.id == dilemma_id), None)


def dilemma_from_payload(data: Dict[str, Any]) -> Dilemma:
    """Rebuild a dilemma from a ``dilemma-triggered`` payload."""
    choices = [DilemmaChoice(str(c["id"]), str(c.get("description", ""))) for c in data["choices"]]
    return Dilemma(
        id=str(data["dilemmaId"]),
        title=str(data["title"]),
        description=str(data["description"]),
        choices=choices,
    )
