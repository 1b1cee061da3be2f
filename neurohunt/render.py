from typing import Dict, Optional, Set

import matplotlib.pyplot as plt

from .models import NeuronType, SynapseState
from .state import NetworkGraph

SYNAPSE_COLORS: Dict[SynapseState, str] = {
    SynapseState.DORMANT: "lightgray",
    SynapseState.SOLVING: "orange",
    SynapseState.ACTIVE: "deepskyblue",
    SynapseState.FAILED: "crimson",
    SynapseState.BLOCKED: "black",
    SynapseState.AI_PATH: "magenta",
}

NEURON_COLORS: Dict[NeuronType, str] = {
    NeuronType.NORMAL: "white",
    NeuronType.JUNCTION: "khaki",
    NeuronType.ENTRY: "limegreen",
    NeuronType.CORE: "gold",
}


def plot_network(
    graph: NetworkGraph,
    ax,
    explorer_neuron_id: Optional[str] = None,
    ai_neuron_id: Optional[str] = None,
    visible: Optional[Set[str]] = None,
    title: str = "Neural network",
):
    """Draw the graph on ``ax``. Neurons outside ``visible`` are greyed out (fog of war)."""
    ax.clear()

    for synapse in graph.synapses.values():
        a = graph.neurons[synapse.from_neuron_id]
        b = graph.neurons[synapse.to_neuron_id]
        hidden = visible is not None and (a.id not in visible or b.id not in visible)
        ax.plot(
            [a.x, b.x],
            [a.y, b.y],
            color=SYNAPSE_COLORS[synapse.state],
            lw=2.5 if synapse.state == SynapseState.ACTIVE else 1,
            alpha=0.2 if hidden else 1.0,
            linestyle="--" if synapse.sealed else "-",
            zorder=1,
        )

    for neuron in graph.neurons.values():
        if neuron.is_blocked:
            color = "dimgray"
        elif neuron.is_activated and neuron.type == NeuronType.NORMAL:
            color = "lightskyblue"
        else:
            color = NEURON_COLORS[neuron.type]
        hidden = visible is not None and neuron.id not in visible
        ax.scatter(neuron.x, neuron.y, s=80, c=color, edgecolors="black", alpha=0.2 if hidden else 1.0, zorder=3)
        ax.text(neuron.x, neuron.y + 12, neuron.id, fontsize=7, ha="center")

    if explorer_neuron_id is not None and explorer_neuron_id in graph.neurons:
        n = graph.neurons[explorer_neuron_id]
        ax.scatter(n.x, n.y, s=220, facecolors="none", edgecolors="blue", linewidths=2, zorder=4, label="Explorer")
    if ai_neuron_id is not None and ai_neuron_id in graph.neurons:
        n = graph.neurons[ai_neuron_id]
        ax.scatter(n.x, n.y, s=220, marker="x", c="red", linewidths=2, zorder=5, label="AI")

    ax.set_aspect("equal")
    ax.invert_yaxis()
    ax.set_title(title)
    if explorer_neuron_id is not None or ai_neuron_id is not None:
        ax.legend(loc="upper left", bbox_to_anchor=(1.02, 1))
    return ax


class NetworkPlotter:
    """Passive renderer that redraws only when the graph or a token position changed."""

    def __init__(self, graph: NetworkGraph, ax=None, figsize=(14, 9)):
        self.graph = graph
        if ax is None:
            self.fig, self.ax = plt.subplots(figsize=figsize)
        else:
            self.fig, self.ax = ax.figure, ax
        self.explorer_neuron_id: Optional[str] = None
        self.ai_neuron_id: Optional[str] = None
        self.frames = 0
        self._dirty = True

    def set_graph(self, graph: NetworkGraph) -> None:
        self.graph = graph
        self._dirty = True

    def ai_moved(self, neuron_id: Optional[str]) -> None:
        if neuron_id != self.ai_neuron_id:
            self.ai_neuron_id = neuron_id
            self._dirty = True

    def explorer_moved(self, neuron_id: Optional[str]) -> None:
        if neuron_id != self.explorer_neuron_id:
            self.explorer_neuron_id = neuron_id
            self._dirty = True

    def refresh(self, visible: Optional[Set[str]] = None) -> bool:
        """Redraw if anything changed since the last frame. Returns True when a frame was drawn."""
        if self.graph.pop_pending_changes():
            self._dirty = True
        if not self._dirty:
            return False
        plot_network(
            self.graph,
            self.ax,
            explorer_neuron_id=self.explorer_neuron_id,
            ai_neuron_id=self.ai_neuron_id,
            visible=visible,
            title=f"Neural network (frame {self.frames})",
        )
        self.fig.tight_layout()
        self.frames += 1
        self._dirty = False
        return True

    def save(self, path: str) -> None:
        self.fig.savefig(path, dpi=100)

    def close(self) -> None:
        plt.close(self.fig)
