import matplotlib

matplotlib.use("Agg")

import pytest

from neurohunt.channel import LocalBroadcastBus, ReplicationChannel
from neurohunt.models import Neuron, NeuronType, Synapse
from neurohunt.state import NetworkGraph


def make_graph(pairs, entry="N0", core=None, positions=None, difficulty=1):
    """Build a graph from ``[(a, b), ...]``; synapse ids are e0, e1, ... in list order."""
    order = []
    for a, b in pairs:
        for n in (a, b):
            if n not in order:
                order.append(n)
    core = core or order[-1]
    positions = positions or {}
    neurons = []
    for index, nid in enumerate(order):
        kind = NeuronType.NORMAL
        if nid == entry:
            kind = NeuronType.ENTRY
        elif nid == core:
            kind = NeuronType.CORE
        x, y = positions.get(nid, (index * 100.0, 0.0))
        neurons.append(Neuron(id=nid, x=x, y=y, type=kind, is_activated=(nid == entry)))
    synapses = [
        Synapse(id=f"e{i}", from_neuron_id=a, to_neuron_id=b, difficulty=difficulty)
        for i, (a, b) in enumerate(pairs)
    ]
    graph = NetworkGraph(neurons, synapses, entry, core)
    graph.pop_pending_changes()
    return graph


@pytest.fixture
def line_graph():
    """Entry=N0 - N1 - Core=N2."""
    return make_graph([("N0", "N1"), ("N1", "N2")])


@pytest.fixture
def diamond_graph():
    """N0 -> {N1, N2} -> N3, plus a tail N3 - N4 (core)."""
    return make_graph([("N0", "N1"), ("N0", "N2"), ("N1", "N3"), ("N2", "N3"), ("N3", "N4")])


@pytest.fixture
def bus():
    return LocalBroadcastBus()


@pytest.fixture
def channel_pair(bus):
    """Two channels on the same bus, roles not yet assigned."""
    first = ReplicationChannel(bus.connect())
    second = ReplicationChannel(bus.connect())
    return first, second
