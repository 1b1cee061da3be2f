import random

import pytest

from conftest import make_graph
from neurohunt.adversary import AdversaryController
from neurohunt.bots import ExplorerBot, ProtectorBot
from neurohunt.channel import ReplicationChannel
from neurohunt.constants import DESTROY_COST, INITIAL_RESOURCES
from neurohunt.peer import build_bot, build_session, main, save_final_plot
from neurohunt.session import ExplorerSession, ProtectorSession


def slow_ai(graph):
    return AdversaryController(graph, base_speed=0.01, speed_increase=0.0)


class TestExplorerBot:

    def test_walks_to_core(self, bus):
        graph = make_graph([("N0", "N1"), ("N1", "N2")], difficulty=2)
        session = ExplorerSession(ReplicationChannel(bus.connect()), graph=graph, rng=random.Random(3))
        bot = ExplorerBot(action_cooldown=0.5, seconds_per_difficulty=1.0)
        bot.join_session(session)
        session.start()

        for _ in range(20):
            bot.step(1.0)
            bus.flush()
            if session.game_over:
                break

        assert session.winner == "explorer"
        assert session.progress.activated_path == ["N0", "N1", "N2"]

    def test_waits_for_think_time(self, bus):
        graph = make_graph([("N0", "N1"), ("N1", "N2")], difficulty=3)
        session = ExplorerSession(ReplicationChannel(bus.connect()), graph=graph)
        bot = ExplorerBot(action_cooldown=0.0, seconds_per_difficulty=1.0)
        bot.join_session(session)

        assert bot.step(0.1)
        assert session.puzzle is not None
        assert not bot.step(1.0)
        assert session.puzzle is not None

    def test_answers_open_dilemma(self, bus):
        session = ExplorerSession(ReplicationChannel(bus.connect()), graph=make_graph([("N0", "N1")]))
        session.handle_dilemma_triggered(
            {
                "dilemmaId": "d",
                "title": "t",
                "description": "",
                "choices": [{"id": "yes", "description": ""}],
            },
            None,
        )
        bot = ExplorerBot()
        bot.join_session(session)
        assert bot.step(1.0)
        assert session.active_dilemma is None


class TestProtectorBot:

    @pytest.fixture
    def protector(self, bus):
        explorer = ExplorerSession(
            ReplicationChannel(bus.connect()),
            graph=make_graph([("N0", "N1"), ("N1", "N2"), ("N2", "N3"), ("N3", "N4")]),
        )
        protector = ProtectorSession(ReplicationChannel(bus.connect()), rng=random.Random(0), adversary_factory=slow_ai)
        explorer.start()
        protector.start()
        bus.flush()
        return protector

    def test_destroys_next_neuron_on_route(self, protector):
        bot = ProtectorBot()
        bot.join_session(protector)
        assert bot.pick_destroy_target() == "N1"
        assert bot.step(1.0)
        assert protector.graph.neurons["N1"].is_blocked
        assert protector.resources.current == INITIAL_RESOURCES - DESTROY_COST

    def test_skips_neuron_under_the_ai(self, protector):
        protector.adversary.state.current_neuron_id = "N1"
        bot = ProtectorBot()
        bot.join_session(protector)
        assert bot.pick_destroy_target() == "N2"

    def test_earns_resources_when_no_target(self, protector):
        bot = ProtectorBot()
        bot.join_session(protector)
        bot.step(1.0)
        bot.step(1.0)
        assert protector.resources.current == INITIAL_RESOURCES - DESTROY_COST + 11
        assert protector.firewall is None


class TestPeerWiring:

    def test_build_session_by_role(self, bus):
        explorer = build_session("explorer", ReplicationChannel(bus.connect()), seed=1)
        protector = build_session("protector", ReplicationChannel(bus.connect()), seed=1)
        assert isinstance(explorer, ExplorerSession)
        assert isinstance(protector, ProtectorSession)
        assert isinstance(build_bot("explorer"), ExplorerBot)
        assert isinstance(build_bot("protector"), ProtectorBot)

    def test_unknown_role_rejected(self):
        with pytest.raises(SystemExit):
            main(["--role", "wizard"])

    def test_save_final_plot(self, bus, tmp_path):
        session = ExplorerSession(ReplicationChannel(bus.connect()), graph=make_graph([("N0", "N1"), ("N1", "N2")]))
        target = tmp_path / "final.png"
        save_final_plot(session, str(target))
        assert target.exists()
