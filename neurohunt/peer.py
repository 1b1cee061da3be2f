import argparse
import asyncio
import logging
import random
from typing import Optional

from .bots import BotTemplate, ExplorerBot, ProtectorBot
from .channel import ReplicationChannel, WebSocketTransport
from .constants import RELAY_URL, ROLES, TICK_INTERVAL_SECONDS, normalize_role
from .graph_generator import NetworkGenerator
from .render import NetworkPlotter
from .session import ExplorerSession, GameSession, ProtectorSession

LOGGER = logging.getLogger(__name__)


def build_session(role: str, channel: ReplicationChannel, seed: Optional[int] = None) -> GameSession:
    rng = random.Random(seed)
    if role == "explorer":
        return ExplorerSession(channel, generator=NetworkGenerator(seed=seed), rng=rng)
    return ProtectorSession(channel, rng=rng)


def build_bot(role: str) -> BotTemplate:
    return ExplorerBot() if role == "explorer" else ProtectorBot()


async def run_peer(
    role: str,
    url: str = RELAY_URL,
    seed: Optional[int] = None,
    use_bot: bool = True,
    duration: Optional[float] = None,
    tick_interval: float = TICK_INTERVAL_SECONDS,
) -> GameSession:
    """Connect one headless peer to the relay and play until the game ends (or ``duration`` passes)."""
    transport = WebSocketTransport(url)
    channel = ReplicationChannel(transport)
    session = build_session(role, channel, seed)
    bot = build_bot(role) if use_bot else None
    if bot is not None:
        bot.join_session(session)

    connection = transport.start()
    await transport.connected.wait()
    session.start()
    channel.start_keepalive()

    loop = asyncio.get_running_loop()
    started = last = loop.time()
    try:
        while not session.game_over and not connection.done():
            await asyncio.sleep(tick_interval)
            now = loop.time()
            session.tick(now - last)
            if bot is not None:
                bot.step(now - last)
            last = now
            if duration is not None and now - started >= duration:
                break
        # Let final events reach the relay
        await asyncio.sleep(tick_interval)
    finally:
        session.close()
    LOGGER.info("Peer %s finished; winner: %s", role, session.winner)
    return session


def save_final_plot(session: GameSession, path: str) -> None:
    """Write the peer's last view of the network to an image file."""
    if session.graph is None:
        LOGGER.warning("No network to plot")
        return
    plotter = NetworkPlotter(session.graph)
    if isinstance(session, ExplorerSession):
        plotter.explorer_moved(session.progress.current_neuron_id)
        plotter.ai_moved(session.ai_mirror.current_neuron_id)
        visible = session.visible_neurons()
    else:
        plotter.explorer_moved(session.explorer_neuron_id)
        plotter.ai_moved(session.adversary.current_neuron_id if session.adversary else None)
        visible = None
    try:
        plotter.refresh(visible)
        plotter.save(path)
        LOGGER.info("Saved network plot to %s", path)
    finally:
        plotter.close()


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Headless neurohunt peer")
    parser.add_argument("--role", required=True, help="explorer or protector")
    parser.add_argument("--url", default=RELAY_URL)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--duration", type=float, default=None, help="stop after this many seconds")
    parser.add_argument("--no-bot", action="store_true", help="connect without a scripted player")
    parser.add_argument("--plot", default=None, help="save a picture of the final network here")
    args = parser.parse_args(argv)

    role = normalize_role(args.role)
    if role is None:
        parser.error(f"--role must be one of {', '.join(ROLES)}")

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    try:
        session = asyncio.run(run_peer(role, args.url, args.seed, not args.no_bot, args.duration))
    except KeyboardInterrupt:
        LOGGER.info("Shutting down.")
        return
    if args.plot:
        save_final_plot(session, args.plot)


if __name__ == "__main__":
    main()
