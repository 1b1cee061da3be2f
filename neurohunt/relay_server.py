import argparse
import asyncio
import logging
from typing import Optional, Set

from websockets.asyncio.server import serve

from .constants import RELAY_HOST, RELAY_PORT

LOGGER = logging.getLogger(__name__)


class RelayServer:
    """Broadcast relay: every text frame goes to every connected client, the sender included.

    The relay never parses frames; peers do their own echo and duplicate
    filtering, exactly as on an in-browser broadcast channel.
    """

    def __init__(self, host: str = RELAY_HOST, port: int = RELAY_PORT) -> None:
        self.host = host
        self.port = port
        self.clients: Set = set()
        self.frames_relayed = 0
        self._server = None

    async def handler(self, websocket) -> None:
        self.clients.add(websocket)
        LOGGER.info("Client connected (%d total)", len(self.clients))
        try:
            async for raw in websocket:
                if isinstance(raw, bytes):
                    raw = raw.decode("utf-8", errors="replace")
                await self.broadcast(raw)
        finally:
            self.clients.discard(websocket)
            LOGGER.info("Client disconnected (%d left)", len(self.clients))

    async def broadcast(self, frame: str) -> None:
        self.frames_relayed += 1
        for websocket in list(self.clients):
            await self._send_safe(websocket, frame)

    async def _send_safe(self, websocket, frame: str) -> None:
        try:
            await websocket.send(frame)
        except Exception as exc:
            LOGGER.debug("Dropping client after failed send: %s", exc)
            self.clients.discard(websocket)

    async def start(self, ready: Optional[asyncio.Event] = None) -> None:
        async with serve(self.handler, self.host, self.port, ping_interval=20, ping_timeout=20) as server:
            self._server = server
            # Report the bound port when asked for an ephemeral one
            self.port = next(iter(server.sockets)).getsockname()[1]
            if ready is not None:
                ready.set()
            await server.serve_forever()

    def stop(self) -> None:
        if self._server is not None:
            self._server.close()


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Broadcast relay for two neurohunt peers")
    parser.add_argument("--host", default=RELAY_HOST)
    parser.add_argument("--port", type=int, default=RELAY_PORT)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    server = RelayServer(args.host, args.port)
    LOGGER.info("Relay starting on ws://%s:%d", args.host, args.port)
    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        LOGGER.info("Shutting down.")


if __name__ == "__main__":
    main()
