import asyncio
import logging
import time
import uuid
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Tuple

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed

from .constants import PING_INTERVAL_SECONDS, SEEN_ENVELOPE_MEMORY, normalize_role
from .protocol import PRESENCE_EVENTS, Envelope, EventType, validate_payload
from .state import GameValidationError

LOGGER = logging.getLogger(__name__)

FrameReceiver = Callable[[str], None]
EventHandler = Callable[[Dict[str, Any], Envelope], None]


class Transport:
    """A broadcast bus endpoint. Frames published here reach every endpoint, the sender included."""

    def __init__(self) -> None:
        self._receiver: Optional[FrameReceiver] = None

    def set_receiver(self, receiver: FrameReceiver) -> None:
        self._receiver = receiver

    def publish(self, frame: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def _deliver(self, frame: str) -> None:
        if self._receiver is not None:
            self._receiver(frame)


class LocalBroadcastBus:
    """In-process broadcast bus for two sessions in one event loop (and for tests).

    ``publish`` only queues; ``flush`` delivers queued frames in FIFO order,
    including frames published while flushing.
    """

    def __init__(self) -> None:
        self.endpoints: List["LocalBusEndpoint"] = []
        self._queue: List[Tuple["LocalBusEndpoint", str]] = []

    def connect(self) -> "LocalBusEndpoint":
        endpoint = LocalBusEndpoint(self)
        self.endpoints.append(endpoint)
        return endpoint

    def _enqueue(self, frame: str) -> None:
        for endpoint in self.endpoints:
            self._queue.append((endpoint, frame))

    def flush(self, limit: int = 10000) -> int:
        delivered = 0
        while self._queue and delivered < limit:
            endpoint, frame = self._queue.pop(0)
            if endpoint.muted or endpoint not in self.endpoints:
                continue
            endpoint._deliver(frame)
            delivered += 1
        return delivered

    @property
    def pending(self) -> int:
        return len(self._queue)


class LocalBusEndpoint(Transport):
    def __init__(self, bus: LocalBroadcastBus) -> None:
        super().__init__()
        self.bus = bus
        # Muted endpoints silently miss deliveries
        self.muted = False

    def publish(self, frame: str) -> None:
        self.bus._enqueue(frame)

    def close(self) -> None:
        if self in self.bus.endpoints:
            self.bus.endpoints.remove(self)


class WebSocketTransport(Transport):
    """Client side of the relay: one websocket, an outgoing queue and a receive loop."""

    def __init__(self, url: str) -> None:
        super().__init__()
        self.url = url
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self.connected = asyncio.Event()

    def publish(self, frame: str) -> None:
        self._outbox.put_nowait(frame)

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self.run())
        return self._task

    async def run(self) -> None:
        async with connect(self.url) as websocket:
            self.connected.set()
            LOGGER.info("Connected to relay %s", self.url)
            sender = asyncio.create_task(self._send_loop(websocket))
            try:
                async for raw in websocket:
                    if isinstance(raw, bytes):
                        raw = raw.decode("utf-8", errors="replace")
                    self._deliver(raw)
            except ConnectionClosed:
                LOGGER.warning("Relay connection closed")
            finally:
                sender.cancel()
                self.connected.clear()

    async def _send_loop(self, websocket) -> None:
        while True:
            frame = await self._outbox.get()
            try:
                await websocket.send(frame)
            except ConnectionClosed:
                LOGGER.warning("Dropped frame; relay connection closed")
                return

    def close(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None


class ReplicationChannel:
    """Typed event channel between the two peers.

    Handles self-echo suppression, duplicate suppression by ``(senderId, seq)``,
    presence detection and keepalive pings. Game events are dispatched through
    ``handlers``; a handler that raises a validation error only drops its event.
    """

    def __init__(self, transport: Transport, role: Optional[str] = None, sender_id: Optional[str] = None) -> None:
        self.transport = transport
        self.role: Optional[str] = normalize_role(role) if role else None
        self.sender_id = sender_id or uuid.uuid4().hex
        self.seq = 0
        self.partner_present = False
        self.partner_role: Optional[str] = None
        self.handlers: Dict[EventType, EventHandler] = {}
        self.on_partner_connected: Optional[Callable[[str], None]] = None
        self._seen: "OrderedDict[Tuple[str, int], None]" = OrderedDict()
        self._tasks: List[asyncio.Task] = []
        self.closed = False
        transport.set_receiver(self.receive_frame)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def assign_role(self, role: str) -> None:
        normalized = normalize_role(role)
        if normalized is None:
            raise GameValidationError(f"Unsupported role {role!r}")
        self.role = normalized
        LOGGER.info("Channel %s assigned role %s", self.sender_id[:8], normalized)
        self.send(EventType.PLAYER_CONNECTED, {"role": normalized})

    def register(self, event_type: EventType, handler: EventHandler) -> None:
        self.handlers[EventType(event_type)] = handler

    def send(self, event_type: EventType, data: Optional[Dict[str, Any]] = None) -> Optional[Envelope]:
        if self.closed:
            return None
        event_type = EventType(event_type)
        payload = validate_payload(event_type, data or {})
        self.seq += 1
        envelope = Envelope(
            type=event_type,
            data=payload,
            from_role=self.role,
            timestamp=time.time(),
            sender_id=self.sender_id,
            seq=self.seq,
        )
        LOGGER.debug("send %s seq=%d", event_type.value, self.seq)
        self.transport.publish(envelope.to_json())
        return envelope

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    def _remember(self, key: Tuple[str, int]) -> bool:
        """Record ``key``; return False if it was already seen."""
        if key in self._seen:
            return False
        self._seen[key] = None
        while len(self._seen) > SEEN_ENVELOPE_MEMORY:
            self._seen.popitem(last=False)
        return True

    def receive_frame(self, raw: str) -> bool:
        """Apply one frame from the bus. Returns True if it was dispatched."""
        if self.closed:
            return False
        try:
            envelope = Envelope.from_json(raw)
        except GameValidationError as exc:
            LOGGER.warning("Ignoring malformed frame: %s", exc)
            return False

        if envelope.sender_id == self.sender_id:
            return False
        if envelope.from_role is not None and envelope.from_role == self.role:
            return False
        if envelope.sender_id and not self._remember((envelope.sender_id, envelope.seq)):
            LOGGER.debug("Duplicate %s seq=%d dropped", envelope.type.value, envelope.seq)
            return False

        if envelope.from_role is not None:
            self._mark_partner_present(envelope.from_role)

        if envelope.type == EventType.PLAYER_CONNECTED and self.role is not None:
            self.send(EventType.PLAYER_CONNECTED_ACK, {"role": self.role})
        elif envelope.type == EventType.PING and self.role is not None:
            self.send(EventType.PONG, {"role": self.role})

        handler = self.handlers.get(envelope.type)
        if handler is None:
            return envelope.type in PRESENCE_EVENTS
        try:
            handler(envelope.data, envelope)
        except (GameValidationError, KeyError, TypeError, ValueError) as exc:
            LOGGER.warning("Dropped %s from %s: %s", envelope.type.value, envelope.from_role, exc)
            return False
        return True

    def _mark_partner_present(self, role: str) -> None:
        if self.partner_present:
            return
        self.partner_present = True
        self.partner_role = role
        LOGGER.info("Partner connected as %s", role)
        if self.on_partner_connected is not None:
            self.on_partner_connected(role)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    async def keepalive_loop(self, interval: float = PING_INTERVAL_SECONDS) -> None:
        """Ping until the partner is seen, then stop."""
        while not self.partner_present and not self.closed:
            if self.role is not None:
                self.send(EventType.PING, {"role": self.role})
            await asyncio.sleep(interval)

    def start_keepalive(self, interval: float = PING_INTERVAL_SECONDS) -> asyncio.Task:
        task = asyncio.create_task(self.keepalive_loop(interval))
        self._tasks.append(task)
        return task

    def close(self) -> None:
        self.closed = True
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        self.transport.close()
