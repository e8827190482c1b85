"""WebSocket endpoint: connection bookkeeping, framing and broadcast helpers."""
import asyncio
import errno
import uuid
from typing import Awaitable, Callable, Dict, Optional

from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosed

import protocol
from protocol import ProtocolError, encode, parse_message
from settings import WS_MAX_FRAME_BYTES, WS_PING_INTERVAL, WS_PING_TIMEOUT

_ADDR_IN_USE = {errno.EADDRINUSE, getattr(errno, "WSAEADDRINUSE", errno.EADDRINUSE), 10048}


class AddressInUseError(OSError):
    """Every candidate port was already bound by another process."""


def is_address_in_use(err: OSError) -> bool:
    return err.errno in _ADDR_IN_USE


MessageHandler = Callable[[str, dict], Awaitable[Optional[dict]]]


class TransportEndpoint:
    """
    One listener, any number of clients. Frames of a connection are handled
    one after another by that connection's handler coroutine.
    """

    def __init__(
        self,
        on_message: MessageHandler,
        on_connect: Optional[Callable[[str], None]] = None,
        on_disconnect: Optional[Callable[[str], None]] = None,
        connection_listener: Optional[Callable[[bool], None]] = None,
        host: str = "0.0.0.0",
    ):
        self.on_message = on_message
        self.on_connect = on_connect
        self.on_disconnect = on_disconnect
        self.connection_listener = connection_listener
        self.host = host
        self.clients: Dict[str, ServerConnection] = {}
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.server = None
        self.port: Optional[int] = None

    @property
    def client_count(self) -> int:
        return len(self.clients)

    async def listen(self, port: int, max_attempts: int = 1) -> int:
        """Bind `port`, moving forward on EADDRINUSE while attempts remain."""
        self.loop = asyncio.get_running_loop()
        attempts = max(1, max_attempts) if port else 1
        for candidate in range(port, port + attempts):
            try:
                self.server = await serve(
                    self._handler,
                    self.host,
                    candidate,
                    ping_interval=WS_PING_INTERVAL,
                    ping_timeout=WS_PING_TIMEOUT,
                    max_size=WS_MAX_FRAME_BYTES,
                )
            except OSError as e:
                if not is_address_in_use(e):
                    raise
                print(f"[ws] port {candidate} in use")
                continue
            self.port = self.server.sockets[0].getsockname()[1]
            print(f"[ws] listening on ws://{self.host}:{self.port}")
            return self.port
        last = port + attempts - 1
        span = f"{port}" if attempts == 1 else f"{port}-{last}"
        raise AddressInUseError(errno.EADDRINUSE, f"address in use: no free port in {span}")

    async def close(self):
        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()
            self.server = None

    def _notify_listener(self, connected: bool):
        if self.connection_listener is None:
            return
        try:
            self.connection_listener(connected)
        except Exception as e:
            print(f"[ws] connection listener failed: {e}")

    async def _handler(self, websocket: ServerConnection):
        client_id = uuid.uuid4().hex[:8]
        self.clients[client_id] = websocket
        if self.on_connect:
            self.on_connect(client_id)
        print(f"[ws] client {client_id} connected, total={len(self.clients)}")
        if len(self.clients) == 1:
            self._notify_listener(True)

        try:
            async for raw in websocket:
                await self._handle_frame(client_id, raw)
        except ConnectionClosed:
            pass
        finally:
            self.clients.pop(client_id, None)
            if self.on_disconnect:
                self.on_disconnect(client_id)
            print(f"[ws] client {client_id} disconnected, total={len(self.clients)}")
            if not self.clients:
                self._notify_listener(False)

    async def _handle_frame(self, client_id: str, raw):
        if isinstance(raw, str) and not raw.strip():
            return
        try:
            message = parse_message(raw)
        except ProtocolError as e:
            print(f"[ws] malformed frame from {client_id}: {e}")
            await self.send(client_id, protocol.error(str(e)))
            return

        print(f"[ws] {client_id} -> {message['type']}")
        reply = await self.on_message(client_id, message)
        if reply is not None:
            await self.send(client_id, reply)

    async def send(self, client_id: str, message: dict) -> bool:
        ws = self.clients.get(client_id)
        if ws is None:
            return False
        try:
            await ws.send(encode(message))
            return True
        except ConnectionClosed:
            return False

    async def broadcast(self, message: dict) -> int:
        """Send to every open client; returns how many received it."""
        if not self.clients:
            return 0

        data = encode(message)
        delivered = 0
        stale = []
        for client_id, ws in list(self.clients.items()):
            try:
                await ws.send(data)
                delivered += 1
            except Exception as e:
                print(f"[broadcast] send to {client_id} failed: {e}")
                stale.append(client_id)

        for client_id in stale:
            self.clients.pop(client_id, None)
        if stale:
            print(f"[broadcast] removed stale clients: {len(stale)}")
        return delivered

    def schedule_broadcast(self, message: dict) -> bool:
        """Thread-safe broadcast for callers outside the event loop."""
        loop = self.loop
        if not loop or not loop.is_running():
            return False
        try:
            asyncio.run_coroutine_threadsafe(self.broadcast(message), loop)
            return True
        except Exception:
            return False
