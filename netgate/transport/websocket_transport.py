"""
Browser-compatible WebSocket transport.

Each WebSocket connection gets an integer connection id; text frames are
handed to the transport handler in order, one at a time per connection.
"""

from typing import Any

from websockets.asyncio.client import ClientConnection, connect
from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from ..exceptions import ErrorContext, TransportError
from ..realtime.envelope import MAX_FRAME_BYTES, decode_frame, encode_frame
from ..structured_logging.enhanced_logging_config import bind_connection_context, get_logger
from .base import ClientTransport, ServerTransport

logger = get_logger(__name__)

# RFC 6455 policy-violation close code, used when a peer is rejected
CLOSE_POLICY_VIOLATION = 1008


class WebSocketServerTransport(ServerTransport):
    """WebSocket listener."""

    network_mode = "websocket"

    def __init__(self, host: str, port: int) -> None:
        super().__init__(host, port)
        self._server: Server | None = None
        self._connections: dict[int, ServerConnection] = {}

    async def start(self) -> None:
        self._server = await serve(self._handle_connection, self.host, self.port, max_size=MAX_FRAME_BYTES)
        self.port = next(iter(self._server.sockets)).getsockname()[1]
        logger.info("WebSocket transport listening", host=self.host, port=self.port)

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        """Per-connection loop: register, pump frames, then report the disconnect."""
        connection_id = self._next_connection_id()
        bind_connection_context(connection_id=connection_id)
        self._connections[connection_id] = websocket
        logger.debug("WebSocket connection opened", remote_address=str(websocket.remote_address))
        try:
            await self.handler.on_connect(connection_id)
            async for message in websocket:
                await self.handler.on_frame(connection_id, message)
        except ConnectionClosed:
            logger.debug("WebSocket connection closed by peer")
        finally:
            self._connections.pop(connection_id, None)
            await self.handler.on_disconnect(connection_id)

    async def send(self, connection_id: int, frame: dict[str, Any]) -> None:
        websocket = self._connections.get(connection_id)
        if websocket is None:
            raise TransportError(
                "Unknown connection",
                ErrorContext(connection_id=connection_id, operation="send"),
                network_mode=self.network_mode,
            )
        try:
            await websocket.send(encode_frame(frame))
        except ConnectionClosed as e:
            raise TransportError(
                "Connection closed during send",
                ErrorContext(connection_id=connection_id, operation="send"),
                network_mode=self.network_mode,
            ) from e

    async def disconnect(self, connection_id: int) -> None:
        websocket = self._connections.get(connection_id)
        if websocket is None:
            return
        await websocket.close(code=CLOSE_POLICY_VIOLATION, reason="disconnected by server")

    def connection_ids(self) -> list[int]:
        return list(self._connections)

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("WebSocket transport stopped")


class WebSocketClientTransport(ClientTransport):
    """WebSocket connection to a netgate server."""

    network_mode = "websocket"

    def __init__(self, host: str, port: int, secure: bool = False) -> None:
        super().__init__(host, port)
        self.uri = f"{'wss' if secure else 'ws'}://{host}:{port}"
        self._websocket: ClientConnection | None = None

    async def connect(self) -> None:
        try:
            self._websocket = await connect(self.uri, max_size=MAX_FRAME_BYTES)
        except (OSError, InvalidHandshake, InvalidURI) as e:
            raise TransportError(
                "Could not connect to server",
                ErrorContext(operation="connect", metadata={"uri": self.uri}),
                network_mode=self.network_mode,
            ) from e
        logger.info("Connected to server", uri=self.uri)

    def _require_connection(self) -> ClientConnection:
        if self._websocket is None:
            raise TransportError("Not connected", ErrorContext(operation="send"), network_mode=self.network_mode)
        return self._websocket

    async def send(self, frame: dict[str, Any]) -> None:
        websocket = self._require_connection()
        try:
            await websocket.send(encode_frame(frame))
        except ConnectionClosed as e:
            raise TransportError(
                "Connection closed during send", ErrorContext(operation="send"), network_mode=self.network_mode
            ) from e

    async def receive(self) -> dict[str, Any] | None:
        websocket = self._require_connection()
        try:
            raw = await websocket.recv()
        except ConnectionClosed:
            return None
        return decode_frame(raw)

    async def close(self) -> None:
        if self._websocket is not None:
            await self._websocket.close()
            self._websocket = None
