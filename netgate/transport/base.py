"""
Transport interfaces for netgate.

A server transport turns network activity into three callbacks (connect,
frame, disconnect) keyed by an opaque integer connection id, and exposes
send/disconnect primitives. A client transport is a single connection to the
server. Concrete transports are selected by the deployment's network mode.
"""

import itertools
from abc import ABC, abstractmethod
from typing import Any, Protocol

# Connection id 1 is the server itself; peers are numbered from 2.
SERVER_CONNECTION_ID = 1
FIRST_PEER_CONNECTION_ID = 2


class TransportHandler(Protocol):
    """Receiver of server transport events."""

    async def on_connect(self, connection_id: int) -> None: ...

    async def on_frame(self, connection_id: int, raw: str | bytes) -> None: ...

    async def on_disconnect(self, connection_id: int) -> None: ...


class ServerTransport(ABC):
    """Listening side of a transport."""

    network_mode: str = "unknown"

    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port
        self._handler: TransportHandler | None = None
        self._connection_ids = itertools.count(FIRST_PEER_CONNECTION_ID)

    def set_handler(self, handler: TransportHandler) -> None:
        self._handler = handler

    @property
    def handler(self) -> TransportHandler:
        if self._handler is None:
            raise RuntimeError("Transport handler not set")
        return self._handler

    def _next_connection_id(self) -> int:
        return next(self._connection_ids)

    @abstractmethod
    async def start(self) -> None:
        """Start listening."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop listening and close every connection."""

    @abstractmethod
    async def send(self, connection_id: int, frame: dict[str, Any]) -> None:
        """
        Send a frame to one connection.

        Raises:
            TransportError: If the connection is unknown or already closed
        """

    @abstractmethod
    async def disconnect(self, connection_id: int) -> None:
        """Close one connection; the disconnect callback follows."""

    @abstractmethod
    def connection_ids(self) -> list[int]:
        """Ids of currently open connections."""


class ClientTransport(ABC):
    """Connecting side of a transport."""

    network_mode: str = "unknown"

    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port

    @abstractmethod
    async def connect(self) -> None:
        """
        Open the connection to the server.

        Raises:
            TransportError: If the server cannot be reached
        """

    @abstractmethod
    async def send(self, frame: dict[str, Any]) -> None:
        """Send one frame to the server."""

    @abstractmethod
    async def receive(self) -> dict[str, Any] | None:
        """Wait for the next frame; None once the connection is closed."""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection."""
