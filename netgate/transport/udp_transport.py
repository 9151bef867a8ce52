"""
Low-overhead UDP datagram transport (the "enet" network mode).

Each datagram carries one JSON frame. Two one-byte control datagrams mark the
connection lifecycle: HELLO opens a connection, BYE closes it. A peer address
that sends a frame without a HELLO is treated as connecting implicitly.
Delivery is unreliable and unordered across the network; datagrams that do
arrive are handed to the transport handler in arrival order.
"""

import asyncio
from typing import Any

from ..exceptions import ErrorContext, ProtocolViolationError, TransportError
from ..realtime.envelope import MAX_FRAME_BYTES, decode_frame, encode_frame
from ..structured_logging.enhanced_logging_config import get_logger
from .base import ClientTransport, ServerTransport

logger = get_logger(__name__)

HELLO = b"\x00"
BYE = b"\x01"

Address = tuple[str, int]


class _DatagramQueueProtocol(asyncio.DatagramProtocol):
    """Pushes every received datagram onto a queue for an ordered consumer."""

    def __init__(self, queue: asyncio.Queue) -> None:
        self._queue = queue

    def datagram_received(self, data: bytes, addr: Address) -> None:
        if len(data) > MAX_FRAME_BYTES:
            logger.warning("Dropping oversized datagram", size=len(data), remote_address=str(addr))
            return
        self._queue.put_nowait((addr, data))

    def error_received(self, exc: Exception) -> None:
        logger.warning("UDP transport error", error=str(exc))


class UdpServerTransport(ServerTransport):
    """UDP listener mapping peer addresses to connection ids."""

    network_mode = "enet"

    def __init__(self, host: str, port: int) -> None:
        super().__init__(host, port)
        self._transport: asyncio.DatagramTransport | None = None
        self._queue: asyncio.Queue[tuple[Address, bytes]] = asyncio.Queue()
        self._consumer: asyncio.Task | None = None
        self._by_address: dict[Address, int] = {}
        self._by_id: dict[int, Address] = {}

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        transport, _protocol = await loop.create_datagram_endpoint(
            lambda: _DatagramQueueProtocol(self._queue), local_addr=(self.host, self.port)
        )
        self._transport = transport
        # Port 0 asks the OS for a free port; record the one actually bound
        self.port = transport.get_extra_info("sockname")[1]
        self._consumer = asyncio.create_task(self._consume(), name="netgate-udp-server")
        logger.info("UDP transport listening", host=self.host, port=self.port)

    async def _consume(self) -> None:
        while True:
            addr, data = await self._queue.get()
            try:
                await self._dispatch(addr, data)
            except Exception as e:  # noqa: BLE001 - one bad datagram must not stop the listener
                logger.error("Error dispatching datagram", remote_address=str(addr), error=str(e), exc_info=True)

    async def _dispatch(self, addr: Address, data: bytes) -> None:
        connection_id = self._by_address.get(addr)
        if data == BYE:
            if connection_id is not None:
                await self._forget(connection_id)
            return
        if connection_id is None:
            connection_id = self._next_connection_id()
            self._by_address[addr] = connection_id
            self._by_id[connection_id] = addr
            await self.handler.on_connect(connection_id)
        if data == HELLO:
            return
        await self.handler.on_frame(connection_id, data)

    async def _forget(self, connection_id: int) -> None:
        addr = self._by_id.pop(connection_id, None)
        if addr is None:
            return
        self._by_address.pop(addr, None)
        await self.handler.on_disconnect(connection_id)

    async def send(self, connection_id: int, frame: dict[str, Any]) -> None:
        addr = self._by_id.get(connection_id)
        if addr is None or self._transport is None:
            raise TransportError(
                "Unknown connection",
                ErrorContext(connection_id=connection_id, operation="send"),
                network_mode=self.network_mode,
            )
        self._transport.sendto(encode_frame(frame).encode("utf-8"), addr)

    async def disconnect(self, connection_id: int) -> None:
        addr = self._by_id.get(connection_id)
        if addr is None:
            return
        if self._transport is not None:
            self._transport.sendto(BYE, addr)
        await self._forget(connection_id)

    def connection_ids(self) -> list[int]:
        return list(self._by_id)

    async def stop(self) -> None:
        for connection_id in list(self._by_id):
            await self.disconnect(connection_id)
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        logger.info("UDP transport stopped")


class UdpClientTransport(ClientTransport):
    """UDP 'connection' to a netgate server."""

    network_mode = "enet"

    def __init__(self, host: str, port: int) -> None:
        super().__init__(host, port)
        self._transport: asyncio.DatagramTransport | None = None
        self._queue: asyncio.Queue[tuple[Address, bytes]] = asyncio.Queue()

    async def connect(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            transport, _protocol = await loop.create_datagram_endpoint(
                lambda: _DatagramQueueProtocol(self._queue), remote_addr=(self.host, self.port)
            )
        except OSError as e:
            raise TransportError(
                "Could not open UDP endpoint",
                ErrorContext(operation="connect", metadata={"host": self.host, "port": self.port}),
                network_mode=self.network_mode,
            ) from e
        self._transport = transport
        self._transport.sendto(HELLO)
        logger.info("UDP endpoint opened", host=self.host, port=self.port)

    async def send(self, frame: dict[str, Any]) -> None:
        if self._transport is None:
            raise TransportError("Not connected", ErrorContext(operation="send"), network_mode=self.network_mode)
        self._transport.sendto(encode_frame(frame).encode("utf-8"))

    async def receive(self) -> dict[str, Any] | None:
        while self._transport is not None:
            _addr, data = await self._queue.get()
            if data == BYE:
                await self.close(notify=False)
                return None
            try:
                return decode_frame(data)
            except ProtocolViolationError:
                continue
        return None

    async def close(self, notify: bool = True) -> None:
        if self._transport is None:
            return
        if notify:
            self._transport.sendto(BYE)
        self._transport.close()
        self._transport = None
