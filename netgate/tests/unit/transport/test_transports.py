"""
Loopback tests for the UDP and WebSocket transports.
"""

import asyncio

import pytest

from netgate.exceptions import TransportError
from netgate.realtime.envelope import FrameType, build_frame, decode_frame
from netgate.session.session_identity import NetworkMode
from netgate.transport import create_client_transport, create_server_transport
from netgate.transport.base import FIRST_PEER_CONNECTION_ID
from netgate.transport.udp_transport import UdpServerTransport
from netgate.transport.websocket_transport import WebSocketServerTransport


class RecordingHandler:
    """Transport handler that echoes every frame back as a welcome."""

    def __init__(self, transport) -> None:
        self.transport = transport
        self.connected: list[int] = []
        self.disconnected: list[int] = []
        self.frames: list[tuple[int, dict]] = []
        self.disconnect_seen = asyncio.Event()

    async def on_connect(self, connection_id: int) -> None:
        self.connected.append(connection_id)

    async def on_frame(self, connection_id: int, raw) -> None:
        frame = decode_frame(raw)
        self.frames.append((connection_id, frame))
        await self.transport.send(connection_id, build_frame(FrameType.WELCOME, session_id="echo", connection_id=connection_id))

    async def on_disconnect(self, connection_id: int) -> None:
        self.disconnected.append(connection_id)
        self.disconnect_seen.set()


def test_factory_selects_transport_by_mode():
    assert isinstance(create_server_transport(NetworkMode.WEBSOCKET, "127.0.0.1", 0), WebSocketServerTransport)
    assert isinstance(create_server_transport(NetworkMode.ENET, "127.0.0.1", 0), UdpServerTransport)


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", [NetworkMode.ENET, NetworkMode.WEBSOCKET])
async def test_round_trip_over_loopback(mode):
    server = create_server_transport(mode, "127.0.0.1", 0)
    handler = RecordingHandler(server)
    server.set_handler(handler)
    await server.start()
    client = create_client_transport(mode, "127.0.0.1", server.port)
    try:
        await client.connect()
        await client.send(build_frame(FrameType.JOIN, token="tok"))

        reply = await asyncio.wait_for(client.receive(), timeout=2.0)

        assert reply["type"] == "welcome"
        assert reply["connection_id"] == FIRST_PEER_CONNECTION_ID
        assert handler.connected == [FIRST_PEER_CONNECTION_ID]
        assert handler.frames[0][1]["token"] == "tok"
        assert server.connection_ids() == [FIRST_PEER_CONNECTION_ID]

        await client.close()
        await asyncio.wait_for(handler.disconnect_seen.wait(), timeout=2.0)
        assert handler.disconnected == [FIRST_PEER_CONNECTION_ID]
    finally:
        await client.close()
        await server.stop()


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", [NetworkMode.ENET, NetworkMode.WEBSOCKET])
async def test_server_disconnect_closes_client(mode):
    server = create_server_transport(mode, "127.0.0.1", 0)
    handler = RecordingHandler(server)
    server.set_handler(handler)
    await server.start()
    client = create_client_transport(mode, "127.0.0.1", server.port)
    try:
        await client.connect()
        await client.send(build_frame(FrameType.JOIN, token="tok"))
        await asyncio.wait_for(client.receive(), timeout=2.0)

        await server.disconnect(FIRST_PEER_CONNECTION_ID)

        assert await asyncio.wait_for(client.receive(), timeout=2.0) is None
        await asyncio.wait_for(handler.disconnect_seen.wait(), timeout=2.0)
    finally:
        await client.close()
        await server.stop()


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", [NetworkMode.ENET, NetworkMode.WEBSOCKET])
async def test_send_to_unknown_connection_raises(mode):
    server = create_server_transport(mode, "127.0.0.1", 0)
    server.set_handler(RecordingHandler(server))
    await server.start()
    try:
        with pytest.raises(TransportError):
            await server.send(99, build_frame(FrameType.ERROR, message="nobody home"))
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_websocket_connect_failure_raises_transport_error():
    server = create_server_transport(NetworkMode.WEBSOCKET, "127.0.0.1", 0)
    server.set_handler(RecordingHandler(server))
    await server.start()
    port = server.port
    await server.stop()

    client = create_client_transport(NetworkMode.WEBSOCKET, "127.0.0.1", port)
    with pytest.raises(TransportError):
        await client.connect()
