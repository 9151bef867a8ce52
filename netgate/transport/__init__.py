"""
Network transports for netgate, selected by the deployment's network mode.
"""

from ..session.session_identity import NetworkMode
from .base import ClientTransport, ServerTransport, TransportHandler
from .udp_transport import UdpClientTransport, UdpServerTransport
from .websocket_transport import WebSocketClientTransport, WebSocketServerTransport

__all__ = [
    "ClientTransport",
    "ServerTransport",
    "TransportHandler",
    "create_client_transport",
    "create_server_transport",
]


def create_server_transport(network_mode: NetworkMode, host: str, port: int) -> ServerTransport:
    """Build the listening transport for a network mode."""
    if network_mode is NetworkMode.WEBSOCKET:
        return WebSocketServerTransport(host, port)
    return UdpServerTransport(host, port)


def create_client_transport(network_mode: NetworkMode, host: str, port: int) -> ClientTransport:
    """Build the connecting transport for a network mode."""
    if network_mode is NetworkMode.WEBSOCKET:
        return WebSocketClientTransport(host, port)
    return UdpClientTransport(host, port)
