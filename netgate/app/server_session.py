"""
Server side of a netgate session.

Composes the connection registry, credential verifier and relay authorizer
around a server transport, and translates transport callbacks into their
operations.
"""

import asyncio
from typing import Any

from ..auth.credential_verifier import (
    DEFAULT_CONSUMED_TTL_SECONDS,
    CredentialVerifier,
    JoinCredential,
    VerificationOutcome,
)
from ..auth.identity_authority import IdentityAuthority
from ..events.event_bus import EventBus
from ..events.event_types import LogMessage, ServerPostReady, ServerPreReady
from ..exceptions import ProtocolViolationError, TransportError
from ..realtime.connection_registry import ConnectionRegistry
from ..realtime.envelope import FrameType, build_frame, decode_frame
from ..realtime.relay_authorizer import RelayAuthorizer
from ..session.session_identity import SessionIdentity
from ..structured_logging.enhanced_logging_config import get_logger
from ..transport.base import ServerTransport

logger = get_logger(__name__)


class ServerSession:
    """Dedicated-server session: accepts, verifies and relays for clients."""

    def __init__(
        self,
        identity: SessionIdentity,
        transport: ServerTransport,
        authority: IdentityAuthority,
        event_bus: EventBus | None = None,
        consumed_ttl_seconds: float = DEFAULT_CONSUMED_TTL_SECONDS,
    ) -> None:
        self.identity = identity
        self.transport = transport
        self.event_bus = event_bus or EventBus()
        self.registry = ConnectionRegistry(self.event_bus)
        self.verifier = CredentialVerifier(
            self.registry, authority, self.event_bus, consumed_ttl_seconds=consumed_ttl_seconds
        )
        self.authorizer = RelayAuthorizer(self.registry, transport)
        self._verifications: set[asyncio.Task] = set()
        self.transport.set_handler(self)

    async def start(self) -> str:
        """
        Start accepting connections.

        Returns:
            The session id read from the environment (may be empty)
        """
        self.event_bus.publish(ServerPreReady())
        await self.transport.start()
        session_id = self.identity.start_server_session()
        self.event_bus.publish(ServerPostReady(session_id=session_id))
        self.event_bus.publish(LogMessage(message=f"Server listening on {self.transport.host}:{self.transport.port}"))
        logger.info("Server session ready", **self.identity.to_dict())
        return session_id

    async def stop(self) -> None:
        """Graceful teardown: stop verifications, close connections, flush events."""
        for task in list(self._verifications):
            task.cancel()
        if self._verifications:
            await asyncio.gather(*self._verifications, return_exceptions=True)
        await self.transport.stop()
        await self.event_bus.drain()
        await self.event_bus.shutdown()
        logger.info("Server session stopped")

    async def on_connect(self, connection_id: int) -> None:
        self.registry.register(connection_id)

    async def on_disconnect(self, connection_id: int) -> None:
        self.registry.unregister(connection_id)

    async def on_frame(self, connection_id: int, raw: str | bytes) -> None:
        """
        Handle one inbound frame.

        Protocol violations are logged, answered with an error frame and
        otherwise dropped; the connection stays open in its current state.
        """
        try:
            frame = decode_frame(raw, connection_id=connection_id)
        except ProtocolViolationError as e:
            await self._send_error(connection_id, e.message)
            return

        frame_type = frame["type"]
        if frame_type == FrameType.JOIN:
            self._start_verification(connection_id, frame)
        elif frame_type == FrameType.RELAY:
            await self.authorizer.authorize_and_relay(
                connection_id, frame.get("operation"), frame.get("args"), frame.get("targets")
            )
        else:
            logger.warning("Frame type not accepted from clients", connection_id=connection_id, frame_type=frame_type)
            await self._send_error(connection_id, "Frame type not accepted from clients")

    async def _send_error(self, connection_id: int, message: str) -> None:
        try:
            await self.transport.send(connection_id, build_frame(FrameType.ERROR, message=message))
        except TransportError as e:
            logger.warning("Could not deliver error frame", connection_id=connection_id, error=str(e))

    def _start_verification(self, connection_id: int, frame: dict[str, Any]) -> None:
        # Verification runs in its own task so a slow authority only delays this connection
        token = frame.get("token")
        credential = JoinCredential(token=token if isinstance(token, str) else "")
        task = asyncio.create_task(
            self._verify_and_respond(connection_id, credential), name=f"netgate-verify-{connection_id}"
        )
        self._verifications.add(task)
        task.add_done_callback(self._verifications.discard)

    async def _verify_and_respond(self, connection_id: int, credential: JoinCredential) -> VerificationOutcome:
        outcome = await self.verifier.verify(connection_id, credential)
        try:
            if outcome is VerificationOutcome.VERIFIED:
                entry = self.registry.get(connection_id)
                await self.transport.send(
                    connection_id,
                    build_frame(
                        FrameType.WELCOME,
                        session_id=self.identity.get_session_id(),
                        connection_id=connection_id,
                        identity=dict(entry.identity_info) if entry else {},
                    ),
                )
            elif outcome is VerificationOutcome.REJECTED:
                await self.transport.send(connection_id, build_frame(FrameType.REJECTED, reason="credential_rejected"))
                await self.transport.disconnect(connection_id)
        except TransportError as e:
            logger.warning("Could not deliver verification result", connection_id=connection_id, error=str(e))
        return outcome
