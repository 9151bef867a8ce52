"""
Client side of a netgate session.

Joins a server with a single-use credential and exchanges relay messages with
the other verified players.
"""

import asyncio
from typing import Any

from ..exceptions import CredentialRejectedError, ErrorContext, ProtocolViolationError, TransportError
from ..realtime.envelope import FrameType, build_frame
from ..realtime.relay_messages import RelayOperation, parse_relay_message
from ..session.session_identity import SessionIdentity
from ..structured_logging.enhanced_logging_config import get_logger
from ..transport.base import ClientTransport

logger = get_logger(__name__)

DEFAULT_JOIN_TIMEOUT = 15.0


class ClientSession:
    """One client's connection to a netgate server."""

    def __init__(
        self,
        identity: SessionIdentity,
        transport: ClientTransport,
        join_timeout: float = DEFAULT_JOIN_TIMEOUT,
    ) -> None:
        self.identity = identity
        self.transport = transport
        self.join_timeout = join_timeout
        self.connection_id: int | None = None
        self.player_identity: dict[str, Any] = {}
        self.inbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self.closed = asyncio.Event()
        self._reader: asyncio.Task | None = None

    async def connect(self, token: str) -> str:
        """
        Join the server with a credential.

        Returns:
            The negotiated session id

        Raises:
            TransportError: If the server cannot be reached or closes first
            CredentialRejectedError: If the server refuses the credential;
                the connection is closed and a fresh credential is needed
        """
        await self.transport.connect()
        await self.transport.send(build_frame(FrameType.JOIN, token=token))
        try:
            welcome = await asyncio.wait_for(self._await_join_result(), timeout=self.join_timeout)
        except TimeoutError as e:
            await self.transport.close()
            raise TransportError(
                "Timed out waiting for join result",
                ErrorContext(operation="join", metadata={"timeout": self.join_timeout}),
                network_mode=self.transport.network_mode,
            ) from e

        session_id = str(welcome.get("session_id") or "")
        self.identity.set_negotiated_session_id(session_id)
        self.connection_id = welcome.get("connection_id")
        identity = welcome.get("identity")
        self.player_identity = identity if isinstance(identity, dict) else {}
        logger.info("Joined session", session_id=session_id, connection_id=self.connection_id)
        self._reader = asyncio.create_task(self._read_loop(), name="netgate-client-reader")
        return session_id

    async def _await_join_result(self) -> dict[str, Any]:
        while True:
            try:
                frame = await self.transport.receive()
            except ProtocolViolationError:
                continue
            if frame is None:
                raise TransportError(
                    "Connection closed before join completed",
                    ErrorContext(operation="join"),
                    network_mode=self.transport.network_mode,
                )
            if frame["type"] == FrameType.WELCOME:
                return frame
            if frame["type"] == FrameType.REJECTED:
                await self.transport.close()
                reason = str(frame.get("reason") or "invalid")
                raise CredentialRejectedError("Join credential rejected", ErrorContext(operation="join"), reason=reason)
            logger.debug("Ignoring frame before join completed", frame_type=frame["type"])

    async def _read_loop(self) -> None:
        try:
            while True:
                try:
                    frame = await self.transport.receive()
                except ProtocolViolationError:
                    continue
                if frame is None:
                    break
                if frame["type"] == FrameType.RELAY:
                    self.inbox.put_nowait(frame)
                elif frame["type"] == FrameType.ERROR:
                    logger.warning("Server refused a frame", message=frame.get("message"))
                else:
                    logger.debug("Ignoring frame", frame_type=frame["type"])
        except TransportError as e:
            logger.warning("Client connection lost", error=str(e))
        finally:
            self.closed.set()
            logger.info("Client connection closed", connection_id=self.connection_id)

    async def send_relay(
        self,
        operation: RelayOperation | str,
        args: dict[str, Any],
        targets: list[int] | None = None,
    ) -> bool:
        """
        Ask the server to relay a message to other players.

        Returns:
            False without sending if the message is not relayable
        """
        message = parse_relay_message(operation, args)
        if message is None:
            return False
        frame = build_frame(FrameType.RELAY, operation=message.operation, args=message.args())
        if targets is not None:
            frame["targets"] = list(targets)
        await self.transport.send(frame)
        return True

    async def close(self) -> None:
        """Close the connection and stop reading."""
        await self.transport.close()
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        self.closed.set()
