"""
Relay authorization for the netgate server.

Every client-to-client message passes through here. The sender must be
Verified, the operation must be on the relay allow-list, and the payload must
validate. The envelope sent to recipients carries the sender identity taken
from the registry; nothing the client supplied about itself is forwarded.
"""

from collections.abc import Sequence
from enum import StrEnum
from typing import Any

from ..exceptions import TransportError
from ..structured_logging.enhanced_logging_config import get_logger
from ..transport.base import ServerTransport
from .connection_registry import ConnectionRegistry
from .envelope import FrameType, build_frame
from .relay_messages import parse_relay_message

logger = get_logger(__name__)


class RelayResult(StrEnum):
    SUCCESS = "success"
    REJECTED = "rejected"


class RelayAuthorizer:
    """Gatekeeper between one client's request and its delivery to others."""

    def __init__(self, registry: ConnectionRegistry, transport: ServerTransport) -> None:
        self._registry = registry
        self._transport = transport

    async def authorize_and_relay(
        self,
        sender_connection_id: int,
        operation: Any,
        args: Any,
        targets: Sequence[int] | None = None,
    ) -> RelayResult:
        """
        Forward a relay request if the sender may make it.

        Args:
            sender_connection_id: Connection that sent the request
            operation: Requested operation name
            args: Operation payload
            targets: Optional connection ids to restrict delivery to

        Returns:
            RelayResult.SUCCESS if the request was accepted (even with zero
            recipients), RelayResult.REJECTED otherwise
        """
        sender = self._registry.get(sender_connection_id)
        if sender is None or not sender.is_verified:
            logger.warning(
                "Relay from unverified connection rejected",
                connection_id=sender_connection_id,
                operation=str(operation),
                verification_state=sender.verification_state.value if sender else None,
            )
            return RelayResult.REJECTED

        message = parse_relay_message(operation, args)
        if message is None:
            logger.warning("Relay operation not permitted", connection_id=sender_connection_id, operation=str(operation))
            return RelayResult.REJECTED

        target_filter: set[int] | None = None
        if targets is not None:
            if not isinstance(targets, (list, tuple)) or not all(
                isinstance(t, int) and not isinstance(t, bool) for t in targets
            ):
                logger.warning("Relay targets must be connection ids", connection_id=sender_connection_id)
                return RelayResult.REJECTED
            target_filter = set(targets)

        recipients = [
            cid
            for cid in self._registry.verified_connection_ids()
            if cid != sender_connection_id and (target_filter is None or cid in target_filter)
        ]

        frame = build_frame(
            FrameType.RELAY,
            operation=message.operation,
            args=message.args(),
            sender={"connection_id": sender_connection_id, "name": sender.display_name},
        )

        delivered = 0
        for recipient in recipients:
            try:
                await self._transport.send(recipient, frame)
                delivered += 1
            except TransportError as e:
                logger.warning(
                    "Relay delivery failed",
                    connection_id=sender_connection_id,
                    recipient=recipient,
                    error=str(e),
                )

        logger.debug(
            "Relay forwarded",
            connection_id=sender_connection_id,
            operation=message.operation,
            recipients=len(recipients),
            delivered=delivered,
        )
        return RelayResult.SUCCESS
