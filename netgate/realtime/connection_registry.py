"""
Connection registry for the netgate server.

The registry is the single source of truth for "who is allowed to act". It
exclusively owns every ConnectionEntry and is the only writer of verification
state. All methods are synchronous: on the single event loop each
check-then-write runs without interleaving with another connection's events.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from statemachine.exceptions import TransitionNotAllowed

from ..events.event_bus import EventBus
from ..events.event_types import PlayerDisconnected
from ..structured_logging.enhanced_logging_config import get_logger
from .connection_state_machine import VerificationStateMachine

logger = get_logger(__name__)


class VerificationState(StrEnum):
    """Verification state of a connection."""

    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    REJECTED = "rejected"


@dataclass
class ConnectionEntry:
    """One transport-level connection as seen by the server."""

    connection_id: int
    machine: VerificationStateMachine
    identity_info: dict[str, Any] = field(default_factory=dict)

    @property
    def verification_state(self) -> VerificationState:
        return VerificationState(self.machine.state_id)

    @property
    def is_verified(self) -> bool:
        return self.verification_state is VerificationState.VERIFIED

    @property
    def display_name(self) -> str | None:
        name = self.identity_info.get("name")
        return str(name) if name is not None else None


class ConnectionRegistry:
    """Maps connection id to verification state and identity metadata."""

    def __init__(self, event_bus: EventBus | None = None) -> None:
        self._entries: dict[int, ConnectionEntry] = {}
        self._event_bus = event_bus

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._entries

    def __iter__(self) -> Iterator[ConnectionEntry]:
        return iter(list(self._entries.values()))

    def register(self, connection_id: int) -> ConnectionEntry:
        """
        Create an Unverified entry for a newly observed connection.

        Registering an id that is already present is a no-op and returns the
        existing entry unchanged, whatever its state.
        """
        existing = self._entries.get(connection_id)
        if existing is not None:
            logger.debug(
                "Duplicate registration ignored",
                connection_id=connection_id,
                verification_state=existing.verification_state.value,
            )
            return existing

        entry = ConnectionEntry(connection_id=connection_id, machine=VerificationStateMachine(connection_id))
        self._entries[connection_id] = entry
        logger.info("Connection registered", connection_id=connection_id, active_connections=len(self._entries))
        return entry

    def get(self, connection_id: int) -> ConnectionEntry | None:
        return self._entries.get(connection_id)

    def get_state(self, connection_id: int) -> VerificationState | None:
        entry = self._entries.get(connection_id)
        return entry.verification_state if entry else None

    def is_verified(self, connection_id: int) -> bool:
        entry = self._entries.get(connection_id)
        return entry is not None and entry.is_verified

    def verified_connection_ids(self) -> list[int]:
        return [cid for cid, entry in self._entries.items() if entry.is_verified]

    def mark_verified(self, connection_id: int, identity_info: dict[str, Any]) -> bool:
        """
        Transition Unverified → Verified and store identity info.

        Returns:
            True if the transition happened. False (logged, not raised) if the
            entry is missing or already terminal; a terminal state is never
            overwritten.
        """
        entry = self._entries.get(connection_id)
        if entry is None:
            logger.warning("mark_verified for unknown connection", connection_id=connection_id)
            return False
        try:
            entry.machine.verify()
        except TransitionNotAllowed:
            logger.warning(
                "Refusing to overwrite terminal verification state",
                connection_id=connection_id,
                verification_state=entry.verification_state.value,
                attempted=VerificationState.VERIFIED.value,
            )
            return False
        entry.identity_info = dict(identity_info)
        return True

    def mark_rejected(self, connection_id: int) -> bool:
        """
        Transition Unverified → Rejected.

        The owner of the transport disconnects rejected connections; the entry
        is removed when that disconnect is observed through unregister().

        Returns:
            True if the transition happened, False if the entry is missing or
            already terminal.
        """
        entry = self._entries.get(connection_id)
        if entry is None:
            logger.warning("mark_rejected for unknown connection", connection_id=connection_id)
            return False
        try:
            entry.machine.reject()
        except TransitionNotAllowed:
            logger.warning(
                "Refusing to overwrite terminal verification state",
                connection_id=connection_id,
                verification_state=entry.verification_state.value,
                attempted=VerificationState.REJECTED.value,
            )
            return False
        return True

    def unregister(self, connection_id: int) -> ConnectionEntry | None:
        """
        Remove the entry when the transport connection closes.

        If the entry was Verified, observers are told the player left.
        """
        entry = self._entries.pop(connection_id, None)
        if entry is None:
            logger.debug("Unregister for unknown connection", connection_id=connection_id)
            return None

        logger.info(
            "Connection unregistered",
            connection_id=connection_id,
            verification_state=entry.verification_state.value,
            active_connections=len(self._entries),
        )
        if entry.is_verified and self._event_bus is not None:
            self._event_bus.publish(PlayerDisconnected(connection_id=connection_id, identity_info=dict(entry.identity_info)))
        return entry
