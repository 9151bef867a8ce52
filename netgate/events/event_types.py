"""
Event types for netgate.

These are the observable notifications emitted to whoever composes the core
into a full application. They are advisory: fire-and-forget, at-most-once.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


def _default_timestamp() -> datetime:
    """Factory function for default timestamp."""
    return datetime.now(UTC)


@dataclass
class BaseEvent:
    """
    Base class for all netgate events.

    All events inherit from this class and provide a consistent
    interface for event handling and logging.
    """

    timestamp: datetime = field(default_factory=_default_timestamp, init=False)
    event_type: str = field(default="", init=False)

    def __post_init__(self) -> None:
        self.event_type = type(self).__name__


@dataclass
class LogMessage(BaseEvent):
    """Human-readable lifecycle message for observers that display a log."""

    message: str


@dataclass
class PlayerVerified(BaseEvent):
    """
    Event fired when a connection's join credential is accepted.

    identity_info is what the identity authority returned (at least a unique
    display name).
    """

    connection_id: int
    identity_info: dict[str, Any]


@dataclass
class PlayerRejected(BaseEvent):
    """Event fired when a connection's join credential is refused."""

    connection_id: int
    reason: str


@dataclass
class PlayerDisconnected(BaseEvent):
    """Event fired when a previously verified connection closes."""

    connection_id: int
    identity_info: dict[str, Any]


@dataclass
class ServerPreReady(BaseEvent):
    """Fired before the server transport starts listening."""


@dataclass
class ServerPostReady(BaseEvent):
    """Fired once the server transport is listening and the session id is known."""

    session_id: str = ""


@dataclass
class ServerShuttingDown(BaseEvent):
    """Fired when a close is requested, before teardown, to allow last-write persistence."""
