"""
Events module for netgate.

Observable notifications are delivered through an in-memory asyncio pub/sub
bus with at-most-once semantics.
"""

from .event_bus import EventBus
from .event_types import (
    BaseEvent,
    LogMessage,
    PlayerDisconnected,
    PlayerRejected,
    PlayerVerified,
    ServerPostReady,
    ServerPreReady,
    ServerShuttingDown,
)

__all__ = [
    "EventBus",
    "BaseEvent",
    "LogMessage",
    "PlayerVerified",
    "PlayerRejected",
    "PlayerDisconnected",
    "ServerPreReady",
    "ServerPostReady",
    "ServerShuttingDown",
]
