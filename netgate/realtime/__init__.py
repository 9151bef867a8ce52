"""Server-side connection state, wire envelope and relay gatekeeping."""

from .connection_registry import ConnectionEntry, ConnectionRegistry, VerificationState
from .envelope import FrameType, build_frame, decode_frame, encode_frame
from .relay_authorizer import RelayAuthorizer, RelayResult
from .relay_messages import ChatMessage, PlayerInput, RelayOperation, StateUpdate, parse_relay_message

__all__ = [
    "ChatMessage",
    "ConnectionEntry",
    "ConnectionRegistry",
    "FrameType",
    "PlayerInput",
    "RelayAuthorizer",
    "RelayOperation",
    "RelayResult",
    "StateUpdate",
    "VerificationState",
    "build_frame",
    "decode_frame",
    "encode_frame",
    "parse_relay_message",
]
