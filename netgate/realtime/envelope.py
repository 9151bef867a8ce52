"""
Wire envelope for netgate frames.

Every frame is a JSON object with a `type` and a `ts` (ISO 8601 UTC with 'Z').

Client → server:
- join:     {"token": str}
- relay:    {"operation": str, "args": dict, "targets": list[int] | null}

Server → client:
- welcome:  {"session_id": str, "connection_id": int, "identity": dict}
- rejected: {"reason": str}
- relay:    {"operation": str, "args": dict, "sender": {"connection_id": int, "name": str | null}}
- error:    {"message": str}
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from ..exceptions import ErrorContext, ProtocolViolationError

MAX_FRAME_BYTES = 64 * 1024


class FrameType(StrEnum):
    """Frame types understood on the wire."""

    JOIN = "join"
    RELAY = "relay"
    WELCOME = "welcome"
    REJECTED = "rejected"
    ERROR = "error"


def utc_now_z() -> str:
    """Return current UTC time in ISO 8601 format with 'Z' suffix."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_frame(frame_type: FrameType | str, **data: Any) -> dict[str, Any]:
    """Create a normalized frame."""
    return {"type": str(frame_type), "ts": utc_now_z(), **data}


def encode_frame(frame: dict[str, Any]) -> str:
    """Serialize a frame for the wire."""
    return json.dumps(frame, separators=(",", ":"))


def decode_frame(raw: str | bytes, connection_id: int | None = None) -> dict[str, Any]:
    """
    Parse a frame received from the wire.

    Raises:
        ProtocolViolationError: If the frame is oversized, not JSON, not an
            object, or has no known type
    """
    context = ErrorContext(connection_id=connection_id, operation="decode_frame")
    if len(raw) > MAX_FRAME_BYTES:
        raise ProtocolViolationError("Frame too large", context, details={"size": len(raw)})
    try:
        frame = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolViolationError("Frame is not valid JSON", context, details={"error": str(e)}) from e
    if not isinstance(frame, dict):
        raise ProtocolViolationError("Frame is not a JSON object", context)
    frame_type = frame.get("type")
    if not isinstance(frame_type, str) or frame_type not in {t.value for t in FrameType}:
        raise ProtocolViolationError("Unknown frame type", context, frame_type=str(frame_type))
    return frame
