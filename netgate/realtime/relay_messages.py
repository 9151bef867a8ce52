"""
Relayable operations for netgate.

This is the allow-list at the trust boundary: only the operations defined
here can be relayed from one client to others, and each carries a typed,
validated payload. Anything else is rejected before it reaches a recipient.
"""

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


class RelayOperation(StrEnum):
    """Operations a verified client may ask the server to relay."""

    CHAT_MESSAGE = "chat_message"
    PLAYER_INPUT = "player_input"
    STATE_UPDATE = "state_update"


class BaseRelayMessage(BaseModel):
    """Base class for relay payloads."""

    model_config = ConfigDict(
        # Reject unknown fields so clients cannot smuggle data past validation
        extra="forbid",
        frozen=True,
    )

    def args(self) -> dict[str, Any]:
        """Payload without the operation tag."""
        return self.model_dump(exclude={"operation"})


class ChatMessage(BaseRelayMessage):
    """Text chat line."""

    operation: Literal["chat_message"] = "chat_message"
    text: str = Field(..., min_length=1, max_length=500)


class PlayerInput(BaseRelayMessage):
    """A named input action changing state (pressed or released)."""

    operation: Literal["player_input"] = "player_input"
    action: str = Field(..., min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_.:-]+$")
    pressed: bool


class StateUpdate(BaseRelayMessage):
    """Opaque game-state delta for one entity, owned by the sender."""

    operation: Literal["state_update"] = "state_update"
    entity_id: str = Field(..., min_length=1, max_length=128)
    state: dict[str, Any] = Field(default_factory=dict)


RelayMessage = Annotated[ChatMessage | PlayerInput | StateUpdate, Field(discriminator="operation")]

_relay_adapter: TypeAdapter[ChatMessage | PlayerInput | StateUpdate] = TypeAdapter(RelayMessage)


def parse_relay_message(operation: Any, args: Any) -> ChatMessage | PlayerInput | StateUpdate | None:
    """
    Build a typed relay message from an operation name and its arguments.

    Returns:
        The validated message, or None if the operation is not allow-listed
        or the arguments do not match its payload.
    """
    if not isinstance(args, dict):
        logger.warning("Relay arguments are not a mapping", operation=str(operation))
        return None
    if "operation" in args:
        logger.warning("Relay arguments may not carry an operation tag", operation=str(operation))
        return None
    try:
        return _relay_adapter.validate_python({**args, "operation": str(operation) if isinstance(operation, str) else operation})
    except ValidationError as e:
        logger.warning(
            "Relay message failed validation",
            operation=str(operation),
            error_count=e.error_count(),
            errors=[err.get("msg") for err in e.errors()],
        )
        return None
