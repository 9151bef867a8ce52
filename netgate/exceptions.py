"""
Exception hierarchy for netgate.

Every netgate error carries structured context and logs itself when raised,
so call sites only need to decide whether the failure is local to one
connection or fatal to the process.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ErrorContext:
    """Contextual information for error handling."""

    connection_id: int | None = None
    session_id: str | None = None
    operation: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for logging."""
        return {
            "connection_id": self.connection_id,
            "session_id": self.session_id,
            "operation": self.operation,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class NetgateError(Exception):
    """
    Base exception for all netgate errors.

    Provides structured error handling with context and metadata
    for proper error categorization and debugging.
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize netgate error.

        Args:
            message: Technical error message
            context: Error context information
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.details = details or {}
        self.timestamp = datetime.now(UTC)

        self._log_error()

    def _log_error(self) -> None:
        """Log the error with structured context."""
        logger.error(
            "netgate error occurred",
            error_type=self.__class__.__name__,
            message=self.message,
            context=self.context.to_dict(),
            details=self.details,
        )


class ConfigurationError(NetgateError):
    """Configuration and setup errors."""

    def __init__(self, message: str, context: ErrorContext | None = None, config_key: str | None = None, **kwargs):
        super().__init__(message, context, **kwargs)
        self.config_key = config_key
        if config_key:
            self.details["config_key"] = config_key


class CredentialRejectedError(NetgateError):
    """A join credential was refused by the server."""

    def __init__(self, message: str, context: ErrorContext | None = None, reason: str = "invalid", **kwargs):
        super().__init__(message, context, **kwargs)
        self.reason = reason
        self.details["reason"] = reason


class IdentityAuthorityUnavailableError(NetgateError):
    """The external identity authority could not be reached or answered garbage."""


class ProtocolViolationError(NetgateError):
    """A peer sent a frame that is malformed or not allowed in its current state."""

    def __init__(self, message: str, context: ErrorContext | None = None, frame_type: str | None = None, **kwargs):
        super().__init__(message, context, **kwargs)
        self.frame_type = frame_type
        if frame_type:
            self.details["frame_type"] = frame_type


class TransportError(NetgateError):
    """Network transport errors."""

    def __init__(self, message: str, context: ErrorContext | None = None, network_mode: str = "unknown", **kwargs):
        super().__init__(message, context, **kwargs)
        self.network_mode = network_mode
        self.details["network_mode"] = network_mode
