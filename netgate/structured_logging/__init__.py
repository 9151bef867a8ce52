"""Structured logging package for netgate."""

from .enhanced_logging_config import (
    bind_connection_context,
    clear_connection_context,
    get_logger,
    setup_enhanced_logging,
)

__all__ = [
    "bind_connection_context",
    "clear_connection_context",
    "get_logger",
    "setup_enhanced_logging",
]
