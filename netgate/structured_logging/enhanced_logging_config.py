"""
Enhanced structlog-based logging configuration for the netgate server and client.

This module provides the logging system used by every netgate component:
context variables (MDC) for per-connection fields, redaction of credentials
before they reach any handler, and optional rotating file output.

CORRECT USAGE:
    from ..structured_logging.enhanced_logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("Player verified", connection_id=7, name="ada")
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, merge_contextvars
from structlog.stdlib import BoundLogger, LoggerFactory

VALID_ENVIRONMENTS = ["unit_test", "local", "production"]

_SENSITIVE_KEYS = (
    "password",
    "token",
    "secret",
    "credential",
    "private_key",
    "api_key",
    "bearer",
    "authorization",
)

_LOGGING_INITIALIZED = False


def detect_environment() -> str:
    """
    Detect the current environment based on various indicators.

    Returns:
        Environment name: "unit_test", "local", or "production"
    """
    if "pytest" in sys.modules or "pytest" in sys.argv[0]:
        return "unit_test"

    env = os.getenv("NETGATE_ENV")
    if env and env in VALID_ENVIRONMENTS:
        return env

    logging_env = os.getenv("LOGGING_ENVIRONMENT", "")
    if logging_env in VALID_ENVIRONMENTS:
        return logging_env

    return "local"


def _resolve_log_base(log_base: str) -> Path:
    """Resolve log_base relative to the project root (where pyproject.toml lives)."""
    log_path = Path(log_base)
    if log_path.is_absolute():
        return log_path

    current_dir = Path.cwd()
    for parent in [current_dir] + list(current_dir.parents):
        if (parent / "pyproject.toml").exists():
            return parent / log_path
    return current_dir / log_path


def sanitize_sensitive_data(_logger: Any, _name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Remove sensitive data from log entries.

    Join credentials are secrets; any key that looks like one is redacted,
    including keys nested inside dictionaries.

    Args:
        _logger: Logger instance (unused)
        _name: Logger name (unused)
        event_dict: Event dictionary to sanitize

    Returns:
        Sanitized event dictionary
    """

    def sanitize_dict(d: dict[str, Any]) -> dict[str, Any]:
        sanitized: dict[str, Any] = {}
        for key, value in d.items():
            if isinstance(key, str) and any(sensitive in key.lower() for sensitive in _SENSITIVE_KEYS):
                sanitized[key] = "[REDACTED]"
            elif isinstance(value, dict):
                sanitized[key] = sanitize_dict(value)
            else:
                sanitized[key] = value
        return sanitized

    return sanitize_dict(event_dict)


def configure_enhanced_structlog(
    environment: str | None = None,
    log_level: str = "INFO",
    log_config: dict[str, Any] | None = None,
) -> None:
    """
    Configure structlog with MDC support and credential redaction.

    Args:
        environment: Environment name (auto-detected if None)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_config: Logging configuration dictionary (see LoggingConfig.to_dict)
    """
    if environment is None:
        environment = detect_environment()
    log_config = log_config or {}

    base_processors = [
        sanitize_sensitive_data,
        merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: Any
    if log_config.get("format") == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.processors.KeyValueRenderer(key_order=["timestamp", "level", "logger", "event"])

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, str(log_level).upper(), logging.INFO))

    if not log_config.get("disable_logging", False):
        _setup_stream_logging(root_logger)
        if log_config.get("log_base"):
            _setup_file_logging(environment, log_config)

    structlog.configure(
        processors=base_processors + [renderer],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=BoundLogger,
        cache_logger_on_first_use=False,
    )


def _setup_stream_logging(root_logger: logging.Logger) -> None:
    """Attach a single stderr handler to the root logger."""
    for handler in root_logger.handlers:
        if getattr(handler, "_netgate_stream", False):
            return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler._netgate_stream = True  # type: ignore[attr-defined]
    root_logger.addHandler(handler)


def _setup_file_logging(environment: str, log_config: dict[str, Any]) -> None:
    """Set up the rotating file handler under <log_base>/<environment>/netgate.log."""
    env_log_dir = _resolve_log_base(log_config["log_base"]) / environment
    try:
        env_log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        # Console logging still works; a read-only filesystem is not fatal
        logging.getLogger(__name__).warning("Could not create log directory %s: %s", env_log_dir, e)
        return

    rotation = log_config.get("rotation", {})
    handler = RotatingFileHandler(
        env_log_dir / "netgate.log",
        maxBytes=int(rotation.get("max_bytes", 10 * 1024 * 1024)),
        backupCount=int(rotation.get("backup_count", 5)),
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logging.getLogger().addHandler(handler)


def setup_enhanced_logging(log_config: dict[str, Any], *, force_reconfigure: bool = False) -> None:
    """
    Set up logging once per process.

    Args:
        log_config: Logging configuration dictionary (see LoggingConfig.to_dict)
        force_reconfigure: When True, reconfigure even if logging was already initialized
    """
    global _LOGGING_INITIALIZED  # pylint: disable=global-statement

    if _LOGGING_INITIALIZED and not force_reconfigure:
        get_logger("netgate.logging.setup").debug("setup_enhanced_logging skipped; already initialized")
        return

    environment = log_config.get("environment") or detect_environment()
    log_level = log_config.get("level", "INFO")
    configure_enhanced_structlog(environment, log_level, log_config)

    get_logger("netgate.logging.enhanced").info(
        "Enhanced logging system initialized",
        environment=environment,
        log_level=log_level,
        log_base=log_config.get("log_base"),
        disable_logging=log_config.get("disable_logging", False),
    )
    _LOGGING_INITIALIZED = True


def bind_connection_context(connection_id: int | None = None, **kwargs: Any) -> None:
    """
    Bind connection context to the current logging context.

    All subsequent log entries in the current task include these fields.

    Args:
        connection_id: Transport-level connection identity
        **kwargs: Additional context variables
    """
    context_vars = {"connection_id": connection_id, **kwargs}
    bind_contextvars(**{k: v for k, v in context_vars.items() if v is not None})


def clear_connection_context() -> None:
    """Clear the current connection context from logging."""
    clear_contextvars()


def get_current_context() -> dict[str, Any]:
    """Get the current logging context."""
    return structlog.contextvars.get_contextvars()


def get_logger(name: str) -> Any:  # Returns BoundLogger but typed as Any for flexibility
    """
    Get a structlog logger with the specified name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)


__all__ = [
    "BoundLogger",
    "bind_connection_context",
    "clear_connection_context",
    "configure_enhanced_structlog",
    "detect_environment",
    "get_current_context",
    "get_logger",
    "sanitize_sensitive_data",
    "setup_enhanced_logging",
]
