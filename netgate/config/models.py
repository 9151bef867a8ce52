"""
Pydantic-based configuration models for netgate.

Settings are read from environment variables (and an optional .env file),
each group under its own prefix. The deployment file itself (game id and
network mode) is not settings: it is loaded by session.session_identity.
"""

import json
from typing import Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


def _parse_env_list(candidate: Any) -> list[str]:
    """Parse a string from the environment as JSON list or CSV."""
    if candidate is None:
        return []
    s = str(candidate).strip()
    if not s:
        return []
    try:
        loaded = json.loads(s)
        if isinstance(loaded, list):
            return [str(item).strip() for item in loaded if str(item).strip()]
    except json.JSONDecodeError:
        pass
    return [item.strip() for item in s.split(",") if item.strip()]


class NetworkConfig(BaseSettings):
    """Listen address for the server and default target for the client."""

    host: str = Field(default="127.0.0.1", description="Bind address (server) or server address (client)")
    port: int = Field(default=9080, description="Server port")

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is in valid range."""
        if not 1 <= v <= 65535:
            logger.error("Invalid network port", port=v, valid_range="1-65535")
            raise ValueError("Port must be between 1 and 65535")
        return v

    model_config = {"env_prefix": "NETWORK_", "case_sensitive": False, "extra": "ignore"}


class DeploymentConfig(BaseSettings):
    """Location of the deployment file."""

    path: str = Field(default="deployment.yaml", description="Path to the deployment YAML file")

    model_config = {"env_prefix": "DEPLOYMENT_", "case_sensitive": False, "extra": "ignore"}


class IdentityConfig(BaseSettings):
    """External identity authority used to check join credentials."""

    authority_url: str | None = Field(default=None, description="Credential check endpoint (POST)")
    request_timeout: float = Field(default=10.0, description="HTTP timeout for credential checks in seconds")
    consumed_token_ttl_seconds: float = Field(
        default=3600.0, gt=0, description="How long a consumed credential is remembered and refused on reuse"
    )

    @field_validator("authority_url")
    @classmethod
    def validate_authority_url(cls, v: str | None) -> str | None:
        """Require an http(s) URL when one is configured."""
        if v is None or v == "":
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError("Identity authority URL must start with http:// or https://")
        return v

    model_config = {"env_prefix": "IDENTITY_", "case_sensitive": False, "extra": "ignore"}


class ShutdownConfig(BaseSettings):
    """Graceful shutdown settings."""

    deadline_seconds: float = Field(default=4.0, description="Hard deadline for graceful teardown")

    @field_validator("deadline_seconds")
    @classmethod
    def validate_deadline(cls, v: float) -> float:
        """The deadline must be positive or the process could never exit gracefully."""
        if v <= 0:
            raise ValueError("Shutdown deadline must be greater than zero")
        return v

    model_config = {"env_prefix": "SHUTDOWN_", "case_sensitive": False, "extra": "ignore"}


class EventBusConfig(BaseSettings):
    """In-process event bus settings."""

    max_queue_size: int = Field(default=1000, description="Events beyond this backlog are dropped")

    model_config = {"env_prefix": "EVENT_BUS_", "case_sensitive": False, "extra": "ignore"}


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    environment: str = Field(default="local", description="Logging environment")
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="human", description="Log format")
    log_base: str | None = Field(default=None, description="Base log directory; console only when unset")
    rotation_max_bytes: int = Field(default=10 * 1024 * 1024, description="Log rotation max size in bytes")
    rotation_backup_count: int = Field(default=5, description="Number of backup log files")
    disable_logging: bool = Field(default=False, description="Disable log handlers")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate logging environment."""
        valid_environments = ["local", "unit_test", "production"]
        if v not in valid_environments:
            raise ValueError(f"Environment must be one of {valid_environments}, got '{v}'")
        return v

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}, got '{v}'")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["json", "human"]
        if v not in valid_formats:
            raise ValueError(f"Log format must be one of {valid_formats}, got '{v}'")
        return v

    model_config = {"env_prefix": "LOGGING_", "case_sensitive": False, "extra": "ignore"}

    def to_dict(self) -> dict[str, Any]:
        """Convert to the dict shape expected by setup_enhanced_logging."""
        return {
            "environment": self.environment,
            "level": self.level,
            "format": self.format,
            "log_base": self.log_base,
            "rotation": {
                "max_bytes": self.rotation_max_bytes,
                "backup_count": self.rotation_backup_count,
            },
            "disable_logging": self.disable_logging,
        }


class AppConfig(BaseSettings):
    """
    Composite application configuration.

    Aggregates all other configs. Access via get_config().
    """

    network: NetworkConfig = Field(default_factory=NetworkConfig)
    deployment: DeploymentConfig = Field(default_factory=DeploymentConfig)
    identity: IdentityConfig = Field(default_factory=IdentityConfig)
    shutdown: ShutdownConfig = Field(default_factory=ShutdownConfig)
    event_bus: EventBusConfig = Field(default_factory=EventBusConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    features_raw: str = Field(
        default="",
        validation_alias=AliasChoices("NETGATE_FEATURES", "features"),
        description="Process feature indicators, CSV or JSON list (e.g. dedicated_server)",
    )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "case_sensitive": False, "extra": "ignore"}

    @property
    def features(self) -> list[str]:
        """Feature indicators as a list."""
        return _parse_env_list(self.features_raw)
