"""
Session identity for netgate.

Derives the identifiers that namespace everything a process does: the game id
from the deployment file, the project and release ids from the game id, and
the session id from the environment (server) or from the connection
handshake (client).

Deployment file format (YAML):

    game:
      id: myproject-release42
      network_mode: websocket   # optional, "enet" when absent
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

import yaml

from ..exceptions import ConfigurationError
from ..launch.role_selector import Role
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

UNDEPLOYED_GAME_ID = "init-undeployed"
GAME_ID_SEPARATOR = "-"
SESSION_ID_ENV = "SESSION_ID"


class NetworkMode(StrEnum):
    """Transport selected by the deployment."""

    ENET = "enet"
    WEBSOCKET = "websocket"

    @classmethod
    def parse(cls, value: Any) -> "NetworkMode":
        """Unrecognized or missing values fall back to the default mode."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            if value is not None:
                logger.warning("Unrecognized network mode, using default", network_mode=value, default=cls.ENET.value)
            return cls.ENET


@dataclass(frozen=True)
class DeploymentInfo:
    """Result of loading the deployment file."""

    game_id: str
    network_mode: NetworkMode
    has_deployment: bool


def load_deployment_info(path: str | Path) -> DeploymentInfo:
    """
    Load the deployment file.

    A file that cannot be read or parsed is not fatal: the process runs
    local-only under the sentinel game id. A file that parses but lacks a
    game id is a broken deployment and raises.

    Args:
        path: Path to the deployment YAML file

    Returns:
        DeploymentInfo

    Raises:
        ConfigurationError: If the file is readable but has no non-empty game.id
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("No deployment configuration, running local-only", path=str(path), error=str(e))
        return DeploymentInfo(game_id=UNDEPLOYED_GAME_ID, network_mode=NetworkMode.ENET, has_deployment=False)

    game = data.get("game") if isinstance(data, dict) else None
    if not isinstance(game, dict):
        game = {}

    game_id = game.get("id")
    if not isinstance(game_id, str) or not game_id.strip():
        raise ConfigurationError("Deployment file has no game id", config_key="game.id", details={"path": str(path)})

    network_mode = NetworkMode.parse(game.get("network_mode"))
    logger.info("Deployment configuration loaded", game_id=game_id, network_mode=network_mode.value)
    return DeploymentInfo(game_id=game_id.strip(), network_mode=network_mode, has_deployment=True)


class SessionIdentity:
    """
    Stable identifiers for the running session.

    The session id is empty until role-specific startup has completed:
    `start_server_session` on the server, `set_negotiated_session_id` on the
    client.
    """

    def __init__(self, deployment: DeploymentInfo) -> None:
        self.deployment = deployment
        self._session_id = ""
        self._role: Role | None = None

    @property
    def game_id(self) -> str:
        return self.deployment.game_id

    @property
    def has_deployment(self) -> bool:
        return self.deployment.has_deployment

    @property
    def network_mode(self) -> NetworkMode:
        return self.deployment.network_mode

    def get_project_id(self) -> str:
        """Prefix of the game id before the first separator."""
        return self.deployment.game_id.split(GAME_ID_SEPARATOR, 1)[0]

    def get_release_id(self) -> str:
        """The release id is the full game id."""
        return self.deployment.game_id

    def get_session_id(self) -> str:
        return self._session_id

    def start_server_session(self, environ: Mapping[str, str] | None = None) -> str:
        """Populate the session id from the SESSION_ID environment variable."""
        env = os.environ if environ is None else environ
        self._role = Role.SERVER
        self._session_id = env.get(SESSION_ID_ENV, "")
        if not self._session_id:
            logger.warning("SESSION_ID not set; server session id is empty", game_id=self.game_id)
        return self._session_id

    def set_negotiated_session_id(self, session_id: str) -> None:
        """Record the session id the server sent during the join handshake."""
        self._role = Role.CLIENT
        self._session_id = session_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.get_project_id(),
            "release_id": self.get_release_id(),
            "game_id": self.game_id,
            "session_id": self._session_id,
            "has_deployment": self.has_deployment,
            "network_mode": self.network_mode.value,
            "role": self._role.value if self._role else None,
        }
