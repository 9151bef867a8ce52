"""
Test configuration and shared fixtures for the netgate test suite.
"""

import os

# Set before any netgate module reads configuration
os.environ.setdefault("LOGGING_ENVIRONMENT", "unit_test")
os.environ.setdefault("NETWORK_HOST", "127.0.0.1")

from pathlib import Path  # noqa: E402
from typing import Any  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402

from netgate.auth.identity_authority import CredentialCheckResult  # noqa: E402
from netgate.exceptions import TransportError  # noqa: E402
from netgate.realtime.connection_registry import ConnectionRegistry  # noqa: E402
from netgate.session.session_identity import DeploymentInfo, NetworkMode  # noqa: E402


class FakeServerTransport:
    """In-memory server transport recording everything sent."""

    network_mode = "fake"

    def __init__(self) -> None:
        self.host = "127.0.0.1"
        self.port = 0
        self.sent: list[tuple[int, dict[str, Any]]] = []
        self.disconnected: list[int] = []
        self.failing: set[int] = set()
        self.started = False
        self.stopped = False
        self.handler = None

    def set_handler(self, handler: Any) -> None:
        self.handler = handler

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    async def send(self, connection_id: int, frame: dict[str, Any]) -> None:
        if connection_id in self.failing:
            raise TransportError("send failed", network_mode=self.network_mode)
        self.sent.append((connection_id, frame))

    async def disconnect(self, connection_id: int) -> None:
        self.disconnected.append(connection_id)

    def connection_ids(self) -> list[int]:
        return []

    def frames_for(self, connection_id: int) -> list[dict[str, Any]]:
        return [frame for cid, frame in self.sent if cid == connection_id]


@pytest.fixture
def registry() -> ConnectionRegistry:
    """Registry without an event bus."""
    return ConnectionRegistry()


@pytest.fixture
def event_bus() -> MagicMock:
    """Event bus double recording published events."""
    return MagicMock()


@pytest.fixture
def fake_transport() -> FakeServerTransport:
    return FakeServerTransport()


@pytest.fixture
def authority() -> AsyncMock:
    """Identity authority that accepts every credential as player 'alice'."""
    mock = AsyncMock()
    mock.check_credential.return_value = CredentialCheckResult(valid=True, identity={"name": "alice"})
    return mock


@pytest.fixture
def deployment() -> DeploymentInfo:
    return DeploymentInfo(game_id="proj-rel", network_mode=NetworkMode.ENET, has_deployment=True)


@pytest.fixture
def deployment_file(tmp_path: Path):
    """Write a deployment YAML file and return its path."""

    def _write(content: str) -> Path:
        path = tmp_path / "deployment.yaml"
        path.write_text(content, encoding="utf-8")
        return path

    return _write


def published(event_bus: MagicMock, event_type: type) -> list[Any]:
    """Events of a given type published on a MagicMock bus."""
    return [c.args[0] for c in event_bus.publish.call_args_list if isinstance(c.args[0], event_type)]
