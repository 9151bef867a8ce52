"""
Unit tests for the process entry point.
"""

from unittest.mock import AsyncMock, patch

import pytest

from netgate import main as main_module
from netgate.config.models import AppConfig
from netgate.exceptions import ConfigurationError
from netgate.launch.role_selector import LaunchContext


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("IDENTITY_AUTHORITY_URL", raising=False)
    monkeypatch.delenv("NETGATE_FEATURES", raising=False)


def test_port_prefers_launch_argument():
    config = AppConfig(_env_file=None)
    assert main_module._port(LaunchContext.from_argv(["--port=9200"]), config) == 9200
    assert main_module._port(LaunchContext.from_argv([]), config) == config.network.port


@pytest.mark.parametrize("raw", ["abc", "0", "70000"])
def test_port_rejects_invalid_values(raw):
    with pytest.raises(ConfigurationError):
        main_module._port(LaunchContext.from_argv([f"--port={raw}"]), AppConfig(_env_file=None))


def test_server_without_identity_authority_exits_with_error():
    with pytest.raises(SystemExit) as exc_info:
        main_module.main(["--server"])
    assert exc_info.value.code == 2


def test_client_without_token_exits_with_error():
    with pytest.raises(SystemExit) as exc_info:
        main_module.main([])
    assert exc_info.value.code == 2


def test_main_dispatches_by_role_and_exits_with_runner_code(tmp_path):
    (tmp_path / "deployment.yaml").write_text("game:\n  id: proj-rel\n", encoding="utf-8")
    run_server = AsyncMock(return_value=1)
    with patch.object(main_module, "run_server", run_server), pytest.raises(SystemExit) as exc_info:
        main_module.main(["--server"])

    assert exc_info.value.code == 1
    _launch_context, identity, _config = run_server.await_args.args
    assert identity.game_id == "proj-rel"


def test_dedicated_server_feature_selects_server(monkeypatch):
    monkeypatch.setenv("NETGATE_FEATURES", "dedicated_server")
    run_server = AsyncMock(return_value=0)
    run_client = AsyncMock(return_value=0)
    with (
        patch.object(main_module, "run_server", run_server),
        patch.object(main_module, "run_client", run_client),
        pytest.raises(SystemExit) as exc_info,
    ):
        main_module.main([])

    assert exc_info.value.code == 0
    run_server.assert_awaited_once()
    run_client.assert_not_awaited()
