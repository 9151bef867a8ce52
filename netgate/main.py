"""
netgate - process entry point.

Decides the process role, loads the session identity, runs the server or
client session, and routes SIGINT/SIGTERM into the shutdown watchdog.

Usage:
    netgate --server [--host=0.0.0.0] [--port=9080] [--deployment=deployment.yaml]
    netgate --token=<credential> [--host=...] [--port=...]
"""

import asyncio
import signal
import sys
from collections.abc import Sequence

from .app.client_session import ClientSession
from .app.server_session import ServerSession
from .app.shutdown_watchdog import ShutdownWatchdog
from .auth.identity_authority import HttpIdentityAuthority
from .config import get_config
from .config.models import AppConfig
from .events.event_bus import EventBus
from .exceptions import ConfigurationError, ErrorContext, NetgateError
from .launch.role_selector import LaunchContext, Role, RoleSelector
from .session.session_identity import SessionIdentity, load_deployment_info
from .structured_logging.enhanced_logging_config import get_logger, setup_enhanced_logging
from .transport import create_client_transport, create_server_transport

logger = get_logger(__name__)


def _install_close_handlers(loop: asyncio.AbstractEventLoop, close_requested: asyncio.Event) -> None:
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, close_requested.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers; Ctrl+C still raises KeyboardInterrupt
            logger.debug("Signal handler not supported", signal=sig.name)


def _port(launch_context: LaunchContext, config: AppConfig) -> int:
    raw = launch_context.get_str("port")
    if raw is None:
        return config.network.port
    try:
        port = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid port: {raw}", ErrorContext(operation="launch"), config_key="port") from e
    if not 1 <= port <= 65535:
        raise ConfigurationError(f"Port out of range: {port}", ErrorContext(operation="launch"), config_key="port")
    return port


async def run_server(launch_context: LaunchContext, identity: SessionIdentity, config: AppConfig) -> int:
    """Run a dedicated server until a close request; return the exit code."""
    if not config.identity.authority_url:
        raise ConfigurationError(
            "Dedicated server needs an identity authority (IDENTITY_AUTHORITY_URL)",
            ErrorContext(operation="run_server"),
            config_key="IDENTITY_AUTHORITY_URL",
        )
    host = launch_context.get_str("host", config.network.host) or config.network.host
    transport = create_server_transport(identity.network_mode, host, _port(launch_context, config))
    authority = HttpIdentityAuthority(config.identity.authority_url, timeout=config.identity.request_timeout)
    event_bus = EventBus(max_queue_size=config.event_bus.max_queue_size)
    session = ServerSession(
        identity, transport, authority, event_bus, consumed_ttl_seconds=config.identity.consumed_token_ttl_seconds
    )

    async def teardown() -> None:
        await session.stop()
        await authority.aclose()

    watchdog = ShutdownWatchdog(
        teardown, is_server=True, event_bus=event_bus, deadline_seconds=config.shutdown.deadline_seconds
    )
    close_requested = asyncio.Event()
    _install_close_handlers(asyncio.get_running_loop(), close_requested)

    await session.start()
    await close_requested.wait()
    logger.info("Close requested", role=Role.SERVER.value)
    exit_code = await watchdog.on_close_requested()
    return exit_code if exit_code is not None else 0


async def run_client(launch_context: LaunchContext, identity: SessionIdentity, config: AppConfig) -> int:
    """Join a server and log relayed messages until closed; return the exit code."""
    token = launch_context.get_str("token")
    if not token:
        raise ConfigurationError("Client needs a join credential (--token=...)", config_key="token")
    host = launch_context.get_str("host", config.network.host) or config.network.host
    transport = create_client_transport(identity.network_mode, host, _port(launch_context, config))
    session = ClientSession(identity, transport)
    watchdog = ShutdownWatchdog(session.close, is_server=False, deadline_seconds=config.shutdown.deadline_seconds)
    close_requested = asyncio.Event()
    _install_close_handlers(asyncio.get_running_loop(), close_requested)

    await session.connect(token)

    async def log_inbox() -> None:
        while True:
            frame = await session.inbox.get()
            logger.info("Relay received", operation=frame.get("operation"), sender=frame.get("sender"), args=frame.get("args"))

    inbox_task = asyncio.create_task(log_inbox(), name="netgate-client-inbox")
    waiters = [asyncio.create_task(close_requested.wait()), asyncio.create_task(session.closed.wait())]
    try:
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (*waiters, inbox_task):
            task.cancel()
    exit_code = await watchdog.on_close_requested()
    return exit_code if exit_code is not None else 0


def main(argv: Sequence[str] | None = None) -> None:
    """Console entry point."""
    config = get_config()
    launch_context = LaunchContext.from_argv(sys.argv[1:] if argv is None else argv, config.features)

    log_config = config.logging.to_dict()
    if launch_context.dev_mode:
        log_config["level"] = "DEBUG"
    setup_enhanced_logging(log_config)

    role = RoleSelector(launch_context).role
    deployment_path = launch_context.get_str("deployment", config.deployment.path) or config.deployment.path
    try:
        identity = SessionIdentity(load_deployment_info(deployment_path))
        runner = run_server if role is Role.SERVER else run_client
        exit_code = asyncio.run(runner(launch_context, identity, config))
    except NetgateError as e:
        # Already logged on construction
        print(f"netgate: {e.message}", file=sys.stderr)
        sys.exit(2)
    except KeyboardInterrupt:
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
