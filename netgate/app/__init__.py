"""Role-specific sessions and process shutdown handling."""

from .client_session import ClientSession
from .server_session import ServerSession
from .shutdown_watchdog import EXIT_FORCED, EXIT_GRACEFUL, ShutdownWatchdog

__all__ = ["ClientSession", "EXIT_FORCED", "EXIT_GRACEFUL", "ServerSession", "ShutdownWatchdog"]
