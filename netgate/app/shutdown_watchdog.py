"""
Shutdown watchdog for netgate processes.

A close request moves the process from Running to Draining: observers are
told the server is going away, graceful teardown runs, and a fixed deadline
starts counting on its own daemon thread. Whichever finishes first decides the
exit code. The deadline thread does not depend on the event loop, so a blocked
loop cannot keep the process alive past it.
"""

import os
import threading
import time
from collections.abc import Awaitable, Callable
from typing import Any

from statemachine import State, StateMachine

from ..events.event_bus import EventBus
from ..events.event_types import ServerShuttingDown
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_DEADLINE_SECONDS = 4.0
EXIT_GRACEFUL = 0
EXIT_FORCED = 1


class ShutdownStateMachine(StateMachine):
    """Running → Draining → Terminated; Terminated is final."""

    running = State("Running", initial=True)
    draining = State("Draining")
    terminated = State("Terminated", final=True)

    begin_drain = running.to(draining)
    finish = draining.to(terminated)

    def on_enter_state(self, state: State, event: Any = None, **kwargs: Any) -> None:
        logger.info("Shutdown state changed", to_state=state.id, trigger_event=str(event) if event else "initial")


class ShutdownWatchdog:
    """
    Bounds how long graceful shutdown may take.

    Args:
        teardown: Coroutine function performing graceful teardown
        is_server: Only servers announce ServerShuttingDown
        event_bus: Bus to publish the announcement on
        deadline_seconds: Time allowed for teardown before forced termination
        force_exit: Called with the exit code to terminate the process
    """

    def __init__(
        self,
        teardown: Callable[[], Awaitable[None]],
        *,
        is_server: bool,
        event_bus: EventBus | None = None,
        deadline_seconds: float = DEFAULT_DEADLINE_SECONDS,
        force_exit: Callable[[int], object] = os._exit,
    ) -> None:
        if deadline_seconds <= 0:
            raise ValueError("deadline_seconds must be positive")
        self._teardown = teardown
        self._is_server = is_server
        self._event_bus = event_bus
        self._deadline_seconds = deadline_seconds
        self._force_exit = force_exit
        self._machine = ShutdownStateMachine()
        # Guards the machine: the deadline thread and the loop both try to finish it
        self._lock = threading.Lock()
        self._teardown_done = threading.Event()
        self._deadline_thread: threading.Thread | None = None
        self.exit_code: int | None = None

    @property
    def state(self) -> str:
        return self._machine.current_state.id

    @property
    def is_terminated(self) -> bool:
        return self._machine.current_state.final

    async def on_close_requested(self) -> int | None:
        """
        Handle a close request.

        Returns:
            The exit code (0 graceful, 1 forced) for the first request; None
            for any later request, which is ignored.
        """
        with self._lock:
            if self._machine.current_state.id != "running":
                logger.info("Close request ignored", state=self.state)
                return None
            self._machine.begin_drain()

        if self._is_server and self._event_bus is not None:
            self._event_bus.publish(ServerShuttingDown())

        self._start_deadline()
        started = time.monotonic()
        try:
            await self._teardown()
        except Exception as e:  # noqa: BLE001 - any teardown failure ends in forced termination
            self._teardown_done.set()
            logger.error("Graceful teardown failed", error=str(e), error_type=type(e).__name__, exc_info=True)
            self._terminate(EXIT_FORCED, reason="teardown_failed")
            return EXIT_FORCED

        self._teardown_done.set()
        with self._lock:
            if self.is_terminated:
                # The deadline won the race
                return self.exit_code
            self._machine.finish()
            self.exit_code = EXIT_GRACEFUL
        logger.info("Graceful teardown completed", elapsed_seconds=round(time.monotonic() - started, 3))
        return EXIT_GRACEFUL

    def _start_deadline(self) -> None:
        def _watch() -> None:
            if self._teardown_done.wait(self._deadline_seconds):
                return
            logger.warning("Shutdown deadline exceeded", deadline_seconds=self._deadline_seconds)
            self._terminate(EXIT_FORCED, reason="deadline_exceeded")

        self._deadline_thread = threading.Thread(target=_watch, name="netgate-shutdown-watchdog", daemon=True)
        self._deadline_thread.start()

    def _terminate(self, exit_code: int, reason: str) -> None:
        with self._lock:
            if self.is_terminated:
                return
            self._machine.finish()
            self.exit_code = exit_code
        logger.warning("Forcing process termination", exit_code=exit_code, reason=reason)
        self._force_exit(exit_code)
