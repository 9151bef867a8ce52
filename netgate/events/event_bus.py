"""
Event bus for netgate.

In-memory asyncio pub/sub used for the observable notifications (player
verified, player disconnected, server lifecycle). Delivery is at-most-once:
publish never blocks, a full queue drops the event, and a failing subscriber
never affects other subscribers or the publisher.
"""

import asyncio
import inspect
from collections import defaultdict
from collections.abc import Callable
from typing import Any, TypeVar

from ..structured_logging.enhanced_logging_config import get_logger
from .event_types import BaseEvent

T = TypeVar("T", bound=BaseEvent)

logger = get_logger(__name__)


class EventBus:
    """
    Pure asyncio event bus.

    Processing starts on demand the first time an event is published from
    inside a running loop. Events published before that are queued and
    delivered once processing starts.
    """

    def __init__(self, max_queue_size: int = 1000) -> None:
        self._subscribers: dict[type[BaseEvent], list[Callable[[Any], Any]]] = defaultdict(list)
        self._event_queue: asyncio.Queue[BaseEvent | None] = asyncio.Queue(maxsize=max_queue_size)
        self._running: bool = False
        self._processing_task: asyncio.Task | None = None
        self._active_tasks: set[asyncio.Task] = set()
        self.dropped_events: int = 0

    def _ensure_async_processing(self) -> None:
        """Start the processing task if a loop is running and it is not started yet."""
        if self._running or self._processing_task is not None:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # No running loop; events stay queued until one publishes from inside a loop
            return
        self._running = True
        self._processing_task = asyncio.create_task(self._process_events_async(), name="netgate-event-bus")
        logger.debug("EventBus processing started on-demand")

    async def _process_events_async(self) -> None:
        """Event processing loop."""
        while self._running:
            event = await self._event_queue.get()
            try:
                if event is None:
                    break
                await self._handle_event_async(event)
            except Exception as e:  # noqa: BLE001 - the loop must survive any subscriber failure
                logger.error("Error processing event", event_type=type(event).__name__, error=str(e), exc_info=True)
            finally:
                self._event_queue.task_done()

    async def _handle_event_async(self, event: BaseEvent) -> None:
        """Deliver one event to all subscribers of its exact type."""
        subscribers = list(self._subscribers.get(type(event), []))
        if not subscribers:
            logger.debug("No subscribers for event type", event_type=type(event).__name__)
            return

        tasks: list[asyncio.Task] = []
        names: dict[asyncio.Task, str] = {}
        for subscriber in subscribers:
            subscriber_name = getattr(subscriber, "__name__", "unknown")
            if inspect.iscoroutinefunction(subscriber):
                task = asyncio.create_task(subscriber(event))
                self._active_tasks.add(task)
                task.add_done_callback(self._active_tasks.discard)
                tasks.append(task)
                names[task] = subscriber_name
                continue
            try:
                subscriber(event)
            except Exception as e:  # noqa: BLE001 - isolate subscribers from each other
                logger.error("Error in sync event subscriber", subscriber_name=subscriber_name, error=str(e))

        if tasks:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for task, result in zip(tasks, results, strict=True):
                if isinstance(result, Exception):
                    logger.error(
                        "Error in async subscriber",
                        subscriber_name=names[task],
                        error=str(result),
                        error_type=type(result).__name__,
                    )

    def publish(self, event: BaseEvent) -> None:
        """
        Publish an event without blocking.

        Args:
            event: The event to publish

        Raises:
            ValueError: If the event is not a BaseEvent
        """
        if not isinstance(event, BaseEvent):
            raise ValueError("Event must inherit from BaseEvent")

        self._ensure_async_processing()

        try:
            self._event_queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped_events += 1
            logger.warning("Event queue at capacity - dropping event", event_type=type(event).__name__)
            return
        logger.debug("Published event to queue", event_type=type(event).__name__, queue_size=self._event_queue.qsize())

    def subscribe(self, event_type: type[T], handler: Callable[[T], Any]) -> None:
        """
        Subscribe to events of a specific type.

        Args:
            event_type: The type of event to subscribe to
            handler: Sync or async callable invoked with the event
        """
        if not issubclass(event_type, BaseEvent):
            raise ValueError("Event type must inherit from BaseEvent")
        if not callable(handler):
            raise ValueError("Handler must be callable")
        self._subscribers[event_type].append(handler)
        logger.debug("Added subscriber for event type", event_type=event_type.__name__)

    def unsubscribe(self, event_type: type[T], handler: Callable[[T], Any]) -> bool:
        """
        Unsubscribe from events of a specific type.

        Returns:
            True if the handler was found and removed, False otherwise
        """
        subscribers = self._subscribers.get(event_type, [])
        try:
            subscribers.remove(handler)
        except ValueError:
            return False
        return True

    def get_subscriber_count(self, event_type: type[BaseEvent]) -> int:
        """Get the number of subscribers for a specific event type."""
        return len(self._subscribers.get(event_type, []))

    async def drain(self) -> None:
        """Wait until every queued event has been delivered and its async subscribers have finished."""
        self._ensure_async_processing()
        if self._processing_task is None or self._processing_task.done():
            return
        # Each event is marked done only after its subscribers complete
        await self._event_queue.join()

    async def shutdown(self) -> None:
        """Stop processing; events still queued are discarded."""
        if not self._running:
            return
        self._running = False
        try:
            self._event_queue.put_nowait(None)
        except asyncio.QueueFull:
            pass
        if self._processing_task and not self._processing_task.done():
            self._processing_task.cancel()
            try:
                await self._processing_task
            except asyncio.CancelledError:
                pass
        for task in list(self._active_tasks):
            task.cancel()
        self._processing_task = None
        logger.info("EventBus processing stopped")
