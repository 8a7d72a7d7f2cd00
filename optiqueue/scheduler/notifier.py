"""
Observer registry for job lifecycle events.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable

from optiqueue.types.events import JobEvent

logger = logging.getLogger(__name__)

# Subscriber callbacks may be plain functions or coroutine functions
Subscriber = Callable[[JobEvent], Awaitable[None] | None]


class JobNotifier:
    """
    Publish/subscribe channel for scheduler events.

    Subscribers register for a single event type or, with ``None``, for every
    event. A failing subscriber is logged and never affects the scheduler or
    the other subscribers.
    """

    def __init__(self):
        """Initialize the notifier."""
        self._subscribers: dict[str | None, list[Subscriber]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    def subscribe(
        self,
        event_type: str | None,
        callback: Subscriber,
    ) -> Callable[[], None]:
        """
        Register a callback.

        Args:
            event_type: Event type to listen for, or None for all events.
            callback: Function or coroutine function receiving the JobEvent.

        Returns:
            A function that removes the subscription.
        """
        self._subscribers[event_type].append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(event_type, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def subscriber_count(self, event_type: str | None = None) -> int:
        """Get the number of callbacks registered for an event type."""
        return len(self._subscribers.get(event_type, []))

    def publish(self, event: JobEvent) -> None:
        """
        Deliver an event to its subscribers.

        Plain callbacks run immediately; coroutine callbacks are scheduled on
        the running loop so publishing never blocks a scheduling decision.

        Args:
            event: The event to deliver.
        """
        callbacks = [
            *self._subscribers.get(event.event_type, []),
            *self._subscribers.get(None, []),
        ]

        for callback in callbacks:
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._pending.add(task)
                    task.add_done_callback(self._on_delivered)
            except Exception:
                logger.exception(
                    "Event subscriber raised",
                    extra={"event_type": event.event_type, "job_id": event.job_id},
                )

    async def drain(self, timeout: float | None = None) -> None:
        """
        Wait for in-progress coroutine deliveries.

        Args:
            timeout: Seconds to wait before cancelling deliveries that are
                still running. Waits indefinitely if None.
        """
        if not self._pending:
            return

        _, stalled = await asyncio.wait(set(self._pending), timeout=timeout)
        if stalled:
            logger.warning(f"Cancelling {len(stalled)} event deliveries still running")
            for task in stalled:
                task.cancel()
            await asyncio.gather(*stalled, return_exceptions=True)

    def _on_delivered(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Async event subscriber raised: {exc!r}",
                exc_info=exc,
            )
