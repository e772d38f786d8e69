"""Event bus carrying catalog mutation events to the invalidation worker.

Store hooks publish and return immediately; a single consumer task delivers
events to subscribers in publish order.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from forooshyar.events.schemas import AnyEvent

logger = logging.getLogger(__name__)


EventHandler = Callable[[AnyEvent], Awaitable[Any]]


class EventBus(ABC):
    """Transport between store hooks and event consumers."""

    @abstractmethod
    async def publish(self, event: AnyEvent) -> None:
        """Enqueue an event for delivery."""

    @abstractmethod
    async def subscribe(self, handler: EventHandler) -> None:
        """Register a coroutine that receives every event."""

    @abstractmethod
    async def start(self) -> None:
        """Begin delivering events."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop delivering events; undelivered events stay queued."""


class InMemoryEventBus(EventBus):
    """Single-process bus backed by an asyncio.Queue.

    Subscribers are called one after another for each event. A subscriber
    that raises is logged and counted; delivery continues with the next one.

    Args:
        max_size: Queue capacity. Publishing to a full queue waits for space,
            so no invalidation is ever dropped.
    """

    def __init__(self, max_size: int = 10000):
        self._queue: asyncio.Queue[AnyEvent] = asyncio.Queue(maxsize=max_size)
        self._handlers: list[EventHandler] = []
        self._consumer: asyncio.Task[None] | None = None
        self.delivered = 0
        self.handler_errors = 0

    async def publish(self, event: AnyEvent) -> None:
        await self._queue.put(event)

    async def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    async def start(self) -> None:
        if self._consumer is not None and not self._consumer.done():
            return
        self._consumer = asyncio.create_task(self._consume(), name="forooshyar-event-bus")

    async def stop(self) -> None:
        consumer, self._consumer = self._consumer, None
        if consumer is None:
            return

        consumer.cancel()
        try:
            await consumer
        except asyncio.CancelledError:
            pass

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._deliver(event)
            finally:
                self._queue.task_done()

    async def _deliver(self, event: AnyEvent) -> None:
        for handler in self._handlers:
            try:
                await handler(event)
            except Exception:
                self.handler_errors += 1
                logger.exception(f"Subscriber failed on {event.entity} event {event.event_id}")
        self.delivered += 1

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    @property
    def pending_count(self) -> int:
        """Events published but not yet picked up by the consumer."""
        return self._queue.qsize()

    async def drain(self) -> None:
        """Wait until every published event has been delivered."""
        await self._queue.join()
