"""In-process topic bus carrying replication messages between instances."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from ipfs_access.interfaces.bus import Handler

log = logging.getLogger(__name__)


@dataclass
class _Subscription:
    topic: str
    handler: Handler
    queue: asyncio.Queue
    task: asyncio.Task | None = None


class LocalEventBus:
    """Fire-and-forget publish/subscribe over asyncio queues.

    Each subscription owns a bounded queue drained by its own consumer task,
    so ``emit`` never waits on a handler and a failing handler never reaches
    the publisher. A full queue drops the message with a warning.
    """

    def __init__(self, queue_size: int = 1000) -> None:
        self._queue_size = queue_size
        self._subscriptions: list[_Subscription] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def subscribe(self, topic: str, handler: Handler) -> None:
        sub = _Subscription(topic, handler, asyncio.Queue(maxsize=self._queue_size))
        self._subscriptions.append(sub)
        if self._running:
            sub.task = asyncio.create_task(self._consume(sub))

    def emit(self, topic: str, payload: Any) -> None:
        for sub in self._subscriptions:
            if sub.topic != topic:
                continue
            try:
                sub.queue.put_nowait(payload)
            except asyncio.QueueFull:
                log.warning("Dropping %s message: subscriber backlog full", topic)

    def bridge(self, topic: str, sibling: LocalEventBus, sibling_topic: str) -> None:
        """Forward every ``topic`` message to ``sibling_topic`` on another bus."""

        async def _relay(payload: Any) -> None:
            sibling.emit(sibling_topic, payload)

        self.subscribe(topic, _relay)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        for sub in self._subscriptions:
            sub.task = asyncio.create_task(self._consume(sub))
        log.debug("Event bus started with %d subscriptions", len(self._subscriptions))

    async def stop(self) -> None:
        self._running = False
        tasks = [sub.task for sub in self._subscriptions if sub.task]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for sub in self._subscriptions:
            sub.task = None

    async def drain(self) -> None:
        """Wait until every queued message has been handled."""
        await asyncio.gather(*(sub.queue.join() for sub in self._subscriptions))

    async def _consume(self, sub: _Subscription) -> None:
        while True:
            payload = await sub.queue.get()
            try:
                await sub.handler(payload)
            except Exception as exc:
                log.error("Handler for %s failed: %s", sub.topic, exc, exc_info=True)
            finally:
                sub.queue.task_done()
