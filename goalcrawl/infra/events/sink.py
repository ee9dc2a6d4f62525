"""Event sinks for crawl lifecycle events.

`emit` never blocks and never raises into the scheduler loop.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterable

from loguru import logger

from goalcrawl.core.ports import CrawlEvent, EventSink

EVENT_STARTED = "started"
EVENT_PAGE_PROCESSED = "page-processed"
EVENT_AUTH_REQUIRED = "auth-required"
EVENT_COMPLETED = "completed"
EVENT_ERROR = "error"


class NullEventSink(EventSink):
    def emit(self, event: CrawlEvent) -> None:
        return None


class LoggingEventSink(EventSink):
    def __init__(self, level: str = "INFO"):
        self.level = level

    def emit(self, event: CrawlEvent) -> None:
        logger.bind(run_id=event.run_id).log(
            self.level, "crawl event {} url={} payload={}", event.type, event.url or "-", event.payload
        )


class QueueEventSink(EventSink):
    """Buffers events on an asyncio.Queue for streaming; drops when full."""

    def __init__(self, maxsize: int = 1000):
        self.queue: asyncio.Queue[CrawlEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def emit(self, event: CrawlEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1

    def drain(self) -> list[CrawlEvent]:
        events: list[CrawlEvent] = []
        while True:
            try:
                events.append(self.queue.get_nowait())
            except asyncio.QueueEmpty:
                return events


class CallbackEventSink(EventSink):
    """Runs an async callback per event as a background task."""

    def __init__(self, callback: Callable[[CrawlEvent], Awaitable[None]]):
        self.callback = callback
        self._tasks: set[asyncio.Task] = set()

    def emit(self, event: CrawlEvent) -> None:
        try:
            task = asyncio.get_running_loop().create_task(self._deliver(event))
        except RuntimeError:
            logger.warning("No running loop; dropping crawl event {}", event.type)
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, event: CrawlEvent) -> None:
        try:
            await self.callback(event)
        except Exception as exc:
            logger.warning("Event callback failed for {}: {}", event.type, exc)

    async def flush(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class FanoutEventSink(EventSink):
    def __init__(self, sinks: Iterable[EventSink]):
        self.sinks = list(sinks)

    def emit(self, event: CrawlEvent) -> None:
        for sink in self.sinks:
            try:
                sink.emit(event)
            except Exception as exc:
                logger.warning("Event sink {} failed: {}", type(sink).__name__, exc)
