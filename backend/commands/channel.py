"""Event channel: fans engine events out to every registered sink."""

import asyncio
import logging
from typing import TextIO

from commands.models import Event

logger = logging.getLogger(__name__)


class EventChannel:
    """Delivers events, in order, to subscribed sinks (async fn(event))."""

    def __init__(self) -> None:
        self._sinks: list = []
        self._lock = asyncio.Lock()

    def subscribe(self, sink) -> None:
        self._sinks.append(sink)

    def unsubscribe(self, sink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)

    async def publish(self, event: Event) -> None:
        """Send an event to all sinks. A failing sink does not affect the others."""
        async with self._lock:
            for sink in list(self._sinks):
                try:
                    await sink(event)
                except Exception as e:
                    logger.error(f"Event sink error: {e}")


class LineWriter:
    """Sink that writes one event per line to a text stream.

    The write runs in a worker thread, so a reader that stops draining the
    pipe only holds up later events, not the event loop.
    """

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream

    def _write(self, line: str) -> None:
        self._stream.write(line + "\n")
        self._stream.flush()

    async def __call__(self, event: Event) -> None:
        await asyncio.to_thread(self._write, event.to_line())


class EventCollector:
    """Sink that keeps events in memory, for embedding shells and tests."""

    def __init__(self) -> None:
        self.events: list[Event] = []
        self._changed = asyncio.Condition()

    async def __call__(self, event: Event) -> None:
        async with self._changed:
            self.events.append(event)
            self._changed.notify_all()

    def tagged(self, tag) -> list[Event]:
        return [e for e in self.events if e.tag == tag]

    async def wait_for(self, predicate, timeout: float = 5.0) -> Event:
        """Wait until an event matching ``predicate`` has been collected."""
        async def _wait() -> Event:
            async with self._changed:
                while True:
                    for event in self.events:
                        if predicate(event):
                            return event
                    await self._changed.wait()

        return await asyncio.wait_for(_wait(), timeout)
