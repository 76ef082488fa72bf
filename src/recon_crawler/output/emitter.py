"""Fan page results, findings and progress events out to sinks.

Each sink gets its own bounded queue and consumer task. A slow sink only
slows producers once its queue is full; a failing sink is logged and
keeps receiving events.

Sinks that set ``heavy = True`` store full result records; near-duplicate
pages (``is_similar``) are not sent to them.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass
import logging
from typing import Any

from anyio import to_thread

from ..domain.models import CrawlSummary, Finding, PageResult, ProgressEvent
from .sinks import Sink


logger = logging.getLogger(__name__)

_STOP = object()


@dataclass(slots=True)
class _Channel:
    sink: Sink
    queue: asyncio.Queue
    task: asyncio.Task | None = None
    delivered: int = 0
    failures: int = 0


class ResultEmitter:
    def __init__(self, sinks: Iterable[Sink], *, queue_size: int = 1000, flush_seconds: float = 5.0):
        self.flush_seconds = flush_seconds
        self._channels = [_Channel(sink=sink, queue=asyncio.Queue(maxsize=queue_size)) for sink in sinks]
        self._started = False
        self._closed = False

    @property
    def sinks(self) -> list[Sink]:
        return [channel.sink for channel in self._channels]

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        for channel in self._channels:
            channel.task = asyncio.create_task(self._consume(channel), name=f"sink-{channel.sink.name}")

    async def emit_result(self, result: PageResult) -> None:
        await self._publish("on_result", result, skip_heavy=result.is_similar)

    async def emit_finding(self, finding: Finding) -> None:
        await self._publish("on_sensitive", finding)

    async def emit_progress(self, event: ProgressEvent) -> None:
        await self._publish("on_progress", event)

    async def complete(self, summary: CrawlSummary) -> None:
        await self._publish("on_complete", summary)

    async def close(self) -> None:
        """Drain every queue, then flush and close the sinks."""
        if self._closed:
            return
        self._closed = True
        if not self._started:
            return
        for channel in self._channels:
            await channel.queue.put(_STOP)
        await asyncio.gather(*(channel.task for channel in self._channels if channel.task is not None))

    async def _publish(self, method: str, payload: Any, *, skip_heavy: bool = False) -> None:
        if self._closed:
            logger.debug(f"Emitter closed; dropping {method}")
            return
        for channel in self._channels:
            if skip_heavy and getattr(channel.sink, "heavy", False):
                continue
            await channel.queue.put((method, payload))

    async def _consume(self, channel: _Channel) -> None:
        while True:
            try:
                item = await asyncio.wait_for(channel.queue.get(), timeout=self.flush_seconds)
            except asyncio.TimeoutError:
                await self._call(channel, "flush")
                continue
            if item is _STOP:
                break
            method, payload = item
            if await self._call(channel, method, payload):
                channel.delivered += 1
        await self._call(channel, "flush")
        await self._call(channel, "close")

    async def _call(self, channel: _Channel, method: str, *args: Any) -> bool:
        try:
            await to_thread.run_sync(getattr(channel.sink, method), *args)
        except Exception as exc:
            channel.failures += 1
            logger.warning(f"Sink {channel.sink.name} failed in {method}: {type(exc).__name__}: {exc}")
            return False
        return True

    def get_stats(self) -> dict[str, dict[str, int]]:
        return {
            channel.sink.name: {
                "delivered": channel.delivered,
                "failures": channel.failures,
                "queued": channel.queue.qsize(),
            }
            for channel in self._channels
        }
