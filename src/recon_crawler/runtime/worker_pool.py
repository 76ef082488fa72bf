"""Fixed-size pool of worker tasks draining the frontier."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import logging
from typing import Any

from ..observability.context import bind_task
from ..scheduler.frontier import Frontier, FrontierEntry


logger = logging.getLogger(__name__)

EntryHandler = Callable[[FrontierEntry], Awaitable[None]]


class WorkerPool:
    """Run ``size`` workers that pop, handle and acknowledge frontier entries.

    The pool finishes when the frontier drains (nothing queued, nothing in
    flight) or when ``stop_event`` is set. On stop, the frontier is closed
    so idle workers return at once, and busy workers are cancelled after
    ``drain_timeout`` seconds.
    """

    def __init__(
        self,
        frontier: Frontier,
        handler: EntryHandler,
        *,
        size: int = 20,
        task_id: str = "",
        drain_timeout: float = 30.0,
    ) -> None:
        if size < 1:
            raise ValueError("size must be at least 1")
        self.frontier = frontier
        self.handler = handler
        self.size = size
        self.task_id = task_id
        self.drain_timeout = drain_timeout
        self.active = 0
        self.peak_active = 0
        self.handled = 0
        self.errors = 0
        self._workers: list[asyncio.Task[None]] = []

    async def run(self, stop_event: asyncio.Event | None = None) -> bool:
        """Run until drained or stopped; return True when the frontier drained."""
        stop_event = stop_event or asyncio.Event()
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"recon-worker-{index}") for index in range(self.size)
        ]
        join_task = asyncio.create_task(self.frontier.join(), name="recon-frontier-join")
        stop_task = asyncio.create_task(stop_event.wait(), name="recon-stop-wait")
        try:
            await asyncio.wait({join_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
            drained = join_task.done() and not stop_event.is_set()
        finally:
            join_task.cancel()
            stop_task.cancel()
            await self.frontier.close()
            await self._shutdown_workers()
        logger.info(f"Worker pool finished (drained={drained}, handled={self.handled}, errors={self.errors})")
        return drained

    async def _shutdown_workers(self) -> None:
        if not self._workers:
            return
        _, pending = await asyncio.wait(self._workers, timeout=self.drain_timeout)
        for task in pending:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

    async def _worker(self, index: int) -> None:
        bind_task(self.task_id, worker=index)
        while True:
            entry = await self.frontier.pop()
            if entry is None:
                return
            self.active += 1
            self.peak_active = max(self.peak_active, self.active)
            try:
                await self.handler(entry)
                self.handled += 1
            except asyncio.CancelledError:
                # Interrupted entries stay in flight and are checkpointed as pending
                self.active -= 1
                raise
            except Exception as exc:
                self.errors += 1
                logger.exception(f"Worker {index} failed on {entry.key}: {exc}")
            self.active -= 1
            self.frontier.task_done(entry)

    def get_stats(self) -> dict[str, Any]:
        return {
            "size": self.size,
            "active": self.active,
            "peak_active": self.peak_active,
            "handled": self.handled,
            "errors": self.errors,
        }
