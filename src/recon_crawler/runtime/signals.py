"""Signal handling for graceful crawl interruption."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
import signal


logger = logging.getLogger(__name__)


def install_shutdown_signals(
    loop: asyncio.AbstractEventLoop | None = None,
    event: asyncio.Event | None = None,
) -> asyncio.Event:
    """Attach SIGINT/SIGTERM handlers that set and return a stop event.

    The first signal begins a graceful stop (drain, checkpoint, exit 3);
    repeated signals are ignored. Must be called from the loop's thread.
    """
    loop = loop or asyncio.get_running_loop()
    stop_event = event or asyncio.Event()

    def _make_handler(sig: signal.Signals) -> Callable[[int, object | None], None]:
        def _handler(signum: int, frame: object | None) -> None:  # pragma: no cover - signal glue
            if stop_event.is_set():
                return
            logger.warning("Received %s, stopping crawl and saving checkpoint", sig.name)
            loop.call_soon_threadsafe(stop_event.set)

        return _handler

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(sig, _make_handler(sig))
        except ValueError:  # pragma: no cover - unsupported in some environments
            logger.debug("Signal %s is not supported in this context", sig.name)

    return stop_event


def restore_default_signals() -> None:
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(sig, signal.SIG_DFL if sig == signal.SIGTERM else signal.default_int_handler)
        except ValueError:  # pragma: no cover
            logger.debug("Signal %s is not supported in this context", sig.name)
