"""Per-task crawl context (task id, worker, trace ids) carried in a ContextVar.

Every asyncio task copies the context it was created in, so a worker that
binds its index only changes what its own log records carry.
"""

from __future__ import annotations

from contextvars import ContextVar
from uuid import uuid4


trace_context: ContextVar[dict | None] = ContextVar("trace_context", default=None)


def get_trace_context() -> dict:
    """Current context; a fresh trace and span id are minted on first use."""
    ctx = trace_context.get()
    if ctx is None or not ctx.get("trace_id"):
        ctx = {**(ctx or {}), "trace_id": uuid4().hex, "span_id": uuid4().hex[:16]}
        trace_context.set(ctx)
    return ctx


def bind_task(task_id: str, *, worker: int | None = None, trace_id: str | None = None) -> None:
    """Stamp the crawl task (and optionally a worker index) on the current context.

    ``trace_id`` replaces the current trace, e.g. to join a trace started
    by a caller; otherwise the existing one is kept.
    """
    ctx = {**get_trace_context(), "task_id": task_id}
    if worker is not None:
        ctx["worker"] = worker
    if trace_id is not None:
        ctx["trace_id"] = trace_id
    trace_context.set(ctx)


def update_span_id(span_id: str) -> None:
    ctx = trace_context.get() or {}
    trace_context.set({**ctx, "span_id": span_id})
