"""Log correlation state shared by the bootstrap task and the tasks it spawns.

asyncio copies the context into every task it creates, so ids set while the
bootstrap runs show up on the loader's and the bridge's log lines.
"""

from __future__ import annotations

from contextvars import ContextVar
import secrets


trace_context: ContextVar[dict | None] = ContextVar("tinysearch_trace_context", default=None)


def get_trace_context() -> dict:
    """Return the current ids, starting a fresh trace if none is active."""
    ctx = trace_context.get()
    if not ctx or not ctx.get("trace_id"):
        ctx = {"trace_id": secrets.token_hex(16), "span_id": secrets.token_hex(8)}
        trace_context.set(ctx)
    return ctx


def set_trace_context(trace_id: str, span_id: str, **extra: object) -> None:
    trace_context.set({"trace_id": trace_id, "span_id": span_id, **extra})


def update_span_id(span_id: str) -> None:
    trace_context.set({**(trace_context.get() or {}), "span_id": span_id})


def bind_identifier(identifier: str) -> None:
    """Tag later log lines with the global name the search function was published as."""
    trace_context.set({**get_trace_context(), "identifier": identifier})
