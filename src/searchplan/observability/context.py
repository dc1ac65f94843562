"""Context propagation for trace correlation across threads and calls."""

from __future__ import annotations

from contextvars import ContextVar
from typing import TYPE_CHECKING
from uuid import uuid4


if TYPE_CHECKING:
    from opentelemetry.trace import Span

# Per-context trace ids; each thread or task sees its own copy
trace_context: ContextVar[dict | None] = ContextVar("searchplan_trace_context", default=None)


def generate_trace_id() -> str:
    """Generate a 32-char hex trace ID."""
    return uuid4().hex


def generate_span_id() -> str:
    """Generate a 16-char hex span ID."""
    return uuid4().hex[:16]


def get_trace_context() -> dict:
    """Get current trace context with trace_id and span_id."""
    ctx = trace_context.get()
    if ctx is None or not ctx.get("trace_id"):
        ctx = {"trace_id": generate_trace_id(), "span_id": generate_span_id()}
        trace_context.set(ctx)
    return ctx


def set_trace_context(trace_id: str, span_id: str, **extra: object) -> None:
    """Set trace context for the current context, e.g. ``index="docs"``."""
    trace_context.set({"trace_id": trace_id, "span_id": span_id, **extra})


def update_from_span(span: Span) -> None:
    """Adopt the span's ids while keeping any extra keys already in context."""
    span_ctx = span.get_span_context()
    ctx = trace_context.get() or {}
    trace_context.set(
        {
            **ctx,
            "trace_id": format(span_ctx.trace_id, "032x"),
            "span_id": format(span_ctx.span_id, "016x"),
        }
    )
