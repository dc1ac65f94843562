"""Observability module for OpenTelemetry-aligned tracing, metrics, and logging."""

from searchplan.observability.context import get_trace_context, set_trace_context, trace_context
from searchplan.observability.logging import JsonFormatter, configure_logging, configure_logging_from_settings
from searchplan.observability.metrics import (
    INDEX_DOC_COUNT,
    INDEX_REQUESTS,
    SEARCH_LATENCY,
    SEARCH_REQUESTS,
    MetricBridge,
    get_metrics,
    get_metrics_content_type,
    track_latency,
    track_outcome,
)
from searchplan.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "INDEX_DOC_COUNT",
    "INDEX_REQUESTS",
    "SEARCH_LATENCY",
    "SEARCH_REQUESTS",
    "JsonFormatter",
    "MetricBridge",
    "configure_logging",
    "configure_logging_from_settings",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_trace_context",
    "get_tracer",
    "init_tracing",
    "set_trace_context",
    "trace_context",
    "track_latency",
    "track_outcome",
]
