"""
OpenTelemetry Integration Module

Provides distributed tracing and metrics collection capabilities:
- tracer: Trace context management (injection, extraction, propagation)
- metrics: Metrics collection

Both the dispatcher and the correlator record through these helpers, so a call
can be followed across peers whatever transport carries it.
"""

from .metrics import (
    setup_metrics,
    increment_counter,
    record_latency,
)
from .tracer import (
    setup_tracer,
    inject_trace_context,
    extract_trace_context,
    with_trace_context,
    create_span
)

__all__ = [
    "setup_metrics",
    "increment_counter",
    "record_latency",
    "setup_tracer",
    "inject_trace_context",
    "extract_trace_context",
    "with_trace_context",
    "create_span"
]
