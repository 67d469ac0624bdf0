"""
OpenTelemetry Trace Context Management

Provides span creation and trace context injection/extraction so that a call
can be followed from the client correlator into the remote dispatcher. The
context travels in the ``trace_context`` member of a request as a W3C
``traceparent``/``tracestate`` carrier.
"""

import logging
from contextlib import contextmanager
from typing import Dict, Any, Optional, Iterator

from opentelemetry import context as otel_context
from opentelemetry import propagate, trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ALWAYS_ON

logger = logging.getLogger(__name__)

TRACER_NAME = "seam_jsonrpc"

# Extension member carrying the propagated context
TRACE_CONTEXT_MEMBER = "trace_context"


def setup_tracer(service_name: str, otlp_endpoint: str = "localhost:4317"):
    """Configure OpenTelemetry tracer

    Args:
        service_name: Service name
        otlp_endpoint: OTLP receiver address

    Returns:
        Tracer: Tracer bound to ``service_name``
    """
    provider = TracerProvider(sampler=ALWAYS_ON)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
    trace.set_tracer_provider(provider)

    logger.info(f"OpenTelemetry trace configured, service name: {service_name}, OTLP endpoint: {otlp_endpoint}")

    return trace.get_tracer(service_name)


def inject_trace_context() -> Optional[Dict[str, str]]:
    """Serialize the current trace context into a transportable dictionary

    Returns:
        Dict[str, str]: W3C carrier (``traceparent`` and friends), or None if
        there is no active span
    """
    carrier: Dict[str, str] = {}
    propagate.inject(carrier)
    return carrier or None


def extract_trace_context(carrier: Any) -> Optional[otel_context.Context]:
    """Rebuild an OpenTelemetry context from a carrier dictionary

    Args:
        carrier: Value of the ``trace_context`` member of a request

    Returns:
        Context, or None when the carrier is missing or unusable
    """
    if not carrier or not isinstance(carrier, dict):
        return None

    carrier = {str(k): str(v) for k, v in carrier.items()}
    return propagate.extract(carrier)


@contextmanager
def with_trace_context(ctx: Optional[otel_context.Context]) -> Iterator[None]:
    """Make ``ctx`` the current context for the duration of the block"""
    if ctx is None:
        yield
        return

    token = otel_context.attach(ctx)
    try:
        yield
    finally:
        otel_context.detach(token)


def create_span(name: str, attributes: Dict[str, Any] = None, kind=trace.SpanKind.INTERNAL):
    """Create new span

    Args:
        name: Span name
        attributes: Span attributes
        kind: Span kind (SERVER for dispatch, CLIENT for outgoing calls)

    Returns:
        Context manager yielding the span
    """
    tracer = trace.get_tracer(TRACER_NAME)
    return tracer.start_as_current_span(
        name,
        attributes=attributes or {},
        kind=kind,
    )
