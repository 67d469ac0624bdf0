"""
Telemetry helper tests

Metrics are no-ops until configured and trace context survives a
carrier round trip between the correlator and the dispatcher.
"""

import asyncio
import json

from opentelemetry import trace

from seam_jsonrpc.server import JsonRpcServer
from seam_jsonrpc.telemetry import (
    create_span,
    extract_trace_context,
    increment_counter,
    inject_trace_context,
    record_latency,
    setup_metrics,
    with_trace_context,
)

TRACE_ID = "4bf92f3577b34da6a3ce929d0e0e4736"
SPAN_ID = "00f067aa0ba902b7"
TRACEPARENT = f"00-{TRACE_ID}-{SPAN_ID}-01"


def test_metrics_without_setup_do_not_fail():
    increment_counter("rpc.server.requests", 1, {"method": "add"})
    record_latency("rpc.server.latency", 1.5, {"method": "add"})


def test_no_active_span_injects_nothing():
    assert inject_trace_context() is None


def test_extract_ignores_unusable_carriers():
    assert extract_trace_context(None) is None
    assert extract_trace_context({}) is None
    assert extract_trace_context("traceparent") is None


def test_extracted_context_is_propagated():
    ctx = extract_trace_context({"traceparent": TRACEPARENT})

    with with_trace_context(ctx):
        span_context = trace.get_current_span().get_span_context()
        assert span_context.trace_id == int(TRACE_ID, 16)
        assert inject_trace_context()["traceparent"] == TRACEPARENT

    assert not trace.get_current_span().get_span_context().is_valid


def test_with_trace_context_none_is_noop():
    with with_trace_context(None):
        assert not trace.get_current_span().get_span_context().is_valid


def test_create_span_is_usable_without_provider():
    with create_span("rpc.test", {"rpc.method": "add"}) as span:
        assert span is not None


def test_request_with_trace_context_is_dispatched():
    server = JsonRpcServer()
    server.bind("add", lambda a, b: a + b)
    payload = json.dumps({
        "jsonrpc": "2.0",
        "id": 1,
        "method": "add",
        "params": [2, 3],
        "trace_context": {"traceparent": TRACEPARENT},
    })

    response = json.loads(asyncio.run(server.receive(payload)))
    assert response == {"jsonrpc": "2.0", "id": 1, "result": 5}


def test_setup_metrics_installs_sdk_provider():
    meter = setup_metrics("seam-jsonrpc-tests", console=False)
    assert meter is not None
    increment_counter("rpc.client.requests", 1, {"method": "add"})
    record_latency("rpc.client.latency", 0.5, {"method": "add"})
