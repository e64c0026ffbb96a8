"""
RPC metrics derived from finished spans.

Every SERVER or CLIENT span that ends bumps a request counter and records its
duration, keyed by endpoint (span name) and error flag.
"""

from opentelemetry.context import Context
from opentelemetry.metrics import Meter
from opentelemetry.sdk.trace import ReadableSpan, Span, SpanProcessor
from opentelemetry.trace import SpanKind, StatusCode

_RPC_KINDS = (SpanKind.SERVER, SpanKind.CLIENT)


class RPCMetricsSpanProcessor(SpanProcessor):
    """SpanProcessor that records per-endpoint request counts and latencies."""

    def __init__(self, meter: Meter, service_name: str):
        self.service_name = service_name
        self.requests = meter.create_counter(
            "requests",
            unit="1",
            description="Number of simulated RPC requests",
        )
        self.request_latency = meter.create_histogram(
            "request_latency",
            unit="ms",
            description="Synthetic latency of simulated RPC requests",
        )

    def on_start(self, span: Span, parent_context: Context | None = None) -> None:
        pass

    def on_end(self, span: ReadableSpan) -> None:
        if span.kind not in _RPC_KINDS:
            return
        attributes = {
            "service": self.service_name,
            "endpoint": span.name,
            "error": span.status.status_code == StatusCode.ERROR,
        }
        self.requests.add(1, attributes)
        if span.start_time is not None and span.end_time is not None:
            self.request_latency.record((span.end_time - span.start_time) / 1_000_000, attributes)

    def shutdown(self) -> None:
        pass

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True
