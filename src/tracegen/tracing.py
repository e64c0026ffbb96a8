"""
Tracing capability consumed by the generator.

TracerHandle wraps an OpenTelemetry Tracer behind the small surface the chain
simulator and workers need: start a span under a parent relationship, finish
it at an explicit time, log an error, mark it always-sampled, and carry a
span context through a text map.
"""

import time
from enum import Enum
from typing import Any

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.trace import Link, Span, SpanKind, Status, StatusCode, Tracer
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

# Tag keys follow the OpenTracing conventions tracing backends index on.
PEER_SERVICE = "peer.service"
PEER_HOST_IPV4 = "peer.ipv4"
HTTP_METHOD = "http.method"
HTTP_URL = "http.url"
HTTP_STATUS_CODE = "http.status_code"
DB_TYPE = "db.type"
DB_INSTANCE = "db.instance"
DB_STATEMENT = "db.statement"
SAMPLING_PRIORITY = "sampling.priority"
FIREHOSE = "sampling.firehose"
ERROR = "error"


class Relationship(Enum):
    """How a new span relates to its parent context."""

    CHILD_OF = "child_of"
    FOLLOWS_FROM = "follows_from"
    SERVER_OF = "server_of"


class PropagationError(Exception):
    """A span context could not be written to or read from a text map."""


def now_ns() -> int:
    return time.time_ns()


def ms_to_ns(ms: int) -> int:
    return ms * 1_000_000


def context_of(span: Span) -> Context:
    """Context carrying span as the parent for new spans."""
    return trace.set_span_in_context(span, Context())


def log_error(span: Span, message: str, **fields: Any) -> None:
    """Mark span failed and attach an error log event."""
    span.set_attribute(ERROR, True)
    span.set_status(Status(StatusCode.ERROR, message))
    attributes = {"event": "error", "message": message}
    attributes.update({k: v for k, v in fields.items() if v is not None})
    span.add_event("error", attributes)


class TracerHandle:
    """Tracer for one service name."""

    def __init__(self, tracer: Tracer, service_name: str):
        self.tracer = tracer
        self.service_name = service_name
        self._propagator = TraceContextTextMapPropagator()

    def start_span(
        self,
        operation: str,
        parent: Context | None = None,
        relationship: Relationship = Relationship.CHILD_OF,
        kind: SpanKind = SpanKind.INTERNAL,
        start_time: int | None = None,
    ) -> Span:
        """Start a span; a missing parent starts a new trace.

        SERVER_OF forces SpanKind.SERVER. FOLLOWS_FROM keeps the parent and adds
        a link tagged with the reference type.
        """
        context = parent if parent is not None else Context()
        links = None
        if relationship is Relationship.SERVER_OF:
            kind = SpanKind.SERVER
        elif relationship is Relationship.FOLLOWS_FROM and parent is not None:
            parent_span_context = trace.get_current_span(parent).get_span_context()
            if parent_span_context.is_valid:
                links = [Link(parent_span_context, {"opentracing.ref_type": "follows_from"})]
        return self.tracer.start_span(
            operation,
            context=context,
            kind=kind,
            links=links,
            start_time=start_time,
        )

    def mark_firehose(self, span: Span) -> None:
        """Flag span to bypass normal sampling and storage tiering."""
        span.set_attribute(FIREHOSE, True)

    def inject(self, context: Context) -> dict[str, str]:
        """Serialize the span context in context to a flat string map."""
        span_context = trace.get_current_span(context).get_span_context()
        if not span_context.is_valid:
            raise PropagationError("context carries no valid span")
        carrier: dict[str, str] = {}
        self._propagator.inject(carrier, context=context)
        if not carrier:
            raise PropagationError("propagator wrote nothing to the carrier")
        return carrier

    def extract(self, carrier: dict[str, str]) -> Context:
        """Rebuild a parent context from a map written by inject()."""
        context = self._propagator.extract(carrier, context=Context())
        if not trace.get_current_span(context).get_span_context().is_valid:
            raise PropagationError(f"no span context in carrier keys {sorted(carrier)}")
        return context


def global_tracer() -> TracerHandle:
    """Handle on the globally registered OpenTelemetry tracer provider."""
    return TracerHandle(trace.get_tracer("tracegen"), "tracegen")
