"""
OTLP exporters for generated spans and RPC metrics.

The exporter class is looked up per (signal, protocol) and imported lazily, so
the gRPC stack is only loaded when a gRPC collector is targeted.
"""

import importlib
from typing import Any

PROTOCOLS = ("http", "grpc")

# (signal, protocol) -> (module, class name)
_EXPORTERS = {
    ("traces", "http"): (
        "opentelemetry.exporter.otlp.proto.http.trace_exporter",
        "OTLPSpanExporter",
    ),
    ("traces", "grpc"): (
        "opentelemetry.exporter.otlp.proto.grpc.trace_exporter",
        "OTLPSpanExporter",
    ),
    ("metrics", "http"): (
        "opentelemetry.exporter.otlp.proto.http.metric_exporter",
        "OTLPMetricExporter",
    ),
    ("metrics", "grpc"): (
        "opentelemetry.exporter.otlp.proto.grpc.metric_exporter",
        "OTLPMetricExporter",
    ),
}


def resolve_endpoint(endpoint: str, protocol: str, signal: str) -> str:
    """Collector base URL -> the endpoint the exporter for signal expects.

    HTTP exporters post to <base>/v1/<signal>; gRPC exporters take host:port.
    """
    if protocol == "grpc":
        return endpoint.split("://", 1)[-1].rstrip("/")
    endpoint = endpoint.rstrip("/")
    path = f"/v1/{signal}"
    return endpoint if endpoint.endswith(path) else endpoint + path


def _create(signal: str, endpoint: str, protocol: str, headers, **kwargs: Any):
    if protocol not in PROTOCOLS:
        raise ValueError(f"unsupported OTLP protocol: {protocol}")
    module_name, class_name = _EXPORTERS[(signal, protocol)]
    exporter_cls = getattr(importlib.import_module(module_name), class_name)
    return exporter_cls(
        endpoint=resolve_endpoint(endpoint, protocol, signal), headers=headers, **kwargs
    )


def create_otlp_trace_exporter(
    endpoint: str = "http://localhost:4318",
    protocol: str = "http",
    headers: dict[str, str] | None = None,
    **kwargs: Any,
):
    """
    Create the span exporter every per-service tracer provider shares.

    Args:
        endpoint: collector base URL
        protocol: "http" or "grpc"
        headers: extra request headers
    """
    return _create("traces", endpoint, protocol, headers, **kwargs)


def create_otlp_metric_exporter(
    endpoint: str = "http://localhost:4318",
    protocol: str = "http",
    headers: dict[str, str] | None = None,
    **kwargs: Any,
):
    """Create the exporter for the RPC request counters and latency histograms."""
    return _create("metrics", endpoint, protocol, headers, **kwargs)
