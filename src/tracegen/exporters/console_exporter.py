"""Stdout exporters, for watching a short run by eye."""

from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, MetricExporter
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SpanExporter


def create_console_exporters() -> tuple[SpanExporter, MetricExporter]:
    """Span exporter plus RPC metric exporter, both printing JSON to stdout."""
    return ConsoleSpanExporter(), ConsoleMetricExporter()
