"""Span and metric exporters for generated traces."""

from .console_exporter import create_console_exporters
from .file_exporter import FileSpanExporter
from .otlp_exporter import create_otlp_metric_exporter, create_otlp_trace_exporter

__all__ = [
    "create_otlp_trace_exporter",
    "create_otlp_metric_exporter",
    "FileSpanExporter",
    "create_console_exporters",
]
