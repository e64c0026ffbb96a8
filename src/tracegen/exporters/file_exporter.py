"""
JSON-lines span exporter for inspecting generated traces offline.

Each exported span becomes one line with hex ids, nanosecond timestamps, tags,
error events and follows-from links.
"""

import json
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import IO, Any

from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult


def _trace_hex(trace_id: int) -> str:
    return format(trace_id, "032x")


def _span_hex(span_id: int) -> str:
    return format(span_id, "016x")


def span_to_dict(span: ReadableSpan) -> dict[str, Any]:
    """Flatten a finished span into JSON-serializable fields."""
    ctx = span.context
    return {
        "name": span.name,
        "kind": span.kind.name,
        "trace_id": _trace_hex(ctx.trace_id),
        "span_id": _span_hex(ctx.span_id),
        "parent_span_id": _span_hex(span.parent.span_id) if span.parent else None,
        "start_time": span.start_time,
        "end_time": span.end_time,
        "status": {
            "status_code": span.status.status_code.name,
            "description": span.status.description,
        },
        "attributes": dict(span.attributes or {}),
        "events": [
            {"name": e.name, "timestamp": e.timestamp, "attributes": dict(e.attributes or {})}
            for e in span.events
        ],
        "links": [
            {
                "trace_id": _trace_hex(link.context.trace_id),
                "span_id": _span_hex(link.context.span_id),
                "attributes": dict(link.attributes or {}),
            }
            for link in span.links
        ],
        "resource": dict(span.resource.attributes),
    }


class FileSpanExporter(SpanExporter):
    """Append spans to a JSON-lines file, one object per line.

    The file is opened on the first export and kept open until shutdown. The
    batch processors of several services export concurrently, so writes are
    serialized.
    """

    def __init__(self, output_path: str | Path, append: bool = True):
        self.output_path = Path(output_path)
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        if not append and self.output_path.exists():
            self.output_path.unlink()
        self._file: IO[str] | None = None
        self._lock = threading.Lock()

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        payload = "".join(json.dumps(span_to_dict(s), default=str) + "\n" for s in spans)
        with self._lock:
            try:
                if self._file is None:
                    self._file = open(self.output_path, "a", encoding="utf-8")
                self._file.write(payload)
                self._file.flush()
            except OSError:
                return SpanExportResult.FAILURE
        return SpanExportResult.SUCCESS

    def shutdown(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True
