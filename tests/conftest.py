"""Shared fixtures: in-memory span capture and a no-op sleep."""

import time

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from tracegen.registry import OtelTracerFactory, TracerRegistry


@pytest.fixture
def exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture
def factory(exporter: InMemorySpanExporter) -> OtelTracerFactory:
    """Tracer factory exporting synchronously so spans are visible right after end()."""
    return OtelTracerFactory(exporter, batch=False)


@pytest.fixture
def registry(factory: OtelTracerFactory) -> TracerRegistry:
    return TracerRegistry(factory)


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record time.sleep calls (seconds) instead of sleeping."""
    calls: list[float] = []
    monkeypatch.setattr(time, "sleep", calls.append)
    return calls
