"""
Per-service tracer cache.

TracerRegistry hands out one TracerHandle per service name and guarantees the
factory runs at most once per name, even when many workers ask for the same
service at the same moment. Failed initializations are not cached.
"""

import logging
import threading
from collections.abc import Callable
from typing import Any

from opentelemetry.metrics import MeterProvider
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SimpleSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from opentelemetry.sdk.trace.sampling import ALWAYS_ON

from . import __version__
from .metrics import RPCMetricsSpanProcessor
from .tracing import TracerHandle

logger = logging.getLogger(__name__)

TracerFactory = Callable[[str], TracerHandle]


class TracerInitError(RuntimeError):
    """A tracer could not be created for a service."""

    def __init__(self, service_name: str, cause: BaseException):
        super().__init__(f"failed to create tracer for service {service_name}: {cause}")
        self.service_name = service_name


class TracerRegistry:
    """Service name -> TracerHandle, initialized lazily and at most once per name."""

    def __init__(self, factory: TracerFactory):
        self._factory = factory
        self._tracers: dict[str, TracerHandle] = {}
        self._pending: dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    def __contains__(self, service_name: str) -> bool:
        with self._lock:
            return service_name in self._tracers

    def __len__(self) -> int:
        with self._lock:
            return len(self._tracers)

    def get_tracer(self, service_name: str) -> TracerHandle:
        """Return the tracer for service_name, creating it on first use.

        Concurrent first callers wait for the single initializer and then get
        the same handle. If initialization fails every waiter retries, so a
        transient failure does not stick to the name.
        """
        while True:
            with self._lock:
                tracer = self._tracers.get(service_name)
                if tracer is not None:
                    return tracer
                pending = self._pending.get(service_name)
                if pending is None:
                    pending = threading.Event()
                    self._pending[service_name] = pending
                    break
            pending.wait()

        try:
            tracer = self._factory(service_name)
        except Exception as e:
            logger.error("failed to create tracer for service %s: %s", service_name, e)
            raise TracerInitError(service_name, e) from e
        else:
            with self._lock:
                self._tracers[service_name] = tracer
            logger.debug("created tracer for service %s", service_name)
            return tracer
        finally:
            with self._lock:
                del self._pending[service_name]
            pending.set()


class _RefCountingSpanExporter(SpanExporter):
    """Shares one SpanExporter between per-service providers.

    Each provider holds one reference; the wrapped exporter is shut down when the last one
    lets go.
    """

    def __init__(self, exporter: SpanExporter, shared_ref_count: list[int], lock: Any):
        self._exporter = exporter
        self._ref_count = shared_ref_count
        self._lock = lock
        with self._lock:
            self._ref_count[0] += 1

    def export(self, spans: Any) -> SpanExportResult:
        return self._exporter.export(spans)

    def shutdown(self) -> None:
        with self._lock:
            self._ref_count[0] -= 1
            if self._ref_count[0] <= 0:
                self._exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self._exporter.force_flush(timeout_millis)


class OtelTracerFactory:
    """Build one TracerProvider per service: always-on sampling, RPC metrics, shared exporter."""

    def __init__(
        self,
        exporter: SpanExporter,
        meter_provider: MeterProvider | None = None,
        batch: bool = True,
    ):
        self.exporter = exporter
        self.meter_provider = meter_provider
        self.batch = batch
        self._ref_count: list[int] = [0]
        self._lock = threading.Lock()
        self._providers: list[TracerProvider] = []

    def __call__(self, service_name: str) -> TracerHandle:
        if not service_name:
            raise ValueError("service name must not be empty")
        resource = Resource.create(
            {"service.name": service_name, "service.version": __version__}
        )
        provider = TracerProvider(resource=resource, sampler=ALWAYS_ON)
        if self.meter_provider is not None:
            meter = self.meter_provider.get_meter(f"tracegen.rpc.{service_name}", __version__)
            provider.add_span_processor(RPCMetricsSpanProcessor(meter, service_name))
        processor_cls = BatchSpanProcessor if self.batch else SimpleSpanProcessor
        provider.add_span_processor(
            processor_cls(_RefCountingSpanExporter(self.exporter, self._ref_count, self._lock))
        )
        with self._lock:
            self._providers.append(provider)
        return TracerHandle(provider.get_tracer(__name__, __version__), service_name)

    def shutdown(self) -> None:
        """Flush every provider before shutting any down so the shared exporter sees all batches."""
        with self._lock:
            providers = list(self._providers)
        for provider in providers:
            if not provider.force_flush(5000):
                logger.warning(
                    "timed out flushing spans for %s",
                    provider.resource.attributes.get("service.name"),
                )
        for provider in providers:
            provider.shutdown()
