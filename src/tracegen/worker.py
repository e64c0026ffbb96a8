"""
One trace-generation loop.

Each iteration starts a root span, optionally round-trips its context through a
text map, drives the chain simulator over every configured chain, and finishes
the root span at its start plus the latency accumulated by the chains. Each
chain starts where the previous one ended on that synthetic timeline, so the
root never finishes before one of its hops. The stop signal is checked once
per iteration, so an in-flight trace always completes.
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum

from opentelemetry.context import Context
from opentelemetry.trace import SpanKind

from . import fakedata
from .chain import simulate_chain
from .fakedata import DEFAULT_SERVICE_APIS
from .registry import TracerRegistry
from .tracing import (
    PEER_HOST_IPV4,
    PEER_SERVICE,
    SAMPLING_PRIORITY,
    PropagationError,
    TracerHandle,
    context_of,
    global_tracer,
    ms_to_ns,
    now_ns,
)

logger = logging.getLogger(__name__)

ROOT_OPERATION = "lets-go"
ROOT_PEER_SERVICE = "tracegen-service"
DEBUG_SAMPLING_PRIORITY = 100


@dataclass(frozen=True)
class WorkerConfig:
    """Immutable per-worker parameters."""

    id: int
    chained_services: tuple[tuple[str, ...], ...]
    service_apis: tuple[str, ...] = DEFAULT_SERVICE_APIS
    # 0 means run until the stop signal is set
    traces: int = 0
    marshal: bool = False
    debug: bool = False
    firehose: bool = False
    # ms to wait before finishing each root span
    pause: int = 0


class WorkerState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class Worker:
    """Generate traces until stopped or until config.traces is reached."""

    def __init__(
        self,
        config: WorkerConfig,
        registry: TracerRegistry,
        stop_event: threading.Event,
        tracer: TracerHandle | None = None,
    ):
        self.config = config
        self.registry = registry
        self.stop_event = stop_event
        self.tracer = tracer
        self.state = WorkerState.IDLE
        self.generated = 0

    def _round_trip(self, tracer: TracerHandle, parent: Context) -> Context:
        """Inject parent into a text map and extract it back; keep parent on failure."""
        try:
            carrier = tracer.inject(parent)
        except PropagationError as e:
            logger.error("worker %d cannot inject span: %s", self.config.id, e)
            return parent
        try:
            return tracer.extract(carrier)
        except PropagationError as e:
            logger.error("worker %d cannot extract from text map: %s", self.config.id, e)
            return parent

    def _simulate_trace(self, tracer: TracerHandle) -> None:
        issued_at = now_ns()
        root_span = tracer.start_span(ROOT_OPERATION, kind=SpanKind.CLIENT, start_time=issued_at)
        root_span.set_attribute(PEER_SERVICE, ROOT_PEER_SERVICE)
        root_span.set_attribute(PEER_HOST_IPV4, fakedata.random_peer_address())
        if self.config.debug:
            root_span.set_attribute(SAMPLING_PRIORITY, DEBUG_SAMPLING_PRIORITY)
        if self.config.firehose:
            tracer.mark_firehose(root_span)

        parent_context = context_of(root_span)
        if self.config.marshal:
            parent_context = self._round_trip(tracer, parent_context)

        total_latency = 0
        chained_latency = 0
        for chained_services in self.config.chained_services:
            chained_latency, slept_latency = simulate_chain(
                self.registry,
                parent_context,
                chained_services,
                self.config.service_apis,
                chained_latency,
                start_time=issued_at + ms_to_ns(total_latency),
            )
            total_latency += chained_latency + slept_latency

        if self.config.pause > 0:
            time.sleep(self.config.pause / 1000.0)
        root_span.end(end_time=issued_at + ms_to_ns(total_latency))

    def run(self) -> int:
        """Run the loop and return the number of traces generated."""
        tracer = self.tracer or global_tracer()
        self.state = WorkerState.RUNNING
        try:
            while not self.stop_event.is_set():
                self._simulate_trace(tracer)
                self.generated += 1
                if self.config.traces and self.generated >= self.config.traces:
                    break
        finally:
            self.state = WorkerState.STOPPED
            logger.info("Worker %d generated %d traces", self.config.id, self.generated)
        return self.generated
