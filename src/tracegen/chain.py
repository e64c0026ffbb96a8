"""
Simulate one chain of service hops under a parent context.

Timestamps are synthetic: hops start at the chain's start instant plus the
pauses before them and finish after their modeled duration, never at the
wall-clock time a call returns. The only real sleeping is the jitter pause
before each hop after the first, plus the incoming latency used to serialize
several chains inside one root span.
"""

import random
import time
from collections.abc import Sequence

from opentelemetry.context import Context
from opentelemetry.trace import Span, SpanKind

from . import fakedata
from .fakedata import BackendFlavor
from .registry import TracerRegistry
from .tracing import (
    DB_INSTANCE,
    DB_STATEMENT,
    DB_TYPE,
    HTTP_METHOD,
    HTTP_STATUS_CODE,
    HTTP_URL,
    PEER_HOST_IPV4,
    PEER_SERVICE,
    Relationship,
    context_of,
    log_error,
    ms_to_ns,
    now_ns,
)

_FAILURE_DIVISORS = (11, 13, 17)


def _failure_roll() -> int:
    return random.randrange(100)


def _is_failure(roll: int) -> bool:
    return any(roll % divisor == 0 for divisor in _FAILURE_DIVISORS)


def db_statement(operation: str, table: str, flavor: BackendFlavor) -> str:
    return f"{operation.upper()} * FROM `{table}` WHERE service=`{flavor.value}`"


def _tag_hop(
    span: Span,
    service: str,
    operation: str,
    flavor: BackendFlavor | None,
    table: str,
) -> None:
    span.set_attribute(PEER_SERVICE, service)
    span.set_attribute(PEER_HOST_IPV4, fakedata.random_peer_address())
    if flavor is not None:
        span.set_attribute(DB_TYPE, service)
        span.set_attribute(DB_INSTANCE, fakedata.random_ipv4())
        span.set_attribute(DB_STATEMENT, db_statement(operation, table, flavor))
    else:
        method, _, path = operation.partition(":")
        span.set_attribute(HTTP_METHOD, method)
        span.set_attribute(HTTP_URL, path or "/")


def _inject_outcome(span: Span, service: str, is_backend: bool) -> None:
    roll = _failure_roll()
    if _is_failure(roll):
        if not is_backend:
            span.set_attribute(HTTP_STATUS_CODE, 500 + random.randrange(4))
        log_error(
            span,
            f"invoke service {service} with error",
            **{"trace-error": fakedata.random_words(1 + roll % 5)},
        )
    elif not is_backend:
        span.set_attribute(HTTP_STATUS_CODE, 200)


def _plan_hop(chained_service: str, service_apis: Sequence[str]):
    """Pick the hop's operation and duration; backend hops use their flavor's operations."""
    operation = fakedata.pick_api(service_apis)
    latency = fakedata.random_span_duration()
    service, flavor, table = fakedata.parse_service(chained_service)
    if flavor is not None:
        operation = fakedata.pick_operation(flavor)
    return operation, latency, service, flavor, table


def simulate_chain(
    registry: TracerRegistry,
    parent_context: Context | None,
    chained_services: Sequence[str],
    service_apis: Sequence[str],
    incoming_latency: int = 0,
    start_time: int | None = None,
) -> tuple[int, int]:
    """Emit one span per service in chained_services.

    The first hop is the root of the chain: a SERVER span under parent_context
    (or a CLIENT span when it is a backend). Later hops are CLIENT spans; HTTP
    hops become the parent of the next hop, backend hops are leaves.

    All timestamps derive from start_time (ns, defaults to now): hop i starts
    after the pauses taken so far and lasts its duration.

    Returns (total_latency, slept_latency) in milliseconds. The chain root is
    finished at start_time plus their sum.
    """
    if not chained_services:
        raise ValueError("a chain needs at least one service")
    if incoming_latency > 0:
        time.sleep(incoming_latency / 1000.0)

    tracer = registry.get_tracer(chained_services[0])
    if start_time is None:
        start_time = now_ns()

    operation, latency, service, flavor, table = _plan_hop(chained_services[0], service_apis)
    if flavor is None:
        chain_root = tracer.start_span(
            operation,
            parent=parent_context,
            relationship=Relationship.SERVER_OF,
            start_time=start_time,
        )
    else:
        chain_root = tracer.start_span(
            operation, parent=parent_context, kind=SpanKind.CLIENT, start_time=start_time
        )
    parent_context = context_of(chain_root)
    _tag_hop(chain_root, service, operation, flavor, table)
    _inject_outcome(chain_root, service, flavor is not None)

    total_latency = latency
    slept_latency = 0
    for chained_service in chained_services[1:]:
        operation, latency, service, flavor, table = _plan_hop(chained_service, service_apis)
        paused_latency = fakedata.random_pause_duration(latency)
        slept_latency += paused_latency

        issued_at = start_time + ms_to_ns(slept_latency)
        span = tracer.start_span(
            operation, parent=parent_context, kind=SpanKind.CLIENT, start_time=issued_at
        )
        if flavor is None:
            parent_context = context_of(span)

        _tag_hop(span, service, operation, flavor, table)
        _inject_outcome(span, service, flavor is not None)
        span.end(end_time=issued_at + ms_to_ns(latency))

        total_latency = max(total_latency, latency + paused_latency)

    chain_root.end(end_time=start_time + ms_to_ns(total_latency + slept_latency))
    return total_latency, slept_latency
