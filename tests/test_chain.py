"""Tests for chain simulation: span count, kinds, tags, injected errors and latency composition."""

import itertools

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import SpanKind, StatusCode

from tracegen import chain, fakedata
from tracegen.chain import simulate_chain
from tracegen.fakedata import DEFAULT_SERVICE_APIS, BackendFlavor
from tracegen.registry import TracerRegistry
from tracegen.tracing import context_of, ms_to_ns


def by_service(spans) -> dict:
    return {span.attributes["peer.service"]: span for span in spans}


@pytest.fixture
def fixed_latency(monkeypatch: pytest.MonkeyPatch, sleeps: list[float]):
    """Make hop durations and pauses deterministic; returns a setter for both sequences."""

    def configure(durations, pauses=(0,)):
        duration_iter = itertools.cycle(durations)
        pause_iter = itertools.cycle(pauses)

        def pause(span_duration: int) -> int:
            value = next(pause_iter)
            sleeps.append(value / 1000.0)
            return value

        monkeypatch.setattr(fakedata, "random_span_duration", lambda: next(duration_iter))
        monkeypatch.setattr(fakedata, "random_pause_duration", pause)

    return configure


def test_one_span_per_service(
    registry: TracerRegistry, exporter: InMemorySpanExporter, sleeps
) -> None:
    """A chain of L services produces exactly L spans."""
    simulate_chain(registry, None, ["svc-a", "svc-b", "svc-c"], DEFAULT_SERVICE_APIS)
    assert len(exporter.get_finished_spans()) == 3


def test_chain_root_finishes_at_total_plus_slept(
    registry: TracerRegistry, exporter: InMemorySpanExporter, sleeps
) -> None:
    """The chain root lasts the composed latency plus the pauses."""
    total, slept = simulate_chain(registry, None, ["svc-a", "svc-b", "svc-c"], DEFAULT_SERVICE_APIS)
    chain_root = by_service(exporter.get_finished_spans())["svc-a"]
    assert chain_root.end_time - chain_root.start_time == ms_to_ns(total + slept)


def test_latency_composition_is_max_then_sum(
    registry: TracerRegistry, exporter: InMemorySpanExporter, fixed_latency, sleeps
) -> None:
    """Total is the max of duration plus pause; pauses accumulate."""
    fixed_latency(durations=[10, 50, 20], pauses=[5])

    total, slept = simulate_chain(registry, None, ["svc-a", "svc-b", "svc-c"], DEFAULT_SERVICE_APIS)

    assert (total, slept) == (55, 10)
    spans = by_service(exporter.get_finished_spans())
    assert spans["svc-a"].end_time - spans["svc-a"].start_time == ms_to_ns(65)
    assert spans["svc-b"].end_time - spans["svc-b"].start_time == ms_to_ns(50)
    assert spans["svc-c"].end_time - spans["svc-c"].start_time == ms_to_ns(20)
    # one pause per hop after the first
    assert sleeps == [0.005, 0.005]


def test_single_hop_chain_only_finishes_root(
    registry: TracerRegistry, exporter: InMemorySpanExporter, fixed_latency, sleeps
) -> None:
    """A single-hop chain pauses nowhere and only finishes its root."""
    fixed_latency(durations=[30])

    total, slept = simulate_chain(registry, None, ["svc-a"], DEFAULT_SERVICE_APIS)

    assert (total, slept) == (30, 0)
    assert sleeps == []
    (root,) = exporter.get_finished_spans()
    assert root.kind == SpanKind.SERVER
    assert root.end_time - root.start_time == ms_to_ns(30)


def test_kinds_and_nesting(
    registry: TracerRegistry, exporter: InMemorySpanExporter, sleeps
) -> None:
    """Hop 0 serves the parent; later HTTP hops nest as clients."""
    parent_tracer = registry.get_tracer("tracegen")
    root = parent_tracer.start_span("lets-go")

    simulate_chain(registry, context_of(root), ["svc-a", "svc-b", "svc-c"], DEFAULT_SERVICE_APIS)

    spans = by_service(exporter.get_finished_spans())
    root_ctx = root.get_span_context()
    assert spans["svc-a"].kind == SpanKind.SERVER
    assert spans["svc-a"].parent.span_id == root_ctx.span_id
    assert spans["svc-a"].context.trace_id == root_ctx.trace_id
    assert spans["svc-b"].kind == SpanKind.CLIENT
    assert spans["svc-b"].parent.span_id == spans["svc-a"].context.span_id
    assert spans["svc-c"].kind == SpanKind.CLIENT
    assert spans["svc-c"].parent.span_id == spans["svc-b"].context.span_id


def test_chain_uses_tracer_of_first_service(
    registry: TracerRegistry, exporter: InMemorySpanExporter, sleeps
) -> None:
    """Every hop is emitted by the first service's tracer."""
    simulate_chain(registry, None, ["svc-a", "svc-b"], DEFAULT_SERVICE_APIS)
    for span in exporter.get_finished_spans():
        assert span.resource.attributes["service.name"] == "svc-a"
    assert "svc-b" not in registry


def test_http_hops_tagged_from_operation(
    registry: TracerRegistry, exporter: InMemorySpanExporter, sleeps
) -> None:
    """HTTP hops split the operation into method and URL."""
    simulate_chain(registry, None, ["svc-a", "svc-b"], ["POST:/api/v1/orders"])
    for span in exporter.get_finished_spans():
        assert span.name == "POST:/api/v1/orders"
        assert span.attributes["http.method"] == "POST"
        assert span.attributes["http.url"] == "/api/v1/orders"
        assert 0 <= span.attributes["peer.ipv4"] < 2**32
        assert "db.type" not in span.attributes


def test_redis_hop_uses_backend_tags(
    registry: TracerRegistry, exporter: InMemorySpanExporter, sleeps
) -> None:
    """A redis- prefix yields redis tags and a statement on the stripped table."""
    simulate_chain(registry, None, ["redis-cache", "svc-c"], DEFAULT_SERVICE_APIS)

    spans = by_service(exporter.get_finished_spans())
    redis = spans["redis"]
    assert redis.kind == SpanKind.CLIENT
    assert redis.attributes["db.type"] == "redis"
    assert redis.name in BackendFlavor.REDIS.operations
    statement = redis.attributes["db.statement"]
    assert redis.name.upper() in statement
    assert "`cache`" in statement
    assert "http.method" not in redis.attributes
    # the backend chain root is still the parent of the next hop
    assert spans["svc-c"].parent.span_id == redis.context.span_id


def test_backend_operations_never_come_from_generic_pool(
    registry: TracerRegistry, exporter: InMemorySpanExporter, sleeps
) -> None:
    """Backend hops only use their flavor's operations."""
    for _ in range(30):
        simulate_chain(registry, None, ["svc-a", "mysql-orders"], ["GET:/only"])
    for span in exporter.get_finished_spans():
        if span.attributes["peer.service"] == "mysql":
            assert span.name in BackendFlavor.MYSQL.operations
            assert span.attributes["db.type"] == "mysql"
        else:
            assert span.name == "GET:/only"


def test_backend_hop_is_a_leaf(
    registry: TracerRegistry, exporter: InMemorySpanExporter, sleeps
) -> None:
    """A backend hop never becomes the parent of the next hop."""
    simulate_chain(registry, None, ["svc-a", "mysql-orders", "svc-b"], DEFAULT_SERVICE_APIS)
    spans = by_service(exporter.get_finished_spans())
    assert spans["mysql"].parent.span_id == spans["svc-a"].context.span_id
    assert spans["svc-b"].parent.span_id == spans["svc-a"].context.span_id


def test_injected_failure_marks_every_hop(
    registry: TracerRegistry, exporter: InMemorySpanExporter, monkeypatch, sleeps
) -> None:
    """A failing roll sets error status, tag and event on each hop."""
    monkeypatch.setattr(chain, "_failure_roll", lambda: 0)
    simulate_chain(registry, None, ["svc-a", "redis-cache"], DEFAULT_SERVICE_APIS)

    spans = by_service(exporter.get_finished_spans())
    for span in spans.values():
        assert span.status.status_code == StatusCode.ERROR
        assert span.attributes["error"] is True
        (event,) = span.events
        assert event.name == "error"
        assert event.attributes["trace-error"]
    assert 500 <= spans["svc-a"].attributes["http.status_code"] <= 503
    assert "http.status_code" not in spans["redis"].attributes


def test_success_sets_http_200(
    registry: TracerRegistry, exporter: InMemorySpanExporter, monkeypatch, sleeps
) -> None:
    """A passing roll gives HTTP hops status 200 and backends nothing."""
    monkeypatch.setattr(chain, "_failure_roll", lambda: 1)
    simulate_chain(registry, None, ["svc-a", "mysql-orders"], DEFAULT_SERVICE_APIS)

    spans = by_service(exporter.get_finished_spans())
    assert spans["svc-a"].attributes["http.status_code"] == 200
    assert spans["svc-a"].status.status_code != StatusCode.ERROR
    assert "http.status_code" not in spans["mysql"].attributes
    assert not spans["mysql"].events


def test_failure_rate_is_about_one_in_five() -> None:
    """22 of 100 rolls are divisible by 11, 13 or 17."""
    failing = [roll for roll in range(100) if chain._is_failure(roll)]
    assert len(failing) == 22
    assert {0, 11, 13, 17, 22, 26, 34, 99} <= set(failing)
    assert 1 not in failing


def test_incoming_latency_sleeps_before_chain(
    registry: TracerRegistry, fixed_latency, sleeps
) -> None:
    """The incoming latency is slept before the first hop."""
    fixed_latency(durations=[10])
    simulate_chain(registry, None, ["svc-a"], DEFAULT_SERVICE_APIS, incoming_latency=40)
    assert sleeps == [0.04]


def test_empty_chain_rejected(registry: TracerRegistry) -> None:
    """An empty chain is a caller error."""
    with pytest.raises(ValueError):
        simulate_chain(registry, None, [], DEFAULT_SERVICE_APIS)


def test_timestamps_follow_start_time(
    registry: TracerRegistry, exporter: InMemorySpanExporter, fixed_latency, sleeps
) -> None:
    """Hops start after the pauses before them, measured from the chain's start instant."""
    fixed_latency(durations=[10, 50, 20], pauses=[5])
    start = 1_000_000_000

    simulate_chain(
        registry, None, ["svc-a", "svc-b", "svc-c"], DEFAULT_SERVICE_APIS, start_time=start
    )

    spans = by_service(exporter.get_finished_spans())
    assert spans["svc-a"].start_time == start
    assert spans["svc-a"].end_time == start + ms_to_ns(65)
    assert spans["svc-b"].start_time == start + ms_to_ns(5)
    assert spans["svc-c"].start_time == start + ms_to_ns(10)
    assert spans["svc-c"].end_time == start + ms_to_ns(30)
