"""
tracegen - synthetic distributed-trace generator.

Fabricates multi-service call chains with synthetic latency and injected
errors and emits them through OpenTelemetry, for load-testing a tracing
backend.
"""

__version__ = "1.0.0"
