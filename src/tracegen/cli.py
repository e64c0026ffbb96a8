"""
Command-line interface for tracegen.

Provides commands for:
- Generating synthetic traces with a pool of workers
- Validating and printing the resolved configuration
"""

import argparse
import logging
import sys

from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader

from .config import ConfigError, TracegenConfig, load_config
from .exporters.console_exporter import create_console_exporters
from .exporters.file_exporter import FileSpanExporter
from .exporters.otlp_exporter import create_otlp_metric_exporter, create_otlp_trace_exporter
from .registry import OtelTracerFactory, TracerInitError
from .runner import Runner

_DEFAULT_ENDPOINT = "http://localhost:4318"
_METRIC_EXPORT_INTERVAL_MS = 5000

EXIT_FATAL = 1
EXIT_CONFIG = 2


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="tracegen",
        description="Synthetic distributed-trace generator for load-testing tracing backends",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # 4 workers, 100 traces each, to an OTLP collector
  tracegen run --workers 4 --traces 100

  # Run for 30 seconds with two chains per trace
  tracegen run --duration 30 --chain frontend,checkout,mysql-orders --chain frontend,redis-cache

  # Write spans to a file instead of OTLP
  tracegen run --traces 10 --output-file traces.jsonl
        """,
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="YAML file with run settings (keys: workers, traces, duration, chains, ...)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    run_parser = subparsers.add_parser("run", help="Generate synthetic traces")
    run_parser.add_argument("--workers", type=int, default=None, help="Number of workers")
    run_parser.add_argument(
        "--traces",
        type=int,
        default=None,
        help="Traces per worker (ignored when --duration is set)",
    )
    run_parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Run for this many seconds instead of a fixed trace count",
    )
    run_parser.add_argument(
        "--pause",
        type=int,
        default=None,
        help="Milliseconds to wait before finishing each root span",
    )
    run_parser.add_argument(
        "--chain",
        dest="chains",
        action="append",
        default=None,
        metavar="SVC[,SVC...]",
        help="Chained services for each trace; repeat for several chains "
        "(prefix redis- or mysql- to simulate a backend)",
    )
    run_parser.add_argument("--service", type=str, default=None, help="Root service name")
    run_parser.add_argument(
        "--marshal",
        action="store_true",
        default=None,
        help="Round-trip the root context through a text map before the chains",
    )
    run_parser.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="Set a sampling priority override on root spans",
    )
    run_parser.add_argument(
        "--firehose",
        action="store_true",
        default=None,
        help="Mark root spans to bypass normal sampling",
    )
    run_parser.add_argument(
        "--endpoint",
        type=str,
        default=_DEFAULT_ENDPOINT,
        help=f"OTLP endpoint (default: {_DEFAULT_ENDPOINT})",
    )
    run_parser.add_argument(
        "--protocol",
        type=str,
        default="http",
        choices=["http", "grpc"],
        help="OTLP protocol (default: http)",
    )
    run_parser.add_argument(
        "--output-file",
        type=str,
        default=None,
        help="Write spans as JSON lines to this file instead of OTLP",
    )
    run_parser.add_argument(
        "--console",
        action="store_true",
        help="Print spans and metrics to stdout instead of OTLP",
    )
    run_parser.add_argument(
        "--no-metrics",
        action="store_true",
        help="Disable RPC metrics export",
    )

    subparsers.add_parser("validate", help="Validate and print the resolved configuration")
    return parser


def resolve_config(args: argparse.Namespace) -> TracegenConfig:
    """Config file and environment, then command-line flags."""
    config = load_config(args.config)
    overrides = {
        "workers": getattr(args, "workers", None),
        "traces": getattr(args, "traces", None),
        "duration": getattr(args, "duration", None),
        "pause": getattr(args, "pause", None),
        "service": getattr(args, "service", None),
        "chains": getattr(args, "chains", None),
        "marshal": getattr(args, "marshal", None),
        "debug": getattr(args, "debug", None),
        "firehose": getattr(args, "firehose", None),
    }
    return config.merge({k: v for k, v in overrides.items() if v is not None}).validate()


def _print_config(config: TracegenConfig) -> None:
    print(f"   Service: {config.service}")
    print(f"   Workers: {config.workers}")
    if config.duration > 0:
        print(f"   Duration: {config.duration}s")
    else:
        print(f"   Traces per worker: {config.traces}")
    if config.pause:
        print(f"   Pause: {config.pause}ms")
    flags = [name for name in ("marshal", "debug", "firehose") if getattr(config, name)]
    print(f"   Flags: {', '.join(flags) if flags else 'none'}")
    print("   Chains:")
    for chain in config.chained_services:
        print(f"      {' -> '.join(chain)}")


def build_factory(args: argparse.Namespace) -> OtelTracerFactory:
    """Pick exporters from the flags and build the per-service tracer factory."""
    metric_exporter = None
    if args.console:
        trace_exporter, metric_exporter = create_console_exporters()
        print("   Output: console")
    elif args.output_file:
        trace_exporter = FileSpanExporter(args.output_file)
        print(f"   Output: {args.output_file}")
    else:
        trace_exporter = create_otlp_trace_exporter(args.endpoint, protocol=args.protocol)
        if not args.no_metrics:
            metric_exporter = create_otlp_metric_exporter(args.endpoint, protocol=args.protocol)
        print(f"   Output: OTLP {args.protocol} {args.endpoint}")

    meter_provider = None
    if metric_exporter is not None and not args.no_metrics:
        reader = PeriodicExportingMetricReader(
            metric_exporter,
            export_interval_millis=_METRIC_EXPORT_INTERVAL_MS,
        )
        meter_provider = MeterProvider(metric_readers=[reader])
    return OtelTracerFactory(trace_exporter, meter_provider=meter_provider)


def cmd_run(args: argparse.Namespace):
    """Generate traces."""
    try:
        config = resolve_config(args)
    except ConfigError as e:
        print(f"Invalid configuration: {e}")
        sys.exit(EXIT_CONFIG)

    print("Starting synthetic trace generation...")
    _print_config(config)
    factory = build_factory(args)
    print()

    runner = Runner(config, factory)
    try:
        counts = runner.run()
    except KeyboardInterrupt:
        print("\nGeneration interrupted")
        sys.exit(0)
    except TracerInitError as e:
        print(f"\nError: {e}")
        sys.exit(EXIT_FATAL)
    finally:
        factory.shutdown()
        if factory.meter_provider is not None:
            factory.meter_provider.shutdown()

    print()
    print(f"Generated {sum(counts)} traces")
    for worker_id, count in enumerate(counts):
        print(f"   worker {worker_id}: {count}")


def cmd_validate(args: argparse.Namespace):
    """Validate configuration and show it."""
    try:
        config = resolve_config(args)
    except ConfigError as e:
        print(f"Validation failed: {e}")
        sys.exit(EXIT_CONFIG)
    print("Configuration is valid")
    _print_config(config)


def main():
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "run":
        cmd_run(args)
    elif args.command == "validate":
        cmd_validate(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
