"""
Configuration for a trace-generation run.

Values are resolved in order: built-in defaults, an optional YAML file, then
TRACEGEN_* environment variables. The CLI applies its flags last.

Chains are written as comma-separated service names; several chains are
separated by ';' in TRACEGEN_CHAINS, or given as a list in YAML:

    chains:
      - frontend,checkout,mysql-orders
      - [frontend, redis-sessions]
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

from .fakedata import DEFAULT_SERVICE_APIS
from .worker import WorkerConfig

DEFAULT_SERVICE = "tracegen"
DEFAULT_CHAINS: tuple[tuple[str, ...], ...] = (
    ("frontend", "checkout", "mysql-orders"),
    ("frontend", "redis-sessions"),
)

_ENV_PREFIX = "TRACEGEN_"
_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


class ConfigError(ValueError):
    """Configuration is malformed or out of range."""


def load_yaml(path: Path, default: Any = None) -> Any:
    """Load a YAML mapping; missing file returns default, bad content raises ConfigError."""
    if default is None:
        default = {}
    if not path.exists():
        return default
    try:
        with path.open(encoding="utf-8") as f:
            data: Any = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"{path}: invalid YAML: {e}") from e
    if data is None:
        return default
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def parse_chain(raw: Any) -> tuple[str, ...]:
    """'a,b,c' or ['a', 'b', 'c'] -> ('a', 'b', 'c')."""
    if isinstance(raw, str):
        names = [s.strip() for s in raw.split(",")]
    elif isinstance(raw, (list, tuple)):
        names = [str(s).strip() for s in raw]
    else:
        raise ConfigError(f"chain must be a string or a list, got {type(raw).__name__}")
    names = [n for n in names if n]
    if not names:
        raise ConfigError("chain must name at least one service")
    return tuple(names)


def parse_chains(raw: Any) -> tuple[tuple[str, ...], ...]:
    """Parse 'a,b;c' or a list of chains."""
    if isinstance(raw, str):
        items: list[Any] = [part for part in raw.split(";") if part.strip()]
    elif isinstance(raw, (list, tuple)):
        items = list(raw)
    else:
        raise ConfigError(f"chains must be a string or a list, got {type(raw).__name__}")
    if not items:
        raise ConfigError("at least one chain is required")
    return tuple(parse_chain(item) for item in items)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def _as_int(key: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer, got {value!r}") from None


def _as_float(key: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number, got {value!r}") from None


@dataclass
class TracegenConfig:
    """Inputs for one run: pool size, stop condition, chains and span flags."""

    workers: int = 1
    traces: int = 1
    # seconds; when > 0 workers run until it elapses and traces is ignored
    duration: float = 0.0
    pause: int = 0
    marshal: bool = False
    debug: bool = False
    firehose: bool = False
    service: str = DEFAULT_SERVICE
    chained_services: tuple[tuple[str, ...], ...] = DEFAULT_CHAINS
    service_apis: tuple[str, ...] = DEFAULT_SERVICE_APIS

    def merge(self, data: Mapping[str, Any]) -> "TracegenConfig":
        """Return a copy with the recognized keys of data applied."""
        changes: dict[str, Any] = {}
        for key in ("workers", "traces", "pause"):
            if data.get(key) is not None:
                changes[key] = _as_int(key, data[key])
        if data.get("duration") is not None:
            changes["duration"] = _as_float("duration", data["duration"])
        for key in ("marshal", "debug", "firehose"):
            if data.get(key) is not None:
                changes[key] = _as_bool(data[key])
        if data.get("service"):
            changes["service"] = str(data["service"]).strip()
        if data.get("chains") is not None:
            changes["chained_services"] = parse_chains(data["chains"])
        if data.get("service_apis") is not None:
            apis = data["service_apis"]
            if isinstance(apis, str):
                apis = apis.split(",")
            changes["service_apis"] = tuple(str(a).strip() for a in apis if str(a).strip())
        unknown = set(data) - _KNOWN_KEYS
        if unknown:
            raise ConfigError(f"unknown config keys: {', '.join(sorted(unknown))}")
        return replace(self, **changes)

    def validate(self) -> "TracegenConfig":
        if self.workers < 1:
            raise ConfigError("workers must be at least 1")
        if self.traces < 0:
            raise ConfigError("traces must not be negative")
        if self.duration < 0:
            raise ConfigError("duration must not be negative")
        if self.duration == 0 and self.traces == 0:
            raise ConfigError("either traces or duration must be set")
        if self.pause < 0:
            raise ConfigError("pause must not be negative")
        if not self.service:
            raise ConfigError("service must not be empty")
        if not self.chained_services:
            raise ConfigError("at least one chain is required")
        if not self.service_apis:
            raise ConfigError("service_apis must not be empty")
        return self

    def to_worker_configs(self) -> list[WorkerConfig]:
        traces = 0 if self.duration > 0 else self.traces
        return [
            WorkerConfig(
                id=i,
                chained_services=self.chained_services,
                service_apis=self.service_apis,
                traces=traces,
                marshal=self.marshal,
                debug=self.debug,
                firehose=self.firehose,
                pause=self.pause,
            )
            for i in range(self.workers)
        ]


_KNOWN_KEYS = frozenset(
    {
        "workers",
        "traces",
        "duration",
        "pause",
        "marshal",
        "debug",
        "firehose",
        "service",
        "chains",
        "service_apis",
    }
)


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Collect TRACEGEN_<KEY> variables for the known keys."""
    env = os.environ if environ is None else environ
    result: dict[str, str] = {}
    for key in _KNOWN_KEYS:
        value = env.get(_ENV_PREFIX + key.upper(), "").strip()
        if value:
            result[key] = value
    return result


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> TracegenConfig:
    """Defaults, then YAML file at path (must exist when given), then environment."""
    config = TracegenConfig()
    if path is not None:
        p = Path(path)
        if not p.is_file():
            raise ConfigError(f"config file not found: {p}")
        config = config.merge(load_yaml(p))
    return config.merge(env_overrides(environ))
