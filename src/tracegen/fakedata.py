"""
Fake data for synthetic spans.

Peer addresses, hop latencies, jitter pauses and the operation vocabulary of
each simulated backend flavor. Durations are integer milliseconds.
"""

import ipaddress
import random
import time
from collections.abc import Sequence
from enum import Enum

from faker import Faker

fake = Faker()


class BackendFlavor(Enum):
    """Simulated data-store flavors selected by a service-name prefix."""

    REDIS = "redis"
    MYSQL = "mysql"

    @property
    def prefix(self) -> str:
        return f"{self.value}-"

    @property
    def operations(self) -> tuple[str, ...]:
        return BACKEND_OPERATIONS[self]


BACKEND_OPERATIONS: dict[BackendFlavor, tuple[str, ...]] = {
    BackendFlavor.REDIS: ("Incr", "Set", "HSet", "TTL"),
    BackendFlavor.MYSQL: ("Query", "Update", "Delete", "Update", "Replace"),
}

# Generic RPC operations, "METHOD:/path".
DEFAULT_SERVICE_APIS: tuple[str, ...] = (
    "GET:/api/v1/users",
    "GET:/api/v1/orders",
    "POST:/api/v1/orders",
    "PUT:/api/v1/orders/items",
    "GET:/api/v1/inventory",
    "DELETE:/api/v1/sessions",
    "POST:/api/v1/payments",
    "GET:/healthz",
)


def parse_service(name: str) -> tuple[str, BackendFlavor | None, str]:
    """Split a chained service name into (canonical name, flavor, table reference).

    'redis-cache' -> ('redis', BackendFlavor.REDIS, 'cache'); names without a
    known prefix come back unchanged with no flavor.
    """
    for flavor in BackendFlavor:
        if name.startswith(flavor.prefix):
            return flavor.value, flavor, name[len(flavor.prefix) :]
    return name, None, ""


def random_ipv4() -> str:
    return fake.ipv4()


def random_peer_address() -> int:
    """Random dotted quad packed into a 32-bit integer, first octet most significant."""
    return int(ipaddress.IPv4Address(random_ipv4()))


def random_span_duration() -> int:
    return random.randrange(10) + random.randrange(100)


def random_pause_duration(span_duration: int) -> int:
    """Pick a jitter pause below span_duration + 3 ms and sleep through it."""
    pause = random.randrange(3 + span_duration)
    time.sleep(pause / 1000.0)
    return pause


def pick_operation(flavor: BackendFlavor) -> str:
    return random.choice(flavor.operations)


def pick_api(service_apis: Sequence[str]) -> str:
    return random.choice(service_apis)


def random_words(count: int) -> str:
    return " ".join(fake.words(nb=max(1, count)))
