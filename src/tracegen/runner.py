"""
Run a pool of workers against one tracer registry.

The runner owns the registry, the stop signal and the thread pool. Workers
share the stop signal and the registry and nothing else. A TracerInitError in
any worker stops the whole run and is re-raised once every worker has exited.
"""

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait

from .config import TracegenConfig
from .registry import TracerFactory, TracerRegistry
from .worker import Worker

logger = logging.getLogger(__name__)


class Runner:
    """Start config.workers workers and wait for them to finish."""

    def __init__(self, config: TracegenConfig, factory: TracerFactory):
        self.config = config
        self.registry = TracerRegistry(factory)
        self.stop_event = threading.Event()
        self.workers: list[Worker] = []

    def stop(self) -> None:
        """Ask every worker to exit after its current trace."""
        self.stop_event.set()

    def run(self) -> list[int]:
        """Generate traces; return the count produced by each worker."""
        root_tracer = self.registry.get_tracer(self.config.service)
        self.workers = [
            Worker(worker_config, self.registry, self.stop_event, root_tracer)
            for worker_config in self.config.to_worker_configs()
        ]
        timeout = self.config.duration if self.config.duration > 0 else None

        with ThreadPoolExecutor(
            max_workers=len(self.workers), thread_name_prefix="tracegen-worker"
        ) as pool:
            futures = [pool.submit(worker.run) for worker in self.workers]
            try:
                wait(futures, timeout=timeout, return_when=FIRST_EXCEPTION)
            finally:
                self.stop()

        for future in futures:
            error = future.exception()
            if error is not None:
                raise error
        counts = [future.result() for future in futures]
        logger.info("%d workers generated %d traces", len(counts), sum(counts))
        return counts
