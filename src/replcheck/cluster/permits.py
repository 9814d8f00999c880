"""
Restart permits and the per-cluster deployment context.

Restarting too many group members at once tears the group apart and
forces a slow full recovery. Every node therefore takes a permit from a
shared pool before it restarts and gives it back only once its database
answers queries again.

Capacity is ``max(1, majority(n) - 2)``::

    nodes      1  2  3  4  5  6  7  9
    majority   1  2  2  3  3  4  4  5
    permits    1  1  1  1  1  2  2  3

The pool belongs to a :class:`DeploymentContext`, which is created
Uninitialized and becomes Ready the first time a node asks for permits.
It is never rebuilt: every setup task of one cluster shares it.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from replcheck.core.errors import ConfigError
from replcheck.core.logging import get_logger

logger = get_logger(__name__)


def majority(n: int) -> int:
    """Smallest number of nodes that is more than half of ``n``."""
    return n // 2 + 1


def restart_capacity(n: int) -> int:
    """Number of nodes that may restart at the same time."""
    return max(1, majority(n) - 2)


class RestartPermits:
    """Counting semaphore with a context-managed ``permit()``."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ConfigError(f"Restart permit capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._semaphore = threading.BoundedSemaphore(capacity)
        self._lock = threading.Lock()
        self._in_use = 0
        self._peak = 0

    @property
    def in_use(self) -> int:
        with self._lock:
            return self._in_use

    @property
    def peak(self) -> int:
        """Most permits ever held at once."""
        with self._lock:
            return self._peak

    @contextmanager
    def permit(self, node: str | None = None) -> Iterator[None]:
        """Hold one permit for the duration of the block."""
        self._semaphore.acquire()
        with self._lock:
            self._in_use += 1
            self._peak = max(self._peak, self._in_use)
        logger.debug("permits.acquired", node=node, in_use=self._in_use)
        try:
            yield
        finally:
            with self._lock:
                self._in_use -= 1
            self._semaphore.release()
            logger.debug("permits.released", node=node)


class DeploymentContext:
    """
    Shared state for the setup tasks of one cluster.

    Holds the restart permit pool, the setup barrier, the join lock and
    whether any node has reported a primary. The pool and barrier are
    created on first use and never replaced.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._node_count: int | None = None
        self._permits: RestartPermits | None = None
        self._barrier: threading.Barrier | None = None
        self.join_lock = threading.Lock()
        self.primary_seen = threading.Event()

    @property
    def state(self) -> str:
        with self._lock:
            return "ready" if self._permits is not None else "uninitialized"

    def _check_node_count(self, node_count: int) -> None:
        if self._node_count is None:
            self._node_count = node_count
        elif self._node_count != node_count:
            raise ConfigError(
                f"Deployment context was initialized for {self._node_count} nodes,"
                f" not {node_count}"
            )

    def restart_permits(self, node_count: int) -> RestartPermits:
        """The permit pool for a ``node_count``-node cluster."""
        with self._lock:
            self._check_node_count(node_count)
            if self._permits is None:
                self._permits = RestartPermits(restart_capacity(node_count))
                logger.info(
                    "permits.initialized",
                    nodes=node_count,
                    capacity=self._permits.capacity,
                )
            return self._permits

    def barrier(self, node_count: int) -> threading.Barrier:
        """Barrier every node's setup task waits at between phases."""
        with self._lock:
            self._check_node_count(node_count)
            if self._barrier is None:
                self._barrier = threading.Barrier(node_count)
            return self._barrier


__all__ = [
    "majority",
    "restart_capacity",
    "RestartPermits",
    "DeploymentContext",
]
