"""Random transaction generator for the list-append and rw-register workloads."""

from __future__ import annotations

import random
import threading
from typing import Any

from .history import MicroOp
from .workloads import Workload, get_workload


class TransactionGenerator:
    """
    Produces transactions of 1..``max_txn_length`` random micro-ops.

    A pool of ``key_count`` keys is active at a time. Once a key has
    received ``max_writes_per_key`` writes it is retired and replaced by a
    fresh key, so histories stay analysable. Written values are unique per
    key and increase with every write. Thread-safe.
    """

    def __init__(
        self,
        workload: Workload,
        *,
        key_count: int = 10,
        max_txn_length: int = 4,
        max_writes_per_key: int = 256,
        read_ratio: float = 0.5,
        rng: random.Random | None = None,
    ):
        self.workload = workload
        self.max_txn_length = max_txn_length
        self.max_writes_per_key = max_writes_per_key
        self.read_ratio = read_ratio
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._active = list(range(key_count))
        self._next_key = key_count
        self._writes: dict[Any, int] = {}

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> TransactionGenerator:
        return cls(
            get_workload(settings.workload),
            key_count=settings.key_count,
            max_txn_length=settings.max_txn_length,
            max_writes_per_key=settings.max_writes_per_key,
            **kwargs,
        )

    @property
    def active_keys(self) -> list[Any]:
        with self._lock:
            return list(self._active)

    def next_txn(self) -> list[MicroOp]:
        with self._lock:
            length = self._rng.randint(1, self.max_txn_length)
            return [self._next_mop() for _ in range(length)]

    def _next_mop(self) -> MicroOp:
        slot = self._rng.randrange(len(self._active))
        key = self._active[slot]
        if self._rng.random() < self.read_ratio:
            return MicroOp("r", key)

        count = self._writes.get(key, 0) + 1
        self._writes[key] = count
        if count >= self.max_writes_per_key:
            self._active[slot] = self._next_key
            self._next_key += 1
        return MicroOp(self.workload.write_f, key, count)


__all__ = ["TransactionGenerator"]
